"""
Changes to an already generated stage.

None of these touch the edges of the match graph: late entrants get new
standalone matches, swaps only substitute who sits in a slot.
"""
import logging

from .errors import InvalidStageInput
from .groups import create_catch_up_matches
from .models import SLOTS, group_label

logger = logging.getLogger(__name__)

ADDABLE_TYPES = ('round_robin', 'cross_group')


def add_participant(builder, stage, matches, participant_id, group_index=None):
    """
    Add a late entrant to a round robin or cross group stage.

    The entrant plays everyone in its group (round robin) or in the opposite
    half (cross group), all in one catch-up round after the last existing one.
    Cross group entrants are inserted at the end of their half.

    Returns: the group (round robin) or half (cross group, 0 = Alpha) joined
    """
    if stage.type not in ADDABLE_TYPES:
        raise InvalidStageInput(f"Cannot add participants to a {stage.type} stage")
    if participant_id in stage.participants:
        raise InvalidStageInput(f"{participant_id} is already in stage {stage.name}")
    round_num = max((m.round for m in matches), default=0) + 1

    if stage.type == 'round_robin':
        group_count = stage.settings.get('group_count', 1)
        if group_index is None:
            sizes = [len(stage.group_members(g)) for g in range(group_count)]
            group_index = sizes.index(min(sizes))
        if not 0 <= group_index < group_count:
            raise InvalidStageInput(f"Group {group_index} does not exist in stage {stage.name}")
        opponents = stage.group_members(group_index)
        stage.participants.append(participant_id)
        stage.groups[participant_id] = group_index
        pairs = [(opponent, participant_id) for opponent in opponents]
        prefix = f"Group {group_label(group_index)} " if group_count > 1 else ''
        create_catch_up_matches(builder, pairs, round_num, group_index, prefix)
    else:
        alpha = stage.participants[:stage.alpha_size]
        omega = stage.participants[stage.alpha_size:]
        if group_index is None:
            group_index = 0 if len(alpha) <= len(omega) else 1
        if group_index not in (0, 1):
            raise InvalidStageInput("Cross group stages only have halves 0 (Alpha) and 1 (Omega)")
        if group_index == 0:
            stage.participants.insert(stage.alpha_size, participant_id)
            stage.alpha_size += 1
            pairs = [(participant_id, opponent) for opponent in omega]
        else:
            stage.participants.append(participant_id)
            pairs = [(opponent, participant_id) for opponent in alpha]
        stage.groups[participant_id] = 0
        create_catch_up_matches(builder, pairs, round_num)

    logger.info("Added %s to stage %s (group %s, %d catch-up matches)",
                participant_id, stage.name, group_index, len(builder))
    return group_index


def swap_participants(stage, matches, first_id, second_id, directory):
    """
    Exchange two participants everywhere in a stage: participant list, groups,
    match slots (rosters are snapshotted again) and winners.

    Returns: the matches that changed
    """
    if first_id == second_id:
        raise InvalidStageInput("Cannot swap a participant with itself")
    for participant_id in (first_id, second_id):
        if participant_id not in stage.participants:
            raise InvalidStageInput(f"{participant_id} is not in stage {stage.name}")

    swapped = {first_id: second_id, second_id: first_id}
    first_pos = stage.participants.index(first_id)
    second_pos = stage.participants.index(second_id)
    stage.participants[first_pos], stage.participants[second_pos] = second_id, first_id
    if first_id in stage.groups or second_id in stage.groups:
        first_group = stage.groups.get(first_id, 0)
        stage.groups[first_id] = stage.groups.get(second_id, 0)
        stage.groups[second_id] = first_group

    changed = []
    for match in matches:
        touched = False
        for slot in SLOTS:
            current = match.participant_in(slot)
            if current in swapped:
                replacement = swapped[current]
                match.set_participant(slot, replacement, directory(replacement).snapshot_roster())
                touched = True
        if match.winner in swapped:
            match.winner = swapped[match.winner]
            touched = True
        if touched:
            changed.append(match)
    logger.info("Swapped %s and %s in stage %s (%d matches)", first_id, second_id, stage.name, len(changed))
    return changed


def swap_match_slots(first_match, first_slot, second_match, second_slot, directory):
    """
    Exchange the contents of two slots, in one match or across two.
    Rosters are snapshotted again. Completed matches are refused.

    Returns: the matches that changed
    """
    for match, slot in ((first_match, first_slot), (second_match, second_slot)):
        if slot not in SLOTS:
            raise InvalidStageInput(f"Unknown slot: {slot}")
        if match.is_complete:
            raise InvalidStageInput(f"Match #{match.match_number} is already complete")

    same = first_match.id == second_match.id
    if same:
        second_match = first_match
    first = first_match.participant_in(first_slot)
    second = second_match.participant_in(second_slot)
    first_match.set_participant(first_slot, second, _roster(directory, second))
    second_match.set_participant(second_slot, first, _roster(directory, first))
    return [first_match] if same else [first_match, second_match]


def _roster(directory, participant_id):
    if participant_id is None:
        return []
    return directory(participant_id).snapshot_roster()


def add_extra_match(builder, stage, matches, slot_a=None, slot_b=None, name=None, match_format=None):
    """A standalone scheduled match appended after the stage's last round."""
    for participant_id in (slot_a, slot_b):
        if participant_id is not None and participant_id not in stage.participants:
            raise InvalidStageInput(f"{participant_id} is not in stage {stage.name}")
    round_num = max((m.round for m in matches), default=0) + 1
    return builder.create_match(name or 'Extra Match', slot_a, slot_b, round_num, 1,
                                match_format=match_format or 'BO3', bracket='extra',
                                resolve_byes=False)
