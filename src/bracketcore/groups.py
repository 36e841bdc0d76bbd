"""
Group stage generation: GSL dual groups, round robin, Swiss and cross group.
"""
import logging
from typing import Dict, List, Optional, Tuple

from .builder import StageBuilder
from .errors import InvalidStageInput
from .models import SLOT_A, SLOT_B, group_label
from .seeding import distribute_into_groups, split_in_halves

logger = logging.getLogger(__name__)

GSL_GROUP_SIZE = 4
ROLE_OPENING = 'opening'
ROLE_WINNERS = 'winners'
ROLE_ELIMINATION = 'elimination'
ROLE_DECIDER = 'decider'


def _group_prefix(group_index: int, group_count: int) -> str:
    return f"Group {group_label(group_index)} " if group_count > 1 else ''


def _require_one_group(settings: Dict, stage_label: str):
    if settings['group_count'] != 1:
        raise InvalidStageInput(f"{stage_label} does not split into groups, got group_count {settings['group_count']}")


def generate_gsl(builder: StageBuilder, participants: List[str], settings: Dict) -> Dict[str, int]:
    """
    Dual-tournament groups of four, five matches each:
    - Opening A: seed 1 vs seed 4
    - Opening B: seed 2 vs seed 3
    - Winners: opening winners, the winner qualifies first
    - Elimination: opening losers
    - Decider: Winners loser vs Elimination winner, the winner qualifies second

    Groups are cut from every four consecutive seeds, so group_count must stay 1.
    Short groups are padded with byes, which resolve through bye-drops.
    """
    if len(participants) < 2:
        raise InvalidStageInput("GSL needs at least 2 participants")
    _require_one_group(settings, 'GSL')

    groups = [list(participants[i:i + GSL_GROUP_SIZE])
              for i in range(0, len(participants), GSL_GROUP_SIZE)]
    assignments = {}
    for index, members in enumerate(groups):
        members.extend([None] * (GSL_GROUP_SIZE - len(members)))
        prefix = f"Group {group_label(index)} "
        for participant_id in members:
            if participant_id is not None:
                assignments[participant_id] = index

        def create(label, slot_a, slot_b, round_num, order, role):
            return builder.create_match(f"{prefix}{label}", slot_a, slot_b, round_num, order,
                                        bracket='group', group_index=index, role=role)

        opening_a = create('Opening A', members[0], members[3], 1, 1, ROLE_OPENING)
        opening_b = create('Opening B', members[1], members[2], 1, 2, ROLE_OPENING)
        winners = create('Winners Match', None, None, 2, 1, ROLE_WINNERS)
        elimination = create('Elimination Match', None, None, 2, 2, ROLE_ELIMINATION)
        decider = create('Decider Match', None, None, 3, 1, ROLE_DECIDER)

        builder.link_winner(opening_a, winners, SLOT_A)
        builder.link_winner(opening_b, winners, SLOT_B)
        builder.link_loser(opening_a, elimination, SLOT_A)
        builder.link_loser(opening_b, elimination, SLOT_B)
        builder.link_loser(winners, decider, SLOT_A)
        builder.link_winner(elimination, decider, SLOT_B)

    logger.debug("GSL: %d groups", len(groups))
    return assignments


def circle_rounds(members: List) -> List[List[Tuple]]:
    """
    Circle method schedule for one leg.

    Position 0 stays fixed; after each round the last entry moves to position 1.
    Odd groups get a None padding entry, and pairings against it are dropped.
    """
    rotation = list(members)
    if len(rotation) % 2:
        rotation.append(None)
    size = len(rotation)
    rounds = []
    for _ in range(size - 1):
        pairs = []
        for i in range(size // 2):
            home, away = rotation[i], rotation[size - 1 - i]
            if home is not None and away is not None:
                pairs.append((home, away))
        rounds.append(pairs)
        rotation.insert(1, rotation.pop())
    return rounds


def generate_round_robin(builder: StageBuilder, participants: List[str], settings: Dict) -> Dict[str, int]:
    group_count = settings['group_count']
    if len(participants) < 2:
        raise InvalidStageInput("Round robin needs at least 2 participants")
    if group_count > len(participants) // 2:
        raise InvalidStageInput(
            f"group_count {group_count} leaves groups with fewer than 2 of {len(participants)} participants")

    assignments = {}
    for index, members in enumerate(distribute_into_groups(participants, group_count)):
        prefix = _group_prefix(index, group_count)
        for participant_id in members:
            assignments[participant_id] = index
        leg_rounds = circle_rounds(members)
        for leg in range(settings['round_count']):
            for offset, pairs in enumerate(leg_rounds):
                round_num = leg * len(leg_rounds) + offset + 1
                for order, (home, away) in enumerate(pairs, start=1):
                    if leg % 2 == 1:
                        home, away = away, home
                    builder.create_match(f"{prefix}R{round_num}-M{order}", home, away, round_num, order,
                                         bracket='group', group_index=index)
    return assignments


def create_swiss_round(builder: StageBuilder, pairs: List[Tuple[str, str]], bye: Optional[str],
                       round_num: int):
    """Create the matches of one Swiss round; the bye goes last."""
    order = 0
    for order, (slot_a, slot_b) in enumerate(pairs, start=1):
        builder.create_match(f"R{round_num}-M{order}", slot_a, slot_b, round_num, order, bracket='group')
    if bye is not None:
        builder.create_match(f"R{round_num}-M{order + 1}", bye, None, round_num, order + 1, bracket='group')


def generate_swiss(builder: StageBuilder, participants: List[str], settings: Dict) -> Dict[str, int]:
    """Round 1 only: pair in the given order, the odd one out gets a bye."""
    if len(participants) < 2:
        raise InvalidStageInput("Swiss needs at least 2 participants")
    _require_one_group(settings, 'Swiss')
    pairs = [(participants[i], participants[i + 1]) for i in range(0, len(participants) - 1, 2)]
    bye = participants[-1] if len(participants) % 2 else None
    create_swiss_round(builder, pairs, bye, 1)
    return {participant_id: 0 for participant_id in participants}


def generate_cross_group(builder: StageBuilder, participants: List[str], settings: Dict) -> Dict[str, int]:
    """
    Alpha (first half) plays every member of Omega (second half).
    Round r pairs Alpha[i] with Omega[(i + r) mod size].
    """
    if len(participants) < 2:
        raise InvalidStageInput("Cross group needs at least 2 participants")
    _require_one_group(settings, 'Cross group')
    alpha, omega = split_in_halves(participants)
    size = max(len(alpha), len(omega))
    alpha.extend([None] * (size - len(alpha)))
    omega.extend([None] * (size - len(omega)))

    for offset in range(size):
        order = 0
        for i in range(size):
            home, away = alpha[i], omega[(i + offset) % size]
            if home is None or away is None:
                continue
            order += 1
            builder.create_match(f"R{offset + 1}-M{order}", home, away, offset + 1, order, bracket='group')
    return {participant_id: 0 for participant_id in participants}


def create_catch_up_matches(builder: StageBuilder, pairs: List[Tuple[str, str]],
                            round_num: int, group_index: int = 0, prefix: str = ''):
    """All of a late entrant's matches, in a single extra round."""
    for order, (slot_a, slot_b) in enumerate(pairs, start=1):
        builder.create_match(f"{prefix}R{round_num}-M{order}", slot_a, slot_b, round_num, order,
                             bracket='group', group_index=group_index)
