"""
Single, double and triple elimination bracket generation.

Participants are split into groups by round-robin distribution. Every group
gets its own bracket:
- Upper bracket: padded to a power of 2 and laid out in standard seed order
- Lower bracket (double elimination): losers of upper round 1 are paired,
  then each later upper round's losers are crossed with the lower survivors
  in reverse order, followed by a consolidation round
- Grand Final: upper champion (slot A) vs lower champion (slot B)
- Triple elimination adds a last-chance bracket for the lower bracket's
  losers and a Lower Final between the two lower champions

A qualified_count above 1 stops the brackets early; no final is played then.
In double elimination the qualifiers are shared evenly between the upper and
lower brackets, so qualified_count 2 plays both brackets out and drops only
the grand final.
"""
import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional

from .builder import LOSER, WINNER, StageBuilder, pair_slots
from .errors import InvalidStageInput
from .models import SLOT_A, SLOT_B, Match, group_label
from .seeding import distribute_into_groups, pad_to_power_of_two, standard_seed_order

logger = logging.getLogger(__name__)

LOWER_ROUND_OFFSET = 100
LAST_CHANCE_ROUND_OFFSET = 200
LOWER_FINAL_ROUND = 998
GRAND_FINAL_ROUND = 999


def rounds_to_play(bracket_size: int, qualified_count: int) -> int:
    """
    Number of upper bracket rounds needed to get down to qualified_count survivors.

    Raises InvalidStageInput when the bracket is too small for that many qualifiers.
    """
    total_rounds = int(math.log2(bracket_size)) if bracket_size > 1 else 0
    cut = math.ceil(math.log2(qualified_count)) if qualified_count > 1 else 0
    played = total_rounds - cut
    if played < 1:
        raise InvalidStageInput(
            f"qualified_count {qualified_count} exceeds the capacity of a {bracket_size}-slot bracket")
    return played


def double_rounds_to_play(bracket_size: int, qualified_count: int, crossed_first: bool = False) -> int:
    """
    Upper bracket rounds of a double elimination bracket.

    With more than one qualifier the upper and lower brackets each keep half of
    them. The lower bracket only matches the upper survivors from its second
    round on, unless its first round already crosses (crossed_first).
    """
    if qualified_count == 1:
        return rounds_to_play(bracket_size, 1)
    played = rounds_to_play(bracket_size, math.ceil(qualified_count / 2))
    if played < 2 and not crossed_first:
        raise InvalidStageInput(
            f"qualified_count {qualified_count} exceeds the capacity of a {bracket_size}-slot double bracket")
    return played


def generate_elimination(builder: StageBuilder, participants: List[str], settings: Dict,
                         double: bool = False, triple: bool = False) -> Dict[str, int]:
    """
    Build single, double or triple elimination brackets into the builder.

    Returns:
        Mapping of participant id to group index
    """
    group_count = settings['group_count']
    groups = distribute_into_groups(participants, group_count)
    if triple and settings['split_participants']:
        raise InvalidStageInput("split_participants only applies to double elimination")
    split = double and not triple and settings['split_participants']
    minimum = 3 if split else 2
    for index, members in enumerate(groups):
        if len(members) < minimum:
            raise InvalidStageInput(
                f"Group {group_label(index)} has {len(members)} participants, at least {minimum} are needed")

    assignments = {}
    for index, members in enumerate(groups):
        prefix = f"Group {group_label(index)} " if group_count > 1 else ''
        for participant_id in members:
            assignments[participant_id] = index
        if triple:
            _build_triple(builder, members, settings, index, prefix)
        elif split:
            _build_split_double(builder, members, settings, index, prefix)
        elif double:
            _build_double(builder, members, settings, index, prefix)
        else:
            _build_single(builder, members, settings, index, prefix)
    return assignments


def _build_upper(builder: StageBuilder, slots: List, played: int, settings: Dict,
                 group_index: int, prefix: str, double: bool) -> List[List[Match]]:
    """Create the upper bracket tree. Returns the matches of each round, round 1 first."""
    total_rounds = int(math.log2(len(slots)))
    label = 'UB ' if double else ''

    def name_and_format(round_num, order):
        if not double and round_num == total_rounds:
            return f"{prefix}Final", settings['final_format'] or 'BO3'
        return f"{prefix}{label}R{round_num}-M{order}", None

    current = []
    for order, (slot_a, slot_b) in enumerate(pair_slots(slots), start=1):
        name, match_format = name_and_format(1, order)
        current.append(builder.create_match(name, slot_a, slot_b, 1, order, match_format=match_format,
                                            bracket='upper', group_index=group_index))
    rounds = [current]

    for round_num in range(2, played + 1):
        following = []
        for i in range(len(current) // 2):
            name, match_format = name_and_format(round_num, i + 1)
            match = builder.create_match(name, None, None, round_num, i + 1, match_format=match_format,
                                         bracket='upper', group_index=group_index)
            builder.link_winner(current[2 * i], match, SLOT_A)
            builder.link_winner(current[2 * i + 1], match, SLOT_B)
            following.append(match)
        rounds.append(following)
        current = following
    return rounds


def _seeded_slots(members: List) -> List:
    padded = pad_to_power_of_two(members)
    return [padded[i] for i in standard_seed_order(len(padded))]


def _build_single(builder, members, settings, group_index, prefix):
    slots = _seeded_slots(members)
    total_rounds = int(math.log2(len(slots)))
    played = rounds_to_play(len(slots), settings['qualified_count'])
    rounds = _build_upper(builder, slots, played, settings, group_index, prefix, double=False)

    if settings['has_third_place'] and played == total_rounds and total_rounds >= 2:
        semifinals = rounds[total_rounds - 2]
        if len(semifinals) == 2 and not any(m.is_bye_match() for m in semifinals):
            third = builder.create_match(f"{prefix}Third Place", None, None, total_rounds, 2,
                                         bracket='third', group_index=group_index)
            builder.link_loser(semifinals[0], third, SLOT_A)
            builder.link_loser(semifinals[1], third, SLOT_B)
    logger.debug("Single elimination group %s: %d slots, %d rounds",
                 group_label(group_index), len(slots), played)


def _drops(matches: List[Match]) -> List[Optional[tuple]]:
    """Loser reference nodes of a round; byes drop nobody."""
    return [None if match.is_bye_match() else (match, LOSER) for match in matches]


def _pairer(builder, label, round_offset, bracket, group_index, prefix):
    """
    Returns pair(node_a, node_b, bracket_round) and the matches it created per round.
    A missing side turns the other node into a passthrough reference.
    """
    created = defaultdict(list)

    def pair(node_a, node_b, bracket_round):
        if node_a is None or node_b is None:
            return node_a if node_a is not None else node_b
        order = len(created[bracket_round]) + 1
        match = builder.create_match(f"{prefix}{label} R{bracket_round}-M{order}", None, None,
                                     round_offset + bracket_round, order,
                                     bracket=bracket, group_index=group_index)
        builder.link(node_a, match, SLOT_A)
        builder.link(node_b, match, SLOT_B)
        created[bracket_round].append(match)
        return (match, WINNER)

    return pair, created


def _build_lower(builder, rounds, played, group_index, prefix, label='LB', bracket='lower'):
    """
    Lower bracket fed by the losers of the upper rounds.

    Returns:
        (final node, loser references of the matches created in each lower round)
    """
    pair, created = _pairer(builder, label, LOWER_ROUND_OFFSET, bracket, group_index, prefix)

    first = _drops(rounds[0])
    nodes = [pair(first[k], first[k + 1] if k + 1 < len(first) else None, 1)
             for k in range(0, len(first), 2)]

    lower_round = 1
    for round_num in range(2, played + 1):
        lower_round += 1
        incoming = list(reversed(_drops(rounds[round_num - 1])))
        nodes = [pair(node, drop, lower_round) for node, drop in zip(nodes, incoming)]
        if round_num < played:
            lower_round += 1
            nodes = [pair(nodes[k], nodes[k + 1], lower_round) for k in range(0, len(nodes), 2)]

    drops = [[(match, LOSER) for match in created[r]] for r in sorted(created)]
    return nodes, drops


def _build_double(builder, members, settings, group_index, prefix):
    slots = _seeded_slots(members)
    played = double_rounds_to_play(len(slots), settings['qualified_count'])
    rounds = _build_upper(builder, slots, played, settings, group_index, prefix, double=True)
    nodes, _ = _build_lower(builder, rounds, played, group_index, prefix)

    if settings['qualified_count'] == 1:
        _grand_final(builder, (rounds[-1][0], WINNER), nodes[0], settings, group_index, prefix)


def _build_last_chance(builder, drop_rounds, group_index, prefix):
    """
    Last-chance bracket for participants on their second loss.

    Each middle round's losers cross the current nodes in reverse order; the
    nodes are consolidated first while they outnumber the incoming losers.
    Returns the champion node, or None when nobody drops in.
    """
    pair, _ = _pairer(builder, 'LC', LAST_CHANCE_ROUND_OFFSET, 'last_chance', group_index, prefix)
    bracket_round = 0

    def halve(nodes):
        return [pair(nodes[k], nodes[k + 1] if k + 1 < len(nodes) else None, bracket_round)
                for k in range(0, len(nodes), 2)]

    nodes = []
    for drops in drop_rounds:
        if not drops:
            continue
        if not nodes:
            nodes = list(drops)
            continue
        while len(nodes) > len(drops):
            bracket_round += 1
            nodes = halve(nodes)
        if len(nodes) < len(drops):
            nodes.extend(drops)
            continue
        bracket_round += 1
        nodes = [pair(node, drop, bracket_round) for node, drop in zip(nodes, reversed(drops))]

    while len(nodes) > 1:
        bracket_round += 1
        nodes = halve(nodes)
    return nodes[0] if nodes else None


def _build_triple(builder, members, settings, group_index, prefix):
    """
    Triple elimination: three brackets, each fed by the losers of the one above.

    Upper losers drop into the middle bracket, middle losers into the last-chance
    bracket. The middle champion meets the last-chance champion in the Lower
    Final, whose winner plays the upper champion in the Grand Final.
    """
    if settings['qualified_count'] != 1:
        raise InvalidStageInput("Triple elimination always plays down to a single champion")
    slots = _seeded_slots(members)
    played = rounds_to_play(len(slots), 1)
    rounds = _build_upper(builder, slots, played, settings, group_index, prefix, double=True)
    nodes, middle_drops = _build_lower(builder, rounds, played, group_index, prefix,
                                       label='MB', bracket='middle')
    last_chance = _build_last_chance(builder, middle_drops, group_index, prefix)

    challenger = nodes[0]
    if last_chance is not None:
        lower_final = builder.create_match(f"{prefix}Lower Final", None, None, LOWER_FINAL_ROUND, 1,
                                           bracket='final', group_index=group_index)
        builder.link(challenger, lower_final, SLOT_A)
        builder.link(last_chance, lower_final, SLOT_B)
        challenger = (lower_final, WINNER)
    _grand_final(builder, (rounds[-1][0], WINNER), challenger, settings, group_index, prefix)
    logger.debug("Triple elimination group %s: %d slots", group_label(group_index), len(slots))


def _build_split_double(builder, members, settings, group_index, prefix):
    """
    Double elimination where the bottom half of the seeds starts in the lower bracket.

    Upper round r losers feed lower round 2r (same index for round 1, reversed
    afterwards); lower round 2r-1 consolidates for r >= 2. Losers of bye
    matches are wired too and resolve at runtime through bye-drops.
    """
    padded = pad_to_power_of_two(members)
    half = len(padded) // 2
    upper_slots = [padded[:half][i] for i in standard_seed_order(half)]
    lower_slots = [padded[half:][i] for i in standard_seed_order(half)]
    played = double_rounds_to_play(half, settings['qualified_count'], crossed_first=True)
    rounds = _build_upper(builder, upper_slots, played, settings, group_index, prefix, double=True)

    def lower_match(lower_round, order, slot_a=None, slot_b=None, entry=False):
        return builder.create_match(f"{prefix}LB R{lower_round}-M{order}", slot_a, slot_b,
                                    LOWER_ROUND_OFFSET + lower_round, order,
                                    bracket='lower', group_index=group_index, entry=entry)

    nodes = [lower_match(1, order, slot_a, slot_b, entry=True)
             for order, (slot_a, slot_b) in enumerate(pair_slots(lower_slots), start=1)]

    for round_num in range(1, played + 1):
        if round_num >= 2:
            consolidated = []
            for k in range(0, len(nodes), 2):
                match = lower_match(2 * round_num - 1, k // 2 + 1)
                builder.link_winner(nodes[k], match, SLOT_A)
                builder.link_winner(nodes[k + 1], match, SLOT_B)
                consolidated.append(match)
            nodes = consolidated

        incoming = rounds[round_num - 1]
        if round_num > 1:
            incoming = list(reversed(incoming))
        crossed = []
        for i, (node, drop) in enumerate(zip(nodes, incoming), start=1):
            match = lower_match(2 * round_num, i)
            builder.link_winner(node, match, SLOT_A)
            builder.link_loser(drop, match, SLOT_B)
            crossed.append(match)
        nodes = crossed

    if settings['qualified_count'] == 1:
        _grand_final(builder, (rounds[-1][0], WINNER), (nodes[0], WINNER), settings, group_index, prefix)


def _grand_final(builder, upper_node, lower_node, settings, group_index, prefix):
    if lower_node is None:
        return None
    final = builder.create_match(f"{prefix}Grand Final", None, None, GRAND_FINAL_ROUND, 1,
                                 match_format=settings['final_format'] or 'BO5',
                                 bracket='final', group_index=group_index)
    builder.link(upper_node, final, SLOT_A)
    builder.link(lower_node, final, SLOT_B)
    return final
