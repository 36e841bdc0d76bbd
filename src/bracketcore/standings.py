"""
Stage standings and advancement.
"""
from collections import defaultdict
from itertools import groupby

from .groups import ROLE_DECIDER, ROLE_WINNERS
from .models import (
    MARKER_WALKOVER, STATUS_AUTO_FORFEIT, STATUS_FINISHED, group_label, other_slot,
)

COUNTED_STATUSES = (STATUS_FINISHED, STATUS_AUTO_FORFEIT)


def counts_for_standings(match):
    """Only played results count: byes and walkovers never do."""
    return (match.status in COUNTED_STATUSES
            and match.winner is not None
            and match.is_filled
            and not match.has_marker(MARKER_WALKOVER))


def _participant_groups(matches):
    groups = {}
    for match in matches:
        for slot in ('slot_a', 'slot_b'):
            participant_id = match.participant_in(slot)
            if participant_id is not None and participant_id not in groups:
                groups[participant_id] = match.group_index or 0
    return groups


def calculate_standings(stage, matches, names=None):
    """
    Calculate the standings table of a stage.

    Returns: [{'id': pid, 'name': name, 'group': 'A', 'wins': n, 'losses': n,
               'played': n, 'head_to_head': {opponent: ['W', 'L', ...]},
               'maps_won': n, 'maps_lost': n, 'map_diff': n, 'round_diff': n,
               'rank': n, 'group_rank': n}, ...]

    Ranking: wins -> the stage's tie_breakers in order -> stage seeding order
    """
    names = names or {}
    match_groups = _participant_groups(matches)
    rows = {}
    for participant_id in stage.participants:
        group_index = match_groups.get(participant_id, stage.groups.get(participant_id, 0))
        rows[participant_id] = {
            'id': participant_id,
            'name': names.get(participant_id, participant_id),
            'group_index': group_index,
            'group': group_label(group_index),
            'wins': 0,
            'losses': 0,
            'played': 0,
            'head_to_head': defaultdict(list),
            'maps_won': 0,
            'maps_lost': 0,
            'round_diff': 0,
        }

    for match in matches:
        if not counts_for_standings(match):
            continue
        winner_slot = match.slot_of(match.winner)
        if winner_slot is None:
            continue
        loser = match.participant_in(other_slot(winner_slot))
        winner = match.winner
        if winner not in rows or loser not in rows:
            continue

        rows[winner]['wins'] += 1
        rows[loser]['losses'] += 1
        rows[winner]['head_to_head'][loser].append('W')
        rows[loser]['head_to_head'][winner].append('L')

        for participant_id, slot in ((match.slot_a, 'slot_a'), (match.slot_b, 'slot_b')):
            rows[participant_id]['played'] += 1
            for score in match.scores or []:
                own = score.get('score_a' if slot == 'slot_a' else 'score_b')
                other = score.get('score_b' if slot == 'slot_a' else 'score_a')
                if own is None or other is None:
                    continue
                rows[participant_id]['round_diff'] += own - other
                if own > other:
                    rows[participant_id]['maps_won'] += 1
                elif other > own:
                    rows[participant_id]['maps_lost'] += 1

    for row in rows.values():
        row['map_diff'] = row['maps_won'] - row['maps_lost']
        row['head_to_head'] = dict(row['head_to_head'])

    tie_breakers = stage.settings.get('tie_breakers') or ['head_to_head', 'map_diff', 'round_diff']
    ordered = []
    by_wins = sorted(rows.values(), key=lambda row: -row['wins'])
    for _, tied in groupby(by_wins, key=lambda row: row['wins']):
        ordered.extend(_break_ties(list(tied), tie_breakers))

    group_counters = defaultdict(int)
    for rank, row in enumerate(ordered, start=1):
        row['rank'] = rank
        group_counters[row['group_index']] += 1
        row['group_rank'] = group_counters[row['group_index']]
    return ordered


def _head_to_head(row, tied_ids):
    """Win balance against the other participants on the same number of wins."""
    balance = 0
    for opponent, results in row['head_to_head'].items():
        if opponent in tied_ids:
            balance += results.count('W') - results.count('L')
    return balance


def _break_ties(tied, tie_breakers):
    """
    Order participants level on wins. Head-to-head is a mini-league among the
    tied participants, so the order stays total when results are circular.
    """
    if len(tied) < 2:
        return tied
    tied_ids = {row['id'] for row in tied}

    def key(row):
        values = []
        for rule in tie_breakers:
            if rule == 'head_to_head':
                values.append(-_head_to_head(row, tied_ids))
            else:
                values.append(-row[rule])
        return values

    return sorted(tied, key=key)


def select_advancing(standings, advance_count=0):
    """
    Top advance_count of each group, groups in label order.
    An advance_count of 0 takes everyone.
    """
    by_group = defaultdict(list)
    for row in standings:
        by_group[row['group_index']].append(row)
    selected = []
    for group_index in sorted(by_group):
        rows = sorted(by_group[group_index], key=lambda r: r['group_rank'])
        if advance_count:
            rows = rows[:advance_count]
        selected.extend(row['id'] for row in rows)
    return selected


def gsl_qualifiers(matches):
    """
    Group winners in group order, then runners-up in group order.
    Returns None while any group has not decided its qualifiers.
    """
    firsts = {}
    seconds = {}
    for match in matches:
        if match.role == ROLE_WINNERS:
            firsts[match.group_index] = match.winner
        elif match.role == ROLE_DECIDER:
            seconds[match.group_index] = match.winner

    qualifiers = []
    for table in (firsts, seconds):
        for group_index in sorted(table):
            if table[group_index] is None and not _group_finished(matches, group_index):
                return None
            if table[group_index] is not None:
                qualifiers.append(table[group_index])
    return qualifiers


def _group_finished(matches, group_index):
    group_matches = [m for m in matches if m.group_index == group_index]
    return all(m.is_complete for m in group_matches)


def swiss_pairings(standings, matches):
    """
    Pair the next Swiss round.

    Participants are taken by score group (wins), best first. Inside a group
    the first unpaired participant meets the first one they have not played
    yet; an unpaired participant floats down into the next group. With an
    odd count the lowest ranked participant without a previous bye sits out.

    Returns: (pairs, bye) where bye is a participant id or None
    """
    opponents = defaultdict(set)
    had_bye = set()
    for match in matches:
        if match.slot_a is not None and match.slot_b is not None:
            opponents[match.slot_a].add(match.slot_b)
            opponents[match.slot_b].add(match.slot_a)
        elif match.winner is not None:
            had_bye.add(match.winner)

    ranked = [row['id'] for row in sorted(standings, key=lambda r: r['rank'])]
    bye = None
    if len(ranked) % 2:
        candidates = [pid for pid in reversed(ranked) if pid not in had_bye]
        bye = candidates[0] if candidates else ranked[-1]
        ranked.remove(bye)

    wins = {row['id']: row['wins'] for row in standings}
    score_groups = []
    for participant_id in ranked:
        if score_groups and wins[score_groups[-1][0]] == wins[participant_id]:
            score_groups[-1].append(participant_id)
        else:
            score_groups.append([participant_id])

    pairs = []
    floaters = []
    for index, group in enumerate(score_groups):
        pool = floaters + group
        floaters = []
        last = index == len(score_groups) - 1
        while pool:
            first = pool.pop(0)
            opponent = next((pid for pid in pool if pid not in opponents[first]), None)
            if opponent is None:
                if not last or not pool:
                    floaters.append(first)
                    continue
                # nobody new left: allow a rematch
                opponent = pool[0]
            pool.remove(opponent)
            pairs.append((first, opponent))
    return pairs, bye
