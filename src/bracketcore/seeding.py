"""
Seeding helpers shared by every bracket type.
"""
import math
import random
from typing import List, Optional, Sequence


def calculate_bracket_size(num_participants: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_participants <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_participants))


def calculate_byes(num_participants: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_participants) - num_participants


def pad_to_power_of_two(participants: Sequence) -> List:
    """
    Pad the participant list with None (bye) slots up to the next power of 2.
    Byes are appended at the end so that they land on the lowest seeds.
    """
    if not participants:
        return []
    padded = list(participants)
    padded.extend([None] * calculate_byes(len(padded)))
    return padded


def standard_seed_order(size: int) -> List[int]:
    """
    Generate the standard bracket order as zero-based seed indices.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 slots: [0, 7, 3, 4, 1, 6, 2, 5]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if size <= 0:
        return []
    if size == 1:
        return [0]

    seeds = [1, 2]
    doubling = 0
    while len(seeds) < size:
        complement = 2 ** (doubling + 2) + 1
        expanded = []
        for seed in seeds:
            expanded.extend([seed, complement - seed])
        seeds = expanded
        doubling += 1
    return [seed - 1 for seed in seeds]


def seed_bracket_slots(participants: Sequence) -> List:
    """Pad the participants and lay them out in standard bracket order."""
    padded = pad_to_power_of_two(participants)
    return [padded[index] for index in standard_seed_order(len(padded))]


def shuffle_participants(participants: Sequence, rng: Optional[random.Random] = None) -> List:
    """Return a uniformly shuffled copy of participants."""
    shuffled = list(participants)
    (rng or random).shuffle(shuffled)
    return shuffled


def distribute_into_groups(participants: Sequence, group_count: int) -> List[List]:
    """
    Round-robin distribution by index: participant i goes to group i % group_count.
    Seed order is preserved inside each group.
    """
    if group_count < 1:
        raise ValueError("group_count must be at least 1")
    groups = [[] for _ in range(group_count)]
    for index, participant in enumerate(participants):
        groups[index % group_count].append(participant)
    return groups


def split_in_halves(participants: Sequence):
    """Split into (alpha, omega); alpha gets the extra participant when odd."""
    middle = (len(participants) + 1) // 2
    return list(participants[:middle]), list(participants[middle:])
