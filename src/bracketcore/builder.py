"""
Two-phase match graph builder.

Strategies create match nodes in an in-memory arena and wire winner/loser
edges between them. Nothing gets a durable id until persist(), which reserves
a contiguous block of match numbers, assigns ids in creation order, resolves
the edges and writes the whole stage in one go.
"""
import logging
import uuid
from typing import Callable, List, Optional, Tuple

from .errors import GraphConsistencyError
from .models import (
    Match, SLOTS,
    STATUS_BYE, MARKER_BYE, MARKER_EMPTY_BYE,
)

logger = logging.getLogger(__name__)

WINNER = 'winner'
LOSER = 'loser'
EMPTY = 'empty'


class StageBuilder:
    def __init__(self, tournament_id: str, stage_name: str, directory: Callable,
                 default_format: str = 'BO1'):
        """
        Args:
            tournament_id: Tournament the matches belong to
            stage_name: Stage the matches belong to
            directory: Callable returning the Participant for an id
            default_format: Format used when create_match gets none
        """
        self.tournament_id = tournament_id
        self.stage_name = stage_name
        self.directory = directory
        self.default_format = default_format
        self.matches: List[Match] = []
        self.pending: List[Tuple[Match, str]] = []
        self._index = {}
        self._winner_edges = {}
        self._loser_edges = {}
        self._wired = set()
        self.persisted = False

    def __len__(self):
        return len(self.matches)

    def _position(self, match: Match) -> int:
        try:
            return self._index[id(match)]
        except KeyError:
            raise GraphConsistencyError(f"{match.name} does not belong to this builder")

    def create_match(self, name: str, participant_a: Optional[str], participant_b: Optional[str],
                     round_num: int, order: int, match_format: Optional[str] = None,
                     bracket: str = 'upper', group_index: int = 0, role: str = '',
                     entry: bool = False, resolve_byes: bool = True) -> Match:
        """
        Add a match node to the arena.

        One concrete side makes a bye won by that side. Two empty sides in
        round 1 (or in an entry match, whose slots are seeded rather than fed)
        make an empty bye with no winner. Both kinds are queued and resolved
        once the stage is persisted. resolve_byes=False keeps the match
        scheduled whatever its slots hold.
        """
        if self.persisted:
            raise GraphConsistencyError("Stage already persisted")
        match = Match(
            tournament_id=self.tournament_id,
            stage_name=self.stage_name,
            name=name,
            round=round_num,
            order=order,
            match_format=match_format or self.default_format,
            bracket=bracket,
            group_index=group_index,
            role=role,
        )
        for slot, participant_id in zip(SLOTS, (participant_a, participant_b)):
            if participant_id is not None:
                participant = self.directory(participant_id)
                match.set_participant(slot, participant_id, participant.snapshot_roster())

        present = [p for p in (participant_a, participant_b) if p is not None]
        if resolve_byes and len(present) == 1:
            match.status = STATUS_BYE
            match.winner = present[0]
            match.add_marker(MARKER_BYE)
            self.pending.append((match, WINNER))
        elif resolve_byes and not present and (round_num == 1 or entry):
            match.status = STATUS_BYE
            match.add_marker(MARKER_EMPTY_BYE)
            self.pending.append((match, EMPTY))

        self._index[id(match)] = len(self.matches)
        self.matches.append(match)
        return match

    def _claim(self, target: Match, slot: str):
        if slot not in SLOTS:
            raise GraphConsistencyError(f"Unknown slot: {slot}")
        key = (self._position(target), slot)
        if key in self._wired:
            raise GraphConsistencyError(f"{target.name} {slot} already has a feeder")
        self._wired.add(key)

    def link_winner(self, source: Match, target: Match, slot: str):
        position = self._position(source)
        if position in self._winner_edges:
            raise GraphConsistencyError(f"{source.name} winner is already wired")
        self._claim(target, slot)
        self._winner_edges[position] = (self._position(target), slot)

    def link_loser(self, source: Match, target: Match, slot: str):
        position = self._position(source)
        if position in self._loser_edges:
            raise GraphConsistencyError(f"{source.name} loser is already wired")
        self._claim(target, slot)
        self._loser_edges[position] = (self._position(target), slot)

    def link(self, node, target: Match, slot: str):
        """Wire a (match, 'winner' | 'loser') reference node into a target slot."""
        source, kind = node
        if kind == WINNER:
            self.link_winner(source, target, slot)
        else:
            self.link_loser(source, target, slot)

    def is_wired(self, target: Match, slot: str) -> bool:
        return (self._position(target), slot) in self._wired

    def persist(self, store) -> List[str]:
        """Reserve match numbers, assign ids, resolve edges and write every match."""
        if self.persisted:
            raise GraphConsistencyError("Stage already persisted")
        if not self.matches:
            self.persisted = True
            return []

        numbers = store.reserve_match_numbers(self.tournament_id, len(self.matches))
        for match, number in zip(self.matches, numbers):
            match.id = uuid.uuid4().hex
            match.match_number = number

        for position, (target, slot) in self._winner_edges.items():
            self.matches[position].next_match_id = self.matches[target].id
            self.matches[position].next_slot = slot
        for position, (target, slot) in self._loser_edges.items():
            self.matches[position].loser_match_id = self.matches[target].id
            self.matches[position].loser_slot = slot

        store.save_matches(self.matches)
        self.persisted = True
        logger.info("Persisted %d matches for stage %s (#%d-#%d)",
                    len(self.matches), self.stage_name, numbers[0], numbers[-1])
        return [match.id for match in self.matches]


def pair_slots(participants):
    """Split a flat seeded slot list into consecutive (a, b) pairs."""
    return [(participants[i], participants[i + 1]) for i in range(0, len(participants) - 1, 2)]


