"""
Result propagation through a stage's match graph.

When a match finishes, its winner moves along next_match_id and its loser
along loser_match_id. A missing loser (the match was a bye) becomes a
bye-drop marker on the target slot instead. Bye-drops resolve the receiving
match by walkover, or by a double bye when both of its slots are bye-drops.
Every step moves strictly downstream, so a cascade always terminates.
"""
import logging

from .builder import EMPTY
from .errors import GraphConsistencyError
from .models import (
    BYE_DROP_MARKERS, MARKER_ADVANCED, MARKER_DOUBLE_BYE, MARKER_WALKOVER,
    STATUS_BYE, STATUS_FINISHED, other_slot,
)

logger = logging.getLogger(__name__)


class ResultPropagator:
    def __init__(self, store, on_ready=None):
        """
        Args:
            store: Store holding the matches and the participant directory
            on_ready: Callable invoked with a match when both its slots first fill
        """
        self.store = store
        self.on_ready = on_ready

    def propagate(self, match, winner, loser=None):
        """Advance winner and loser of a finished match to their target slots."""
        if winner is None:
            return
        match = self.store.get_match(match.id)
        if match.has_marker(MARKER_ADVANCED):
            raise GraphConsistencyError(f"Match #{match.match_number} was already propagated")
        match.add_marker(MARKER_ADVANCED)
        self.store.save_match(match)
        logger.debug("Propagating #%d: winner=%s loser=%s", match.match_number, winner, loser)

        if match.next_match_id:
            self.fill_slot(match.next_match_id, match.next_slot, winner)
        if match.loser_match_id:
            if loser is not None:
                self.fill_slot(match.loser_match_id, match.loser_slot, loser)
            else:
                self.handle_bye_drop(match.loser_match_id, match.loser_slot)

    def propagate_empty(self, match):
        """Forward a bye-drop to both targets of a match that finished with no winner."""
        match = self.store.get_match(match.id)
        if match.has_marker(MARKER_ADVANCED):
            raise GraphConsistencyError(f"Match #{match.match_number} was already propagated")
        match.add_marker(MARKER_ADVANCED)
        self.store.save_match(match)
        logger.debug("Forwarding empty result of #%d", match.match_number)

        if match.next_match_id:
            self.handle_bye_drop(match.next_match_id, match.next_slot)
        if match.loser_match_id:
            self.handle_bye_drop(match.loser_match_id, match.loser_slot)

    def fill_slot(self, match_id, slot, participant_id):
        match = self.store.get_match(match_id)
        if match.participant_in(slot) is not None:
            raise GraphConsistencyError(
                f"Match #{match.match_number} {slot} is already filled by {match.participant_in(slot)}")
        if match.has_bye_drop(slot):
            raise GraphConsistencyError(f"Match #{match.match_number} {slot} already received a bye-drop")

        participant = self.store.get_participant(participant_id)
        match.set_participant(slot, participant_id, participant.snapshot_roster())

        if match.has_bye_drop(other_slot(slot)) and match.winner is None:
            self._walkover(match, participant_id)
            return

        self.store.save_match(match)
        if match.is_filled and not match.ready_notified:
            self.mark_ready(match)

    def handle_bye_drop(self, match_id, slot):
        match = self.store.get_match(match_id)
        if match.has_bye_drop(slot):
            return
        if match.participant_in(slot) is not None:
            raise GraphConsistencyError(
                f"Match #{match.match_number} {slot} is filled and cannot take a bye-drop")
        match.add_marker(BYE_DROP_MARKERS[slot])

        opposite = other_slot(slot)
        if match.has_bye_drop(opposite):
            match.status = STATUS_BYE
            match.winner = None
            match.add_marker(MARKER_DOUBLE_BYE)
            self.store.save_match(match)
            logger.debug("Double bye at #%d", match.match_number)
            self.propagate_empty(match)
        elif match.participant_in(opposite) is not None and match.winner is None:
            self._walkover(match, match.participant_in(opposite))
        else:
            self.store.save_match(match)

    def _walkover(self, match, winner):
        match.winner = winner
        match.status = STATUS_FINISHED
        match.add_marker(MARKER_WALKOVER)
        self.store.save_match(match)
        logger.debug("Walkover at #%d for %s", match.match_number, winner)
        self.propagate(match, winner, None)

    def mark_ready(self, match):
        """Fire the match-ready hook once. Hook failures are logged and never undo the fill."""
        match.ready_notified = True
        self.store.save_match(match)
        if self.on_ready is None:
            return
        try:
            self.on_ready(match)
        except Exception:
            logger.exception("Match-ready hook failed for #%d", match.match_number)

    def resolve_pending(self, pending):
        """Run the byes queued by a builder, after its matches were persisted."""
        for match, kind in pending:
            if kind == EMPTY:
                self.propagate_empty(match)
            else:
                self.propagate(match, match.winner, None)
