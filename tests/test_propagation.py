"""
Tests for result propagation, bye-drops and the match-ready hook.
"""
import logging

import pytest

from bracketcore.builder import StageBuilder
from bracketcore.errors import GraphConsistencyError
from bracketcore.models import (
    MARKER_ADVANCED, MARKER_DOUBLE_BYE, MARKER_WALKOVER, SLOT_A, SLOT_B,
    STATUS_BYE, STATUS_FINISHED,
)
from bracketcore.propagation import ResultPropagator


@pytest.fixture
def builder(store):
    return StageBuilder('t1', 'Playoffs', store.get_participant)


@pytest.fixture
def ready(store):
    """Propagator whose ready hook records the matches it is called with."""
    seen = []
    propagator = ResultPropagator(store, on_ready=seen.append)
    propagator.seen = seen
    return propagator


def _finish(store, propagator, match, winner, loser):
    match = store.get_match(match.id)
    match.winner = winner
    match.status = STATUS_FINISHED
    store.save_match(match)
    propagator.propagate(match, winner, loser)


class TestPropagate:
    """Winners and losers moving along their edges."""

    def test_winner_and_loser_advance(self, builder, store, ready):
        opener = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        winners = builder.create_match('W', None, None, 2, 1)
        losers = builder.create_match('L', None, None, 2, 2)
        builder.link_winner(opener, winners, SLOT_B)
        builder.link_loser(opener, losers, SLOT_A)
        builder.persist(store)

        _finish(store, ready, opener, 'team1', 'team2')

        assert store.get_match(winners.id).slot_b == 'team1'
        assert store.get_match(losers.id).slot_a == 'team2'
        assert store.get_match(opener.id).has_marker(MARKER_ADVANCED)

    def test_roster_snapshot_taken_on_fill(self, builder, store, ready):
        opener = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        final = builder.create_match('Final', None, None, 2, 1)
        builder.link_winner(opener, final, SLOT_A)
        builder.persist(store)

        _finish(store, ready, opener, 'team1', 'team2')
        assert store.get_match(final.id).slot_a_roster == [
            {'name': 'team1-captain', 'tag': 'C', 'role': 'captain'}]

    def test_second_propagation_refused(self, builder, store, ready):
        opener = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        final = builder.create_match('Final', None, None, 2, 1)
        builder.link_winner(opener, final, SLOT_A)
        builder.persist(store)

        _finish(store, ready, opener, 'team1', 'team2')
        with pytest.raises(GraphConsistencyError):
            ready.propagate(opener, 'team1', 'team2')
        assert store.get_match(final.id).slot_a == 'team1'

    def test_filled_slot_refused(self, builder, store, ready):
        opener = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        builder.persist(store)
        with pytest.raises(GraphConsistencyError):
            ready.fill_slot(opener.id, SLOT_A, 'team3')

    def test_no_winner_is_a_no_op(self, builder, store, ready):
        opener = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        builder.persist(store)
        ready.propagate(opener, None)
        assert not store.get_match(opener.id).has_marker(MARKER_ADVANCED)


class TestByeDrops:
    """Missing losers resolve the receiving match without a reported result."""

    def test_walkover_when_opponent_arrives(self, builder, store, ready):
        bye = builder.create_match('R1-M1', 'team1', None, 1, 1)
        real = builder.create_match('R1-M2', 'team2', 'team3', 1, 2)
        lower = builder.create_match('LB R1-M1', None, None, 101, 1)
        after = builder.create_match('LB R2-M1', None, None, 102, 1)
        builder.link_loser(bye, lower, SLOT_A)
        builder.link_loser(real, lower, SLOT_B)
        builder.link_winner(lower, after, SLOT_A)
        builder.persist(store)
        ready.resolve_pending(builder.pending)

        assert store.get_match(lower.id).has_bye_drop(SLOT_A)
        assert store.get_match(lower.id).winner is None

        _finish(store, ready, real, 'team2', 'team3')

        lower = store.get_match(lower.id)
        assert lower.winner == 'team3'
        assert lower.status == STATUS_FINISHED
        assert lower.has_marker(MARKER_WALKOVER)
        assert store.get_match(after.id).slot_a == 'team3'
        # a walkover never reports a ready match
        assert ready.seen == []

    def test_walkover_when_drop_arrives_second(self, builder, store, ready):
        real = builder.create_match('R1-M1', 'team2', 'team3', 1, 1)
        lower = builder.create_match('LB R1-M1', None, None, 101, 1)
        builder.link_loser(real, lower, SLOT_A)
        builder.persist(store)

        _finish(store, ready, real, 'team2', 'team3')
        ready.handle_bye_drop(lower.id, SLOT_B)

        lower = store.get_match(lower.id)
        assert lower.winner == 'team3'
        assert lower.has_marker(MARKER_WALKOVER)

    def test_double_bye_cascades(self, builder, store, ready):
        first = builder.create_match('R1-M1', None, None, 1, 1)
        second = builder.create_match('R1-M2', None, None, 1, 2)
        middle = builder.create_match('R2-M1', None, None, 2, 1)
        last = builder.create_match('R3-M1', None, None, 3, 1)
        builder.link_winner(first, middle, SLOT_A)
        builder.link_winner(second, middle, SLOT_B)
        builder.link_winner(middle, last, SLOT_B)
        builder.persist(store)
        ready.resolve_pending(builder.pending)

        middle = store.get_match(middle.id)
        assert middle.status == STATUS_BYE
        assert middle.winner is None
        assert middle.has_marker(MARKER_DOUBLE_BYE)
        assert store.get_match(last.id).has_bye_drop(SLOT_B)

    def test_bye_drop_on_filled_slot_refused(self, builder, store, ready):
        opener = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        builder.persist(store)
        with pytest.raises(GraphConsistencyError):
            ready.handle_bye_drop(opener.id, SLOT_A)

    def test_repeated_bye_drop_ignored(self, builder, store, ready):
        target = builder.create_match('R2-M1', None, None, 2, 1)
        builder.persist(store)
        ready.handle_bye_drop(target.id, SLOT_A)
        ready.handle_bye_drop(target.id, SLOT_A)
        assert store.get_match(target.id).markers() == ['BYE_DROP_A']


class TestReadyHook:
    """The match-ready hook fires once, when both slots are filled."""

    def test_fires_once(self, builder, store, ready):
        first = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        second = builder.create_match('R1-M2', 'team3', 'team4', 1, 2)
        final = builder.create_match('Final', None, None, 2, 1)
        builder.link_winner(first, final, SLOT_A)
        builder.link_winner(second, final, SLOT_B)
        builder.persist(store)

        _finish(store, ready, first, 'team1', 'team2')
        assert ready.seen == []
        _finish(store, ready, second, 'team3', 'team4')
        assert [m.id for m in ready.seen] == [final.id]
        assert store.get_match(final.id).ready_notified

    def test_failing_hook_does_not_undo_fill(self, builder, store, caplog):
        def explode(match):
            raise RuntimeError("notification service down")

        propagator = ResultPropagator(store, on_ready=explode)
        first = builder.create_match('R1-M1', 'team1', 'team2', 1, 1)
        second = builder.create_match('R1-M2', 'team3', 'team4', 1, 2)
        final = builder.create_match('Final', None, None, 2, 1)
        builder.link_winner(first, final, SLOT_A)
        builder.link_winner(second, final, SLOT_B)
        builder.persist(store)

        with caplog.at_level(logging.ERROR, logger='bracketcore.propagation'):
            _finish(store, propagator, first, 'team1', 'team2')
            _finish(store, propagator, second, 'team3', 'team4')

        final = store.get_match(final.id)
        assert (final.slot_a, final.slot_b) == ('team1', 'team3')
        assert 'Match-ready hook failed' in caplog.text
