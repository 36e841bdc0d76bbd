"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracketcore.engine import TournamentEngine
from bracketcore.models import Participant
from bracketcore.store import Store


def make_participants(count, prefix='team'):
    """Participant ids team1..teamN."""
    return [f"{prefix}{i}" for i in range(1, count + 1)]


@pytest.fixture
def store():
    """In-memory store with eight registered participants."""
    store = Store()
    for participant_id in make_participants(8):
        store.add_participant(Participant(participant_id, participant_id.title(),
                                          [{'name': f'{participant_id}-captain', 'tag': 'C', 'role': 'captain'}]))
    return store


@pytest.fixture
def engine(store):
    """Engine over the in-memory store."""
    return TournamentEngine(store)


@pytest.fixture
def tournament(engine):
    """A tournament with id 't1'."""
    return engine.create_tournament('Test Cup', tournament_id='t1')


@pytest.fixture
def register(engine):
    """Register extra participants by id; returns the ids."""
    def _register(*participant_ids):
        for participant_id in participant_ids:
            engine.register_participant(participant_id, participant_id.title())
        return list(participant_ids)
    return _register


def stage_matches(engine, tournament_id='t1', stage_index=0):
    return engine.get_stage_matches(tournament_id, stage_index)


def by_name(matches):
    return {match.name: match for match in matches}


def playable(matches):
    """Matches waiting for a result with both participants known."""
    return [m for m in matches if m.is_filled and not m.is_complete]


def play_out(engine, tournament_id='t1', stage_index=0, pick=None):
    """
    Report results until nothing is playable. pick(match) returns the winner,
    default is slot A.
    """
    pick = pick or (lambda m: m.slot_a)
    while True:
        ready = playable(engine.get_stage_matches(tournament_id, stage_index))
        if not ready:
            return engine.get_stage_matches(tournament_id, stage_index)
        match = ready[0]
        engine.propagate_match_result(match.id, pick(match))
