"""
Tournament engine: the operations exposed to callers.

Every operation on a tournament holds that tournament's lock and runs inside a
store transaction, so a failed cascade leaves nothing half written. Different
tournaments can be worked on from different threads at the same time.
"""
import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from functools import partial

from . import mutator
from .builder import StageBuilder
from .elimination import generate_elimination
from .errors import GraphConsistencyError, InvalidStageInput, NotFoundError
from .groups import (
    create_swiss_round, generate_cross_group, generate_gsl, generate_round_robin, generate_swiss,
)
from .models import (
    MARKER_ADVANCED, STATUS_AUTO_FORFEIT, STATUS_FINISHED,
    Participant, Stage, Tournament, other_slot,
)
from .propagation import ResultPropagator
from .seeding import shuffle_participants
from .settings import STAGE_TYPES, normalize_settings
from .standings import calculate_standings, gsl_qualifiers, select_advancing, swiss_pairings

logger = logging.getLogger(__name__)

DEFAULT_ADVANCE_COUNT = 2

STAGE_GENERATORS = {
    'single_elim': partial(generate_elimination, double=False),
    'double_elim': partial(generate_elimination, double=True),
    'triple_elim': partial(generate_elimination, double=True, triple=True),
    'gsl': generate_gsl,
    'round_robin': generate_round_robin,
    'swiss': generate_swiss,
    'cross_group': generate_cross_group,
}


class TournamentEngine:
    def __init__(self, store, rng=None):
        """
        Args:
            store: Store for tournaments, matches and participants
            rng: Optional random.Random used when settings ask to randomize
        """
        self.store = store
        self.rng = rng
        self._locks = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()
        self._ready_hooks = []
        self.propagator = ResultPropagator(store, on_ready=self._fire_match_ready)

    # Plumbing

    def _lock_for(self, tournament_id):
        with self._locks_guard:
            return self._locks[tournament_id]

    @contextmanager
    def _operation(self, tournament_id):
        with self._lock_for(tournament_id):
            with self.store.transaction(tournament_id):
                yield

    def on_match_ready(self, callback):
        """Register a hook called with a match the first time both its slots are filled."""
        self._ready_hooks.append(callback)
        return callback

    def _fire_match_ready(self, match):
        for hook in list(self._ready_hooks):
            try:
                hook(match)
            except Exception:
                logger.exception("Match-ready hook %r failed for match #%d", hook, match.match_number)

    def _stage(self, tournament, stage_index):
        try:
            stage_index = int(stage_index)
        except (TypeError, ValueError):
            raise NotFoundError(f"Stage {stage_index!r} not found")
        if not 0 <= stage_index < len(tournament.stages):
            raise NotFoundError(f"Stage {stage_index} not found in tournament {tournament.id}")
        return tournament.stages[stage_index]

    def _participant_names(self, participant_ids):
        names = {}
        for participant_id in participant_ids:
            if self.store.has_participant(participant_id):
                names[participant_id] = self.store.get_participant(participant_id).name
        return names

    def _settle(self, builder):
        """Resolve a freshly persisted builder's byes and announce matches born ready."""
        self.propagator.resolve_pending(builder.pending)
        for match in self.store.find_matches(ids=[m.id for m in builder.matches]):
            if match.is_filled and not match.is_complete and not match.ready_notified:
                self.propagator.mark_ready(match)

    # Tournaments and participants

    def register_participant(self, participant_id, name=None, roster=None):
        """Create or update a participant. Match snapshots already taken are unaffected."""
        if not participant_id:
            raise InvalidStageInput("Participant id is required")
        participant = Participant(participant_id, name or participant_id, roster)
        self.store.add_participant(participant)
        return participant

    def create_tournament(self, name, participants=None, tournament_id=None):
        tournament_id = tournament_id or uuid.uuid4().hex
        for participant_id in participants or []:
            if not self.store.has_participant(participant_id):
                raise InvalidStageInput(f"Unknown participant: {participant_id}")
        with self._operation(tournament_id):
            try:
                self.store.get_tournament(tournament_id)
            except NotFoundError:
                pass
            else:
                raise InvalidStageInput(f"Tournament {tournament_id} already exists")
            tournament = Tournament(tournament_id, name, participants)
            self.store.save_tournament(tournament)
        logger.info("Created tournament %s (%s)", tournament_id, name)
        return tournament

    def get_tournament(self, tournament_id):
        return self.store.get_tournament(tournament_id)

    # Stage generation

    def _resolve_participants(self, tournament, participants, settings):
        """Participants carried over from a source stage, or the ones given."""
        source_index = settings['source_stage_index']
        if source_index < 0:
            return list(participants or [])
        if source_index >= len(tournament.stages):
            raise InvalidStageInput(f"Source stage {source_index} does not exist")

        source = tournament.stages[source_index]
        matches = self.store.find_matches(ids=source.match_ids)
        if source.type == 'gsl' and settings['advance_method'] == 'cross_group':
            qualifiers = gsl_qualifiers(matches)
            if qualifiers is None:
                raise InvalidStageInput(f"Source stage {source.name} has undecided qualifiers")
            return qualifiers
        if source.type in ('round_robin', 'swiss'):
            standings = calculate_standings(source, matches)
            return select_advancing(standings, settings['advance_count'] or DEFAULT_ADVANCE_COUNT)
        return list(participants or [])

    def _validate_participants(self, participants):
        if not participants:
            raise InvalidStageInput("No participants to seed")
        seen = set()
        for participant_id in participants:
            if participant_id in seen:
                raise InvalidStageInput(f"Duplicate participant: {participant_id}")
            seen.add(participant_id)
            if not self.store.has_participant(participant_id):
                raise InvalidStageInput(f"Unknown participant: {participant_id}")

    def generate_stage(self, tournament_id, stage_name, stage_type, participants=None, settings=None):
        """
        Build a stage's whole match graph, persist it and resolve its byes.
        Not idempotent: every call creates a new, independent stage.

        Returns:
            Ids of the created matches, in match number order
        """
        if stage_type not in STAGE_TYPES:
            raise InvalidStageInput(f"Unknown stage type: {stage_type!r}")
        if not stage_name:
            raise InvalidStageInput("Stage name is required")
        settings = normalize_settings(settings)

        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            seeded = self._resolve_participants(tournament, participants, settings)
            self._validate_participants(seeded)
            if settings['randomize'] and settings['advance_method'] != 'cross_group':
                seeded = shuffle_participants(seeded, self.rng)

            builder = StageBuilder(tournament_id, stage_name, self.store.get_participant,
                                   settings['default_format'])
            groups = STAGE_GENERATORS[stage_type](builder, seeded, settings)

            stage = Stage(stage_name, stage_type, settings, seeded)
            stage.groups = groups
            if stage_type == 'cross_group':
                stage.alpha_size = (len(seeded) + 1) // 2
            stage.match_ids = builder.persist(self.store)
            tournament.stages.append(stage)
            self.store.save_tournament(tournament)
            self._settle(builder)

        logger.info("Generated %s stage %r in tournament %s: %d participants, %d matches",
                    stage_type, stage_name, tournament_id, len(seeded), len(stage.match_ids))
        return list(stage.match_ids)

    def generate_next_swiss_round(self, tournament_id, stage_index):
        """Pair the next Swiss round once every match of the stage is complete."""
        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            stage = self._stage(tournament, stage_index)
            if stage.type != 'swiss':
                raise InvalidStageInput(f"Stage {stage.name} is not a swiss stage")
            matches = self.store.find_matches(ids=stage.match_ids)
            if any(not m.is_complete for m in matches):
                raise InvalidStageInput("The current swiss round is still in progress")
            current_round = max((m.round for m in matches), default=0)
            if current_round >= stage.settings.get('swiss_rounds', 3):
                raise InvalidStageInput(f"Stage {stage.name} already played all its rounds")

            standings = calculate_standings(stage, matches)
            pairs, bye = swiss_pairings(standings, matches)
            builder = StageBuilder(tournament_id, stage.name, self.store.get_participant,
                                   stage.settings.get('default_format', 'BO1'))
            create_swiss_round(builder, pairs, bye, current_round + 1)
            new_ids = builder.persist(self.store)
            stage.match_ids.extend(new_ids)
            self.store.save_tournament(tournament)
            self._settle(builder)

        logger.info("Swiss round %d of %s: %d matches", current_round + 1, stage.name, len(new_ids))
        return new_ids

    def delete_stage(self, tournament_id, stage_index):
        """Remove a stage and its matches. Match numbers are not handed out again."""
        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            stage = self._stage(tournament, stage_index)
            self.store.delete_matches(stage.match_ids)
            tournament.stages.remove(stage)
            self.store.save_tournament(tournament)
        logger.info("Deleted stage %r of tournament %s", stage.name, tournament_id)

    def update_stage_settings(self, tournament_id, stage_index, settings):
        """Merge new settings into a stage. The generated matches are not rebuilt."""
        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            stage = self._stage(tournament, stage_index)
            merged = dict(stage.settings)
            merged.update(settings or {})
            stage.settings = normalize_settings(merged)
            self.store.save_tournament(tournament)
        return stage.settings

    # Results

    def propagate_match_result(self, match_id, winner, loser=None):
        """
        Record a match's winner and advance the graph.

        Refuses matches that were already propagated, so a retried call can
        never advance a participant twice.
        """
        tournament_id = self.store.get_match(match_id).tournament_id
        with self._operation(tournament_id):
            match = self.store.get_match(match_id)
            if match.has_marker(MARKER_ADVANCED):
                raise GraphConsistencyError(f"Match #{match.match_number} was already propagated")
            winner_slot = match.slot_of(winner)
            if winner_slot is None:
                raise GraphConsistencyError(f"{winner} does not play in match #{match.match_number}")
            opponent = match.participant_in(other_slot(winner_slot))
            if opponent is None:
                raise GraphConsistencyError(f"Match #{match.match_number} is still waiting for an opponent")
            if loser is None:
                loser = opponent
            elif loser != opponent:
                raise GraphConsistencyError(f"{loser} is not the opponent of {winner}")

            if match.status != STATUS_AUTO_FORFEIT:
                match.status = STATUS_FINISHED
            match.winner = winner
            self.store.save_match(match)
            self.propagator.propagate(match, winner, loser)
            result = self.store.get_match(match_id)

        logger.info("Match #%d won by %s", result.match_number, winner)
        return result

    # Reads

    def get_stage_matches(self, tournament_id, stage_index):
        tournament = self.store.get_tournament(tournament_id)
        stage = self._stage(tournament, stage_index)
        return self.store.find_matches(ids=stage.match_ids)

    def get_stage_standings(self, tournament_id, stage_index):
        tournament = self.store.get_tournament(tournament_id)
        stage = self._stage(tournament, stage_index)
        matches = self.store.find_matches(ids=stage.match_ids)
        return calculate_standings(stage, matches, self._participant_names(stage.participants))

    # Mutations

    def add_participant_to_stage(self, tournament_id, stage_index, participant_id, group_index=None):
        """Add a late entrant with catch-up matches. Returns the new match ids."""
        if not self.store.has_participant(participant_id):
            raise InvalidStageInput(f"Unknown participant: {participant_id}")
        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            stage = self._stage(tournament, stage_index)
            matches = self.store.find_matches(ids=stage.match_ids)
            builder = StageBuilder(tournament_id, stage.name, self.store.get_participant,
                                   stage.settings.get('default_format', 'BO1'))
            mutator.add_participant(builder, stage, matches, participant_id, group_index)
            new_ids = builder.persist(self.store)
            stage.match_ids.extend(new_ids)
            self.store.save_tournament(tournament)
            self._settle(builder)
        return new_ids

    def swap_participants_in_stage(self, tournament_id, stage_index, first_id, second_id):
        """Exchange two participants across a stage. Returns the ids of the changed matches."""
        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            stage = self._stage(tournament, stage_index)
            matches = self.store.find_matches(ids=stage.match_ids)
            changed = mutator.swap_participants(stage, matches, first_id, second_id,
                                                self.store.get_participant)
            self.store.save_matches(changed)
            self.store.save_tournament(tournament)
        return [match.id for match in changed]

    def swap_match_slots(self, first_match_id, first_slot, second_match_id, second_slot):
        first = self.store.get_match(first_match_id)
        second = self.store.get_match(second_match_id)
        if first.tournament_id != second.tournament_id:
            raise InvalidStageInput("Cannot swap slots across tournaments")
        with self._operation(first.tournament_id):
            first = self.store.get_match(first_match_id)
            second = self.store.get_match(second_match_id)
            changed = mutator.swap_match_slots(first, first_slot, second, second_slot,
                                               self.store.get_participant)
            self.store.save_matches(changed)
            for match in changed:
                if match.is_filled and not match.ready_notified:
                    self.propagator.mark_ready(match)
        return changed

    def add_extra_match(self, tournament_id, stage_index, slot_a=None, slot_b=None, name=None,
                        match_format=None):
        with self._operation(tournament_id):
            tournament = self.store.get_tournament(tournament_id)
            stage = self._stage(tournament, stage_index)
            matches = self.store.find_matches(ids=stage.match_ids)
            builder = StageBuilder(tournament_id, stage.name, self.store.get_participant)
            mutator.add_extra_match(builder, stage, matches, slot_a, slot_b, name, match_format)
            new_ids = builder.persist(self.store)
            stage.match_ids.extend(new_ids)
            self.store.save_tournament(tournament)
            self._settle(builder)
        return self.store.get_match(new_ids[0])
