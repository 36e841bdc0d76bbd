"""
Tests for group stage formats: GSL, round robin, Swiss and cross group.
"""
from collections import Counter
from itertools import combinations

import pytest

from bracketcore.errors import InvalidStageInput
from bracketcore.groups import circle_rounds
from bracketcore.models import MARKER_DOUBLE_BYE, MARKER_WALKOVER, STATUS_BYE
from bracketcore.standings import gsl_qualifiers

from conftest import by_name, make_participants, play_out, playable, stage_matches


def _pairings(matches):
    return Counter(frozenset((m.slot_a, m.slot_b)) for m in matches if m.is_filled)


class TestGSL:
    """Dual-tournament groups of four."""

    def test_five_matches_per_group(self, engine, tournament):
        engine.generate_stage('t1', 'Groups', 'gsl', make_participants(8))
        matches = stage_matches(engine)
        assert len(matches) == 10
        named = by_name(matches)
        assert (named['Group A Opening A'].slot_a, named['Group A Opening A'].slot_b) == ('team1', 'team4')
        assert (named['Group A Opening B'].slot_a, named['Group A Opening B'].slot_b) == ('team2', 'team3')
        assert (named['Group B Opening A'].slot_a, named['Group B Opening A'].slot_b) == ('team5', 'team8')
        assert {m.bracket for m in matches} == {'group'}

    def test_wiring(self, engine, tournament):
        engine.generate_stage('t1', 'Groups', 'gsl', make_participants(4))
        named = by_name(stage_matches(engine))
        opening_a, winners = named['Group A Opening A'], named['Group A Winners Match']
        elimination, decider = named['Group A Elimination Match'], named['Group A Decider Match']
        assert opening_a.next_match_id == winners.id
        assert opening_a.loser_match_id == elimination.id
        assert winners.loser_match_id == decider.id
        assert winners.next_match_id is None
        assert elimination.next_match_id == decider.id
        assert elimination.loser_match_id is None

    def test_qualifiers(self, engine, tournament):
        engine.generate_stage('t1', 'Groups', 'gsl', make_participants(8))
        assert gsl_qualifiers(stage_matches(engine)) is None
        matches = play_out(engine)
        named = by_name(matches)
        assert named['Group A Decider Match'].slot_a == 'team2'
        assert named['Group A Decider Match'].slot_b == 'team4'
        # group winners first, then runners-up
        assert gsl_qualifiers(matches) == ['team1', 'team5', 'team2', 'team6']

    def test_short_group_resolves_through_byes(self, engine, tournament):
        """A lone participant wins the group on walkovers, and the rest ends in double byes."""
        engine.generate_stage('t1', 'Groups', 'gsl', make_participants(5))
        named = by_name(stage_matches(engine))
        assert named['Group B Winners Match'].has_marker(MARKER_WALKOVER)
        assert named['Group B Winners Match'].winner == 'team5'
        assert named['Group B Elimination Match'].has_marker(MARKER_DOUBLE_BYE)
        assert named['Group B Decider Match'].has_marker(MARKER_DOUBLE_BYE)
        assert all(m.is_complete for m in stage_matches(engine) if m.group_index == 1)

        assert gsl_qualifiers(play_out(engine)) == ['team1', 'team5', 'team2']

    def test_two_participants(self, engine, tournament):
        engine.generate_stage('t1', 'Groups', 'gsl', ['team1', 'team2'])
        matches = stage_matches(engine)
        assert [m.name for m in playable(matches)] == ['Group A Winners Match']
        assert gsl_qualifiers(play_out(engine)) == ['team1', 'team2']

    def test_needs_two_participants(self, engine, tournament):
        with pytest.raises(InvalidStageInput):
            engine.generate_stage('t1', 'Groups', 'gsl', ['team1'])


class TestCircleRounds:
    """Tests for the circle method schedule."""

    def test_even(self):
        rounds = circle_rounds(['a', 'b', 'c', 'd'])
        assert rounds[0] == [('a', 'd'), ('b', 'c')]
        assert len(rounds) == 3
        pairs = Counter(frozenset(p) for r in rounds for p in r)
        assert pairs == Counter(frozenset(p) for p in combinations('abcd', 2))

    def test_odd_drops_padding(self):
        rounds = circle_rounds(['a', 'b', 'c'])
        assert len(rounds) == 3
        assert all(len(r) == 1 for r in rounds)
        assert {frozenset(p) for r in rounds for p in r} == {frozenset(p) for p in combinations('abc', 2)}

    @pytest.mark.parametrize("size", [2, 3, 4, 5, 6, 7, 8])
    def test_nobody_plays_twice_in_a_round(self, size):
        for pairs in circle_rounds(list(range(size))):
            seen = [p for pair in pairs for p in pair]
            assert len(seen) == len(set(seen))


class TestRoundRobin:
    """Round robin stage generation."""

    @pytest.mark.parametrize("count,expected", [(4, 6), (5, 10), (8, 28)])
    def test_every_pair_meets_once(self, engine, tournament, count, expected):
        engine.generate_stage('t1', 'League', 'round_robin', make_participants(count))
        matches = stage_matches(engine)
        pairings = _pairings(matches)
        assert len(matches) == expected
        assert len(pairings) == expected
        assert set(pairings.values()) == {1}

    def test_round_numbers(self, engine, tournament):
        engine.generate_stage('t1', 'League', 'round_robin', make_participants(4))
        matches = stage_matches(engine)
        assert sorted({m.round for m in matches}) == [1, 2, 3]
        assert by_name(matches)['R1-M1'].slot_a == 'team1'

    def test_second_leg_swaps_home_and_away(self, engine, tournament):
        engine.generate_stage('t1', 'League', 'round_robin', make_participants(4), {'round_count': 2})
        matches = stage_matches(engine)
        assert len(matches) == 12
        named = by_name(matches)
        first, second = named['R1-M1'], named['R4-M1']
        assert (second.slot_a, second.slot_b) == (first.slot_b, first.slot_a)
        assert set(_pairings(matches).values()) == {2}

    def test_groups(self, engine, tournament):
        engine.generate_stage('t1', 'League', 'round_robin', make_participants(8), {'group_count': 2})
        matches = stage_matches(engine)
        assert len(matches) == 12
        stage = engine.get_tournament('t1').stages[0]
        for match in matches:
            assert stage.groups[match.slot_a] == stage.groups[match.slot_b] == match.group_index
        assert 'Group B R3-M2' in by_name(matches)

    def test_too_many_groups(self, engine, tournament):
        with pytest.raises(InvalidStageInput):
            engine.generate_stage('t1', 'League', 'round_robin', make_participants(5), {'group_count': 3})


class TestSwiss:
    """Swiss stages are generated one round at a time."""

    def test_first_round(self, engine, tournament):
        engine.generate_stage('t1', 'Swiss', 'swiss', make_participants(5))
        matches = stage_matches(engine)
        assert [(m.slot_a, m.slot_b) for m in matches] == [('team1', 'team2'), ('team3', 'team4'), ('team5', None)]
        bye = matches[-1]
        assert bye.status == STATUS_BYE
        assert bye.winner == 'team5'

    def test_next_round_pairs_by_score(self, engine, tournament):
        engine.generate_stage('t1', 'Swiss', 'swiss', make_participants(5))
        play_out(engine)
        new_ids = engine.generate_next_swiss_round('t1', 0)
        assert len(new_ids) == 3
        round_two = [m for m in stage_matches(engine) if m.round == 2]
        assert [(m.slot_a, m.slot_b) for m in round_two] == [('team1', 'team3'), ('team2', 'team5'), ('team4', None)]

    def test_no_rematches_while_avoidable(self, engine, tournament):
        engine.generate_stage('t1', 'Swiss', 'swiss', make_participants(8))
        for _ in range(2):
            play_out(engine)
            engine.generate_next_swiss_round('t1', 0)
        pairings = _pairings(stage_matches(engine))
        assert set(pairings.values()) == {1}

    def test_round_in_progress(self, engine, tournament):
        engine.generate_stage('t1', 'Swiss', 'swiss', make_participants(4))
        with pytest.raises(InvalidStageInput):
            engine.generate_next_swiss_round('t1', 0)

    def test_round_limit(self, engine, tournament):
        engine.generate_stage('t1', 'Swiss', 'swiss', make_participants(4), {'swiss_rounds': 1})
        play_out(engine)
        with pytest.raises(InvalidStageInput):
            engine.generate_next_swiss_round('t1', 0)

    def test_not_a_swiss_stage(self, engine, tournament):
        engine.generate_stage('t1', 'League', 'round_robin', make_participants(4))
        with pytest.raises(InvalidStageInput):
            engine.generate_next_swiss_round('t1', 0)


class TestCrossGroup:
    """Alpha half against Omega half."""

    def test_everyone_meets_the_other_half(self, engine, tournament):
        engine.generate_stage('t1', 'Cross', 'cross_group', make_participants(6))
        matches = stage_matches(engine)
        assert len(matches) == 9
        assert engine.get_tournament('t1').stages[0].alpha_size == 3
        alpha, omega = {'team1', 'team2', 'team3'}, {'team4', 'team5', 'team6'}
        for match in matches:
            assert match.slot_a in alpha
            assert match.slot_b in omega
        assert len(_pairings(matches)) == 9
        for round_num in (1, 2, 3):
            assert len([m for m in matches if m.round == round_num]) == 3

    def test_odd_count(self, engine, tournament):
        engine.generate_stage('t1', 'Cross', 'cross_group', make_participants(5))
        matches = stage_matches(engine)
        assert len(matches) == 6
        assert engine.get_tournament('t1').stages[0].alpha_size == 3
        assert not any(m.status == STATUS_BYE for m in matches)

    def test_seeded_from_gsl_qualifiers(self, engine, tournament):
        engine.generate_stage('t1', 'Groups', 'gsl', make_participants(8))
        play_out(engine)
        engine.generate_stage('t1', 'Cross', 'cross_group',
                              settings={'source_stage_index': 0, 'advance_method': 'cross_group',
                                        'randomize': True})
        stage = engine.get_tournament('t1').stages[1]
        assert stage.participants == ['team1', 'team5', 'team2', 'team6']
        assert stage.alpha_size == 2
        assert len(stage.match_ids) == 4

    def test_undecided_gsl_source(self, engine, tournament):
        engine.generate_stage('t1', 'Groups', 'gsl', make_participants(8))
        with pytest.raises(InvalidStageInput):
            engine.generate_stage('t1', 'Cross', 'cross_group',
                                  settings={'source_stage_index': 0, 'advance_method': 'cross_group'})


class TestSingleGroupFormats:
    """Formats that build their own groups refuse a group_count."""

    @pytest.mark.parametrize("stage_type", ['gsl', 'swiss', 'cross_group'])
    def test_group_count_refused(self, engine, tournament, stage_type):
        with pytest.raises(InvalidStageInput):
            engine.generate_stage('t1', 'Stage', stage_type, make_participants(8), {'group_count': 2})
        assert engine.get_tournament('t1').stages == []
        assert engine.store.find_matches(tournament_id='t1') == []

    @pytest.mark.parametrize("stage_type", ['gsl', 'swiss', 'cross_group'])
    def test_single_group_accepted(self, engine, tournament, stage_type):
        engine.generate_stage('t1', 'Stage', stage_type, make_participants(8), {'group_count': 1})
        assert len(engine.get_tournament('t1').stages) == 1
