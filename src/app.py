"""
Flask JSON API for the tournament bracket engine.
"""
import os
from functools import wraps
from flask import Flask, request, jsonify
from bracketcore.engine import TournamentEngine
from bracketcore.errors import GraphConsistencyError, InvalidStageInput, NotFoundError
from bracketcore.store import Store

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))
STORE_FILE = 'brackets.yaml'

_engine = None


def get_engine():
    """Return the engine, opening the YAML store under DATA_DIR on first use."""
    global _engine
    if _engine is None:
        os.makedirs(DATA_DIR, exist_ok=True)
        _engine = TournamentEngine(Store(os.path.join(DATA_DIR, STORE_FILE)))
        _engine.on_match_ready(_log_match_ready)
    return _engine


def _log_match_ready(match):
    app.logger.info(f'Match #{match.match_number} ({match.name}) is ready: {match.slot_a} vs {match.slot_b}')


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidStageInput('Request body must be a JSON object')
    return data


def api_errors(f):
    """Translate engine errors into JSON error responses."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except NotFoundError as e:
            return jsonify({'error': str(e)}), 404
        except InvalidStageInput as e:
            return jsonify({'error': str(e)}), 400
        except GraphConsistencyError as e:
            app.logger.error(f'Graph consistency error: {e}')
            return jsonify({'error': str(e)}), 409
    return decorated_function


def match_json(match):
    data = match.to_dict()
    data['is_complete'] = match.is_complete
    return data


@app.route('/api/participants', methods=['POST'])
@api_errors
def api_register_participant():
    """Create or update a participant and its roster."""
    data = _payload()
    participant_id = str(data.get('id', '')).strip()
    if not participant_id:
        return jsonify({'success': False, 'error': 'Participant id is required.'}), 400
    participant = get_engine().register_participant(participant_id, data.get('name'), data.get('roster'))
    return jsonify({'success': True, 'participant': participant.to_dict()})


@app.route('/api/tournaments', methods=['POST'])
@api_errors
def api_create_tournament():
    data = _payload()
    name = str(data.get('name', '')).strip()
    if not name:
        return jsonify({'success': False, 'error': 'Tournament name is required.'}), 400
    tournament = get_engine().create_tournament(name, data.get('participants'), data.get('id'))
    return jsonify({'success': True, 'tournament': tournament.to_dict()})


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
@api_errors
def api_get_tournament(tournament_id):
    return jsonify(get_engine().get_tournament(tournament_id).to_dict())


@app.route('/api/tournaments/<tournament_id>/stages', methods=['POST'])
@api_errors
def api_generate_stage(tournament_id):
    """Generate a stage: {name, type, participants, settings}."""
    data = _payload()
    match_ids = get_engine().generate_stage(
        tournament_id,
        data.get('name'),
        data.get('type'),
        data.get('participants'),
        data.get('settings'),
    )
    return jsonify({'success': True, 'match_ids': match_ids, 'matches_created': len(match_ids)})


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>', methods=['DELETE'])
@api_errors
def api_delete_stage(tournament_id, stage_index):
    get_engine().delete_stage(tournament_id, stage_index)
    return jsonify({'success': True})


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/settings', methods=['PUT'])
@api_errors
def api_update_stage_settings(tournament_id, stage_index):
    settings = get_engine().update_stage_settings(tournament_id, stage_index, _payload().get('settings'))
    return jsonify({'success': True, 'settings': settings})


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/matches', methods=['GET'])
@api_errors
def api_stage_matches(tournament_id, stage_index):
    matches = get_engine().get_stage_matches(tournament_id, stage_index)
    return jsonify([match_json(m) for m in matches])


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/matches', methods=['POST'])
@api_errors
def api_add_extra_match(tournament_id, stage_index):
    data = _payload()
    match = get_engine().add_extra_match(
        tournament_id, stage_index,
        slot_a=data.get('slot_a'),
        slot_b=data.get('slot_b'),
        name=data.get('name'),
        match_format=data.get('format'),
    )
    return jsonify({'success': True, 'match': match_json(match)})


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/standings', methods=['GET'])
@api_errors
def api_stage_standings(tournament_id, stage_index):
    return jsonify(get_engine().get_stage_standings(tournament_id, stage_index))


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/participants', methods=['POST'])
@api_errors
def api_add_participant_to_stage(tournament_id, stage_index):
    data = _payload()
    match_ids = get_engine().add_participant_to_stage(
        tournament_id, stage_index, data.get('participant_id'), data.get('group_index'))
    return jsonify({'success': True, 'match_ids': match_ids})


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/participants/swap', methods=['POST'])
@api_errors
def api_swap_participants(tournament_id, stage_index):
    data = _payload()
    changed = get_engine().swap_participants_in_stage(
        tournament_id, stage_index, data.get('first_id'), data.get('second_id'))
    return jsonify({'success': True, 'changed_matches': changed})


@app.route('/api/tournaments/<tournament_id>/stages/<int:stage_index>/swiss-next', methods=['POST'])
@api_errors
def api_next_swiss_round(tournament_id, stage_index):
    match_ids = get_engine().generate_next_swiss_round(tournament_id, stage_index)
    return jsonify({'success': True, 'match_ids': match_ids, 'matches_created': len(match_ids)})


@app.route('/api/matches/<match_id>/result', methods=['POST'])
@api_errors
def api_report_result(match_id):
    """Record the winner of a confirmed match and advance the bracket."""
    data = _payload()
    winner = data.get('winner')
    if not winner:
        return jsonify({'success': False, 'error': 'Winner is required.'}), 400
    match = get_engine().propagate_match_result(match_id, winner, data.get('loser'))
    return jsonify({'success': True, 'match': match_json(match)})


@app.route('/api/matches/swap-slots', methods=['POST'])
@api_errors
def api_swap_slots():
    data = _payload()
    changed = get_engine().swap_match_slots(
        data.get('first_match_id'), data.get('first_slot'),
        data.get('second_match_id'), data.get('second_slot'),
    )
    return jsonify({'success': True, 'matches': [match_json(m) for m in changed]})


@app.errorhandler(404)
def not_found(e):
    return jsonify({'error': 'Not found'}), 404


if __name__ == '__main__':
    app.run(debug=True, port=5000)
