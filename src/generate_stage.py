"""
Generate a stage from a YAML participants file and print its matches by round.

participants.yaml is either a list of names or a list of
{id, name, roster} mappings, in seed order.
"""
import argparse
import os
import yaml
from bracketcore.engine import TournamentEngine
from bracketcore.settings import STAGE_TYPES, load_settings
from bracketcore.store import Store


def load_participants(file_path):
    """Load the seeded participant list from YAML."""
    if not os.path.exists(file_path):
        print(f"Error: {file_path} not found.")
        return []
    with open(file_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or []
    participants = []
    for entry in data:
        if isinstance(entry, dict):
            participants.append({
                'id': str(entry.get('id') or entry['name']),
                'name': entry.get('name', entry.get('id')),
                'roster': entry.get('roster') or [],
            })
        else:
            participants.append({'id': str(entry), 'name': str(entry), 'roster': []})
    return participants


def format_match(match):
    slot_a = match.slot_a or 'TBD'
    slot_b = match.slot_b or 'TBD'
    line = f"#{match.match_number} {match.name}: {slot_a} vs {slot_b} [{match.format}]"
    if match.winner:
        line += f" -> {match.winner}"
    if match.note:
        line += f" ({match.note})"
    return line


def main(argv=None):
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('participants', nargs='?', default=os.path.join(base_dir, 'data', 'participants.yaml'),
                        help='YAML file with the participants in seed order')
    parser.add_argument('--type', dest='stage_type', default='single_elim', choices=STAGE_TYPES)
    parser.add_argument('--name', default='Main Stage', help='Stage name')
    parser.add_argument('--settings', help='YAML file with stage settings')
    args = parser.parse_args(argv)

    participants = load_participants(args.participants)
    if not participants:
        return 1

    engine = TournamentEngine(Store())
    for participant in participants:
        engine.register_participant(participant['id'], participant['name'], participant['roster'])
    tournament = engine.create_tournament(args.name, [p['id'] for p in participants])
    engine.generate_stage(tournament.id, args.name, args.stage_type,
                          [p['id'] for p in participants], load_settings(args.settings))

    matches_by_round = {}
    for match in engine.get_stage_matches(tournament.id, 0):
        matches_by_round.setdefault(match.round, []).append(match)

    first_round = True
    for round_num, round_matches in sorted(matches_by_round.items()):
        if not first_round:
            print()
        print(f"# Round {round_num}")
        for match in sorted(round_matches, key=lambda m: m.order):
            print(format_match(match))
        first_round = False
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
