"""
Durable store for tournaments, stages, matches and participants.

Everything lives in memory and, when a file path is given, is mirrored to a
single YAML file guarded by a FileLock so that several processes can share it.
Reads return copies; writes replace the stored record.
"""
import copy
import logging
import os
import threading
from contextlib import contextmanager

import yaml
from filelock import FileLock

from .errors import NotFoundError
from .models import Match, Participant, Tournament

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, file_path=None, lock_timeout=10):
        self.file_path = file_path
        self._lock = threading.RLock()
        self._file_lock = FileLock(f"{file_path}.lock", timeout=lock_timeout) if file_path else None
        self._tournaments = {}
        self._matches = {}
        self._participants = {}
        self._counters = {}
        # tournament_id -> [depth, snapshot]
        self._transactions = {}
        if file_path:
            self.load()

    # Persistence

    def load(self):
        if not self.file_path or not os.path.exists(self.file_path):
            return
        with self._file_lock:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        with self._lock:
            self._participants = {p['id']: p for p in data.get('participants', [])}
            self._tournaments = {t['id']: t for t in data.get('tournaments', [])}
            self._matches = {m['id']: m for m in data.get('matches', [])}
            self._counters = dict(data.get('counters', {}))
        logger.info("Loaded %d matches from %s", len(self._matches), self.file_path)

    def _committed(self):
        """Current records, with tournaments inside an open transaction as they were at entry."""
        tournaments = dict(self._tournaments)
        matches = dict(self._matches)
        for tournament_id, (_, snapshot) in self._transactions.items():
            if snapshot['tournament'] is None:
                tournaments.pop(tournament_id, None)
            else:
                tournaments[tournament_id] = snapshot['tournament']
            for mid in [mid for mid, m in matches.items() if m['tournament_id'] == tournament_id]:
                del matches[mid]
            matches.update(snapshot['matches'])
        return tournaments, matches

    def flush(self):
        """Write every committed record to the file. Open transactions are written as they were at entry."""
        if not self.file_path:
            return
        with self._lock:
            tournaments, matches = self._committed()
            data = {
                'counters': dict(self._counters),
                'participants': list(self._participants.values()),
                'tournaments': list(tournaments.values()),
                'matches': sorted(matches.values(),
                                  key=lambda m: (str(m['tournament_id']), m['match_number'])),
            }
            directory = os.path.dirname(os.path.abspath(self.file_path))
            os.makedirs(directory, exist_ok=True)
            tmp_path = f"{self.file_path}.tmp"
            with self._file_lock:
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    yaml.dump(data, f, default_flow_style=False)
                os.replace(tmp_path, self.file_path)

    def _changed(self, *tournament_ids):
        # writes inside an open transaction wait for its outermost exit
        if tournament_ids and all(tid in self._transactions for tid in tournament_ids):
            return
        self.flush()

    @contextmanager
    def transaction(self, tournament_id):
        """
        Scope a multi-write operation on one tournament.
        On error the tournament record and its matches are restored to their
        state at entry. Match numbers already reserved are not given back.
        """
        with self._lock:
            entry = self._transactions.get(tournament_id)
            if entry is None:
                snapshot = {
                    'tournament': copy.deepcopy(self._tournaments.get(tournament_id)),
                    'matches': {mid: copy.deepcopy(m) for mid, m in self._matches.items()
                                if m['tournament_id'] == tournament_id},
                }
                entry = self._transactions[tournament_id] = [0, snapshot]
            entry[0] += 1
        try:
            yield self
        except Exception:
            with self._lock:
                entry[0] -= 1
                if entry[0] == 0:
                    del self._transactions[tournament_id]
                    self._restore(tournament_id, entry[1])
                    logger.warning("Rolled back changes to tournament %s", tournament_id)
                    # reserved match numbers stay taken
                    self._changed()
            raise
        else:
            with self._lock:
                entry[0] -= 1
                if entry[0] == 0:
                    del self._transactions[tournament_id]
                    self._changed()

    def _restore(self, tournament_id, snapshot):
        if snapshot['tournament'] is None:
            self._tournaments.pop(tournament_id, None)
        else:
            self._tournaments[tournament_id] = snapshot['tournament']
        for mid in [mid for mid, m in self._matches.items() if m['tournament_id'] == tournament_id]:
            del self._matches[mid]
        self._matches.update(snapshot['matches'])

    # Participants

    def add_participant(self, participant):
        with self._lock:
            self._participants[participant.id] = participant.to_dict()
            self._changed()
        return participant

    def has_participant(self, participant_id):
        return participant_id in self._participants

    def get_participant(self, participant_id):
        data = self._participants.get(participant_id)
        if data is None:
            raise NotFoundError(f"Participant {participant_id} not found")
        return Participant.from_dict(copy.deepcopy(data))

    def list_participants(self):
        return [Participant.from_dict(copy.deepcopy(p)) for p in self._participants.values()]

    # Tournaments

    def save_tournament(self, tournament):
        with self._lock:
            self._tournaments[tournament.id] = tournament.to_dict()
            self._changed(tournament.id)
        return tournament

    def get_tournament(self, tournament_id):
        data = self._tournaments.get(tournament_id)
        if data is None:
            raise NotFoundError(f"Tournament {tournament_id} not found")
        return Tournament.from_dict(copy.deepcopy(data))

    def list_tournaments(self):
        return [Tournament.from_dict(copy.deepcopy(t)) for t in self._tournaments.values()]

    # Matches

    def save_match(self, match):
        if match.id is None:
            raise ValueError("Match has no id")
        with self._lock:
            self._matches[match.id] = match.to_dict()
            self._changed(match.tournament_id)
        return match

    def save_matches(self, matches):
        with self._lock:
            for match in matches:
                if match.id is None:
                    raise ValueError("Match has no id")
                self._matches[match.id] = match.to_dict()
            self._changed(*{match.tournament_id for match in matches})

    def get_match(self, match_id):
        data = self._matches.get(match_id)
        if data is None:
            raise NotFoundError(f"Match {match_id} not found")
        return Match.from_dict(data)

    def find_matches(self, tournament_id=None, ids=None, **filters):
        """Fetch matches by tournament, id list and exact field values, ordered by match number."""
        with self._lock:
            if ids is not None:
                candidates = [self._matches[mid] for mid in ids if mid in self._matches]
            else:
                candidates = list(self._matches.values())
        found = []
        for data in candidates:
            if tournament_id is not None and data['tournament_id'] != tournament_id:
                continue
            if any(data.get(key) != value for key, value in filters.items()):
                continue
            found.append(Match.from_dict(data))
        found.sort(key=lambda m: m.match_number)
        return found

    def delete_matches(self, ids):
        with self._lock:
            tournament_ids = {self._matches[mid]['tournament_id'] for mid in ids if mid in self._matches}
            for mid in ids:
                self._matches.pop(mid, None)
            self._changed(*tournament_ids)

    def highest_match_number(self, tournament_id):
        with self._lock:
            numbers = [m['match_number'] for m in self._matches.values()
                       if m['tournament_id'] == tournament_id]
        return max(numbers, default=0)

    def reserve_match_numbers(self, tournament_id, count):
        """
        Atomically reserve a contiguous block of match numbers.
        The counter only moves forward, so numbers are never handed out twice.
        """
        with self._lock:
            last = max(self._counters.get(tournament_id, 0), self.highest_match_number(tournament_id))
            self._counters[tournament_id] = last + count
            self._changed(tournament_id)
        return list(range(last + 1, last + count + 1))
