import copy

SLOT_A = 'slot_a'
SLOT_B = 'slot_b'
SLOTS = (SLOT_A, SLOT_B)

STATUS_SCHEDULED = 'scheduled'
STATUS_LIVE = 'live'
STATUS_PENDING_APPROVAL = 'pending_approval'
STATUS_FINISHED = 'finished'
STATUS_BYE = 'bye'
STATUS_AUTO_FORFEIT = 'auto_forfeit'
COMPLETED_STATUSES = {STATUS_FINISHED, STATUS_BYE, STATUS_AUTO_FORFEIT}

MARKER_BYE = 'BYE'
MARKER_EMPTY_BYE = 'EMPTY_BYE'
MARKER_DOUBLE_BYE = 'DOUBLE_BYE'
MARKER_WALKOVER = 'WALKOVER'
MARKER_ADVANCED = 'ADVANCED'
BYE_DROP_MARKERS = {SLOT_A: 'BYE_DROP_A', SLOT_B: 'BYE_DROP_B'}

FORMATS = ('BO1', 'BO3', 'BO5')


def other_slot(slot):
    if slot == SLOT_A:
        return SLOT_B
    if slot == SLOT_B:
        return SLOT_A
    raise ValueError(f"Unknown slot: {slot}")


def group_label(group_index):
    """0 -> 'A', 1 -> 'B', ..."""
    letters = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ'
    if 0 <= group_index < len(letters):
        return letters[group_index]
    return f"G{group_index + 1}"


class Participant:
    def __init__(self, id, name, roster=None):
        self.id = id
        self.name = name
        self.roster = roster if roster else []

    def snapshot_roster(self):
        return copy.deepcopy(self.roster)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'roster': copy.deepcopy(self.roster)}

    @classmethod
    def from_dict(cls, data):
        return cls(data['id'], data.get('name', data['id']), data.get('roster'))

    def __repr__(self):
        return f"Participant(id={self.id}, name={self.name})"


class Match:
    def __init__(self, tournament_id=None, stage_name='', name='', round=1, order=0,
                 slot_a=None, slot_b=None, match_format='BO1', bracket='upper',
                 group_index=0, role=''):
        self.id = None
        self.tournament_id = tournament_id
        self.stage_name = stage_name
        self.name = name
        self.match_number = 0
        self.round = round
        self.order = order
        self.group_index = group_index
        self.bracket = bracket
        self.role = role
        self.format = match_format

        self.next_match_id = None
        self.next_slot = None
        self.loser_match_id = None
        self.loser_slot = None

        self.slot_a = slot_a
        self.slot_b = slot_b
        self.slot_a_roster = []
        self.slot_b_roster = []

        self.status = STATUS_SCHEDULED
        self.winner = None
        self.note = ''
        self.scores = []
        self.ready_notified = False

    @property
    def is_complete(self):
        return self.status in COMPLETED_STATUSES

    @property
    def is_filled(self):
        return self.slot_a is not None and self.slot_b is not None

    def participant_in(self, slot):
        return getattr(self, slot)

    def slot_of(self, participant_id):
        """Return the slot holding participant_id, or None."""
        if participant_id is None:
            return None
        if self.slot_a == participant_id:
            return SLOT_A
        if self.slot_b == participant_id:
            return SLOT_B
        return None

    def set_participant(self, slot, participant_id, roster=None):
        if slot not in SLOTS:
            raise ValueError(f"Unknown slot: {slot}")
        setattr(self, slot, participant_id)
        setattr(self, f"{slot}_roster", copy.deepcopy(roster) if roster else [])

    # Note markers

    def markers(self):
        return self.note.split() if self.note else []

    def has_marker(self, marker):
        return marker in self.markers()

    def add_marker(self, marker):
        if not self.has_marker(marker):
            self.note = f"{self.note} {marker}".strip()

    def has_bye_drop(self, slot):
        return self.has_marker(BYE_DROP_MARKERS[slot])

    def is_bye_match(self):
        markers = self.markers()
        return (MARKER_BYE in markers or MARKER_EMPTY_BYE in markers
                or MARKER_DOUBLE_BYE in markers or MARKER_WALKOVER in markers)

    def to_dict(self):
        data = dict(self.__dict__)
        data['slot_a_roster'] = copy.deepcopy(self.slot_a_roster)
        data['slot_b_roster'] = copy.deepcopy(self.slot_b_roster)
        data['scores'] = copy.deepcopy(self.scores)
        return data

    @classmethod
    def from_dict(cls, data):
        match = cls()
        for key, value in data.items():
            if key in match.__dict__:
                setattr(match, key, copy.deepcopy(value))
        return match

    def __repr__(self):
        return (f"Match(#{self.match_number} {self.name!r}, round={self.round}, "
                f"{self.slot_a} vs {self.slot_b}, status={self.status}, winner={self.winner})")


class Stage:
    def __init__(self, name, type, settings=None, participants=None):
        self.name = name
        self.type = type
        self.settings = settings if settings else {}
        self.participants = list(participants) if participants else []
        self.groups = {}
        self.alpha_size = 0
        self.match_ids = []

    def group_members(self, group_index):
        return [pid for pid in self.participants if self.groups.get(pid, 0) == group_index]

    def to_dict(self):
        return {
            'name': self.name,
            'type': self.type,
            'settings': copy.deepcopy(self.settings),
            'participants': list(self.participants),
            'groups': dict(self.groups),
            'alpha_size': self.alpha_size,
            'match_ids': list(self.match_ids),
        }

    @classmethod
    def from_dict(cls, data):
        stage = cls(data['name'], data['type'], data.get('settings'), data.get('participants'))
        stage.groups = dict(data.get('groups') or {})
        stage.alpha_size = data.get('alpha_size', 0)
        stage.match_ids = list(data.get('match_ids') or [])
        return stage

    def __repr__(self):
        return f"Stage(name={self.name}, type={self.type}, matches={len(self.match_ids)})"


class Tournament:
    def __init__(self, id, name, participants=None, status='active'):
        self.id = id
        self.name = name
        self.status = status
        self.participants = list(participants) if participants else []
        self.stages = []

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'participants': list(self.participants),
            'stages': [stage.to_dict() for stage in self.stages],
        }

    @classmethod
    def from_dict(cls, data):
        tournament = cls(data['id'], data['name'], data.get('participants'), data.get('status', 'active'))
        tournament.stages = [Stage.from_dict(s) for s in data.get('stages') or []]
        return tournament

    def __repr__(self):
        return f"Tournament(id={self.id}, name={self.name}, stages={len(self.stages)})"
