"""
Stage settings: defaults, YAML loading and validation.
"""
import copy
import os

import yaml

from .errors import InvalidStageInput
from .models import FORMATS

STAGE_TYPES = ('single_elim', 'double_elim', 'triple_elim', 'gsl', 'round_robin', 'swiss', 'cross_group')
ADVANCE_METHODS = ('top_standing', 'cross_group')
TIE_BREAKERS = ('head_to_head', 'map_diff', 'round_diff')


def get_default_settings():
    """Return the default stage settings."""
    return {
        'default_format': 'BO1',
        'final_format': None,
        'round_count': 1,
        'swiss_rounds': 3,
        'randomize': False,
        'has_third_place': False,
        'source_stage_index': -1,
        'advance_count': 0,
        'advance_method': 'top_standing',
        'group_count': 1,
        'qualified_count': 1,
        'split_participants': False,
        'tie_breakers': list(TIE_BREAKERS),
    }


def load_settings(file_path):
    """Load stage settings from a YAML file, merged over the defaults."""
    if not file_path or not os.path.exists(file_path):
        return get_default_settings()
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidStageInput(f"Settings file {file_path} must contain a mapping")
    return normalize_settings(data)


def _as_int(settings, key, minimum):
    value = settings[key]
    if isinstance(value, bool):
        raise InvalidStageInput(f"{key} must be an integer")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidStageInput(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidStageInput(f"{key} must be at least {minimum}, got {value}")
    settings[key] = value


def normalize_settings(settings=None):
    """
    Merge settings over the defaults and validate every field.
    Unknown keys are kept so callers can carry their own metadata.
    """
    merged = get_default_settings()
    merged.update(copy.deepcopy(settings or {}))

    for key in ('default_format', 'final_format'):
        value = merged[key]
        if value is not None and value not in FORMATS:
            raise InvalidStageInput(f"{key} must be one of {', '.join(FORMATS)}, got {value!r}")

    _as_int(merged, 'round_count', 1)
    _as_int(merged, 'swiss_rounds', 1)
    _as_int(merged, 'source_stage_index', -1)
    _as_int(merged, 'advance_count', 0)
    _as_int(merged, 'group_count', 1)
    _as_int(merged, 'qualified_count', 1)

    for key in ('randomize', 'has_third_place', 'split_participants'):
        merged[key] = bool(merged[key])

    if merged['advance_method'] not in ADVANCE_METHODS:
        raise InvalidStageInput(f"Unknown advance_method: {merged['advance_method']!r}")

    tie_breakers = merged['tie_breakers']
    if isinstance(tie_breakers, str):
        tie_breakers = [tie_breakers]
    if not isinstance(tie_breakers, (list, tuple)):
        raise InvalidStageInput("tie_breakers must be a list")
    for rule in tie_breakers:
        if rule not in TIE_BREAKERS:
            raise InvalidStageInput(f"Unknown tie breaker: {rule!r}")
    merged['tie_breakers'] = list(tie_breakers)

    return merged
