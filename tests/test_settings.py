"""
Tests for stage settings defaults, validation and YAML loading.
"""
import pytest

from bracketcore.errors import InvalidStageInput
from bracketcore.settings import get_default_settings, load_settings, normalize_settings


class TestNormalizeSettings:
    """Tests for normalize_settings."""

    def test_defaults(self):
        settings = normalize_settings()
        assert settings == get_default_settings()
        assert settings['default_format'] == 'BO1'
        assert settings['qualified_count'] == 1
        assert settings['source_stage_index'] == -1

    def test_overrides_are_merged(self):
        settings = normalize_settings({'group_count': '2', 'has_third_place': 1})
        assert settings['group_count'] == 2
        assert settings['has_third_place'] is True
        assert settings['round_count'] == 1

    def test_unknown_keys_kept(self):
        assert normalize_settings({'notes': 'seeded by ranking'})['notes'] == 'seeded by ranking'

    def test_input_not_mutated(self):
        tie_breakers = ['map_diff']
        normalize_settings({'tie_breakers': tie_breakers})
        assert tie_breakers == ['map_diff']

    @pytest.mark.parametrize("override", [
        {'default_format': 'BO7'},
        {'final_format': 'bo3'},
        {'group_count': 0},
        {'qualified_count': 'many'},
        {'round_count': True},
        {'source_stage_index': -2},
        {'advance_method': 'random'},
        {'tie_breakers': ['coin_flip']},
        {'tie_breakers': 42},
    ])
    def test_invalid(self, override):
        with pytest.raises(InvalidStageInput):
            normalize_settings(override)

    def test_single_tie_breaker_string(self):
        assert normalize_settings({'tie_breakers': 'round_diff'})['tie_breakers'] == ['round_diff']

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            normalize_settings({'group_count': -1})


class TestLoadSettings:
    """Tests for load_settings."""

    def test_missing_file(self, tmp_path):
        assert load_settings(str(tmp_path / 'missing.yaml')) == get_default_settings()
        assert load_settings(None) == get_default_settings()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / 'stage.yaml'
        path.write_text("final_format: BO5\nhas_third_place: true\ntie_breakers:\n  - map_diff\n",
                        encoding='utf-8')
        settings = load_settings(str(path))
        assert settings['final_format'] == 'BO5'
        assert settings['has_third_place'] is True
        assert settings['tie_breakers'] == ['map_diff']

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'stage.yaml'
        path.write_text('', encoding='utf-8')
        assert load_settings(str(path)) == get_default_settings()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / 'stage.yaml'
        path.write_text('- one\n- two\n', encoding='utf-8')
        with pytest.raises(InvalidStageInput):
            load_settings(str(path))
