"""
Tests for engine settings.

Validates the settings schema, the YAML loader and the
get_engine_settings() override path.
"""

from dataclasses import FrozenInstanceError

import pytest
import yaml

from recurrence_config import (
    DEFAULTS_PATH,
    DedupSettings,
    EngineSettings,
    GenerationSettings,
    get_engine_settings,
)
from recurrence_config.loader import (
    compute_checksum,
    load_yaml_file,
    merge_settings,
    parse_settings,
)
from recurrence_config.schema import DEFAULT_TRIGGER_FIELDS


def _write(tmp_path, data, name="override.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


# =============================================================================
# Schema
# =============================================================================


class TestGenerationSettings:
    def test_defaults(self):
        gen = GenerationSettings()
        assert gen.default_horizon_months == 6
        assert gen.max_horizon_months == 24
        assert gen.max_occurrences_per_window == 100

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_horizon_months": 0},
            {"default_horizon_months": 0},
            {"default_horizon_months": 30},
            {"max_occurrences_per_window": 0},
        ],
    )
    def test_invalid_bounds(self, kwargs):
        with pytest.raises(ValueError):
            GenerationSettings(**kwargs)

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            GenerationSettings().max_horizon_months = 12  # type: ignore[misc]


class TestEngineSettings:
    def test_defaults_match_packaged_yaml(self):
        packaged = parse_settings(load_yaml_file(DEFAULTS_PATH))
        defaults = EngineSettings()

        assert packaged.generation == defaults.generation
        assert packaged.dedup == defaults.dedup
        assert packaged.regeneration == defaults.regeneration

    def test_trigger_fields(self):
        assert EngineSettings().regeneration.trigger_fields == frozenset(
            DEFAULT_TRIGGER_FIELDS
        )


# =============================================================================
# Loader
# =============================================================================


class TestLoader:
    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)

    def test_merge_overrides_single_key(self):
        base = {"generation": {"default_horizon_months": 6, "max_horizon_months": 24}}
        merged = merge_settings(base, {"generation": {"default_horizon_months": 3}})

        assert merged["generation"] == {
            "default_horizon_months": 3,
            "max_horizon_months": 24,
        }
        assert base["generation"]["default_horizon_months"] == 6

    def test_merge_rejects_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown settings section"):
            merge_settings({}, {"posting": {}})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown key"):
            parse_settings({"dedup": {"fuzzy": True}})

    @pytest.mark.parametrize(
        "data",
        [
            {"generation": {"default_horizon_months": "6"}},
            {"generation": {"max_horizon_months": True}},
            {"dedup": {"similarity_enabled": "yes"}},
            {"regeneration": {"trigger_fields": "frequency"}},
        ],
    )
    def test_wrong_types_rejected(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_checksum_is_order_independent(self):
        a = {"dedup": {"similarity_enabled": True, "recheck_at_write": False}}
        b = {"dedup": {"recheck_at_write": False, "similarity_enabled": True}}
        assert compute_checksum(a) == compute_checksum(b)
        assert compute_checksum(a) != compute_checksum({"dedup": {}})


# =============================================================================
# get_engine_settings
# =============================================================================


class TestGetEngineSettings:
    def test_defaults_are_cached(self):
        assert get_engine_settings() is get_engine_settings()

    def test_override_file(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "generation": {"default_horizon_months": 12},
                "dedup": {"similarity_enabled": False},
                "regeneration": {"trigger_fields": ["frequency"]},
            },
        )

        settings = get_engine_settings(path)

        assert settings.generation.default_horizon_months == 12
        assert settings.generation.max_horizon_months == 24
        assert settings.dedup == DedupSettings(similarity_enabled=False)
        assert settings.regeneration.trigger_fields == frozenset({"frequency"})
        assert settings.checksum != get_engine_settings().checksum

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_engine_settings(tmp_path / "missing.yaml")

    def test_invalid_override_value(self, tmp_path):
        path = _write(tmp_path, {"generation": {"default_horizon_months": 48}})
        with pytest.raises(ValueError):
            get_engine_settings(path)

    def test_load_is_logged(self, tmp_path, captured_logs):
        path = _write(tmp_path, {"dedup": {"recheck_at_write": False}})

        settings = get_engine_settings(path)

        loaded = [r for r in captured_logs() if r["message"] == "engine_settings_loaded"]
        assert loaded[0]["source"] == str(path)
        assert loaded[0]["checksum"] == settings.checksum
