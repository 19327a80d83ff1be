"""
Tests for configuration loading and engine settings.
"""

from pathlib import Path

import pytest
import yaml

from config_manager import (
    DEFAULT_CONFIG,
    EngineSettings,
    load_config,
    resolve_connection_string,
)
from exceptions import ConfigError


class TestLoadConfig:
    """Test YAML loading over defaults."""

    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")

    def test_partial_file_is_deep_merged(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"guideline": {"guide_factor": 0.9}, "cache": {"ttl_ms": 1000}}))

        config = load_config(path)

        assert config["guideline"]["guide_factor"] == 0.9
        assert config["guideline"]["weekend_boost_ratio"] == 20
        assert config["cache"]["ttl_ms"] == 1000

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("guideline: [unclosed")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert isinstance(exc_info.value.original_error, yaml.YAMLError)

    def test_non_mapping_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestEngineSettings:
    """Test the validated settings view."""

    def test_defaults(self):
        settings = EngineSettings.from_config()
        assert settings.guide_factor == 0.95
        assert settings.full_guide_factor == 1.0
        assert settings.weekend_boost_ratio == 20
        assert settings.ttl_ms == 600000
        assert settings.batch_size == 10
        assert settings.stale_entry_days == 3
        assert settings.urgent_todo_days == 7

    def test_factor_selection(self):
        settings = EngineSettings.from_config()
        assert settings.factor() == 0.95
        assert settings.factor(full=True) == 1.0

    def test_weekend_boosted_scopes(self):
        settings = EngineSettings.from_config()
        assert settings.is_weekend_boosted("Food", "Dining Out")
        assert not settings.is_weekend_boosted("Food", "Groceries")
        assert not settings.is_weekend_boosted("Food", None)

    def test_visible_categories(self):
        settings = EngineSettings.from_config()
        visible = settings.visible_categories()
        assert "Savings" not in visible
        assert "Food" in visible
        assert settings.visible_categories(include_collapsed=True) == list(settings.categories)

    @pytest.mark.parametrize(
        "override",
        [
            {"guideline": {"guide_factor": 0}},
            {"guideline": {"full_guide_factor": 1.5}},
            {"guideline": {"weekend_boost_ratio": 0}},
            {"cache": {"ttl_ms": -1}},
            {"store": {"batch_size": 0}},
            {"policy": {"stale_entry_days": -3}},
        ],
    )
    def test_out_of_range_values_raise(self, override):
        with pytest.raises(ConfigError):
            EngineSettings.from_config(override)

    def test_wrong_type_raises(self):
        with pytest.raises(ConfigError):
            EngineSettings.from_config({"cache": {"ttl_ms": "ten minutes"}})


class TestConnectionString:
    """Test database connection resolution."""

    def test_env_var_wins(self, monkeypatch):
        monkeypatch.setenv("DB_CONNECTION_STRING", "sqlite:///:memory:")
        assert resolve_connection_string({"database": {"connection_string": "sqlite:///other.db"}}) == "sqlite:///:memory:"

    def test_config_connection_string(self, monkeypatch):
        monkeypatch.delenv("DB_CONNECTION_STRING", raising=False)
        assert resolve_connection_string({"database": {"connection_string": "sqlite:///x.db"}}) == "sqlite:///x.db"

    def test_sqlite_file_under_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DB_CONNECTION_STRING", raising=False)
        conn = resolve_connection_string({"database": {"data_dir": str(tmp_path / "data"), "path": "test.db"}})
        assert conn == f"sqlite:///{(tmp_path / 'data' / 'test.db').as_posix()}"
        assert Path(tmp_path / "data").is_dir()
