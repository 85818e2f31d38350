"""Unit tests for skillcore.config.manager module."""

import json
import os

import pytest

from skillcore.config.constants import DEFAULT_CONFIG_PATH
from skillcore.config.manager import (
    apply_overrides,
    get_config_path,
    get_default_config,
    load_config,
    load_settings,
    merge_with_env,
    save_config,
)
from skillcore.config.schema import SkillCoreSettings
from skillcore.exceptions import ConfigurationError


@pytest.mark.unit
@pytest.mark.config
class TestConfigPath:
    """Tests for get_config_path."""

    def test_default_path(self, clean_env):
        assert get_config_path() == DEFAULT_CONFIG_PATH

    def test_env_override(self, clean_env, tmp_path):
        clean_env.setenv("SKILLCORE_CONFIG", str(tmp_path / "custom.json"))

        assert get_config_path() == tmp_path / "custom.json"


@pytest.mark.unit
@pytest.mark.config
class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_returns_defaults(self, config_file):
        """Test defaults are returned when no file exists."""
        settings = load_config(config_file)

        assert settings == get_default_config()
        assert settings.execution.default_timeout_ms == 30_000

    def test_load_partial_file(self, config_file):
        """Test sections missing from the file keep their defaults."""
        config_file.write_text(json.dumps({"sync": {"auto_sync": True}}))

        settings = load_config(config_file)

        assert settings.sync.auto_sync
        assert settings.sync.conflict_resolution == "manual"
        assert settings.registry.store_dir is None

    def test_invalid_json(self, config_file):
        config_file.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_config(config_file)

    def test_validation_failure(self, config_file):
        config_file.write_text(json.dumps({"sync": {"conflict_resolution": "newest"}}))

        with pytest.raises(ConfigurationError, match="validation failed"):
            load_config(config_file)


@pytest.mark.unit
@pytest.mark.config
class TestSaveConfig:
    """Tests for save_config."""

    def test_round_trip(self, config_file):
        settings = SkillCoreSettings()
        settings.execution.max_retries = 2
        settings.logging.level = "debug"

        save_config(settings, config_file)

        assert load_config(config_file) == settings

    def test_only_changed_values_written(self, config_file):
        """Test the file holds only values that differ from the defaults."""
        settings = SkillCoreSettings()
        settings.sync.auto_sync = True

        save_config(settings, config_file)

        assert json.loads(config_file.read_text()) == {
            "version": "1.0",
            "sync": {"auto_sync": True},
        }

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_restrictive_permissions(self, config_file):
        save_config(SkillCoreSettings(), config_file)

        assert config_file.stat().st_mode & 0o777 == 0o600

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "settings.json"

        save_config(SkillCoreSettings(), path)

        assert path.exists()


@pytest.mark.unit
@pytest.mark.config
class TestEnvironmentOverrides:
    """Tests for merge_with_env, apply_overrides and load_settings."""

    def test_no_env_no_overrides(self, clean_env):
        assert merge_with_env(SkillCoreSettings()) == {}

    def test_env_overrides_collected(self, clean_env):
        clean_env.setenv("SKILLCORE_TIMEOUT_MS", "1500")
        clean_env.setenv("SKILLCORE_ALLOWED_COMMANDS", "echo, cat,,ls")
        clean_env.setenv("SKILLCORE_AUTO_SYNC", "yes")
        clean_env.setenv("LOG_LEVEL", "DEBUG")

        overrides = merge_with_env(SkillCoreSettings())

        assert overrides == {
            "execution": {"default_timeout_ms": 1500, "allowed_commands": ["echo", "cat", "ls"]},
            "sync": {"auto_sync": True},
            "logging": {"level": "DEBUG"},
        }

    def test_skillcore_log_level_wins(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "error")
        clean_env.setenv("SKILLCORE_LOG_LEVEL", "trace")

        assert merge_with_env(SkillCoreSettings())["logging"]["level"] == "trace"

    def test_bad_number(self, clean_env):
        clean_env.setenv("SKILLCORE_MAX_RETRIES", "many")

        with pytest.raises(ConfigurationError, match="SKILLCORE_MAX_RETRIES"):
            merge_with_env(SkillCoreSettings())

    def test_apply_overrides_deep_merges(self):
        settings = SkillCoreSettings()

        merged = apply_overrides(settings, {"execution": {"max_retries": 3}})

        assert merged.execution.max_retries == 3
        assert merged.execution.default_timeout_ms == settings.execution.default_timeout_ms
        assert settings.execution.max_retries == 0

    def test_apply_invalid_overrides(self):
        with pytest.raises(ConfigurationError):
            apply_overrides(SkillCoreSettings(), {"sync": {"sync_interval_seconds": -1}})

    def test_load_settings_layers_env_over_file(self, clean_env, config_file):
        """Test environment variables take precedence over the file."""
        config_file.write_text(json.dumps({"execution": {"default_timeout_ms": 1000}}))
        clean_env.setenv("SKILLCORE_TIMEOUT_MS", "2000")

        assert load_settings(config_file).execution.default_timeout_ms == 2000
        assert load_settings(config_file, use_env=False).execution.default_timeout_ms == 1000
