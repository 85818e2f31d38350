"""Configuration fixtures for testing."""

import pytest

from skillcore.config.schema import SkillCoreSettings

SKILLCORE_ENV_VARS = [
    "SKILLCORE_CONFIG",
    "SKILLCORE_STORE_DIR",
    "SKILLCORE_CACHE_TTL",
    "SKILLCORE_TIMEOUT_MS",
    "SKILLCORE_ALLOWED_COMMANDS",
    "SKILLCORE_NETWORK_ACCESS",
    "SKILLCORE_MAX_RETRIES",
    "SKILLCORE_AUTO_SYNC",
    "SKILLCORE_SYNC_INTERVAL",
    "SKILLCORE_CONFLICT_RESOLUTION",
    "SKILLCORE_LOG_LEVEL",
    "SKILLCORE_LOG_DIR",
    "SKILLCORE_TRACE_PARAMS",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every skillcore environment variable for the test."""
    for name in SKILLCORE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def mock_settings(tmp_path):
    """Settings writing logs under a temporary directory."""
    settings = SkillCoreSettings()
    settings.logging.log_dir = str(tmp_path / "logs")
    settings.execution.allowed_commands = ["echo", "cat", "sleep", "false"]
    return settings


@pytest.fixture
def file_store_settings(mock_settings, tmp_path):
    """Settings persisting skills under a temporary directory."""
    mock_settings.registry.store_dir = str(tmp_path / "skills")
    return mock_settings


@pytest.fixture
def config_file(tmp_path):
    """Path for a temporary settings file (not created)."""
    return tmp_path / "settings.json"
