"""Configuration file manager for loading, saving, and managing skillcore settings."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from skillcore.config.constants import DEFAULT_CONFIG_PATH
from skillcore.config.schema import SkillCoreSettings
from skillcore.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def get_config_path() -> Path:
    """Get the path to the configuration file.

    Returns:
        Path from SKILLCORE_CONFIG, or ~/.skillcore/settings.json
    """
    override = os.getenv("SKILLCORE_CONFIG")
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH


def get_default_config() -> SkillCoreSettings:
    """Get default configuration settings.

    Returns:
        SkillCoreSettings with in-memory registry store, 30s execution
        timeout, manual conflict resolution and auto-sync disabled
    """
    return SkillCoreSettings()


def load_config(config_path: Path | None = None) -> SkillCoreSettings:
    """Load configuration from JSON file.

    Args:
        config_path: Optional path to config file. Defaults to get_config_path()

    Returns:
        SkillCoreSettings loaded from file, or default settings if file doesn't exist

    Raises:
        ConfigurationError: If file exists but is invalid JSON or fails validation

    Example:
        >>> settings = load_config()
        >>> settings.execution.default_timeout_ms
        30000
    """
    if config_path is None:
        config_path = get_config_path()

    if not config_path.exists():
        logger.debug(f"No configuration file at {config_path}, using defaults")
        return SkillCoreSettings()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)

        return SkillCoreSettings(**data)

    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in configuration file {config_path}: {e}", operation="load_config"
        ) from e
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed for {config_path}:\n{e}", operation="load_config"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to load configuration from {config_path}: {e}", operation="load_config"
        ) from e


def save_config(settings: SkillCoreSettings, config_path: Path | None = None) -> None:
    """Save configuration to JSON file with minimal formatting.

    Only values that differ from the defaults are written. Sets restrictive
    permissions (0o600) on POSIX systems.

    Args:
        settings: SkillCoreSettings instance to save
        config_path: Optional path to config file. Defaults to get_config_path()

    Raises:
        ConfigurationError: If save operation fails
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        old_umask = os.umask(0o077) if os.name != "nt" else None
        try:
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(settings.model_dump_json_minimal())

            if os.name != "nt":
                os.chmod(config_path, 0o600)
        finally:
            if old_umask is not None:
                os.umask(old_umask)

    except OSError as e:
        raise ConfigurationError(
            f"Failed to save configuration to {config_path}: {e}", operation="save_config"
        ) from e


def _env_bool(name: str) -> bool:
    return os.getenv(name, "false").lower() in _TRUE_VALUES


def _env_number(name: str, cast: type) -> Any:
    raw = os.getenv(name)
    try:
        return cast(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Environment variable {name} must be a {cast.__name__}, got {raw!r}",
            operation="merge_with_env",
        ) from e


def merge_with_env(settings: SkillCoreSettings) -> dict[str, Any]:
    """Collect environment variable overrides for the given settings.

    Environment variables take precedence over file settings. The returned
    dictionary mirrors the settings structure and can be passed to
    apply_overrides().

    Args:
        settings: SkillCoreSettings instance from file

    Returns:
        Dictionary of environment variable overrides

    Raises:
        ConfigurationError: If a numeric variable cannot be parsed
    """
    env_overrides: dict[str, Any] = {}

    # Registry overrides
    if os.getenv("SKILLCORE_STORE_DIR"):
        env_overrides.setdefault("registry", {})["store_dir"] = os.getenv("SKILLCORE_STORE_DIR")
    if os.getenv("SKILLCORE_CACHE_TTL"):
        env_overrides.setdefault("registry", {})["cache_ttl_seconds"] = _env_number(
            "SKILLCORE_CACHE_TTL", float
        )

    # Execution overrides
    if os.getenv("SKILLCORE_TIMEOUT_MS"):
        env_overrides.setdefault("execution", {})["default_timeout_ms"] = _env_number(
            "SKILLCORE_TIMEOUT_MS", int
        )
    if os.getenv("SKILLCORE_ALLOWED_COMMANDS"):
        commands = [c.strip() for c in os.getenv("SKILLCORE_ALLOWED_COMMANDS", "").split(",")]
        env_overrides.setdefault("execution", {})["allowed_commands"] = [c for c in commands if c]
    if os.getenv("SKILLCORE_NETWORK_ACCESS"):
        env_overrides.setdefault("execution", {})["network_access"] = _env_bool(
            "SKILLCORE_NETWORK_ACCESS"
        )
    if os.getenv("SKILLCORE_MAX_RETRIES"):
        env_overrides.setdefault("execution", {})["max_retries"] = _env_number(
            "SKILLCORE_MAX_RETRIES", int
        )

    # Sync overrides
    if os.getenv("SKILLCORE_AUTO_SYNC"):
        env_overrides.setdefault("sync", {})["auto_sync"] = _env_bool("SKILLCORE_AUTO_SYNC")
    if os.getenv("SKILLCORE_SYNC_INTERVAL"):
        env_overrides.setdefault("sync", {})["sync_interval_seconds"] = _env_number(
            "SKILLCORE_SYNC_INTERVAL", float
        )
    if os.getenv("SKILLCORE_CONFLICT_RESOLUTION"):
        env_overrides.setdefault("sync", {})["conflict_resolution"] = os.getenv(
            "SKILLCORE_CONFLICT_RESOLUTION"
        )

    # Logging overrides
    log_level = os.getenv("SKILLCORE_LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if log_level:
        env_overrides.setdefault("logging", {})["level"] = log_level
    if os.getenv("SKILLCORE_LOG_DIR"):
        env_overrides.setdefault("logging", {})["log_dir"] = os.getenv("SKILLCORE_LOG_DIR")
    if os.getenv("SKILLCORE_TRACE_PARAMS"):
        env_overrides.setdefault("logging", {})["include_params"] = _env_bool(
            "SKILLCORE_TRACE_PARAMS"
        )

    return env_overrides


def apply_overrides(settings: SkillCoreSettings, overrides: dict[str, Any]) -> SkillCoreSettings:
    """Return a new settings instance with overrides deep-merged in.

    Raises:
        ConfigurationError: If the merged settings fail validation
    """
    data = settings.model_dump()
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(data.get(section), dict):
            data[section].update(values)
        else:
            data[section] = values

    try:
        return SkillCoreSettings(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Configuration overrides are invalid:\n{e}", operation="apply_overrides"
        ) from e


def load_settings(config_path: Path | None = None, use_env: bool = True) -> SkillCoreSettings:
    """Load settings from file and layer environment overrides on top.

    A .env file in the working directory is loaded first when use_env is set.

    Args:
        config_path: Optional path to config file
        use_env: Whether to apply environment variable overrides

    Returns:
        Effective SkillCoreSettings
    """
    settings = load_config(config_path)
    if not use_env:
        return settings

    load_dotenv()
    overrides = merge_with_env(settings)
    if overrides:
        logger.debug(f"Applying environment overrides for sections: {sorted(overrides)}")
        settings = apply_overrides(settings, overrides)
    return settings
