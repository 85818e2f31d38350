"""Configuration package for skillcore."""

from skillcore.config.manager import (
    apply_overrides,
    get_config_path,
    get_default_config,
    load_config,
    load_settings,
    merge_with_env,
    save_config,
)
from skillcore.config.schema import (
    ExecutionConfig,
    LoggingConfig,
    RegistryConfig,
    SkillCoreSettings,
    SyncConfig,
)
from skillcore.exceptions import ConfigurationError

__all__ = [
    # Schema
    "SkillCoreSettings",
    "RegistryConfig",
    "ExecutionConfig",
    "SyncConfig",
    "LoggingConfig",
    # Manager
    "ConfigurationError",
    "get_config_path",
    "get_default_config",
    "load_config",
    "load_settings",
    "save_config",
    "merge_with_env",
    "apply_overrides",
]
