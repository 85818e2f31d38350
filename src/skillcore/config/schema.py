"""Pydantic models for skillcore configuration schema."""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from skillcore.config.constants import (
    DEFAULT_ALLOWED_COMMANDS,
    DEFAULT_CACHE_MAX_SIZE,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_EXECUTION_TIMEOUT_MS,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_CPU_SECONDS,
    DEFAULT_MAX_MEMORY_BYTES,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_SANDBOX_PATHS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
    DEFAULT_WORKFLOW_CONCURRENCY,
)

# Module-level constants for validation
VALID_CONFLICT_RESOLUTIONS = {"manual", "local", "remote"}
VALID_LOG_LEVELS = {"trace", "debug", "info", "warning", "error", "critical"}


class RegistryConfig(BaseModel):
    """Skill registry configuration."""

    store_dir: str | None = Field(
        default=None,
        description="Directory for persisted skill records. In-memory store if None.",
    )
    cache_max_size: int = Field(default=DEFAULT_CACHE_MAX_SIZE, ge=1)
    cache_ttl_seconds: float = Field(default=DEFAULT_CACHE_TTL_SECONDS, gt=0)

    @field_validator("store_dir")
    @classmethod
    def expand_store_dir(cls, v: str | None) -> str | None:
        """Expand user home directory in store_dir."""
        if v:
            return str(Path(v).expanduser())
        return v


class ExecutionConfig(BaseModel):
    """Execution engine and sandbox configuration."""

    default_timeout_ms: int = Field(default=DEFAULT_EXECUTION_TIMEOUT_MS, gt=0)
    allowed_commands: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_COMMANDS))
    allowed_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_SANDBOX_PATHS))
    max_memory_bytes: int | None = DEFAULT_MAX_MEMORY_BYTES
    max_cpu_seconds: int | None = DEFAULT_MAX_CPU_SECONDS
    max_output_bytes: int = Field(default=DEFAULT_MAX_OUTPUT_BYTES, gt=0)
    network_access: bool = False
    max_retries: int = Field(
        default=0, ge=0, description="Automatic retries for recoverable runtime/resource errors"
    )
    workflow_max_concurrency: int = Field(default=DEFAULT_WORKFLOW_CONCURRENCY, ge=1)


class SyncConfig(BaseModel):
    """Catalog synchronization configuration."""

    auto_sync: bool = False
    sync_interval_seconds: float = Field(default=DEFAULT_SYNC_INTERVAL_SECONDS, gt=0)
    conflict_resolution: str = "manual"
    sync_on_startup: bool = False

    @field_validator("conflict_resolution")
    @classmethod
    def validate_conflict_resolution(cls, v: str) -> str:
        """Validate conflict resolution mode."""
        if v not in VALID_CONFLICT_RESOLUTIONS:
            raise ValueError(
                f"Invalid conflict resolution: {v}. Valid modes: {VALID_CONFLICT_RESOLUTIONS}"
            )
        return v


class LoggingConfig(BaseModel):
    """Logging and trace configuration."""

    level: str = DEFAULT_LOG_LEVEL
    log_dir: str = str(DEFAULT_LOG_DIR)
    trace_executions: bool = False
    include_params: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level name."""
        if v.lower() not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {VALID_LOG_LEVELS}")
        return v.lower()

    @field_validator("log_dir")
    @classmethod
    def expand_log_dir(cls, v: str) -> str:
        """Expand user home directory in log_dir."""
        return str(Path(v).expanduser())


class SkillCoreSettings(BaseModel):
    """Root configuration model for skillcore settings."""

    version: str = "1.0"
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def model_dump_json_pretty(self, **kwargs: Any) -> str:
        """Dump model to pretty-printed JSON string."""
        return self.model_dump_json(indent=2, exclude_none=False, **kwargs)

    def model_dump_json_minimal(self) -> str:
        """Dump only values that differ from the defaults.

        Returns:
            JSON string with the explicitly configured values
        """
        defaults = SkillCoreSettings().model_dump()
        data = self.model_dump()
        minimal: dict[str, Any] = {"version": data["version"]}
        for section, values in data.items():
            if not isinstance(values, dict):
                continue
            changed = {k: v for k, v in values.items() if defaults[section].get(k) != v}
            if changed:
                minimal[section] = changed
        return json.dumps(minimal, indent=2)

    @classmethod
    def get_json_schema(cls) -> dict[str, Any]:
        """Get JSON schema for the settings model."""
        return cls.model_json_schema()
