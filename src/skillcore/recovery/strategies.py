"""Recovery strategies for the error handler.

A strategy decides whether it can recover from an error, attempts the
recovery, and offers a fallback when recovery fails.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from skillcore.exceptions import (
    DuplicateSkillError,
    ErrorKind,
    ErrorSeverity,
    ExecutionErrorKind,
    FunctionNotFoundError,
    NameConflictError,
    SkillCoreError,
)
from skillcore.skills.registry import SkillRegistry

logger = logging.getLogger(__name__)


@dataclass
class ErrorContext:
    """Context supplied with an error being handled.

    Attributes:
        skill_id: Skill involved (optional)
        operation: Operation that failed, e.g. "execute"
        execution_id: Execution the failure happened in (optional)
        layer: Layer of the skill (optional)
        retry: Async callback re-running the failed operation (optional)
        default_result: Value returned by fallbacks that substitute a default
        metadata: Free-form data shared between recovery and fallback
    """

    skill_id: str | None = None
    operation: str | None = None
    execution_id: str | None = None
    layer: int | None = None
    retry: Callable[[], Awaitable[Any]] | None = None
    default_result: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RecoveryResult:
    success: bool
    message: str
    next_steps: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class FallbackResult:
    success: bool
    message: str
    alternative_action: str = ""
    data: dict[str, Any] = field(default_factory=dict)


class RecoveryStrategy(Protocol):
    """Protocol for recovery strategies."""

    def can_recover(self, error: SkillCoreError, context: ErrorContext) -> bool: ...

    async def recover(self, error: SkillCoreError, context: ErrorContext) -> RecoveryResult: ...

    async def fallback(self, error: SkillCoreError, context: ErrorContext) -> FallbackResult: ...


# Registry errors a cache refresh cannot fix
_NOT_STALE = (FunctionNotFoundError, DuplicateSkillError, NameConflictError)


class RegistryRecoveryStrategy:
    """Refreshes registry caches; falls back to the last cached definition."""

    def __init__(self, registry: SkillRegistry | None = None):
        self.registry = registry

    def can_recover(self, error: SkillCoreError, context: ErrorContext) -> bool:
        return (
            error.kind == ErrorKind.REGISTRY
            and error.severity != ErrorSeverity.CRITICAL
            and self.registry is not None
        )

    async def recover(self, error: SkillCoreError, context: ErrorContext) -> RecoveryResult:
        if self.registry is None:
            return RecoveryResult(False, "No registry to refresh")
        if isinstance(error, _NOT_STALE):
            return RecoveryResult(
                False,
                f"Refreshing the registry cannot fix {type(error).__name__}",
                list(error.suggestions),
            )
        skill_id = context.skill_id or error.skill_id
        if skill_id:
            context.metadata.setdefault(
                "cached_definition", self.registry.cached_definition(skill_id)
            )
        self.registry.clear_cache()

        if skill_id and self.registry.exists(skill_id):
            return RecoveryResult(
                True,
                "Registry caches refreshed",
                ["Retry the original operation"],
            )
        return RecoveryResult(
            False,
            "Registry refreshed but the skill is still unavailable",
            ["Check that the skill is registered", "Check the registry store"],
        )

    async def fallback(self, error: SkillCoreError, context: ErrorContext) -> FallbackResult:
        skill_id = context.skill_id or error.skill_id
        cached = context.metadata.get("cached_definition")
        if cached is None and skill_id and self.registry is not None:
            cached = self.registry.cached_definition(skill_id)
        if cached is None:
            return FallbackResult(False, "No cached registry data", "manual_check")
        return FallbackResult(
            True, "Using cached registry data", "use_cache", {"definition": cached}
        )


_RETRYABLE = {ExecutionErrorKind.RUNTIME.value, ExecutionErrorKind.RESOURCE.value}


class ExecutionRecoveryStrategy:
    """Retries runtime and resource failures through the context's retry callback.

    Timeouts, permission and dependency failures are never retried.
    """

    def __init__(self, max_retries: int = 0):
        self.max_retries = max_retries

    def can_recover(self, error: SkillCoreError, context: ErrorContext) -> bool:
        return (
            error.kind == ErrorKind.EXECUTION
            and error.subkind in _RETRYABLE
            and error.severity != ErrorSeverity.CRITICAL
            and context.retry is not None
            and self.max_retries > 0
        )

    async def recover(self, error: SkillCoreError, context: ErrorContext) -> RecoveryResult:
        if context.retry is None:
            return RecoveryResult(False, "No retry callback supplied")
        last_error: Exception = error
        for attempt in range(1, self.max_retries + 1):
            try:
                output = await context.retry()
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Retry {attempt}/{self.max_retries} of '{context.skill_id}' failed: {e}"
                )
                continue
            logger.info(f"Recovered '{context.skill_id}' on retry {attempt}")
            return RecoveryResult(
                True,
                "Execution retry successful",
                ["Continue with normal operation"],
                {"output": output, "attempts": attempt},
            )
        return RecoveryResult(
            False,
            f"Execution retry failed: {last_error}",
            ["Check skill implementation", "Verify parameters"],
            {"attempts": self.max_retries},
        )

    async def fallback(self, error: SkillCoreError, context: ErrorContext) -> FallbackResult:
        return FallbackResult(
            True,
            "Using default execution result",
            "use_default",
            {"default_result": context.default_result},
        )


class ValidationRecoveryStrategy:
    """Validation errors always need manual correction."""

    def can_recover(self, error: SkillCoreError, context: ErrorContext) -> bool:
        return error.kind == ErrorKind.VALIDATION

    async def recover(self, error: SkillCoreError, context: ErrorContext) -> RecoveryResult:
        return RecoveryResult(
            False,
            "Validation errors require manual correction",
            ["Review input parameters", "Check data format requirements"],
        )

    async def fallback(self, error: SkillCoreError, context: ErrorContext) -> FallbackResult:
        return FallbackResult(False, "No fallback available for validation errors", "manual_correction")
