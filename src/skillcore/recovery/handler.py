"""Unified error handler.

Every failure that reaches a component boundary passes through
``ErrorHandler.handle``: foreign exceptions are wrapped into the skill
error taxonomy, listeners are notified, the error is classified, one
matching recovery strategy is attempted (falling back when it fails), and
prioritized suggestions are produced.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import jsonschema
from pydantic import ValidationError as PydanticValidationError

from skillcore.events import EventBus, EventType
from skillcore.exceptions import (
    ErrorKind,
    ErrorSeverity,
    ExecutionError,
    ExecutionErrorKind,
    ExecutionTimeoutError,
    SkillCoreError,
    ValidationError,
)
from skillcore.recovery.strategies import (
    ErrorContext,
    ExecutionRecoveryStrategy,
    FallbackResult,
    RecoveryResult,
    RecoveryStrategy,
    RegistryRecoveryStrategy,
    ValidationRecoveryStrategy,
)
from skillcore.skills.registry import SkillRegistry

logger = logging.getLogger(__name__)


@dataclass
class ErrorClassification:
    category: str
    severity: ErrorSeverity
    recoverable: bool
    user_action_required: bool
    system_action_required: bool


@dataclass
class RecoverySuggestion:
    """Remediation suggestion. Higher priority sorts first."""

    action: str
    description: str
    automated: bool = False
    priority: int = 0


@dataclass
class ErrorHandlingResult:
    """Outcome of handling one error."""

    error: SkillCoreError
    classification: ErrorClassification
    recovery_attempted: bool = False
    recovery_successful: bool = False
    recovery_result: RecoveryResult | None = None
    fallback_result: FallbackResult | None = None
    suggestions: list[RecoverySuggestion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error.to_dict(),
            "category": self.classification.category,
            "recoverable": self.classification.recoverable,
            "recovery_attempted": self.recovery_attempted,
            "recovery_successful": self.recovery_successful,
            "fallback_used": bool(self.fallback_result and self.fallback_result.success),
            "suggestions": [s.__dict__ for s in self.suggestions],
        }


class ErrorClassifier(Protocol):
    def classify(self, error: SkillCoreError) -> ErrorClassification | None: ...


ErrorListener = Callable[[SkillCoreError], None]


class DefaultErrorClassifier:
    """Classification by error kind and severity."""

    RECOVERABLE = {ErrorKind.EXECUTION, ErrorKind.REGISTRY, ErrorKind.CONFIGURATION}
    USER_ACTION = {ErrorKind.VALIDATION, ErrorKind.CONFIGURATION, ErrorKind.EXTENSION}
    SYSTEM_ACTION = {ErrorKind.EXECUTION, ErrorKind.REGISTRY, ErrorKind.MIGRATION, ErrorKind.SYNC}

    def classify(self, error: SkillCoreError) -> ErrorClassification:
        critical = error.severity == ErrorSeverity.CRITICAL
        return ErrorClassification(
            category=error.subkind or error.kind.value,
            severity=error.severity,
            recoverable=error.kind in self.RECOVERABLE and not critical,
            user_action_required=error.kind in self.USER_ACTION or critical,
            system_action_required=error.kind in self.SYSTEM_ACTION and not critical,
        )


def wrap_exception(error: BaseException, context: ErrorContext | None = None) -> SkillCoreError:
    """Convert any exception into a SkillCoreError carrying the context."""
    context = context or ErrorContext()

    if isinstance(error, SkillCoreError):
        wrapped = error
    elif isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        wrapped = ExecutionTimeoutError(str(error) or "Operation timed out", original_error=error)
    elif isinstance(error, PermissionError):
        wrapped = ExecutionError(
            str(error), error_kind=ExecutionErrorKind.PERMISSION, original_error=error
        )
    elif isinstance(error, (FileNotFoundError, ModuleNotFoundError, httpx.HTTPError)):
        wrapped = ExecutionError(
            str(error), error_kind=ExecutionErrorKind.DEPENDENCY, original_error=error
        )
    elif isinstance(error, MemoryError):
        wrapped = ExecutionError(
            "Out of memory", error_kind=ExecutionErrorKind.RESOURCE, original_error=error
        )
    elif isinstance(error, (PydanticValidationError, jsonschema.ValidationError)):
        wrapped = ValidationError(str(error), original_error=error)
    else:
        wrapped = ExecutionError(
            f"{type(error).__name__}: {error}",
            error_kind=ExecutionErrorKind.RUNTIME,
            original_error=error,
        )

    wrapped.with_context(
        skill_id=context.skill_id,
        operation=context.operation,
        execution_id=context.execution_id,
    )
    if context.layer is not None:
        wrapped.context.setdefault("layer", context.layer)
    return wrapped


# (action, description, automated, priority) per kind / execution sub-kind
_KIND_SUGGESTIONS: dict[str, list[tuple[str, str, bool, int]]] = {
    ErrorKind.VALIDATION.value: [
        ("fix_validation_errors", "Address validation errors in the input or definition", False, 70),
        ("validate_skill_schema", "Validate the skill definition against its schema", False, 55),
    ],
    ErrorKind.REGISTRY.value: [
        ("refresh_registry", "Refresh the skill registry cache", True, 70),
        ("check_skill_availability", "Verify the skill is properly registered", False, 55),
    ],
    ErrorKind.EXTENSION.value: [
        ("review_extensions", "Review conflicting extensions and their priorities", False, 60),
    ],
    ErrorKind.SYNC.value: [
        ("resolve_sync_conflicts", "Resolve queued synchronization conflicts", False, 60),
    ],
    ErrorKind.MIGRATION.value: [
        ("check_compatibility", "Check package compatibility with this environment", False, 60),
    ],
    ErrorKind.CONFIGURATION.value: [
        ("fix_configuration", "Review the configuration file and environment", False, 70),
    ],
    ExecutionErrorKind.TIMEOUT.value: [
        ("increase_timeout", "Increase the execution timeout or reduce the workload", False, 70),
    ],
    ExecutionErrorKind.PERMISSION.value: [
        ("update_permissions", "Allow the command, path or host in the security policy", False, 70),
    ],
    ExecutionErrorKind.DEPENDENCY.value: [
        ("check_dependencies", "Verify that required functions, tools and services exist", False, 70),
    ],
    ExecutionErrorKind.RESOURCE.value: [
        ("raise_resource_limits", "Raise resource limits or reduce output size", False, 70),
        ("retry_execution", "Retry skill execution", True, 45),
    ],
    ExecutionErrorKind.RUNTIME.value: [
        ("check_parameters", "Verify execution parameters are correct", False, 65),
        ("retry_execution", "Retry skill execution", True, 45),
    ],
}


class ErrorHandler:
    """Routes errors through classification, recovery and suggestions.

    Example:
        >>> handler = ErrorHandler(registry=registry)
        >>> outcome = await handler.handle(ValueError("bad"), ErrorContext(skill_id="add"))
        >>> outcome.error.kind
        <ErrorKind.EXECUTION: 'execution'>
    """

    def __init__(
        self,
        registry: SkillRegistry | None = None,
        max_retries: int = 0,
        event_bus: EventBus | None = None,
    ):
        """Initialize error handler with the default strategies and classifier.

        Args:
            registry: Registry used by the registry recovery strategy
            max_retries: Automatic retries for recoverable execution errors
            event_bus: Bus for ``error_handled`` events (optional)
        """
        self.event_bus = event_bus
        self._strategies: dict[ErrorKind, list[RecoveryStrategy]] = {}
        self._classifiers: list[ErrorClassifier] = []
        self._listeners: list[ErrorListener] = []
        self._metrics: dict[str, Any] = {}
        self.reset_metrics()

        self.register_strategy(ErrorKind.REGISTRY, RegistryRecoveryStrategy(registry))
        self.register_strategy(ErrorKind.EXECUTION, ExecutionRecoveryStrategy(max_retries))
        self.register_strategy(ErrorKind.VALIDATION, ValidationRecoveryStrategy())
        self.register_classifier(DefaultErrorClassifier())

    def register_strategy(
        self, kind: ErrorKind, strategy: RecoveryStrategy, first: bool = False
    ) -> None:
        """Register a recovery strategy for an error kind."""
        strategies = self._strategies.setdefault(kind, [])
        if first:
            strategies.insert(0, strategy)
        else:
            strategies.append(strategy)

    def register_classifier(self, classifier: ErrorClassifier, first: bool = True) -> None:
        """Register a classifier. Custom classifiers run before the default one."""
        if first:
            self._classifiers.insert(0, classifier)
        else:
            self._classifiers.append(classifier)

    def add_listener(self, listener: ErrorListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ErrorListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def handle(
        self, error: BaseException, context: ErrorContext | None = None
    ) -> ErrorHandlingResult:
        """Handle an error with one recovery attempt.

        Args:
            error: Any exception
            context: Skill, operation and retry information

        Returns:
            ErrorHandlingResult with classification, outcomes and suggestions
        """
        context = context or ErrorContext()
        wrapped = wrap_exception(error, context)
        self._record(wrapped)
        self._notify(wrapped)

        classification = self.classify(wrapped)
        outcome = ErrorHandlingResult(error=wrapped, classification=classification)
        await self._attempt_recovery(wrapped, context, outcome)
        outcome.suggestions = self.generate_suggestions(wrapped, classification)

        if outcome.recovery_successful:
            logger.info(f"Recovered from {wrapped.kind.value} error: {wrapped.message}")
        else:
            logger.error(
                f"{wrapped.kind.value} error"
                f"{f' ({wrapped.subkind})' if wrapped.subkind else ''}"
                f"{f' in {wrapped.operation}' if wrapped.operation else ''}"
                f"{f' for {wrapped.skill_id}' if wrapped.skill_id else ''}: {wrapped.message}"
            )

        if self.event_bus is not None:
            self.event_bus.publish(
                EventType.ERROR_HANDLED,
                kind=wrapped.kind.value,
                subkind=wrapped.subkind,
                skill_id=wrapped.skill_id,
                execution_id=wrapped.execution_id,
                recovered=outcome.recovery_successful,
            )
        return outcome

    def classify(self, error: SkillCoreError) -> ErrorClassification:
        for classifier in self._classifiers:
            classification = classifier.classify(error)
            if classification is not None:
                return classification
        return ErrorClassification("unknown", error.severity, False, True, False)

    async def _attempt_recovery(
        self, error: SkillCoreError, context: ErrorContext, outcome: ErrorHandlingResult
    ) -> None:
        strategies = self._strategies.get(error.kind, [])
        strategy = next((s for s in strategies if s.can_recover(error, context)), None)

        if strategy is not None:
            outcome.recovery_attempted = True
            self._metrics["recoveries_attempted"] += 1
            try:
                outcome.recovery_result = await strategy.recover(error, context)
            except Exception as e:
                logger.warning(f"Recovery strategy {type(strategy).__name__} failed: {e}")
                outcome.recovery_result = RecoveryResult(False, f"Recovery failed: {e}")
            if outcome.recovery_result.success:
                outcome.recovery_successful = True
                self._metrics["recoveries_succeeded"] += 1
                return

        fallback_strategy = strategy or (strategies[0] if strategies else None)
        if fallback_strategy is None:
            return
        try:
            outcome.fallback_result = await fallback_strategy.fallback(error, context)
        except Exception as e:
            logger.warning(f"Fallback of {type(fallback_strategy).__name__} failed: {e}")
            return
        if outcome.fallback_result.success:
            self._metrics["fallbacks_used"] += 1

    def generate_suggestions(
        self, error: SkillCoreError, classification: ErrorClassification
    ) -> list[RecoverySuggestion]:
        """Suggestions ordered by priority (highest first), one per action."""
        candidates = [
            RecoverySuggestion("follow_hint", hint, False, 80 - index)
            for index, hint in enumerate(error.suggestions)
        ]
        for key in (error.kind.value, error.subkind):
            for action, description, automated, priority in _KIND_SUGGESTIONS.get(key or "", []):
                candidates.append(RecoverySuggestion(action, description, automated, priority))

        if classification.recoverable:
            candidates.append(
                RecoverySuggestion(
                    "retry_operation", "Retry the operation that caused this error", False, 60
                )
            )
        if classification.user_action_required:
            candidates.append(
                RecoverySuggestion(
                    "check_configuration", "Review skill definitions and parameters", False, 50
                )
            )
        if classification.system_action_required:
            candidates.append(
                RecoverySuggestion(
                    "system_recovery", "The system will attempt automatic recovery", True, 40
                )
            )
        if error.severity.rank >= ErrorSeverity.HIGH.rank:
            candidates.append(
                RecoverySuggestion("check_logs", "Review system logs for more details", False, 20)
            )

        best: dict[str, RecoverySuggestion] = {}
        for suggestion in candidates:
            key = suggestion.description if suggestion.action == "follow_hint" else suggestion.action
            if key not in best or suggestion.priority > best[key].priority:
                best[key] = suggestion
        return sorted(best.values(), key=lambda s: s.priority, reverse=True)

    def _record(self, error: SkillCoreError) -> None:
        self._metrics["total_errors"] += 1
        self._metrics["by_kind"][error.kind.value] += 1
        if error.subkind:
            self._metrics["by_subkind"][error.subkind] += 1

    def _notify(self, error: SkillCoreError) -> None:
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(f"Error listener {listener!r} failed: {e}")

    def get_metrics(self) -> dict[str, Any]:
        return {
            "total_errors": self._metrics["total_errors"],
            "by_kind": dict(self._metrics["by_kind"]),
            "by_subkind": dict(self._metrics["by_subkind"]),
            "recoveries_attempted": self._metrics["recoveries_attempted"],
            "recoveries_succeeded": self._metrics["recoveries_succeeded"],
            "fallbacks_used": self._metrics["fallbacks_used"],
        }

    def reset_metrics(self) -> None:
        self._metrics = {
            "total_errors": 0,
            "by_kind": Counter(),
            "by_subkind": Counter(),
            "recoveries_attempted": 0,
            "recoveries_succeeded": 0,
            "fallbacks_used": 0,
        }
