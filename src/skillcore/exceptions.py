"""Custom exceptions for the skill system.

This module defines the error taxonomy shared by every component. Each
subsystem wraps foreign failures into one of these kinds, attaching the
skill id, operation and execution id, before the error crosses a component
boundary.

Exception Hierarchy:
    SkillCoreError (base)
    ├── ValidationError
    │   ├── SkillValidationError
    │   ├── ExtensionValidationError
    │   └── WorkflowValidationError
    ├── RegistryError
    │   ├── SkillNotFoundError
    │   ├── FunctionNotFoundError
    │   ├── DuplicateSkillError
    │   └── NameConflictError
    ├── ExecutionError (kind: timeout, permission, dependency, resource, runtime)
    │   └── ExecutionTimeoutError
    ├── ExtensionError
    │   ├── DuplicateExtensionError
    │   ├── ExtensionNotFoundError
    │   ├── ExtensionConflictError
    │   └── CompositionError
    ├── SyncError
    │   ├── SyncInProgressError
    │   └── SyncConflictNotFoundError
    ├── MigrationError
    └── ConfigurationError
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Top-level error categories."""

    VALIDATION = "validation"
    REGISTRY = "registry"
    EXECUTION = "execution"
    EXTENSION = "extension"
    SYNC = "sync"
    MIGRATION = "migration"
    CONFIGURATION = "configuration"


class ExecutionErrorKind(str, Enum):
    """Sub-kinds of execution failures."""

    TIMEOUT = "timeout"
    PERMISSION = "permission"
    DEPENDENCY = "dependency"
    RESOURCE = "resource"
    RUNTIME = "runtime"


class ErrorSeverity(str, Enum):
    """Severity levels, ordered from least to most severe."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


class SkillCoreError(Exception):
    """Base exception for all skill system errors.

    Attributes:
        message: Human-readable description
        skill_id: Skill the failure relates to (optional)
        operation: Operation that failed, e.g. "register" or "execute" (optional)
        execution_id: Execution the failure happened in (optional)
        context: Additional structured data
        suggestions: Human-readable remediation hints
        severity: ErrorSeverity of this failure
        original_error: Wrapped foreign exception (optional)

    Example:
        >>> try:
        ...     registry.resolve("missing")
        ... except SkillCoreError as e:
        ...     print(f"{e.kind.value}: {e}")
    """

    kind: ErrorKind = ErrorKind.EXECUTION
    default_severity: ErrorSeverity = ErrorSeverity.MEDIUM
    code: str = "skill_error"

    def __init__(
        self,
        message: str,
        *,
        skill_id: str | None = None,
        operation: str | None = None,
        execution_id: str | None = None,
        context: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
        severity: ErrorSeverity | None = None,
        original_error: BaseException | None = None,
    ):
        self.message = message
        self.skill_id = skill_id
        self.operation = operation
        self.execution_id = execution_id
        self.context = dict(context or {})
        self.suggestions = list(suggestions or [])
        self.severity = severity or self.default_severity
        self.original_error = original_error
        super().__init__(message)

    @property
    def subkind(self) -> str | None:
        """Finer-grained category (only execution errors carry one)."""
        return None

    def with_context(
        self,
        *,
        skill_id: str | None = None,
        operation: str | None = None,
        execution_id: str | None = None,
    ) -> "SkillCoreError":
        """Fill in missing context fields and return self."""
        self.skill_id = self.skill_id or skill_id
        self.operation = self.operation or operation
        self.execution_id = self.execution_id or execution_id
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dictionary."""
        return {
            "kind": self.kind.value,
            "subkind": self.subkind,
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "skill_id": self.skill_id,
            "operation": self.operation,
            "execution_id": self.execution_id,
            "context": self.context,
            "suggestions": self.suggestions,
        }


class ValidationError(SkillCoreError):
    """Input or definition failed validation.

    Attributes:
        issues: Structured validation issues (objects with code/message/path)

    Example:
        >>> raise ValidationError("Parameter 'text' is required", skill_id="echo-cmd")
    """

    kind = ErrorKind.VALIDATION
    code = "validation_failed"

    def __init__(self, message: str, *, issues: list[Any] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.issues = list(issues or [])


class SkillValidationError(ValidationError):
    """Skill definition failed structural or referential checks."""

    code = "invalid_skill_definition"


class ExtensionValidationError(ValidationError):
    """Extension shape is invalid (missing fields, bad type or priority)."""

    code = "invalid_extension"


class WorkflowValidationError(ValidationError):
    """Workflow graph is invalid (unknown dependency, cycle, duplicate step)."""

    code = "invalid_workflow"


class RegistryError(SkillCoreError):
    """Registry lookup or mutation failed."""

    kind = ErrorKind.REGISTRY
    code = "registry_error"


class SkillNotFoundError(RegistryError):
    """Skill not found in registry.

    Example:
        >>> raise SkillNotFoundError("Skill 'echo-cmd' not found in registry")
    """

    default_severity = ErrorSeverity.LOW
    code = "not_found"


class FunctionNotFoundError(RegistryError):
    """Layer 1 function (or layer 3 API) name is not registered."""

    default_severity = ErrorSeverity.LOW
    code = "function_not_found"


class DuplicateSkillError(RegistryError):
    """A skill with the same id is already registered."""

    code = "duplicate_id"


class NameConflictError(RegistryError):
    """A skill with the same name already exists in the same layer."""

    code = "name_conflict"


_EXECUTION_SEVERITY = {
    ExecutionErrorKind.TIMEOUT: ErrorSeverity.MEDIUM,
    ExecutionErrorKind.PERMISSION: ErrorSeverity.HIGH,
    ExecutionErrorKind.DEPENDENCY: ErrorSeverity.HIGH,
    ExecutionErrorKind.RESOURCE: ErrorSeverity.HIGH,
    ExecutionErrorKind.RUNTIME: ErrorSeverity.MEDIUM,
}


class ExecutionError(SkillCoreError):
    """Skill execution failed.

    Attributes:
        error_kind: ExecutionErrorKind describing the failure

    Example:
        >>> raise ExecutionError(
        ...     "Command 'rm' not allowed in sandbox",
        ...     error_kind=ExecutionErrorKind.PERMISSION,
        ... )
    """

    kind = ErrorKind.EXECUTION
    code = "execution_failed"

    def __init__(
        self,
        message: str,
        *,
        error_kind: ExecutionErrorKind = ExecutionErrorKind.RUNTIME,
        severity: ErrorSeverity | None = None,
        **kwargs: Any,
    ):
        self.error_kind = error_kind
        super().__init__(message, severity=severity or _EXECUTION_SEVERITY[error_kind], **kwargs)

    @property
    def subkind(self) -> str | None:
        return self.error_kind.value


class ExecutionTimeoutError(ExecutionError):
    """Execution did not settle before its deadline."""

    code = "timeout"

    def __init__(self, message: str, *, timeout_ms: int | None = None, **kwargs: Any):
        super().__init__(message, error_kind=ExecutionErrorKind.TIMEOUT, **kwargs)
        self.timeout_ms = timeout_ms
        if timeout_ms is not None:
            self.context.setdefault("timeout_ms", timeout_ms)


class ExtensionError(SkillCoreError):
    """Extension registration, routing or composition failed."""

    kind = ErrorKind.EXTENSION
    code = "extension_error"


class DuplicateExtensionError(ExtensionError):
    """An extension with the same id is already registered."""

    code = "duplicate_extension"


class ExtensionNotFoundError(ExtensionError):
    """Extension id is not registered."""

    default_severity = ErrorSeverity.LOW
    code = "extension_not_found"


class ExtensionConflictError(ExtensionError):
    """Extension conflicts require a decision no strategy can make automatically.

    Attributes:
        conflicts: The unresolved conflicts
    """

    default_severity = ErrorSeverity.HIGH
    code = "unresolved_conflict"

    def __init__(self, message: str, *, conflicts: list[Any] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.conflicts = list(conflicts or [])


class CompositionError(ExtensionError):
    """Skills cannot be composed (layer gap, dependency version clash)."""

    code = "composition_failed"


class SyncError(SkillCoreError):
    """Catalog synchronization failed."""

    kind = ErrorKind.SYNC
    code = "sync_failed"


class SyncInProgressError(SyncError):
    """A synchronization pass is already running."""

    default_severity = ErrorSeverity.LOW
    code = "sync_in_progress"


class SyncConflictNotFoundError(SyncError):
    """No synchronization conflict is queued for the skill."""

    default_severity = ErrorSeverity.LOW
    code = "conflict_not_found"


class MigrationError(SkillCoreError):
    """Skill package export, import or compatibility check failed."""

    kind = ErrorKind.MIGRATION
    default_severity = ErrorSeverity.HIGH
    code = "migration_failed"


class ConfigurationError(SkillCoreError):
    """Raised when configuration operations fail."""

    kind = ErrorKind.CONFIGURATION
    default_severity = ErrorSeverity.HIGH
    code = "configuration_error"
