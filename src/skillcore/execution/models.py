"""Execution request, state and result models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from skillcore.utils.responses import create_error_response, create_success_response


class ExecutionState(str, Enum):
    """Per-invocation state machine states."""

    CREATED = "created"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    LAYER1 = "layer1"
    LAYER2 = "layer2"
    LAYER3 = "layer3"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionState.COMPLETED, ExecutionState.FAILED, ExecutionState.TIMED_OUT)


LAYER_STATES = {1: ExecutionState.LAYER1, 2: ExecutionState.LAYER2, 3: ExecutionState.LAYER3}

_TRANSITIONS: dict[ExecutionState, set[ExecutionState]] = {
    ExecutionState.CREATED: {ExecutionState.VALIDATING, ExecutionState.FAILED},
    ExecutionState.VALIDATING: {ExecutionState.DISPATCHING, ExecutionState.FAILED},
    ExecutionState.DISPATCHING: {
        ExecutionState.LAYER1,
        ExecutionState.LAYER2,
        ExecutionState.LAYER3,
        ExecutionState.FAILED,
        ExecutionState.TIMED_OUT,
    },
    ExecutionState.LAYER1: {
        ExecutionState.COMPLETED,
        ExecutionState.FAILED,
        ExecutionState.TIMED_OUT,
    },
    ExecutionState.LAYER2: {
        ExecutionState.COMPLETED,
        ExecutionState.FAILED,
        ExecutionState.TIMED_OUT,
    },
    ExecutionState.LAYER3: {
        ExecutionState.COMPLETED,
        ExecutionState.FAILED,
        ExecutionState.TIMED_OUT,
    },
}


def can_transition(current: ExecutionState, target: ExecutionState) -> bool:
    return target in _TRANSITIONS.get(current, set())


class CallContext(BaseModel):
    """Caller-supplied context for one execution.

    Attributes:
        timeout: Deadline in milliseconds (overrides the skill's declared timeout)
        environment: Extra environment variables for layer 2 commands
        caller: Free-form caller identity, recorded in metadata
        retry: Whether recoverable failures may be retried automatically
    """

    timeout: int | None = Field(default=None, gt=0)
    environment: dict[str, str] = Field(default_factory=dict)
    caller: str | None = None
    retry: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResourceUsage(BaseModel):
    """Resources consumed by an execution."""

    memory_used: int = 0  # bytes (peak RSS of child processes where reported)
    cpu_time: float = 0.0  # milliseconds
    network_requests: int = 0
    files_accessed: int = 0
    output_bytes: int = 0


class ExecutionMetadata(BaseModel):
    """Metadata recorded for every execution, whatever its outcome."""

    execution_id: str
    skill_id: str
    layer: int | None = None
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    duration_ms: float = 0.0
    state: ExecutionState = ExecutionState.CREATED
    state_history: list[ExecutionState] = Field(default_factory=lambda: [ExecutionState.CREATED])
    resource_usage: ResourceUsage = Field(default_factory=ResourceUsage)
    extension_id: str | None = None
    attempts: int = 1
    recovered: bool = False
    caller: str | None = None


class SuggestionInfo(BaseModel):
    """Remediation suggestion attached to a failed result."""

    action: str
    description: str
    automated: bool = False
    priority: int = 0


class ExecutionErrorInfo(BaseModel):
    """Structured error returned to callers instead of an exception."""

    kind: str
    subkind: str | None = None
    code: str
    message: str
    severity: str
    recoverable: bool = False
    suggestions: list[SuggestionInfo] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """Outcome of ExecutionEngine.execute()."""

    success: bool
    output: Any = None
    error: ExecutionErrorInfo | None = None
    metadata: ExecutionMetadata
    fallback_output: Any = None

    def to_response(self) -> dict:
        """Flatten into the standard success/error response envelope."""
        if self.success or self.error is None:
            return create_success_response(
                result=self.output,
                message=f"Executed {self.metadata.skill_id} in {self.metadata.duration_ms:.1f}ms",
            )
        return create_error_response(
            error=self.error.subkind or self.error.code,
            message=self.error.message,
            suggestions=[s.description for s in self.error.suggestions],
        )
