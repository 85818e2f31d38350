"""Skill definition schema.

This module defines the Pydantic models for skill definitions: the
invocation spec (schemas, parameters, examples, execution context), the
declarative workflow graph used by layer 3 skills, dependencies, extension
points and metadata.

A definition is plain data and can be written as YAML:
```yaml
id: echo-cmd
name: Echo
version: 1.0.0
layer: 2
description: Echo arguments back
invocation_spec:
  execution_context:
    command: echo
    security:
      sandboxed: true
metadata:
  author: platform-team
  category: shell
  tags: [shell, text]
```
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

SkillLayer = Literal[1, 2, 3]


class DependencyType(str, Enum):
    """Kinds of things a skill can depend on."""

    SKILL = "skill"
    LIBRARY = "library"
    TOOL = "tool"
    SERVICE = "service"


class SkillDependency(BaseModel):
    """Dependency of a skill.

    Non-optional skill dependencies must be registered when the dependent
    skill is validated, unless the dependency is marked deferred.
    """

    id: str = Field(..., min_length=1)
    name: str = ""
    version: str = ""
    type: DependencyType = DependencyType.SKILL
    optional: bool = False
    deferred: bool = False
    source: str | None = None


class ResourceLimits(BaseModel):
    """Resource ceiling for an execution."""

    max_memory: int | None = None  # bytes
    max_cpu: float | None = None  # seconds
    max_duration: int | None = None  # milliseconds
    max_file_size: int | None = None  # bytes


class SecurityPolicy(BaseModel):
    """Security policy for an execution."""

    allowed_paths: list[str] = Field(default_factory=list)
    allowed_network_hosts: list[str] = Field(default_factory=list)
    allowed_commands: list[str] = Field(default_factory=list)
    sandboxed: bool = False


class StepType(str, Enum):
    """Workflow step types."""

    API_CALL = "api_call"
    SKILL_INVOKE = "skill_invoke"
    DATA_TRANSFORM = "data_transform"
    CONDITION = "condition"


class ErrorHandlingStrategy(str, Enum):
    """How a workflow reacts to a failed step."""

    FAIL_FAST = "fail_fast"
    CONTINUE_ON_ERROR = "continue_on_error"
    RETRY_AND_CONTINUE = "retry_and_continue"


class BackoffStrategy(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """Retry policy for workflow steps."""

    max_retries: int = Field(default=2, ge=0)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    initial_delay_ms: int = Field(default=100, ge=0)
    max_delay_ms: int = Field(default=5_000, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (1-based)."""
        if self.backoff == BackoffStrategy.FIXED:
            delay = self.initial_delay_ms
        elif self.backoff == BackoffStrategy.LINEAR:
            delay = self.initial_delay_ms * attempt
        else:
            delay = self.initial_delay_ms * (2 ** (attempt - 1))
        return min(delay, self.max_delay_ms) / 1000


class WorkflowStep(BaseModel):
    """A single step of a layer 3 workflow.

    Values in ``params`` may reference workflow inputs or earlier step
    outputs with ``${inputs.name}`` or ``${step_id.output.path}``.
    """

    id: str = Field(..., min_length=1)
    type: StepType
    depends_on: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)
    condition: str | None = None  # Guard: step is skipped when false
    retry_policy: RetryPolicy | None = None

    # api_call
    api: str | None = None
    endpoint: str | None = None

    # skill_invoke
    skill_id: str | None = None

    # data_transform
    source: str | None = None  # Dotted reference, e.g. "fetch.output.items"
    transform: str | None = None

    # condition
    expression: str | None = None


class Workflow(BaseModel):
    """Declarative workflow: steps plus explicit dependency edges."""

    name: str = "workflow"
    steps: list[WorkflowStep] = Field(default_factory=list)
    error_handling: ErrorHandlingStrategy = ErrorHandlingStrategy.FAIL_FAST
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    output_step: str | None = None


class ExecutionContext(BaseModel):
    """Execution context declared by a skill.

    Besides environment and limits it carries the tier binding: the layer 1
    function name, the layer 2 default command, or the layer 3 API call or
    workflow.
    """

    environment: dict[str, str] = Field(default_factory=dict)
    working_directory: str | None = None
    timeout: int | None = Field(default=None, gt=0)  # milliseconds
    resources: ResourceLimits | None = None
    security: SecurityPolicy | None = None

    function: str | None = None
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    api: str | None = None
    endpoint: str | None = None
    workflow: Workflow | None = None

    @property
    def sandboxed(self) -> bool | None:
        return self.security.sandboxed if self.security else None


class Parameter(BaseModel):
    """Declared invocation parameter. Order of declaration is significant."""

    name: str = Field(..., min_length=1)
    type: str = "string"
    description: str = ""
    required: bool = True
    default_value: Any = None
    validation: dict[str, Any] | None = None  # JSON schema for the value


class Example(BaseModel):
    """Example invocation with expected output."""

    name: str
    description: str = ""
    input: dict[str, Any] = Field(default_factory=dict)
    expected_output: Any = None
    context: dict[str, Any] | None = None


class ExtensionPoint(BaseModel):
    """Named point where extensions may attach to a skill."""

    id: str
    name: str
    description: str = ""
    type: str = "hook"
    interface: dict[str, Any] = Field(default_factory=dict)
    required: bool = False


def _object_schema() -> dict[str, Any]:
    return {"type": "object"}


class InvocationSpec(BaseModel):
    """How a skill is invoked."""

    input_schema: dict[str, Any] = Field(default_factory=_object_schema)
    output_schema: dict[str, Any] = Field(default_factory=dict)
    execution_context: ExecutionContext = Field(default_factory=ExecutionContext)
    parameters: list[Parameter] = Field(default_factory=list)
    examples: list[Example] = Field(default_factory=list)


class SkillMetadata(BaseModel):
    """Descriptive metadata. Tags have set semantics."""

    author: str = ""
    created: datetime = Field(default_factory=datetime.now)
    updated: datetime = Field(default_factory=datetime.now)
    tags: list[str] = Field(default_factory=list)
    category: str = ""
    license: str | None = None
    documentation: str | None = None
    repository: str | None = None

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        """Drop duplicate tags, keeping first occurrence order."""
        return list(dict.fromkeys(tag.strip() for tag in v if tag.strip()))


class SkillDefinition(BaseModel):
    """Versioned, declarative unit of capability.

    Required fields:
        id: Unique identifier (immutable)
        name: Display name (unique per layer, case-insensitive)
        version: Semantic version (e.g., "1.0.0")
        layer: 1 (function), 2 (sandboxed command), 3 (API/workflow)

    Example:
        >>> skill = SkillDefinition(id="add", name="Add", version="1.0.0", layer=1)
    """

    id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    layer: SkillLayer
    description: str = ""
    invocation_spec: InvocationSpec = Field(default_factory=InvocationSpec)
    extension_points: list[ExtensionPoint] = Field(default_factory=list)
    dependencies: list[SkillDependency] = Field(default_factory=list)
    metadata: SkillMetadata = Field(default_factory=SkillMetadata)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Reject ids with whitespace or path separators."""
        if any(ch.isspace() for ch in v) or "/" in v or "\\" in v:
            raise ValueError("Skill id must not contain whitespace or path separators")
        return v

    @property
    def execution_context(self) -> ExecutionContext:
        return self.invocation_spec.execution_context

    @property
    def parameters(self) -> list[Parameter]:
        return self.invocation_spec.parameters

    def skill_dependency_ids(self) -> list[str]:
        """Ids of dependencies that are themselves skills."""
        return [dep.id for dep in self.dependencies if dep.type == DependencyType.SKILL]

    def depends_on(self, skill_id: str) -> bool:
        return any(dep.id == skill_id for dep in self.dependencies)
