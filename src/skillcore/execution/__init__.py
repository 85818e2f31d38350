"""Skill execution: the engine and its three layer executors."""

from skillcore.execution.engine import ExecutionEngine
from skillcore.execution.layer1 import (
    BUILTIN_FUNCTIONS,
    FunctionRegistry,
    Layer1Executor,
    map_parameters,
    register_builtin_functions,
)
from skillcore.execution.layer2 import (
    CommandResult,
    Layer2Executor,
    Sandbox,
    SandboxConfig,
    SandboxManager,
)
from skillcore.execution.layer3 import (
    ApiAuth,
    ApiClient,
    ApiEndpoint,
    ApiParameter,
    ApiRegistry,
    ApiWrapper,
    Layer3Executor,
)
from skillcore.execution.models import (
    CallContext,
    ExecutionErrorInfo,
    ExecutionMetadata,
    ExecutionResult,
    ExecutionState,
    ResourceUsage,
)
from skillcore.execution.workflow import StepResult, StepStatus, WorkflowResult, WorkflowRunner

__all__ = [
    "ExecutionEngine",
    # Models
    "CallContext",
    "ExecutionErrorInfo",
    "ExecutionMetadata",
    "ExecutionResult",
    "ExecutionState",
    "ResourceUsage",
    # Layer 1
    "BUILTIN_FUNCTIONS",
    "FunctionRegistry",
    "Layer1Executor",
    "map_parameters",
    "register_builtin_functions",
    # Layer 2
    "CommandResult",
    "Layer2Executor",
    "Sandbox",
    "SandboxConfig",
    "SandboxManager",
    # Layer 3
    "ApiAuth",
    "ApiClient",
    "ApiEndpoint",
    "ApiParameter",
    "ApiRegistry",
    "ApiWrapper",
    "Layer3Executor",
    "StepResult",
    "StepStatus",
    "WorkflowResult",
    "WorkflowRunner",
]
