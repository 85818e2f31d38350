"""Execution engine.

Runs one skill invocation through a small state machine:

    CREATED -> VALIDATING -> DISPATCHING -> LAYER1|LAYER2|LAYER3
            -> COMPLETED | FAILED | TIMED_OUT

The tier call races against a deadline; whichever settles first wins and
the loser is cancelled (its cleanup still runs). Metadata is recorded for
every outcome and every raised error is routed through the ErrorHandler,
so ``execute`` never raises to its caller.
"""

import asyncio
import logging
from contextvars import ContextVar
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from skillcore.config.schema import ExecutionConfig
from skillcore.events import EventBus, EventType
from skillcore.exceptions import (
    ExecutionError,
    ExecutionErrorKind,
    ExecutionTimeoutError,
    ValidationError,
)
from skillcore.execution.layer1 import FunctionRegistry, Layer1Executor
from skillcore.execution.layer2 import Layer2Executor, SandboxConfig, SandboxManager
from skillcore.execution.layer3 import ApiClient, ApiRegistry, Layer3Executor
from skillcore.execution.models import (
    LAYER_STATES,
    CallContext,
    ExecutionErrorInfo,
    ExecutionMetadata,
    ExecutionResult,
    ExecutionState,
    ResourceUsage,
    SuggestionInfo,
    can_transition,
)
from skillcore.extensions.invocation import apply_extension
from skillcore.extensions.manager import ExtensionManager
from skillcore.extensions.models import SkillExtension
from skillcore.recovery.handler import ErrorHandler
from skillcore.recovery.strategies import ErrorContext
from skillcore.skills.models import SkillDefinition
from skillcore.skills.registry import SkillRegistry
from skillcore.skills.validation import schema_errors

logger = logging.getLogger(__name__)

# Skill ids currently executing in this task, outermost first
_CALL_CHAIN: ContextVar[tuple[str, ...]] = ContextVar("skillcore_call_chain", default=())


def _call_context(skill_id: str, raw: dict[str, Any] | None) -> CallContext:
    try:
        return CallContext.model_validate(raw or {})
    except PydanticValidationError as e:
        issues = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ValidationError(
            f"Invalid call context for '{skill_id}': {'; '.join(issues)}",
            skill_id=skill_id,
            operation="execute",
            issues=issues,
        ) from e


class ExecutionEngine:
    """Dispatches skill invocations to the layer executors.

    Example:
        >>> engine = ExecutionEngine(registry)
        >>> result = await engine.execute("echo-cmd", {"args": ["hi"]})
        >>> result.success, result.metadata.layer
        (True, 2)
    """

    def __init__(
        self,
        registry: SkillRegistry,
        *,
        functions: FunctionRegistry | None = None,
        sandboxes: SandboxManager | None = None,
        apis: ApiRegistry | None = None,
        api_client: ApiClient | None = None,
        extensions: ExtensionManager | None = None,
        error_handler: ErrorHandler | None = None,
        event_bus: EventBus | None = None,
        config: ExecutionConfig | None = None,
    ):
        """Initialize execution engine.

        Args:
            registry: Registry skills are resolved from
            functions: Layer 1 function registry
            sandboxes: Layer 2 sandbox manager (built from config if None)
            apis: Layer 3 API registry
            api_client: HTTP client for layer 3 calls
            extensions: Extension manager consulted for routing (optional)
            error_handler: Error handler (created with config.max_retries if None)
            event_bus: Bus for execution events (optional)
            config: Execution configuration
        """
        self.registry = registry
        self.config = config or ExecutionConfig()
        self.functions = functions or FunctionRegistry()
        self.sandboxes = sandboxes or SandboxManager(
            SandboxConfig(
                allowed_commands=self.config.allowed_commands,
                allowed_paths=self.config.allowed_paths,
                max_memory_bytes=self.config.max_memory_bytes,
                max_cpu_seconds=self.config.max_cpu_seconds,
                max_output_bytes=self.config.max_output_bytes,
                network_access=self.config.network_access,
            )
        )
        self.apis = apis or ApiRegistry()
        self.api_client = api_client or ApiClient()
        self.extensions = extensions
        self.event_bus = event_bus
        self.error_handler = error_handler or ErrorHandler(
            registry=registry, max_retries=self.config.max_retries, event_bus=event_bus
        )

        self.layer1 = Layer1Executor(self.functions)
        self.layer2 = Layer2Executor(self.sandboxes)
        self.layer3 = Layer3Executor(
            self.apis, self.api_client, self.config.workflow_max_concurrency
        )

    async def aclose(self) -> None:
        await self.api_client.aclose()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_execution(self, skill: SkillDefinition, params: dict[str, Any]) -> dict[str, Any]:
        """Check invocation params and fill in declared defaults.

        Returns:
            Params with defaults applied

        Raises:
            ValidationError: If required params are missing, a value violates
                its schema, or the layer binding is incomplete
        """
        filled = dict(params)
        problems: list[str] = []

        for param in skill.parameters:
            if param.name not in filled:
                if param.default_value is not None:
                    filled[param.name] = param.default_value
                elif param.required:
                    problems.append(f"Missing required parameter '{param.name}'")
                continue
            if param.validation:
                errors = schema_errors(param.validation, filled[param.name])
                if errors:
                    problems.append(f"Parameter '{param.name}': {errors[0]}")

        problems.extend(
            f"Input: {error}" for error in schema_errors(skill.invocation_spec.input_schema, filled)
        )

        context = skill.execution_context
        if skill.layer == 2 and not (filled.get("command") or context.command):
            problems.append("Layer 2 skill requires a command")
        if skill.layer == 3 and not (
            filled.get("api") or context.api or filled.get("workflow") or context.workflow
        ):
            problems.append("Layer 3 skill requires an API or a workflow")

        if problems:
            raise ValidationError(
                f"Invalid invocation of '{skill.id}': {'; '.join(problems)}",
                skill_id=skill.id,
                operation="validate_execution",
                issues=problems,
            )
        return filled

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _transition(self, metadata: ExecutionMetadata, state: ExecutionState) -> None:
        if not can_transition(metadata.state, state):
            logger.warning(
                f"Unexpected transition {metadata.state.value} -> {state.value} "
                f"in {metadata.execution_id}"
            )
        metadata.state = state
        metadata.state_history.append(state)

    def _timeout_ms(self, skill: SkillDefinition, context: CallContext) -> int:
        return context.timeout or skill.execution_context.timeout or self.config.default_timeout_ms

    async def _dispatch(
        self,
        skill: SkillDefinition,
        params: dict[str, Any],
        context: CallContext,
        usage: ResourceUsage,
    ) -> Any:
        if skill.layer == 1:
            return await self.layer1.execute(skill, params, usage)
        if skill.layer == 2:
            return await self.layer2.execute(skill, params, usage, context.environment)
        return await self.layer3.execute(skill, params, usage, self._invoke_nested)

    async def _run(
        self,
        skill: SkillDefinition,
        params: dict[str, Any],
        context: CallContext,
        metadata: ExecutionMetadata,
        extension: SkillExtension | None,
        timeout_ms: int,
    ) -> Any:
        """One attempt of the tier call, raced against the deadline."""
        usage = metadata.resource_usage

        async def run_base(call_params: dict[str, Any]) -> Any:
            return await self._dispatch(skill, call_params, context, usage)

        try:
            return await asyncio.wait_for(
                apply_extension(extension, params, run_base), timeout=timeout_ms / 1000
            )
        except TimeoutError as e:
            raise ExecutionTimeoutError(
                f"Execution of '{skill.id}' exceeded {timeout_ms}ms",
                timeout_ms=timeout_ms,
                suggestions=["Increase the timeout in the call context or skill definition"],
            ) from e

    async def _invoke_nested(self, skill_id: str, params: dict[str, Any]) -> Any:
        """Invoke another skill from a workflow step."""
        chain = _CALL_CHAIN.get()
        if skill_id in chain:
            raise ExecutionError(
                f"Recursive invocation of '{skill_id}' ({' -> '.join(chain + (skill_id,))})",
                error_kind=ExecutionErrorKind.DEPENDENCY,
            )
        result = await self.execute(skill_id, params, CallContext(caller=chain[-1] if chain else None))
        if not result.success:
            message = result.error.message if result.error else "unknown error"
            raise ExecutionError(
                f"Skill '{skill_id}' failed: {message}",
                error_kind=ExecutionErrorKind.DEPENDENCY,
                context={"nested_execution_id": result.metadata.execution_id},
            )
        return result.output

    async def execute(
        self,
        skill_id: str,
        params: dict[str, Any] | None = None,
        context: CallContext | dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """Execute a skill.

        Args:
            skill_id: Registered skill id
            params: Invocation params
            context: Caller context (timeout ms, environment, caller, retry)

        Returns:
            ExecutionResult with output or structured error and metadata
        """
        context_error: ValidationError | None = None
        if not isinstance(context, CallContext):
            try:
                context = _call_context(skill_id, context)
            except ValidationError as e:
                context, context_error = CallContext(), e
        params = dict(params or {})

        metadata = ExecutionMetadata(
            execution_id=f"exec-{uuid4().hex[:12]}",
            skill_id=skill_id,
            caller=context.caller,
        )
        token = _CALL_CHAIN.set(_CALL_CHAIN.get() + (skill_id,))
        logger.debug(f"Executing '{skill_id}' ({metadata.execution_id})")
        self._publish(EventType.EXECUTION_STARTED, metadata, params=params)

        skill: SkillDefinition | None = None
        filled: dict[str, Any] | None = None
        extension: SkillExtension | None = None
        timeout_ms = self.config.default_timeout_ms
        try:
            self._transition(metadata, ExecutionState.VALIDATING)
            if context_error is not None:
                raise context_error
            skill = self.registry.resolve(skill_id)
            metadata.layer = skill.layer
            filled = self.validate_execution(skill, params)

            self._transition(metadata, ExecutionState.DISPATCHING)
            if self.extensions is not None:
                extension = self.extensions.get_routed_extension(skill.id)
                metadata.extension_id = extension.id if extension else None
            timeout_ms = self._timeout_ms(skill, context)

            self._transition(metadata, LAYER_STATES[skill.layer])
            output = await self._run(skill, filled, context, metadata, extension, timeout_ms)
            self._check_output(skill, output)
            self._transition(metadata, ExecutionState.COMPLETED)
            result = ExecutionResult(success=True, output=output, metadata=metadata)
        except Exception as e:
            result = await self._handle_failure(
                e, skill, filled, context, metadata, extension, timeout_ms
            )
        finally:
            _CALL_CHAIN.reset(token)

        metadata.end_time = datetime.now()
        metadata.duration_ms = (metadata.end_time - metadata.start_time).total_seconds() * 1000
        if result.success:
            logger.info(
                f"Executed '{skill_id}' in {metadata.duration_ms:.1f}ms "
                f"(layer {metadata.layer}, {metadata.execution_id})"
            )
            self._publish(EventType.EXECUTION_COMPLETED, metadata, params=params)
        else:
            self._publish(
                EventType.EXECUTION_FAILED,
                metadata,
                params=params,
                error=result.error.model_dump() if result.error else None,
            )
        return result

    def _check_output(self, skill: SkillDefinition, output: Any) -> None:
        schema = skill.invocation_spec.output_schema
        if not schema:
            return
        errors = schema_errors(schema, output)
        if errors:
            logger.warning(f"Output of '{skill.id}' does not match its output schema: {errors[0]}")

    async def _handle_failure(
        self,
        error: Exception,
        skill: SkillDefinition | None,
        params: dict[str, Any] | None,
        context: CallContext,
        metadata: ExecutionMetadata,
        extension: SkillExtension | None,
        timeout_ms: int,
    ) -> ExecutionResult:
        retry = None
        if skill is not None and params is not None and context.retry:

            async def retry() -> Any:
                metadata.attempts += 1
                return await self._run(skill, params, context, metadata, extension, timeout_ms)

        outcome = await self.error_handler.handle(
            error,
            ErrorContext(
                skill_id=metadata.skill_id,
                operation="execute",
                execution_id=metadata.execution_id,
                layer=metadata.layer,
                retry=retry,
            ),
        )

        recovery = outcome.recovery_result
        if outcome.recovery_successful and recovery is not None and "output" in recovery.data:
            metadata.recovered = True
            self._transition(metadata, ExecutionState.COMPLETED)
            return ExecutionResult(success=True, output=recovery.data["output"], metadata=metadata)

        wrapped = outcome.error
        timed_out = wrapped.subkind == ExecutionErrorKind.TIMEOUT.value
        self._transition(metadata, ExecutionState.TIMED_OUT if timed_out else ExecutionState.FAILED)

        fallback = outcome.fallback_result
        return ExecutionResult(
            success=False,
            error=ExecutionErrorInfo(
                kind=wrapped.kind.value,
                subkind=wrapped.subkind,
                code=wrapped.code,
                message=wrapped.message,
                severity=wrapped.severity.value,
                recoverable=outcome.classification.recoverable,
                suggestions=[
                    SuggestionInfo(
                        action=s.action,
                        description=s.description,
                        automated=s.automated,
                        priority=s.priority,
                    )
                    for s in outcome.suggestions
                ],
                context=wrapped.context,
            ),
            metadata=metadata,
            fallback_output=(
                fallback.data.get("default_result") if fallback and fallback.success else None
            ),
        )

    def _publish(self, event_type: EventType, metadata: ExecutionMetadata, **data: Any) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(
            event_type,
            execution_id=metadata.execution_id,
            skill_id=metadata.skill_id,
            layer=metadata.layer,
            state=metadata.state.value,
            duration_ms=metadata.duration_ms,
            extension_id=metadata.extension_id,
            resource_usage=metadata.resource_usage.model_dump(),
            **data,
        )
