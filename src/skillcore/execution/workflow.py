"""Workflow runner for layer 3 skills.

Runs the steps of a :class:`Workflow` as a dependency graph:

- A step becomes eligible once every step it depends on holds a result
- Eligible steps run concurrently (bounded by ``max_concurrency``)
- Step params support interpolation (``${inputs.name}``, ``${step_id.output.path}``)
- Conditional execution via the step ``condition`` guard
- Retries with fixed, linear or exponential backoff
- Error strategies: fail_fast, continue_on_error, retry_and_continue
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from skillcore.exceptions import (
    ExecutionErrorKind,
    SkillCoreError,
    ValidationError,
    WorkflowValidationError,
)
from skillcore.skills.models import (
    ErrorHandlingStrategy,
    RetryPolicy,
    StepType,
    Workflow,
    WorkflowStep,
)
from skillcore.skills.validation import workflow_issues

logger = logging.getLogger(__name__)

# Pattern for interpolation: ${step_id.output} or ${inputs.param}
_INTERPOLATION_RE = re.compile(r"\$\{([a-zA-Z0-9_-]+)\.([a-zA-Z0-9_.-]+)\}")
_COMPARISON_RE = re.compile(
    r"^\s*\$\{([a-zA-Z0-9_-]+)\.([a-zA-Z0-9_.-]+)\}\s*(==|!=)\s*'([^']*)'\s*$"
)

ApiCaller = Callable[[str, str, dict[str, Any]], Awaitable[Any]]
SkillCaller = Callable[[str, dict[str, Any]], Awaitable[Any]]


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Result of one workflow step."""

    step_id: str
    status: StepStatus
    output: Any = None
    error: str | None = None
    error_kind: ExecutionErrorKind | None = None
    attempts: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "attempts": self.attempts,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class WorkflowResult:
    """Outcome of a workflow run."""

    workflow: str
    error_handling: ErrorHandlingStrategy
    steps: dict[str, StepResult] = field(default_factory=dict)
    output: Any = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return not any(r.status == StepStatus.FAILED for r in self.steps.values())

    @property
    def completed_steps(self) -> int:
        return sum(1 for r in self.steps.values() if r.status == StepStatus.COMPLETED)

    @property
    def failed_steps(self) -> int:
        return sum(1 for r in self.steps.values() if r.status == StepStatus.FAILED)

    def first_failure(self) -> StepResult:
        return next(r for r in self.steps.values() if r.status == StepStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow": self.workflow,
            "success": self.success,
            "output": self.output,
            "total_steps": len(self.steps),
            "completed_steps": self.completed_steps,
            "failed_steps": self.failed_steps,
            "steps": {sid: r.to_dict() for sid, r in self.steps.items()},
            "duration_ms": round(self.duration_ms, 2),
        }


def _safe_json(value: Any) -> str:
    return json.dumps(value, default=str)


# Named transforms for data_transform steps
TRANSFORMS: dict[str, Callable[[Any], Any]] = {
    "identity": lambda v: v,
    "length": len,
    "count": len,
    "keys": lambda v: list(v.keys()),
    "values": lambda v: list(v.values()),
    "first": lambda v: v[0] if v else None,
    "last": lambda v: v[-1] if v else None,
    "sum": sum,
    "sort": sorted,
    "unique": lambda v: list(dict.fromkeys(v)),
    "reverse": lambda v: v[::-1],
    "upper": lambda v: str(v).upper(),
    "lower": lambda v: str(v).lower(),
    "trim": lambda v: str(v).strip(),
    "to_string": str,
    "to_json": _safe_json,
    "from_json": json.loads,
}


def resolve_reference(scope: str, path: str, context: dict[str, Any]) -> Any:
    """Resolve a dotted reference like ``step_id.output.items``."""
    obj = context.get(scope)
    if obj is None:
        return None
    for part in path.split("."):
        if isinstance(obj, dict):
            obj = obj.get(part)
        elif isinstance(obj, list) and part.isdigit() and int(part) < len(obj):
            obj = obj[int(part)]
        else:
            return None
    return obj


def interpolate(value: Any, context: dict[str, Any]) -> Any:
    """Replace ``${ref.path}`` tokens in a param value (recursively).

    A string consisting of a single token resolves to the raw value, so
    types are preserved.
    """
    if isinstance(value, dict):
        return {k: interpolate(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate(v, context) for v in value]
    if not isinstance(value, str):
        return value

    match = _INTERPOLATION_RE.fullmatch(value)
    if match:
        resolved = resolve_reference(match.group(1), match.group(2), context)
        if resolved is not None:
            return resolved

    def _replacer(m: re.Match) -> str:
        resolved = resolve_reference(m.group(1), m.group(2), context)
        return str(resolved) if resolved is not None else m.group(0)

    return _INTERPOLATION_RE.sub(_replacer, value)


def evaluate_condition(expression: str, context: dict[str, Any]) -> bool:
    """Evaluate a simple condition expression.

    Supports: ``${ref.path} == 'value'``, ``${ref.path} != 'value'``,
    and bare ``${ref.path}`` (truthy check).
    """
    comparison = _COMPARISON_RE.match(expression)
    if comparison:
        scope, path, operator, expected = comparison.groups()
        value = resolve_reference(scope, path, context)
        text = str(value).lower() if isinstance(value, bool) else str(value)
        return (text == expected) if operator == "==" else (text != expected)

    bare = _INTERPOLATION_RE.fullmatch(expression.strip())
    if bare:
        return bool(resolve_reference(bare.group(1), bare.group(2), context))

    lowered = expression.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    raise ValidationError(f"Unsupported condition expression: {expression}")


class WorkflowRunner:
    """Execute a :class:`Workflow` graph.

    Args:
        call_api: Async callback ``(api, endpoint, params) -> result``
        invoke_skill: Async callback ``(skill_id, params) -> output``
        max_concurrency: Maximum number of steps running at once
    """

    def __init__(
        self,
        call_api: ApiCaller,
        invoke_skill: SkillCaller,
        max_concurrency: int = 8,
    ) -> None:
        self._call_api = call_api
        self._invoke_skill = invoke_skill
        self._semaphore = asyncio.Semaphore(max(max_concurrency, 1))

    async def run(
        self, workflow: Workflow | dict[str, Any], inputs: dict[str, Any] | None = None
    ) -> WorkflowResult:
        """Run all steps and collect their results.

        Raises:
            WorkflowValidationError: If the graph has unknown dependencies,
                duplicate step ids or a cycle (no step runs)
        """
        if isinstance(workflow, dict):
            workflow = Workflow.model_validate(workflow)
        issues = workflow_issues(workflow)
        if issues:
            raise WorkflowValidationError(
                f"Invalid workflow '{workflow.name}': {'; '.join(issues)}", issues=issues
            )

        started = time.monotonic()
        steps = {step.id: step for step in workflow.steps}
        context: dict[str, Any] = {"inputs": dict(inputs or {})}
        result = WorkflowResult(workflow=workflow.name, error_handling=workflow.error_handling)
        pending = dict(steps)
        running: dict[asyncio.Task, str] = {}

        def record(step_result: StepResult) -> None:
            result.steps[step_result.step_id] = step_result
            context[step_result.step_id] = {
                "output": step_result.output,
                "status": step_result.status.value,
                "error": step_result.error,
            }

        try:
            while pending or running:
                aborted = (
                    workflow.error_handling == ErrorHandlingStrategy.FAIL_FAST
                    and not result.success
                )
                for step_id, step in list(pending.items()):
                    if aborted:
                        del pending[step_id]
                        record(StepResult(step_id, StepStatus.SKIPPED, error="Workflow aborted"))
                        continue
                    if not all(dep in result.steps for dep in step.depends_on):
                        continue
                    del pending[step_id]
                    blocked = [
                        dep
                        for dep in step.depends_on
                        if result.steps[dep].status != StepStatus.COMPLETED
                    ]
                    if blocked:
                        record(
                            StepResult(
                                step_id,
                                StepStatus.SKIPPED,
                                error=f"Dependency '{blocked[0]}' did not complete",
                            )
                        )
                        continue
                    task = asyncio.create_task(
                        self._run_step(step, workflow, dict(context)), name=f"step-{step_id}"
                    )
                    running[task] = step_id

                if not running:
                    continue

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    running.pop(task)
                    record(task.result())

                if workflow.error_handling == ErrorHandlingStrategy.FAIL_FAST and not result.success:
                    for task in running:
                        task.cancel()
                    if running:
                        await asyncio.gather(*running, return_exceptions=True)
                    for step_id in running.values():
                        record(StepResult(step_id, StepStatus.SKIPPED, error="Workflow aborted"))
                    running.clear()
        finally:
            for task in running:
                task.cancel()

        result.output = self._output(workflow, result)
        result.duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"Workflow '{workflow.name}' finished: {result.completed_steps}/{len(steps)} "
            f"completed, {result.failed_steps} failed"
        )
        return result

    def _output(self, workflow: Workflow, result: WorkflowResult) -> Any:
        if workflow.output_step:
            return result.steps[workflow.output_step].output
        completed = [
            result.steps[s.id]
            for s in workflow.steps
            if result.steps[s.id].status == StepStatus.COMPLETED
        ]
        return completed[-1].output if completed else None

    def _retry_policy(self, step: WorkflowStep, workflow: Workflow) -> RetryPolicy | None:
        if step.retry_policy is not None:
            return step.retry_policy
        if workflow.error_handling == ErrorHandlingStrategy.RETRY_AND_CONTINUE:
            return workflow.retry_policy
        return None

    async def _run_step(
        self, step: WorkflowStep, workflow: Workflow, context: dict[str, Any]
    ) -> StepResult:
        """Execute a single step with retry and condition support."""
        if step.condition:
            try:
                proceed = evaluate_condition(step.condition, context)
            except ValidationError as e:
                return StepResult(step.id, StepStatus.FAILED, error=str(e))
            if not proceed:
                logger.debug(f"Step '{step.id}' skipped (condition false)")
                return StepResult(step.id, StepStatus.SKIPPED)

        policy = self._retry_policy(step, workflow)
        attempts = 1 + (policy.max_retries if policy else 0)
        started = time.monotonic()
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            if attempt > 1 and policy is not None:
                await asyncio.sleep(policy.delay_for(attempt - 1))
            try:
                async with self._semaphore:
                    output = await self._execute(step, context)
                duration = (time.monotonic() - started) * 1000
                logger.debug(f"Step '{step.id}' completed (attempt {attempt}/{attempts})")
                return StepResult(step.id, StepStatus.COMPLETED, output, None, None, attempt, duration)
            except Exception as e:
                last_error = e
                logger.warning(f"Step '{step.id}' attempt {attempt}/{attempts} failed: {e}")

        error_kind = None
        if isinstance(last_error, SkillCoreError) and last_error.subkind:
            error_kind = ExecutionErrorKind(last_error.subkind)
        return StepResult(
            step.id,
            StepStatus.FAILED,
            error=str(last_error),
            error_kind=error_kind,
            attempts=attempts,
            duration_ms=(time.monotonic() - started) * 1000,
        )

    async def _execute(self, step: WorkflowStep, context: dict[str, Any]) -> Any:
        params = interpolate(step.params, context)

        if step.type == StepType.API_CALL:
            if not step.api or not step.endpoint:
                raise ValidationError(f"Step '{step.id}' needs both api and endpoint")
            return await self._call_api(step.api, step.endpoint, params)

        if step.type == StepType.SKILL_INVOKE:
            if not step.skill_id:
                raise ValidationError(f"Step '{step.id}' needs a skill_id")
            return await self._invoke_skill(step.skill_id, params)

        if step.type == StepType.DATA_TRANSFORM:
            value = params.get("value")
            if step.source:
                scope, _, path = step.source.partition(".")
                value = resolve_reference(scope, path or "output", context)
            if step.transform:
                transform = TRANSFORMS.get(step.transform)
                if transform is None:
                    raise ValidationError(f"Unknown transform '{step.transform}'")
                value = transform(value)
            return value

        if not step.expression:
            raise ValidationError(f"Condition step '{step.id}' needs an expression")
        return evaluate_condition(step.expression, context)
