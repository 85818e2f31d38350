"""Skill definition validation.

Structural checks (required fields, JSON schema shape, layer rules) and
referential checks (parameter names, examples against declared schemas,
dependency resolution). Errors block registration; warnings never do.
"""

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from skillcore.config.constants import LAYER3_MIN_TIMEOUT_MS
from skillcore.exceptions import SkillValidationError
from skillcore.skills.models import DependencyType, SkillDefinition, Workflow
from skillcore.utils.graph import find_cycle
from skillcore.utils.versions import is_semver

logger = logging.getLogger(__name__)

PARAMETER_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


class ValidationIssue(BaseModel):
    """A single validation finding."""

    code: str
    message: str
    path: str = ""
    suggestions: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Outcome of validating a definition."""

    valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    def add_error(self, code: str, message: str, path: str = "", *suggestions: str) -> None:
        self.errors.append(
            ValidationIssue(code=code, message=message, path=path, suggestions=list(suggestions))
        )
        self.valid = False

    def add_warning(self, code: str, message: str, path: str = "", *suggestions: str) -> None:
        self.warnings.append(
            ValidationIssue(code=code, message=message, path=path, suggestions=list(suggestions))
        )

    @property
    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    @property
    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]

    def summary(self) -> str:
        return "; ".join(f"{i.path or 'root'}: {i.message}" for i in self.errors)


def schema_errors(schema: Mapping[str, Any], instance: Any) -> list[str]:
    """Validate an instance against a JSON schema (Draft 7).

    Returns:
        Error messages prefixed with the dotted instance path
    """
    validator = Draft7Validator(schema)
    messages = []
    for error in validator.iter_errors(instance):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        messages.append(f"{path}: {error.message}")
    return messages


def schema_shape_error(schema: Mapping[str, Any]) -> str | None:
    """Check that a schema is itself a valid Draft 7 schema."""
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        return e.message
    return None


def workflow_issues(workflow: Workflow) -> list[str]:
    """Structural problems of a workflow graph (duplicates, dangling edges, cycles)."""
    issues = []
    step_ids = [step.id for step in workflow.steps]
    duplicates = sorted({sid for sid in step_ids if step_ids.count(sid) > 1})
    if duplicates:
        issues.append(f"Duplicate step ids: {', '.join(duplicates)}")

    known = set(step_ids)
    for step in workflow.steps:
        for dep in step.depends_on:
            if dep not in known:
                issues.append(f"Step '{step.id}' depends on unknown step '{dep}'")

    cycle = find_cycle({step.id: step.depends_on for step in workflow.steps})
    if cycle:
        issues.append(f"Dependency cycle: {' -> '.join(cycle)}")

    if workflow.output_step and workflow.output_step not in known:
        issues.append(f"Output step '{workflow.output_step}' is not a step of the workflow")
    return issues


class SkillValidator:
    """Validates skill definitions.

    Args:
        skill_exists: Callback telling whether a skill id is registered, used
            for dependency resolution. Without it, dependencies are not resolved.

    Example:
        >>> validator = SkillValidator(skill_exists=registry.exists)
        >>> result = validator.validate({"id": "add", "name": "Add", "version": "1.0.0", "layer": 1})
        >>> result.valid
        True
    """

    def __init__(self, skill_exists: Callable[[str], bool] | None = None):
        self.skill_exists = skill_exists

    def coerce(
        self, definition: SkillDefinition | Mapping[str, Any]
    ) -> tuple[SkillDefinition | None, ValidationResult]:
        """Convert raw data into a SkillDefinition, mapping field errors to issues."""
        result = ValidationResult()
        if isinstance(definition, SkillDefinition):
            return definition, result

        try:
            return SkillDefinition.model_validate(dict(definition)), result
        except PydanticValidationError as e:
            for err in e.errors():
                loc = [str(part) for part in err["loc"]]
                field_name = loc[0] if loc else "definition"
                prefix = "MISSING" if err["type"] == "missing" else "INVALID"
                result.add_error(f"{prefix}_{field_name.upper()}", err["msg"], ".".join(loc))
            return None, result

    def validate(self, definition: SkillDefinition | Mapping[str, Any]) -> ValidationResult:
        """Run all structural and referential checks.

        Args:
            definition: SkillDefinition or raw mapping

        Returns:
            ValidationResult with errors and warnings
        """
        skill, result = self.coerce(definition)
        if skill is None:
            return result

        self._check_metadata(skill, result)
        self._check_schemas(skill, result)
        self._check_layer_rules(skill, result)
        self._check_parameters(skill, result)
        self._check_examples(skill, result)
        self._check_dependencies(skill, result)
        self._check_extension_points(skill, result)

        if not result.valid:
            logger.debug(f"Skill '{skill.id}' failed validation: {result.error_codes}")
        return result

    def ensure_valid(self, definition: SkillDefinition | Mapping[str, Any]) -> SkillDefinition:
        """Validate and return the definition, raising on errors.

        Raises:
            SkillValidationError: If any error-level issue was found
        """
        skill, result = self.coerce(definition)
        if skill is not None:
            result = self.validate(skill)
        if not result.valid or skill is None:
            skill_id = definition.get("id") if isinstance(definition, Mapping) else definition.id
            raise SkillValidationError(
                f"Skill validation failed: {result.summary()}",
                skill_id=skill_id,
                operation="validate",
                issues=result.errors,
                suggestions=[s for issue in result.errors for s in issue.suggestions],
            )
        return skill

    def _check_metadata(self, skill: SkillDefinition, result: ValidationResult) -> None:
        if not is_semver(skill.version):
            result.add_warning(
                "INVALID_VERSION_FORMAT",
                f"Version '{skill.version}' is not a semantic version",
                "version",
                "Use MAJOR.MINOR.PATCH, e.g. 1.0.0",
            )
        if not skill.metadata.author:
            result.add_warning("MISSING_AUTHOR", "Skill has no author", "metadata.author")
        if not skill.metadata.category:
            result.add_warning("MISSING_CATEGORY", "Skill has no category", "metadata.category")
        if not skill.metadata.tags:
            result.add_warning("MISSING_TAGS", "Skill has no tags", "metadata.tags")

    def _check_schemas(self, skill: SkillDefinition, result: ValidationResult) -> None:
        spec = skill.invocation_spec
        for field_name in ("input_schema", "output_schema"):
            problem = schema_shape_error(getattr(spec, field_name))
            if problem:
                result.add_error(
                    f"INVALID_{field_name.upper()}",
                    f"Invalid JSON schema: {problem}",
                    f"invocation_spec.{field_name}",
                )

    def _check_layer_rules(self, skill: SkillDefinition, result: ValidationResult) -> None:
        context = skill.execution_context
        if skill.layer == 1 and context.sandboxed:
            result.add_warning(
                "LAYER1_SANDBOX_UNNECESSARY",
                "Layer 1 skills run in-process and do not need sandboxing",
                "invocation_spec.execution_context.security.sandboxed",
            )
        elif skill.layer == 2 and context.sandboxed is not True:
            result.add_error(
                "LAYER2_SANDBOX_REQUIRED",
                "Layer 2 skills must declare sandboxed execution",
                "invocation_spec.execution_context.security.sandboxed",
                "Set execution_context.security.sandboxed to true",
            )
        elif skill.layer == 3:
            if context.timeout is not None and context.timeout < LAYER3_MIN_TIMEOUT_MS:
                result.add_warning(
                    "LAYER3_TIMEOUT_TOO_SHORT",
                    f"Layer 3 timeout {context.timeout}ms is below {LAYER3_MIN_TIMEOUT_MS}ms",
                    "invocation_spec.execution_context.timeout",
                )
            if context.workflow is not None:
                for issue in workflow_issues(context.workflow):
                    result.add_error(
                        "INVALID_WORKFLOW", issue, "invocation_spec.execution_context.workflow"
                    )

    def _check_parameters(self, skill: SkillDefinition, result: ValidationResult) -> None:
        seen: set[str] = set()
        for index, param in enumerate(skill.parameters):
            path = f"invocation_spec.parameters.{index}"
            if not PARAMETER_NAME_PATTERN.match(param.name):
                result.add_error(
                    "INVALID_PARAMETER_NAME", f"Invalid parameter name '{param.name}'", path
                )
            if param.name in seen:
                result.add_error(
                    "DUPLICATE_PARAMETER", f"Parameter '{param.name}' declared twice", path
                )
            seen.add(param.name)

            if param.validation is None:
                continue
            problem = schema_shape_error(param.validation)
            if problem:
                result.add_error(
                    "INVALID_PARAMETER_VALIDATION", f"Invalid JSON schema: {problem}", path
                )
            elif param.default_value is not None:
                errors = schema_errors(param.validation, param.default_value)
                if errors:
                    result.add_error(
                        "INVALID_DEFAULT_VALUE",
                        f"Default for '{param.name}' violates its schema: {errors[0]}",
                        path,
                    )

    def _check_examples(self, skill: SkillDefinition, result: ValidationResult) -> None:
        spec = skill.invocation_spec
        if schema_shape_error(spec.input_schema) or schema_shape_error(spec.output_schema):
            return

        required = [p.name for p in spec.parameters if p.required and p.default_value is None]
        for index, example in enumerate(spec.examples):
            path = f"invocation_spec.examples.{index}"
            input_errors = schema_errors(spec.input_schema, example.input)
            input_errors += [f"{name}: missing" for name in required if name not in example.input]
            if input_errors:
                result.add_error(
                    "EXAMPLE_INPUT_INVALID",
                    f"Example '{example.name}' input does not match input schema: "
                    f"{input_errors[0]}",
                    path,
                )
            if spec.output_schema and example.expected_output is not None:
                output_errors = schema_errors(spec.output_schema, example.expected_output)
                if output_errors:
                    result.add_error(
                        "EXAMPLE_OUTPUT_INVALID",
                        f"Example '{example.name}' expected output does not match output "
                        f"schema: {output_errors[0]}",
                        path,
                    )

    def _check_dependencies(self, skill: SkillDefinition, result: ValidationResult) -> None:
        for index, dep in enumerate(skill.dependencies):
            path = f"dependencies.{index}"
            if not dep.name or not dep.version:
                result.add_error(
                    "INCOMPLETE_DEPENDENCY",
                    f"Dependency '{dep.id}' must declare name and version",
                    path,
                )
            if dep.id == skill.id:
                result.add_error("SELF_DEPENDENCY", "Skill cannot depend on itself", path)
                continue
            if (
                dep.type == DependencyType.SKILL
                and not dep.optional
                and not dep.deferred
                and self.skill_exists is not None
                and not self.skill_exists(dep.id)
            ):
                result.add_error(
                    "UNRESOLVED_DEPENDENCY",
                    f"Required skill dependency '{dep.id}' is not registered",
                    path,
                    f"Register '{dep.id}' first",
                    "Mark the dependency optional or deferred",
                )

    def _check_extension_points(self, skill: SkillDefinition, result: ValidationResult) -> None:
        seen: set[str] = set()
        for index, point in enumerate(skill.extension_points):
            path = f"extension_points.{index}"
            if point.id in seen:
                result.add_error(
                    "DUPLICATE_EXTENSION_POINT", f"Extension point '{point.id}' declared twice", path
                )
            seen.add(point.id)
            if point.interface:
                problem = schema_shape_error(point.interface)
                if problem:
                    result.add_error(
                        "INVALID_EXTENSION_INTERFACE", f"Invalid JSON schema: {problem}", path
                    )
