"""Extension manager: inheritance, composition, conflict handling and routing.

Extensions attach to a registered base skill. Each base skill is routed to
at most one extension at a time: the one with the highest priority, ties
going to the earliest registration.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from skillcore.events import EventBus, EventType
from skillcore.exceptions import (
    CompositionError,
    DuplicateExtensionError,
    ExtensionConflictError,
    ExtensionNotFoundError,
    ExtensionValidationError,
    SkillNotFoundError,
)
from skillcore.extensions.conflicts import detect_conflicts, resolve
from skillcore.extensions.models import (
    ExtensionConflict,
    ExtensionType,
    Resolution,
    ResolutionStrategy,
    SkillExtension,
)
from skillcore.skills.models import (
    DependencyType,
    ExecutionContext,
    ExtensionPoint,
    InvocationSpec,
    SecurityPolicy,
    SkillDefinition,
    SkillDependency,
    SkillMetadata,
)
from skillcore.skills.registry import SkillRegistry
from skillcore.skills.validation import ValidationResult
from skillcore.utils.versions import is_semver

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("id", "base_skill_id", "name", "version")


class ExtensionManager:
    """Manages extensions of registered skills.

    Example:
        >>> manager = ExtensionManager(registry)
        >>> manager.extend("echo-cmd", {
        ...     "id": "shout", "name": "Shout", "version": "1.0.0",
        ...     "type": "decorate", "priority": 10,
        ...     "implementation": lambda out: out["stdout"].upper(),
        ... })
        'shout'
        >>> manager.get_routed_extension("echo-cmd").id
        'shout'
    """

    def __init__(self, registry: SkillRegistry, event_bus: EventBus | None = None):
        self.registry = registry
        self.event_bus = event_bus
        self._extensions: dict[str, SkillExtension] = {}
        self._by_base: dict[str, list[str]] = {}
        self._routes: dict[str, str] = {}
        self._sequence: dict[str, int] = {}
        self._counter = 0

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_extension(self, extension: SkillExtension | Mapping[str, Any]) -> ValidationResult:
        """Check extension shape without registering it."""
        data = (
            extension.model_dump()
            if isinstance(extension, SkillExtension)
            else dict(extension)
        )
        result = ValidationResult()

        for name in _REQUIRED_FIELDS:
            if not data.get(name):
                result.add_error(f"MISSING_{name.upper()}", f"Extension {name} is required", name)

        priority = data.get("priority", 0)
        if not isinstance(priority, int) or isinstance(priority, bool):
            result.add_error("INVALID_PRIORITY", "Extension priority must be an integer", "priority")
        elif not 0 <= priority <= 100:
            result.add_warning(
                "PRIORITY_OUT_OF_RANGE", "Extension priority should be between 0 and 100", "priority"
            )

        ext_type = data.get("type")
        valid_types = [t.value for t in ExtensionType]
        if (ext_type.value if isinstance(ext_type, ExtensionType) else ext_type) not in valid_types:
            result.add_error(
                "INVALID_TYPE",
                f"Extension type must be one of: {', '.join(valid_types)}",
                "type",
            )

        if data.get("implementation") is None:
            result.add_error(
                "MISSING_IMPLEMENTATION", "Extension implementation is required", "implementation"
            )

        version = data.get("version")
        if version and not is_semver(str(version)):
            result.add_warning(
                "INVALID_VERSION_FORMAT",
                "Version should follow semantic versioning (e.g., 1.0.0)",
                "version",
            )

        for index, dep in enumerate(data.get("dependencies") or []):
            if not isinstance(dep, str) or not dep.partition("@")[0]:
                result.add_error(
                    "INVALID_DEPENDENCY",
                    "Extension dependencies must be skill or extension ids",
                    f"dependencies.{index}",
                )
        return result

    def _coerce(
        self, base_skill_id: str, extension: SkillExtension | Mapping[str, Any]
    ) -> SkillExtension:
        if isinstance(extension, SkillExtension):
            data = extension.model_dump()
        else:
            data = dict(extension)
        data.setdefault("base_skill_id", base_skill_id)

        result = self.validate_extension(data)
        if data.get("base_skill_id") != base_skill_id:
            result.add_error(
                "BASE_SKILL_MISMATCH",
                f"Extension targets '{data.get('base_skill_id')}', not '{base_skill_id}'",
                "base_skill_id",
            )
        if not result.valid:
            raise ExtensionValidationError(
                f"Extension validation failed: {result.summary()}",
                skill_id=base_skill_id,
                operation="extend",
                issues=result.errors,
            )
        for warning in result.warnings:
            logger.warning(f"Extension '{data['id']}': {warning.message}")

        try:
            return SkillExtension.model_validate(data)
        except PydanticValidationError as e:
            raise ExtensionValidationError(
                f"Invalid extension: {e}", skill_id=base_skill_id, operation="extend"
            ) from e

    # ------------------------------------------------------------------
    # Registration and routing
    # ------------------------------------------------------------------

    def _rank(self, extension: SkillExtension) -> tuple[int, int, str]:
        return (
            -extension.priority,
            self._sequence.get(extension.id, self._counter + 1),
            extension.id,
        )

    def _extensions_of(self, base_skill_id: str) -> list[SkillExtension]:
        return [self._extensions[ext_id] for ext_id in self._by_base.get(base_skill_id, [])]

    def _update_route(self, base_skill_id: str) -> None:
        extensions = self._extensions_of(base_skill_id)
        if not extensions:
            self._routes.pop(base_skill_id, None)
            return
        self._routes[base_skill_id] = min(extensions, key=self._rank).id

    def extend(self, base_skill_id: str, extension: SkillExtension | Mapping[str, Any]) -> str:
        """Attach an extension to a base skill.

        Returns:
            The extension id

        Raises:
            ExtensionValidationError: If the extension is malformed
            SkillNotFoundError: If the base skill is not registered
            DuplicateExtensionError: If the extension id is taken
            ExtensionConflictError: If its conflicts need a user decision
        """
        ext = self._coerce(base_skill_id, extension)

        if not self.registry.exists(base_skill_id):
            raise SkillNotFoundError(
                f"Base skill not found: {base_skill_id}",
                skill_id=base_skill_id,
                operation="extend",
            )
        if ext.id in self._extensions:
            raise DuplicateExtensionError(
                f"Extension '{ext.id}' is already registered",
                skill_id=base_skill_id,
                operation="extend",
                suggestions=["Remove the existing extension first or choose another id"],
            )

        conflicts = detect_conflicts(base_skill_id, self._extensions_of(base_skill_id) + [ext])
        if conflicts:
            resolution = self.resolve_conflicts(conflicts)
            logger.info(
                f"Extension '{ext.id}' on '{base_skill_id}': {len(conflicts)} conflict(s), "
                f"strategy {resolution.strategy.value}"
            )
            if resolution.strategy == ResolutionStrategy.USER_CHOICE:
                raise ExtensionConflictError(
                    f"Extension conflicts require user resolution: {resolution.reasoning}",
                    skill_id=base_skill_id,
                    operation="extend",
                    conflicts=conflicts,
                )
            if resolution.strategy == ResolutionStrategy.DISABLE_CONFLICTING:
                for ext_id in dict.fromkeys(i for c in conflicts for i in c.extension_ids):
                    if ext_id != ext.id and ext_id not in resolution.selected_extensions:
                        self.remove_extension(ext_id)

        self._counter += 1
        self._sequence[ext.id] = self._counter
        self._extensions[ext.id] = ext
        self._by_base.setdefault(base_skill_id, []).append(ext.id)
        self._update_route(base_skill_id)

        logger.info(
            f"Extended '{base_skill_id}' with {ext.type.value} extension '{ext.id}' "
            f"(priority {ext.priority})"
        )
        if self.event_bus is not None:
            self.event_bus.publish(
                EventType.EXTENSION_ADDED,
                extension_id=ext.id,
                skill_id=base_skill_id,
                routed=self._routes.get(base_skill_id),
            )
        return ext.id

    def remove_extension(self, extension_id: str) -> None:
        """Remove an extension and re-route its base skill.

        Raises:
            ExtensionNotFoundError: If the extension is not registered
        """
        ext = self._extensions.pop(extension_id, None)
        if ext is None:
            raise ExtensionNotFoundError(
                f"Extension not found: {extension_id}", operation="remove_extension"
            )
        self._sequence.pop(extension_id, None)
        remaining = [i for i in self._by_base.get(ext.base_skill_id, []) if i != extension_id]
        if remaining:
            self._by_base[ext.base_skill_id] = remaining
        else:
            self._by_base.pop(ext.base_skill_id, None)
        self._update_route(ext.base_skill_id)

        logger.info(f"Removed extension '{extension_id}' from '{ext.base_skill_id}'")
        if self.event_bus is not None:
            self.event_bus.publish(
                EventType.EXTENSION_REMOVED,
                extension_id=extension_id,
                skill_id=ext.base_skill_id,
                routed=self._routes.get(ext.base_skill_id),
            )

    def get_routed_extension(self, base_skill_id: str) -> SkillExtension | None:
        """Extension currently routed for a skill, if any."""
        ext_id = self._routes.get(base_skill_id)
        return self._extensions.get(ext_id) if ext_id else None

    def get_extension(self, extension_id: str) -> SkillExtension:
        ext = self._extensions.get(extension_id)
        if ext is None:
            raise ExtensionNotFoundError(f"Extension not found: {extension_id}")
        return ext

    def list_extensions(self, base_skill_id: str | None = None) -> list[SkillExtension]:
        """Extensions in registration order, optionally for one base skill."""
        if base_skill_id is not None:
            return self._extensions_of(base_skill_id)
        return sorted(self._extensions.values(), key=lambda e: self._sequence[e.id])

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def get_conflicts(self) -> list[ExtensionConflict]:
        """Recompute the full conflict set for every base skill."""
        conflicts: list[ExtensionConflict] = []
        for base_skill_id in self._by_base:
            conflicts.extend(detect_conflicts(base_skill_id, self._extensions_of(base_skill_id)))
        return conflicts

    def resolve_conflicts(self, conflicts: list[ExtensionConflict]) -> Resolution:
        """Pick a resolution strategy for the given conflicts."""
        return resolve(conflicts, self._rank)

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def compose(self, skill_ids: list[str]) -> SkillDefinition:
        """Build a definition combining several registered skills.

        The result is returned, not registered.

        Raises:
            CompositionError: If no ids are given, layers are not adjacent or
                dependency versions clash
            SkillNotFoundError: If a constituent is not registered
        """
        if not skill_ids:
            raise CompositionError("At least one skill id is required for composition")
        skills = [self.registry.resolve(skill_id) for skill_id in dict.fromkeys(skill_ids)]

        layers = [skill.layer for skill in skills]
        if max(layers) - min(layers) > 1:
            raise CompositionError(
                f"Cannot compose skills from non-adjacent layers: {min(layers)} and {max(layers)}",
                operation="compose",
            )

        dependencies = self._merge_dependencies(skills)
        layer = max(layers)
        timeouts = [s.execution_context.timeout for s in skills if s.execution_context.timeout]

        environment: dict[str, str] = {}
        for skill in skills:
            environment.update(skill.execution_context.environment)

        composed = SkillDefinition(
            id="composed__" + "__".join(s.id for s in skills),
            name=f"Composed ({' + '.join(s.name for s in skills)})",
            version="1.0.0",
            layer=layer,
            description=f"Composition of skills: {', '.join(s.name for s in skills)}",
            invocation_spec=InvocationSpec(
                input_schema=self._merge_schema(skills, "input_schema", with_required=True),
                output_schema=self._merge_schema(skills, "output_schema", with_required=False),
                execution_context=ExecutionContext(
                    environment=environment,
                    timeout=max(timeouts) if timeouts else None,
                    security=SecurityPolicy(sandboxed=layer == 2),
                ),
                parameters=[
                    param.model_copy(update={"name": f"{skill.id}__{param.name}"})
                    for skill in skills
                    for param in skill.parameters
                ],
            ),
            extension_points=[
                ExtensionPoint(
                    **point.model_dump(exclude={"id", "name"}),
                    id=f"{skill.id}__{point.id}",
                    name=f"{skill.name} - {point.name}",
                )
                for skill in skills
                for point in skill.extension_points
            ],
            dependencies=dependencies,
            metadata=SkillMetadata(
                author="skillcore (composed)",
                category="composition",
                tags=["composed"] + [tag for skill in skills for tag in skill.metadata.tags],
            ),
        )
        logger.info(f"Composed {len(skills)} skills into '{composed.id}' (layer {layer})")
        return composed

    @staticmethod
    def _merge_schema(
        skills: list[SkillDefinition], field_name: str, with_required: bool
    ) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        required: list[str] = []
        for skill in skills:
            schema = getattr(skill.invocation_spec, field_name)
            for prop, prop_schema in (schema.get("properties") or {}).items():
                properties[f"{skill.id}__{prop}"] = prop_schema
            if with_required:
                required.extend(f"{skill.id}__{req}" for req in schema.get("required") or [])

        merged: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            merged["required"] = required
        return merged

    @staticmethod
    def _merge_dependencies(skills: list[SkillDefinition]) -> list[SkillDependency]:
        merged: dict[str, SkillDependency] = {
            skill.id: SkillDependency(
                id=skill.id, name=skill.name, version=skill.version, type=DependencyType.SKILL
            )
            for skill in skills
        }
        clashes: list[str] = []
        for skill in skills:
            for dep in skill.dependencies:
                existing = merged.get(dep.id)
                if existing is None:
                    merged[dep.id] = dep
                elif dep.version and existing.version and dep.version != existing.version:
                    clashes.append(f"{dep.id}: {existing.version} vs {dep.version}")

        if clashes:
            raise CompositionError(
                f"Composition conflicts: {', '.join(clashes)}", operation="compose"
            )
        return list(merged.values())

