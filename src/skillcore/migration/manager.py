"""Export and import of skill packages between environments.

A package bundles skill definitions (with the skills they depend on), their
external dependencies and the configuration they expect. Imports check the
package against the target environment before registering anything.
"""

import hashlib
import json
import logging
import os
import platform
import sys
import tempfile
import uuid
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from skillcore.exceptions import MigrationError, SkillCoreError, SkillNotFoundError
from skillcore.migration.models import (
    Adaptation,
    CompatibilityIssue,
    CompatibilityReport,
    Environment,
    FailedSkill,
    MigrationResult,
    MigrationStrategy,
    PackageConfiguration,
    PackageMetadata,
    SkillPackage,
)
from skillcore.skills.models import DependencyType, SkillDefinition, SkillDependency
from skillcore.skills.registry import SkillRegistry
from skillcore.utils.graph import topological_order

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = ["file-system", "network", "process-execution", "json-processing"]
DEFAULT_FAILURE_SUGGESTIONS = [
    "Check skill dependencies",
    "Verify target environment compatibility",
]


def package_checksum(skills: list[SkillDefinition]) -> str:
    """SHA-256 over the canonical JSON form of the bundled definitions."""
    payload = [skill.model_dump(mode="json") for skill in skills]
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class MigrationManager:
    """Moves skills between registries and environments.

    Example:
        >>> manager = MigrationManager()
        >>> package = manager.export_package(registry, "text-tools")
        >>> manager.save_package(package, Path("text-tools.yaml"))
        >>> result = manager.import_package(manager.load_package(Path("text-tools.yaml")), other)
    """

    def __init__(self, environment: Environment | None = None):
        self._environment = environment

    def current_environment(self) -> Environment:
        """Describe the running interpreter and platform."""
        if self._environment is not None:
            return self._environment
        return Environment(
            platform=sys.platform,
            runtime="python",
            version=platform.python_version(),
            capabilities=list(DEFAULT_CAPABILITIES),
            constraints={
                "max_memory_bytes": 1024 * 1024 * 1024,
                "max_cpu_seconds": 10,
                "max_duration_ms": 300_000,
            },
        )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _collect(self, registry: SkillRegistry, skill_ids: list[str]) -> list[SkillDefinition]:
        """Requested skills plus the skills they depend on, in dependency order."""
        collected: dict[str, SkillDefinition] = {}
        pending = list(skill_ids)
        while pending:
            skill_id = pending.pop(0)
            if skill_id in collected:
                continue
            try:
                skill = registry.resolve(skill_id)
            except SkillNotFoundError as e:
                raise MigrationError(
                    f"Cannot export '{skill_id}': skill not registered",
                    skill_id=skill_id,
                    operation="export",
                    original_error=e,
                ) from e
            collected[skill_id] = skill
            for dep in skill.dependencies:
                if dep.type == DependencyType.SKILL and dep.id in registry:
                    pending.append(dep.id)

        edges = {
            skill_id: [dep for dep in skill.skill_dependency_ids() if dep in collected]
            for skill_id, skill in collected.items()
        }
        try:
            order = topological_order(edges)
        except ValueError as e:
            raise MigrationError(f"Cannot export: {e}", operation="export") from e
        return [collected[skill_id] for skill_id in order]

    def export_package(
        self,
        registry: SkillRegistry,
        name: str,
        skill_ids: list[str] | None = None,
        description: str = "",
    ) -> SkillPackage:
        """Bundle skills from a registry.

        Args:
            registry: Source registry
            name: Package name
            skill_ids: Skills to export (all when omitted); skill dependencies
                are included automatically
            description: Package description

        Raises:
            MigrationError: If a requested skill is missing or dependencies are cyclic
        """
        ids = skill_ids if skill_ids is not None else [skill.id for skill in registry.list()]
        skills = self._collect(registry, ids)

        external: dict[tuple[str, str], SkillDependency] = {}
        for skill in skills:
            for dep in skill.dependencies:
                if dep.type != DependencyType.SKILL:
                    external.setdefault((dep.type.value, dep.id), dep)

        dependencies = list(external.values())
        package = SkillPackage(
            id=f"package_{uuid.uuid4().hex[:12]}",
            name=name,
            skills=skills,
            dependencies=dependencies,
            configuration=PackageConfiguration(
                enabled_layers=sorted({skill.layer for skill in skills}) or [1, 2, 3],
                dependencies=dependencies,
            ),
            metadata=PackageMetadata(
                description=description or f"Exported skills package '{name}'",
                source_environment=self.current_environment(),
            ),
            checksum=package_checksum(skills),
        )
        logger.info(f"Exported {len(skills)} skill(s) into package '{name}'")
        return package

    # ------------------------------------------------------------------
    # Compatibility
    # ------------------------------------------------------------------

    def validate_compatibility(
        self, package: SkillPackage, environment: Environment
    ) -> CompatibilityReport:
        """Check whether a package can run in the given environment.

        Errors (missing capabilities, unavailable layers) make the package
        incompatible; warnings and info do not.
        """
        issues: list[CompatibilityIssue] = []
        recommendations: list[str] = []
        adaptations: list[Adaptation] = []
        source = package.metadata.source_environment

        if source.platform != environment.platform:
            issues.append(
                CompatibilityIssue(
                    type="platform_incompatibility",
                    severity="warning",
                    description=(
                        f"Platform mismatch: source {source.platform}, target {environment.platform}"
                    ),
                    affected_skills=package.skill_ids,
                    resolution="Platform-specific adaptations may be required",
                )
            )
            adaptations.append(
                Adaptation(
                    type="environment_variable",
                    original=source.platform,
                    adapted=environment.platform,
                    reason="Platform compatibility adaptation",
                )
            )

        if (source.runtime, source.version) != (environment.runtime, environment.version):
            issues.append(
                CompatibilityIssue(
                    type="version_mismatch",
                    severity="info",
                    description=(
                        f"Runtime difference: source {source.runtime} {source.version}, "
                        f"target {environment.runtime} {environment.version}"
                    ),
                    resolution="Runtime version adaptation applied",
                )
            )

        missing = [cap for cap in source.capabilities if cap not in environment.capabilities]
        if missing:
            issues.append(
                CompatibilityIssue(
                    type="capability_missing",
                    severity="error",
                    description=f"Missing capabilities: {', '.join(missing)}",
                    affected_skills=package.skill_ids,
                    resolution="Install required capabilities or disable affected skills",
                )
            )
            recommendations.append(f"Install missing capabilities: {', '.join(missing)}")

        available = environment.available_layers()
        unavailable = sorted({skill.layer for skill in package.skills} - set(available))
        if unavailable:
            affected = [skill.id for skill in package.skills if skill.layer in unavailable]
            issues.append(
                CompatibilityIssue(
                    type="layer_unavailable",
                    severity="error",
                    description=f"Layer(s) {unavailable} unavailable in target environment",
                    affected_skills=affected,
                    resolution="Enable the capabilities the layer needs or drop the affected skills",
                )
            )

        compatible = all(issue.severity != "error" for issue in issues)
        return CompatibilityReport(
            compatible=compatible,
            issues=issues,
            recommendations=recommendations,
            adaptations=adaptations,
        )

    def adapt_configuration(
        self, config: PackageConfiguration, environment: Environment
    ) -> PackageConfiguration:
        """Rewrite path and PATH separators for the target platform."""
        env_vars = dict(config.environment_variables)
        if environment.platform == "win32":
            skills_path = config.skills_path.replace("/", "\\")
            if "PATH" in env_vars:
                env_vars["PATH"] = env_vars["PATH"].replace(":", ";")
        else:
            skills_path = config.skills_path.replace("\\", "/")
            if "PATH" in env_vars:
                env_vars["PATH"] = env_vars["PATH"].replace(";", ":")

        return config.model_copy(
            update={
                "skills_path": skills_path,
                "environment_variables": env_vars,
                "dependencies": [dep.model_copy() for dep in config.dependencies],
            }
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_package(
        self,
        package: SkillPackage,
        registry: SkillRegistry,
        strategy: MigrationStrategy | str = MigrationStrategy.CONSERVATIVE,
        environment: Environment | None = None,
    ) -> MigrationResult:
        """Register the skills of a package.

        Per-skill failures are collected; they do not stop the import.

        Raises:
            MigrationError: If the checksum does not match or the strategy is unknown
        """
        try:
            strategy = MigrationStrategy(strategy)
        except ValueError as e:
            raise MigrationError(
                f"Unknown migration strategy '{strategy}'", operation="import"
            ) from e

        if package.checksum is not None and package.checksum != package_checksum(package.skills):
            raise MigrationError(
                f"Package '{package.name}' failed integrity check",
                operation="import",
                suggestions=["Re-export the package", "Verify package integrity"],
            )

        environment = environment or self.current_environment()
        report = self.validate_compatibility(package, environment)
        result = MigrationResult(success=True)
        if not report.compatible:
            result.warnings.append(
                "Compatibility issues detected, attempting migration with adaptations"
            )
            result.warnings.extend(
                issue.description for issue in report.issues if issue.severity == "error"
            )
        result.adaptations.extend(report.adaptations)
        result.configuration = self.adapt_configuration(package.configuration, environment)

        for skill in package.skills:
            try:
                if skill.id in registry:
                    if strategy == MigrationStrategy.CONSERVATIVE:
                        result.skipped_skills.append(skill.id)
                        result.warnings.append(f"Skill '{skill.id}' already exists, skipped")
                        continue
                    registry.update(skill.id, skill)
                else:
                    registry.register(skill)
                result.migrated_skills.append(skill.id)
            except SkillCoreError as e:
                logger.warning(f"Failed to import skill '{skill.id}': {e}")
                result.failed_skills.append(
                    FailedSkill(
                        skill_id=skill.id,
                        reason=str(e),
                        suggestions=e.suggestions or list(DEFAULT_FAILURE_SUGGESTIONS),
                    )
                )

        result.success = not result.failed_skills
        logger.info(
            f"Imported package '{package.name}': {len(result.migrated_skills)} migrated, "
            f"{len(result.skipped_skills)} skipped, {len(result.failed_skills)} failed"
        )
        return result

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_package(self, package: SkillPackage, path: Path) -> None:
        """Write a package as YAML atomically.

        Raises:
            MigrationError: If the file cannot be written
        """
        path = Path(path)
        content = yaml.safe_dump(package.model_dump(mode="json"), sort_keys=False, allow_unicode=True)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".package-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.replace(temp_path, path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except FileNotFoundError:
                    pass
                raise
        except OSError as e:
            raise MigrationError(
                f"Failed to save package to {path}: {e}", operation="save_package"
            ) from e
        logger.debug(f"Saved package '{package.name}' to {path}")

    def load_package(self, path: Path) -> SkillPackage:
        """Read a package written by save_package().

        Raises:
            MigrationError: If the file is missing, malformed or invalid
        """
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise MigrationError(
                f"Failed to read package {path}: {e}", operation="load_package"
            ) from e
        except yaml.YAMLError as e:
            raise MigrationError(
                f"Invalid YAML in package {path}: {e}", operation="load_package"
            ) from e

        if not isinstance(data, dict):
            raise MigrationError(
                f"Package file {path} must contain a mapping", operation="load_package"
            )
        try:
            return SkillPackage.model_validate(data)
        except PydanticValidationError as e:
            raise MigrationError(
                f"Invalid package {path}: {e}", operation="load_package"
            ) from e
