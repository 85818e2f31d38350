"""Skill package and migration report models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from skillcore.skills.models import SkillDefinition, SkillDependency


class MigrationStrategy(str, Enum):
    """How imports treat skills that already exist in the target registry."""

    CONSERVATIVE = "conservative"  # Skip existing ids
    OVERWRITE = "overwrite"  # Update existing ids


class Environment(BaseModel):
    """Description of a runtime a package is exported from or imported into."""

    platform: str
    runtime: str = "python"
    version: str = ""
    capabilities: list[str] = Field(default_factory=list)
    constraints: dict[str, int] = Field(default_factory=dict)

    def available_layers(self) -> list[int]:
        layers = [1]
        if "process-execution" in self.capabilities:
            layers.append(2)
        if "network" in self.capabilities:
            layers.append(3)
        return layers


class PackageConfiguration(BaseModel):
    """Configuration shipped alongside the skills of a package."""

    skills_path: str = "./skills"
    enabled_layers: list[int] = Field(default_factory=lambda: [1, 2, 3])
    environment_variables: dict[str, str] = Field(default_factory=dict)
    dependencies: list[SkillDependency] = Field(default_factory=list)


class PackageMetadata(BaseModel):
    author: str = "skillcore"
    description: str = ""
    created: datetime = Field(default_factory=datetime.now)
    exported: datetime = Field(default_factory=datetime.now)
    source_environment: Environment
    tags: list[str] = Field(default_factory=lambda: ["exported"])


class SkillPackage(BaseModel):
    """A portable bundle of skill definitions.

    Attributes:
        skills: Definitions in dependency order
        dependencies: External (non-skill) dependencies of the bundled skills
        checksum: SHA-256 over the bundled definitions, checked on import
    """

    id: str
    name: str
    version: str = "1.0.0"
    skills: list[SkillDefinition] = Field(default_factory=list)
    dependencies: list[SkillDependency] = Field(default_factory=list)
    configuration: PackageConfiguration = Field(default_factory=PackageConfiguration)
    metadata: PackageMetadata
    checksum: str | None = None

    @property
    def skill_ids(self) -> list[str]:
        return [skill.id for skill in self.skills]


class CompatibilityIssue(BaseModel):
    type: str  # platform_incompatibility, version_mismatch, capability_missing, layer_unavailable
    severity: str  # info, warning, error
    description: str
    affected_skills: list[str] = Field(default_factory=list)
    resolution: str = ""


class Adaptation(BaseModel):
    type: str
    original: str
    adapted: str
    reason: str


class CompatibilityReport(BaseModel):
    compatible: bool
    issues: list[CompatibilityIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    adaptations: list[Adaptation] = Field(default_factory=list)


class FailedSkill(BaseModel):
    skill_id: str
    reason: str
    suggestions: list[str] = Field(default_factory=list)


class MigrationResult(BaseModel):
    """Outcome of importing a package into a registry."""

    success: bool
    migrated_skills: list[str] = Field(default_factory=list)
    skipped_skills: list[str] = Field(default_factory=list)
    failed_skills: list[FailedSkill] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    adaptations: list[Adaptation] = Field(default_factory=list)
    configuration: PackageConfiguration | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
