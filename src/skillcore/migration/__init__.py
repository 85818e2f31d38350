"""Skill package export/import between environments."""

from skillcore.migration.manager import MigrationManager, package_checksum
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

__all__ = [
    "MigrationManager",
    "package_checksum",
    "Adaptation",
    "CompatibilityIssue",
    "CompatibilityReport",
    "Environment",
    "FailedSkill",
    "MigrationResult",
    "MigrationStrategy",
    "PackageConfiguration",
    "PackageMetadata",
    "SkillPackage",
]
