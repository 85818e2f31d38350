"""Skill extensions: inheritance, composition, conflicts and routing."""

from skillcore.extensions.conflicts import detect_conflicts
from skillcore.extensions.invocation import apply_extension, is_invocable
from skillcore.extensions.manager import ExtensionManager
from skillcore.extensions.models import (
    ConflictType,
    ExtensionConflict,
    ExtensionType,
    Resolution,
    ResolutionStrategy,
    SkillExtension,
)

__all__ = [
    "ConflictType",
    "ExtensionConflict",
    "ExtensionManager",
    "ExtensionType",
    "Resolution",
    "ResolutionStrategy",
    "SkillExtension",
    "apply_extension",
    "detect_conflicts",
    "is_invocable",
]
