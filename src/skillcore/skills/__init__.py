"""Skill registry subsystem.

Definitions, validation, caching, persistence and the registry itself.
"""

from skillcore.skills.cache import CacheStats, SkillCache
from skillcore.skills.loader import (
    dump_skill_definition,
    load_skill_definition,
    parse_skill_document,
)
from skillcore.skills.models import (
    DependencyType,
    ErrorHandlingStrategy,
    Example,
    ExecutionContext,
    ExtensionPoint,
    InvocationSpec,
    Parameter,
    ResourceLimits,
    RetryPolicy,
    SecurityPolicy,
    SkillDefinition,
    SkillDependency,
    SkillMetadata,
    StepType,
    Workflow,
    WorkflowStep,
)
from skillcore.skills.registry import DiscoveryQuery, SkillRegistry
from skillcore.skills.store import FileSkillStore, InMemorySkillStore, SkillStore
from skillcore.skills.validation import (
    SkillValidator,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Models
    "DependencyType",
    "ErrorHandlingStrategy",
    "Example",
    "ExecutionContext",
    "ExtensionPoint",
    "InvocationSpec",
    "Parameter",
    "ResourceLimits",
    "RetryPolicy",
    "SecurityPolicy",
    "SkillDefinition",
    "SkillDependency",
    "SkillMetadata",
    "StepType",
    "Workflow",
    "WorkflowStep",
    # Registry
    "DiscoveryQuery",
    "SkillRegistry",
    "SkillCache",
    "CacheStats",
    "SkillStore",
    "InMemorySkillStore",
    "FileSkillStore",
    # Validation
    "SkillValidator",
    "ValidationIssue",
    "ValidationResult",
    # Loading
    "load_skill_definition",
    "parse_skill_document",
    "dump_skill_definition",
]
