"""Conflict detection and resolution rules for extensions.

All four rules are evaluated for a set of extensions on one base skill;
detection never stops at the first conflict found.
"""

from collections.abc import Callable
from typing import Any

from skillcore.exceptions import ErrorSeverity
from skillcore.extensions.models import (
    ConflictType,
    ExtensionConflict,
    ExtensionType,
    Resolution,
    ResolutionStrategy,
    SkillExtension,
)
from skillcore.utils.graph import find_cycle

# Sort key ranking extensions best-first
RankKey = Callable[[SkillExtension], Any]


def detect_priority_conflicts(
    base_skill_id: str, extensions: list[SkillExtension]
) -> list[ExtensionConflict]:
    """One conflict per (priority, type) group with more than one member."""
    groups: dict[tuple[int, ExtensionType], list[SkillExtension]] = {}
    for ext in extensions:
        groups.setdefault((ext.priority, ext.type), []).append(ext)

    return [
        ExtensionConflict(
            ConflictType.PRIORITY,
            base_skill_id,
            group,
            f"Multiple {ext_type.value} extensions with priority {priority} "
            f"for skill {base_skill_id}",
            ErrorSeverity.MEDIUM,
        )
        for (priority, ext_type), group in groups.items()
        if len(group) > 1
    ]


def detect_interface_conflicts(
    base_skill_id: str, extensions: list[SkillExtension]
) -> list[ExtensionConflict]:
    overrides = [ext for ext in extensions if ext.type == ExtensionType.OVERRIDE]
    if len(overrides) < 2:
        return []
    return [
        ExtensionConflict(
            ConflictType.INTERFACE,
            base_skill_id,
            overrides,
            f"Multiple override extensions on skill {base_skill_id} replace the same interface",
            ErrorSeverity.HIGH,
        )
    ]


def detect_dependency_conflicts(
    base_skill_id: str, extensions: list[SkillExtension]
) -> list[ExtensionConflict]:
    by_id = {ext.id: ext for ext in extensions}
    edges = {ext.id: list(ext.dependency_pins()) for ext in extensions}
    cycle = find_cycle(edges)
    if not cycle:
        return []
    members = [by_id[ext_id] for ext_id in dict.fromkeys(cycle)]
    return [
        ExtensionConflict(
            ConflictType.DEPENDENCY,
            base_skill_id,
            members,
            f"Circular dependency between extensions: {' -> '.join(cycle)}",
            ErrorSeverity.CRITICAL,
        )
    ]


def detect_version_conflicts(
    base_skill_id: str, extensions: list[SkillExtension]
) -> list[ExtensionConflict]:
    """Extensions pinning different versions of the same dependency."""
    pins: dict[str, dict[str, list[SkillExtension]]] = {}
    for ext in extensions:
        for dep_id, version in ext.dependency_pins().items():
            if version:
                pins.setdefault(dep_id, {}).setdefault(version, []).append(ext)

    conflicts = []
    for dep_id, versions in pins.items():
        if len(versions) < 2:
            continue
        members = list({ext.id: ext for group in versions.values() for ext in group}.values())
        conflicts.append(
            ExtensionConflict(
                ConflictType.VERSION,
                base_skill_id,
                members,
                f"Version conflict for dependency {dep_id}: {' vs '.join(versions)}",
                ErrorSeverity.MEDIUM,
            )
        )
    return conflicts


def detect_conflicts(
    base_skill_id: str, extensions: list[SkillExtension]
) -> list[ExtensionConflict]:
    """Run every conflict rule over the extensions of one base skill."""
    return (
        detect_priority_conflicts(base_skill_id, extensions)
        + detect_interface_conflicts(base_skill_id, extensions)
        + detect_dependency_conflicts(base_skill_id, extensions)
        + detect_version_conflicts(base_skill_id, extensions)
    )


def _conflict_id(conflicts: list[ExtensionConflict]) -> str:
    return ",".join(conflict.id for conflict in conflicts)


def resolve(conflicts: list[ExtensionConflict], rank: RankKey) -> Resolution:
    """Choose a resolution strategy by the worst severity present.

    Args:
        conflicts: Conflicts to resolve
        rank: Sort key ordering extensions best-first (priority, then
            earliest registration)
    """
    if not conflicts:
        return Resolution("no-conflicts", ResolutionStrategy.AUTOMATIC, [], "No conflicts to resolve")

    critical = [c for c in conflicts if c.severity == ErrorSeverity.CRITICAL]
    if critical:
        return Resolution(
            _conflict_id(critical),
            ResolutionStrategy.USER_CHOICE,
            [],
            "; ".join(c.description for c in critical) + " - user intervention required",
        )

    high = [c for c in conflicts if c.severity == ErrorSeverity.HIGH]
    if high:
        best = min((ext for c in high for ext in c.extensions), key=rank)
        return Resolution(
            _conflict_id(high),
            ResolutionStrategy.PRIORITY_BASED,
            [best.id],
            f"Selected extension with highest priority: {best.name} (priority {best.priority})",
        )

    first = conflicts[0]
    best = min(first.extensions, key=rank)
    if first.type == ConflictType.PRIORITY:
        return Resolution(
            first.id,
            ResolutionStrategy.PRIORITY_BASED,
            [best.id],
            f"Priority tie resolved by earliest registration: {best.name}",
        )
    if first.type == ConflictType.INTERFACE:
        return Resolution(
            first.id,
            ResolutionStrategy.DISABLE_CONFLICTING,
            [best.id],
            f"Keeping {best.name} and disabling the other override extensions",
        )
    return Resolution(
        first.id,
        ResolutionStrategy.AUTOMATIC,
        [best.id],
        f"Automatically selected highest priority extension: {best.name}",
    )
