"""Extension, conflict and resolution models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from skillcore.exceptions import ErrorSeverity


class ExtensionType(str, Enum):
    """How an extension changes its base skill."""

    OVERRIDE = "override"
    COMPOSE = "compose"
    DECORATE = "decorate"
    HOOK = "hook"


class SkillExtension(BaseModel):
    """An extension attached to a base skill.

    The implementation payload is opaque: only its type tag and whether it
    is callable are ever inspected.

    Dependencies are skill or extension ids, optionally pinned to a version
    with ``id@version``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(..., min_length=1)
    base_skill_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    type: ExtensionType
    implementation: Any
    priority: int = 0
    description: str = ""
    author: str = ""
    dependencies: list[str] = Field(default_factory=list)

    def dependency_pins(self) -> dict[str, str | None]:
        """Dependency ids mapped to their pinned version (None when unpinned)."""
        pins: dict[str, str | None] = {}
        for dep in self.dependencies:
            dep_id, _, version = dep.partition("@")
            pins[dep_id] = version or None
        return pins


class ConflictType(str, Enum):
    PRIORITY = "priority_conflict"
    INTERFACE = "interface_conflict"
    DEPENDENCY = "dependency_conflict"
    VERSION = "version_conflict"


@dataclass
class ExtensionConflict:
    """A conflict between extensions of one base skill."""

    type: ConflictType
    base_skill_id: str
    extensions: list[SkillExtension]
    description: str
    severity: ErrorSeverity

    @property
    def extension_ids(self) -> list[str]:
        return [ext.id for ext in self.extensions]

    @property
    def id(self) -> str:
        """Type, base skill and sorted extension ids."""
        return f"{self.type.value}:{self.base_skill_id}:{'+'.join(sorted(self.extension_ids))}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "base_skill_id": self.base_skill_id,
            "extensions": self.extension_ids,
            "description": self.description,
            "severity": self.severity.value,
        }


class ResolutionStrategy(str, Enum):
    PRIORITY_BASED = "priority_based"
    USER_CHOICE = "user_choice"
    AUTOMATIC = "automatic"
    DISABLE_CONFLICTING = "disable_conflicting"


@dataclass
class Resolution:
    """Decision taken for a set of conflicts."""

    conflict_id: str
    strategy: ResolutionStrategy
    selected_extensions: list[str] = field(default_factory=list)
    reasoning: str = ""
