"""Synchronization status, conflict and result models."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Protocol

from skillcore.skills.models import SkillDefinition

ConflictKind = Literal["version", "content", "dependency"]
ConflictResolution = Literal["local", "remote", "merge"]


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    CONFLICT = "conflict"


@dataclass
class SyncConflict:
    """A skill changed both locally and remotely since the last sync."""

    skill_id: str
    type: ConflictKind
    local_version: str
    remote_version: str
    description: str
    local_hash: str = ""
    remote_hash: str = ""
    resolution: ConflictResolution | None = None
    detected_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill_id": self.skill_id,
            "type": self.type,
            "local_version": self.local_version,
            "remote_version": self.remote_version,
            "description": self.description,
            "resolution": self.resolution,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass
class SyncResult:
    """Outcome of one synchronization pass."""

    success: bool
    synced_skills: list[str] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "synced_skills": list(self.synced_skills),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "errors": list(self.errors),
            "timestamp": self.timestamp.isoformat(),
        }


class RemoteCatalog(Protocol):
    """The registry contract a synchronization remote must satisfy.

    A second SkillRegistry works as a remote.
    """

    def list(self) -> list[SkillDefinition]: ...

    def resolve(self, skill_id: str) -> SkillDefinition: ...

    def register(self, definition: SkillDefinition | Mapping[str, Any]) -> SkillDefinition: ...

    def update(
        self, skill_id: str, definition: SkillDefinition | Mapping[str, Any]
    ) -> SkillDefinition: ...

    def unregister(self, skill_id: str) -> None: ...
