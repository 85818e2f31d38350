"""Change hashing and conflict policies for synchronization."""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Protocol

from skillcore.skills.models import SkillDefinition
from skillcore.sync.models import SyncConflict


def content_hash(skill: SkillDefinition) -> str:
    """SHA-256 over the canonical JSON form of the synchronized fields."""
    payload = {
        "id": skill.id,
        "version": skill.version,
        "description": skill.description,
        "invocation_spec": skill.invocation_spec.model_dump(mode="json"),
        "dependencies": [dep.model_dump(mode="json") for dep in skill.dependencies],
        "updated": skill.metadata.updated.isoformat(),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class SyncCandidate:
    """Everything a policy needs to decide about one changed skill.

    Attributes:
        skill: Local definition
        local_hash: Hash of the local definition
        baseline_hash: Hash agreed with the remote at the last successful sync
        remote: Remote copy (None when absent or no remote is configured)
        remote_hash: Hash of the remote copy
        dependents: Ids of local skills depending on this one
    """

    skill: SkillDefinition
    local_hash: str
    baseline_hash: str | None = None
    remote: SkillDefinition | None = None
    remote_hash: str | None = None
    dependents: list[str] = field(default_factory=list)


class ConflictPolicy(Protocol):
    """Decides whether a changed skill conflicts with its remote copy."""

    def detect(self, candidate: SyncCandidate) -> SyncConflict | None: ...


class DependentsModifiedPolicy:
    """Conflict when a skill with dependents was also modified remotely.

    The remote copy counts as modified when its hash differs from both the
    recorded baseline and the local hash.
    """

    def detect(self, candidate: SyncCandidate) -> SyncConflict | None:
        remote = candidate.remote
        if remote is None or not candidate.dependents:
            return None
        if candidate.remote_hash in (candidate.baseline_hash, candidate.local_hash):
            return None

        local = candidate.skill
        if local.version != remote.version:
            kind = "version"
            description = (
                f"Version conflict for {local.name}: local {local.version}, remote {remote.version}"
            )
        elif local.dependencies != remote.dependencies:
            kind = "dependency"
            description = f"Dependency lists of {local.name} diverged locally and remotely"
        else:
            kind = "content"
            description = f"{local.name} was modified both locally and remotely"

        return SyncConflict(
            skill_id=local.id,
            type=kind,
            local_version=local.version,
            remote_version=remote.version,
            description=f"{description} ({len(candidate.dependents)} dependent skill(s))",
            local_hash=candidate.local_hash,
            remote_hash=candidate.remote_hash or "",
        )
