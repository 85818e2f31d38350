"""Synchronization engine.

Watches the local registry for changed definitions, pushes them to a remote
catalog and queues conflicts for skills that were modified on both sides.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from skillcore.config.schema import SyncConfig
from skillcore.events import EventBus, EventType
from skillcore.exceptions import (
    ConfigurationError,
    SkillNotFoundError,
    SyncConflictNotFoundError,
    SyncInProgressError,
)
from skillcore.skills.models import SkillDefinition
from skillcore.skills.registry import SkillRegistry
from skillcore.sync.models import (
    ConflictResolution,
    RemoteCatalog,
    SyncConflict,
    SyncResult,
    SyncStatus,
)
from skillcore.sync.policies import (
    ConflictPolicy,
    DependentsModifiedPolicy,
    SyncCandidate,
    content_hash,
)
from skillcore.utils.graph import topological_order
from skillcore.utils.versions import merge_versions

logger = logging.getLogger(__name__)

RESOLUTIONS = ("local", "remote", "merge")

Undo = Callable[[], Any]


class SynchronizationEngine:
    """Keeps the local registry and a remote catalog in step.

    Attributes:
        registry: Local registry being watched
        remote: Remote catalog (None refreshes baselines only)
        config: Synchronization settings
        policy: Decides which changed skills conflict

    Example:
        >>> engine = SynchronizationEngine(local, remote=other_registry)
        >>> await engine.start_monitoring()
        >>> result = await engine.synchronize()
        >>> result.synced_skills
        ['greet']
    """

    def __init__(
        self,
        registry: SkillRegistry,
        remote: RemoteCatalog | None = None,
        config: SyncConfig | None = None,
        policy: ConflictPolicy | None = None,
        event_bus: EventBus | None = None,
    ):
        self.registry = registry
        self.remote = remote
        self.config = config or SyncConfig()
        self.policy: ConflictPolicy = policy or DependentsModifiedPolicy()
        self.event_bus = event_bus

        self._status = SyncStatus.IDLE
        self._watched: dict[str, str] = {}
        self._baselines: dict[str, str] = {}
        self._conflicts: dict[str, SyncConflict] = {}
        self._last_sync: datetime | None = None
        self._auto_task: asyncio.Task[None] | None = None
        self._monitoring = False
        self._stats = {"passes": 0, "failed_passes": 0, "skills_synced": 0, "conflicts_detected": 0}

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def start_monitoring(self) -> None:
        """Seed the watched set and start auto-sync when configured."""
        if self._monitoring:
            logger.debug("Synchronization monitoring already running")
            return

        self._watched = {skill.id: content_hash(skill) for skill in self.registry.list()}
        self._monitoring = True
        logger.info(f"Monitoring {len(self._watched)} skill(s) for changes")
        self._set_status(SyncStatus.IDLE)

        if self.config.auto_sync:
            self._start_auto_sync()
        if self.config.sync_on_startup:
            # Push everything the remote has not seen yet
            self._watched = {}
            await self.synchronize()

    async def stop_monitoring(self) -> None:
        """Cancel auto-sync and clear the watched set."""
        await self._stop_auto_sync()
        self._watched.clear()
        self._monitoring = False
        logger.info("Stopped synchronization monitoring")

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    def _start_auto_sync(self) -> None:
        if self._auto_task is None or self._auto_task.done():
            self._auto_task = asyncio.create_task(self._auto_sync_loop())
            logger.debug(f"Auto-sync every {self.config.sync_interval_seconds}s")

    async def _stop_auto_sync(self) -> None:
        task, self._auto_task = self._auto_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _auto_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sync_interval_seconds)
            if self._status == SyncStatus.SYNCING:
                logger.debug("Auto-sync tick skipped: pass in flight")
                continue
            changed, vanished = self._detect(commit=False)
            if not changed and not vanished:
                continue
            try:
                result = await self.synchronize()
            except SyncInProgressError:
                continue
            if not result.success:
                logger.warning(f"Auto-sync pass failed: {'; '.join(result.errors)}")

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def _detect(self, commit: bool = True) -> tuple[list[str], list[str]]:
        current = {skill.id: content_hash(skill) for skill in self.registry.list()}
        changed = [
            skill_id for skill_id, digest in current.items() if self._watched.get(skill_id) != digest
        ]
        vanished = [skill_id for skill_id in self._watched if skill_id not in current]
        if commit:
            self._watched = current
        return changed, vanished

    def detect_changes(self) -> list[str]:
        """Ids that are new, modified or removed since the last check.

        Updates the watched set as a side effect.
        """
        changed, vanished = self._detect()
        if changed or vanished:
            logger.debug(f"Detected {len(changed)} changed and {len(vanished)} removed skill(s)")
        return changed + vanished

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    def _set_status(self, status: SyncStatus) -> None:
        previous, self._status = self._status, status
        if previous != status:
            logger.debug(f"Sync status {previous.value} -> {status.value}")
        self._publish(EventType.STATUS_CHANGED, previous=previous.value, status=status.value)

    def _publish(self, event_type: EventType, **data: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event_type, **data)

    def _remote_copy(self, skill_id: str) -> SkillDefinition | None:
        if self.remote is None:
            return None
        try:
            return self.remote.resolve(skill_id)
        except SkillNotFoundError:
            return None

    def _push_order(self, changed: list[str]) -> list[str]:
        """Changed ids ordered so dependencies are pushed first."""
        ids = set(changed)
        edges = {}
        for skill_id in changed:
            skill = self.registry.resolve(skill_id)
            edges[skill_id] = [dep for dep in skill.skill_dependency_ids() if dep in ids]
        return topological_order(edges)

    def _delete_order(self, vanished: list[str]) -> list[str]:
        """Vanished ids ordered so dependents are deleted first."""
        ids = set(vanished)
        edges = {}
        for skill_id in vanished:
            remote = self._remote_copy(skill_id)
            deps = remote.skill_dependency_ids() if remote is not None else []
            edges[skill_id] = [dep for dep in deps if dep in ids]
        return list(reversed(topological_order(edges)))

    def _push(
        self, skill: SkillDefinition, remote_copy: SkillDefinition | None, undo: list[Undo]
    ) -> None:
        if self.remote is None:
            return
        remote = self.remote
        if remote_copy is None:
            remote.register(skill)
            undo.append(lambda: remote.unregister(skill.id))
        else:
            remote.update(skill.id, skill)
            undo.append(lambda: remote.update(skill.id, remote_copy))

    def _delete(self, skill_id: str, undo: list[Undo]) -> bool:
        remote_copy = self._remote_copy(skill_id)
        if remote_copy is None:
            return False
        remote = self.remote
        remote.unregister(skill_id)
        undo.append(lambda: remote.register(remote_copy))
        return True

    def _rollback(self, undo: list[Undo], snapshot: tuple[dict, dict, dict]) -> None:
        """Undo the remote writes of a pass and restore its bookkeeping."""
        for action in reversed(undo):
            try:
                action()
            except Exception as undo_error:
                logger.error(f"Rollback step failed: {undo_error}")
        self._watched, self._baselines, self._conflicts = snapshot

    async def synchronize(self) -> SyncResult:
        """Run one synchronization pass.

        Returns:
            SyncResult; ``success`` is False when the pass was rolled back

        Raises:
            SyncInProgressError: If a pass is already running
        """
        if self._status == SyncStatus.SYNCING:
            raise SyncInProgressError(
                "Synchronization already in progress", operation="synchronize"
            )

        previous_status = self._status
        self._set_status(SyncStatus.SYNCING)
        self._publish(EventType.SYNC_STARTED, remote=self.remote is not None)
        started = datetime.now()

        snapshot = (dict(self._watched), dict(self._baselines), dict(self._conflicts))
        undo: list[Undo] = []
        synced: list[str] = []
        new_conflicts: list[SyncConflict] = []

        try:
            changed, vanished = self._detect()

            for skill_id in self._push_order(changed):
                await asyncio.sleep(0)
                skill = self.registry.resolve(skill_id)
                local_hash = self._watched[skill_id]
                remote_copy = self._remote_copy(skill_id)
                candidate = SyncCandidate(
                    skill=skill,
                    local_hash=local_hash,
                    baseline_hash=self._baselines.get(skill_id),
                    remote=remote_copy,
                    remote_hash=content_hash(remote_copy) if remote_copy is not None else None,
                    dependents=[s.id for s in self.registry.get_dependent_skills(skill_id)],
                )
                conflict = self.policy.detect(candidate)
                if conflict is not None:
                    self._conflicts[skill_id] = conflict
                    new_conflicts.append(conflict)
                    logger.warning(f"Sync conflict on '{skill_id}': {conflict.description}")
                    continue

                self._push(skill, remote_copy, undo)
                self._baselines[skill_id] = local_hash
                self._conflicts.pop(skill_id, None)
                synced.append(skill_id)

            for skill_id in self._delete_order(vanished):
                await asyncio.sleep(0)
                if self._delete(skill_id, undo):
                    logger.info(f"Removed '{skill_id}' from remote catalog")
                self._baselines.pop(skill_id, None)
                self._conflicts.pop(skill_id, None)
                synced.append(skill_id)

            if self.config.conflict_resolution in RESOLUTIONS:
                for conflict in new_conflicts:
                    self._apply_resolution(conflict, self.config.conflict_resolution, undo)

        except asyncio.CancelledError:
            self._rollback(undo, snapshot)
            self._stats["failed_passes"] += 1
            logger.warning(f"Synchronization cancelled, rolled back {len(undo)} remote write(s)")
            self._set_status(previous_status)
            self._publish(EventType.SYNC_FAILED, error="cancelled")
            raise
        except Exception as e:
            self._rollback(undo, snapshot)
            self._stats["failed_passes"] += 1
            logger.error(f"Synchronization failed, rolled back {len(undo)} remote write(s): {e}")
            self._set_status(SyncStatus.ERROR)
            self._publish(EventType.SYNC_FAILED, error=str(e))
            return SyncResult(success=False, errors=[str(e)], timestamp=started)

        self._last_sync = datetime.now()
        self._stats["passes"] += 1
        self._stats["skills_synced"] += len(synced)
        self._stats["conflicts_detected"] += len(new_conflicts)

        for skill_id in synced:
            self._publish(EventType.SKILL_SYNCHRONIZED, skill_id=skill_id)
        for conflict in new_conflicts:
            self._publish(EventType.CONFLICT_DETECTED, **conflict.to_dict())

        open_conflicts = [c for c in new_conflicts if c.resolution is None]
        self._set_status(SyncStatus.CONFLICT if self._conflicts else SyncStatus.IDLE)
        logger.info(
            f"Synchronized {len(synced)} skill(s), {len(open_conflicts)} unresolved conflict(s)"
        )
        self._publish(
            EventType.SYNC_COMPLETED, synced_skills=list(synced), conflicts=len(self._conflicts)
        )
        return SyncResult(
            success=True, synced_skills=synced, conflicts=new_conflicts, timestamp=self._last_sync
        )

    # ------------------------------------------------------------------
    # Conflict resolution
    # ------------------------------------------------------------------

    def _apply_resolution(
        self, conflict: SyncConflict, resolution: ConflictResolution, undo: list[Undo]
    ) -> None:
        skill_id = conflict.skill_id
        local = self.registry.resolve(skill_id)
        remote_copy = self._remote_copy(skill_id)

        if resolution == "remote":
            if remote_copy is not None:
                resolved = remote_copy
            else:
                resolved = local.model_copy(update={"version": conflict.remote_version})
            self.registry.update(skill_id, resolved)
            undo.append(lambda: self.registry.update(skill_id, local))
        elif resolution == "merge":
            version = merge_versions(local.version, conflict.remote_version)
            resolved = local.model_copy(update={"version": version})
            self.registry.update(skill_id, resolved)
            undo.append(lambda: self.registry.update(skill_id, local))
            self._push(resolved, remote_copy, undo)
        else:
            resolved = local
            self._push(resolved, remote_copy, undo)

        digest = content_hash(resolved)
        self._watched[skill_id] = digest
        self._baselines[skill_id] = digest
        self._conflicts.pop(skill_id, None)
        conflict.resolution = resolution
        logger.info(f"Resolved sync conflict on '{skill_id}' with '{resolution}' (v{resolved.version})")

    def resolve_conflict(self, skill_id: str, resolution: ConflictResolution) -> SyncConflict:
        """Resolve a queued conflict.

        Args:
            skill_id: Conflicting skill
            resolution: 'local' keeps the local definition, 'remote' takes the
                remote one, 'merge' takes the component-wise maximum version

        Returns:
            The resolved conflict

        Raises:
            SyncConflictNotFoundError: If no conflict is queued for the id
            ConfigurationError: If the resolution is unknown
        """
        if resolution not in RESOLUTIONS:
            raise ConfigurationError(
                f"Unknown conflict resolution '{resolution}'. Valid: {', '.join(RESOLUTIONS)}",
                skill_id=skill_id,
                operation="resolve_conflict",
            )
        conflict = self._conflicts.get(skill_id)
        if conflict is None:
            raise SyncConflictNotFoundError(
                f"No synchronization conflict queued for '{skill_id}'",
                skill_id=skill_id,
                operation="resolve_conflict",
            )

        self._apply_resolution(conflict, resolution, undo=[])
        if not self._conflicts and self._status == SyncStatus.CONFLICT:
            self._set_status(SyncStatus.IDLE)
        return conflict

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_status(self) -> SyncStatus:
        return self._status

    def get_conflicts(self) -> list[SyncConflict]:
        return list(self._conflicts.values())

    def get_last_sync_time(self) -> datetime | None:
        return self._last_sync

    def get_statistics(self) -> dict[str, Any]:
        return {
            "status": self._status.value,
            "total_skills": len(self.registry),
            "watched_skills": len(self._watched),
            "pending_conflicts": len(self._conflicts),
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "auto_sync": self._auto_task is not None and not self._auto_task.done(),
            **self._stats,
        }

    async def update_configuration(self, **changes: Any) -> SyncConfig:
        """Apply configuration changes, restarting auto-sync if needed.

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        merged = {**self.config.model_dump(), **changes}
        try:
            config = SyncConfig.model_validate(merged)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid sync configuration: {e}", operation="update_configuration"
            ) from e

        self.config = config
        logger.info(f"Sync configuration updated: {', '.join(sorted(changes))}")

        if self._monitoring:
            await self._stop_auto_sync()
            if config.auto_sync:
                self._start_auto_sync()
        return config
