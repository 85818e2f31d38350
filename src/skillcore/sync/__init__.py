"""Catalog synchronization between a local registry and a remote."""

from skillcore.sync.engine import SynchronizationEngine
from skillcore.sync.models import RemoteCatalog, SyncConflict, SyncResult, SyncStatus
from skillcore.sync.policies import (
    ConflictPolicy,
    DependentsModifiedPolicy,
    SyncCandidate,
    content_hash,
)

__all__ = [
    "SynchronizationEngine",
    "RemoteCatalog",
    "SyncConflict",
    "SyncResult",
    "SyncStatus",
    "ConflictPolicy",
    "DependentsModifiedPolicy",
    "SyncCandidate",
    "content_hash",
]
