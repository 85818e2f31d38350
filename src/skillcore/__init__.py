"""skillcore: layered skills with a registry, execution engine, extensions and sync.

Skills are versioned declarative definitions executed in one of three
layers: registered Python functions, sandboxed commands, or HTTP APIs and
workflows composed from them.
"""

from skillcore.config import SkillCoreSettings, load_settings
from skillcore.events import Event, EventBus, EventType
from skillcore.exceptions import (
    ErrorKind,
    ErrorSeverity,
    ExecutionError,
    ExecutionErrorKind,
    SkillCoreError,
)
from skillcore.execution import CallContext, ExecutionEngine, ExecutionResult
from skillcore.extensions import ExtensionManager, SkillExtension
from skillcore.migration import MigrationManager
from skillcore.recovery import ErrorHandler
from skillcore.skills import SkillDefinition, SkillRegistry
from skillcore.sync import SynchronizationEngine
from skillcore.system import SkillSystem

__version__ = "0.1.0"

__all__ = [
    "SkillSystem",
    "SkillCoreSettings",
    "load_settings",
    "Event",
    "EventBus",
    "EventType",
    "ErrorKind",
    "ErrorSeverity",
    "ExecutionError",
    "ExecutionErrorKind",
    "SkillCoreError",
    "CallContext",
    "ExecutionEngine",
    "ExecutionResult",
    "ExtensionManager",
    "SkillExtension",
    "MigrationManager",
    "ErrorHandler",
    "SkillDefinition",
    "SkillRegistry",
    "SynchronizationEngine",
    "__version__",
]
