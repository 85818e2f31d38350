"""Composition root wiring the skill system together."""

import logging
from pathlib import Path
from types import TracebackType
from typing import Any

from skillcore.config import SkillCoreSettings, load_settings
from skillcore.events import EventBus
from skillcore.execution.engine import ExecutionEngine
from skillcore.execution.layer1 import FunctionRegistry, register_builtin_functions
from skillcore.execution.layer3 import ApiClient, ApiRegistry
from skillcore.execution.models import CallContext, ExecutionResult
from skillcore.extensions.manager import ExtensionManager
from skillcore.migration.manager import MigrationManager
from skillcore.recovery.handler import ErrorHandler
from skillcore.skills.registry import SkillRegistry
from skillcore.skills.store import FileSkillStore, InMemorySkillStore, SkillStore
from skillcore.sync.engine import SynchronizationEngine
from skillcore.sync.models import RemoteCatalog

logger = logging.getLogger(__name__)


class SkillSystem:
    """All skill system components built from one settings object.

    Attributes:
        settings: Settings the components were built from
        event_bus: Bus shared by every component
        registry: Skill registry
        extensions: Extension manager
        error_handler: Error handler used by the engine
        engine: Execution engine
        sync: Synchronization engine
        migration: Package export/import

    Example:
        >>> async with SkillSystem.from_settings(load_settings()) as system:
        ...     result = await system.execute("add", {"a": 1, "b": 2})
    """

    def __init__(
        self,
        settings: SkillCoreSettings | None = None,
        *,
        store: SkillStore | None = None,
        remote: RemoteCatalog | None = None,
        functions: FunctionRegistry | None = None,
        apis: ApiRegistry | None = None,
        api_client: ApiClient | None = None,
        event_bus: EventBus | None = None,
    ):
        """Build the components.

        Args:
            settings: Settings (defaults when omitted)
            store: Skill store (file store under registry.store_dir, else in-memory)
            remote: Remote catalog for synchronization (optional)
            functions: Layer 1 functions (built-ins are always registered)
            apis: Layer 3 API registry
            api_client: HTTP client for layer 3 calls
            event_bus: Event bus (a new one when omitted)
        """
        self.settings = settings or SkillCoreSettings()
        self.event_bus = event_bus or EventBus()

        if store is None:
            store_dir = self.settings.registry.store_dir
            store = FileSkillStore(Path(store_dir)) if store_dir else InMemorySkillStore()

        self.registry = SkillRegistry(
            store=store,
            cache_max_size=self.settings.registry.cache_max_size,
            cache_ttl=self.settings.registry.cache_ttl_seconds,
            event_bus=self.event_bus,
        )

        self.functions = functions or FunctionRegistry()
        register_builtin_functions(self.functions)

        self.extensions = ExtensionManager(self.registry, event_bus=self.event_bus)
        self.error_handler = ErrorHandler(
            registry=self.registry,
            max_retries=self.settings.execution.max_retries,
            event_bus=self.event_bus,
        )
        self.engine = ExecutionEngine(
            self.registry,
            functions=self.functions,
            apis=apis,
            api_client=api_client,
            extensions=self.extensions,
            error_handler=self.error_handler,
            event_bus=self.event_bus,
            config=self.settings.execution,
        )
        self.sync = SynchronizationEngine(
            self.registry,
            remote=remote,
            config=self.settings.sync,
            event_bus=self.event_bus,
        )
        self.migration = MigrationManager()
        self._started = False

        logger.debug(f"Skill system initialized with {len(self.registry)} skill(s)")

    @classmethod
    def from_settings(
        cls, settings: SkillCoreSettings | None = None, **components: Any
    ) -> "SkillSystem":
        """Build from settings, loading them from disk and environment when omitted."""
        return cls(settings or load_settings(), **components)

    async def start(self) -> None:
        """Start synchronization monitoring."""
        if self._started:
            return
        await self.sync.start_monitoring()
        self._started = True

    async def aclose(self) -> None:
        """Stop monitoring, release sandboxes and close the HTTP client."""
        if self._started:
            await self.sync.stop_monitoring()
            self._started = False
        for sandbox in self.engine.sandboxes.active_sandboxes():
            await self.engine.sandboxes.release(sandbox)
        await self.engine.aclose()
        logger.debug("Skill system closed")

    async def execute(
        self,
        skill_id: str,
        params: dict[str, Any] | None = None,
        context: CallContext | None = None,
    ) -> ExecutionResult:
        return await self.engine.execute(skill_id, params or {}, context)

    async def __aenter__(self) -> "SkillSystem":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
