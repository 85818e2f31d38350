"""Skill registry: canonical mapping of skill id to definition.

This module provides registration, lookup, discovery and dependency queries
over skill definitions, backed by a keyed SkillStore and fronted by a
bounded TTL cache.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from skillcore.config.constants import (
    DEFAULT_CACHE_MAX_SIZE,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_DISCOVER_LIMIT,
)
from skillcore.events import EventBus, EventType
from skillcore.exceptions import (
    DuplicateSkillError,
    NameConflictError,
    SkillNotFoundError,
    SkillValidationError,
)
from skillcore.skills.cache import SkillCache
from skillcore.skills.models import DependencyType, SkillDefinition
from skillcore.skills.store import InMemorySkillStore, SkillStore
from skillcore.skills.validation import SkillValidator, ValidationResult

logger = logging.getLogger(__name__)


class DiscoveryQuery(BaseModel):
    """Conjunctive discovery filters. Unset fields match everything."""

    name: str | None = None  # Case-insensitive substring
    layer: int | None = None
    category: str | None = None
    tags: list[str] | None = None  # Matches if any tag intersects
    author: str | None = None
    description: str | None = None  # Case-insensitive substring
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=DEFAULT_DISCOVER_LIMIT, ge=1)

    def cache_key(self) -> str:
        return "query:" + json.dumps(self.model_dump(), sort_keys=True)

    def matches(self, skill: SkillDefinition) -> bool:
        if self.name and self.name.lower() not in skill.name.lower():
            return False
        if self.layer is not None and skill.layer != self.layer:
            return False
        if self.category and skill.metadata.category.lower() != self.category.lower():
            return False
        if self.tags:
            wanted = {tag.lower() for tag in self.tags}
            if not wanted & {tag.lower() for tag in skill.metadata.tags}:
                return False
        if self.author and skill.metadata.author.lower() != self.author.lower():
            return False
        if self.description and self.description.lower() not in skill.description.lower():
            return False
        return True


def _copies(skills: Iterable[SkillDefinition]) -> list[SkillDefinition]:
    return [skill.model_copy(deep=True) for skill in skills]


class SkillRegistry:
    """Registry of skill definitions with write-through persistence.

    Reads are served from memory (through the cache); the store is only
    touched on register/update/unregister.

    Attributes:
        store: Keyed persistence surface
        validator: SkillValidator resolving dependencies against this registry

    Example:
        >>> registry = SkillRegistry()
        >>> registry.register(SkillDefinition(id="add", name="Add", version="1.0.0", layer=1))
        >>> registry.resolve("add").name
        'Add'
    """

    def __init__(
        self,
        store: SkillStore | None = None,
        cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
        cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        event_bus: EventBus | None = None,
    ):
        """Initialize skill registry.

        Args:
            store: Persistence store (defaults to an in-memory store)
            cache_max_size: Maximum entries per cache
            cache_ttl: Cache time-to-live in seconds
            event_bus: Bus for registration events (optional)
        """
        self.store: SkillStore = store if store is not None else InMemorySkillStore()
        self.event_bus = event_bus
        self.validator = SkillValidator(skill_exists=self.exists)
        self._skills: dict[str, SkillDefinition] = self.store.load_all()
        self._skill_cache: SkillCache[SkillDefinition] = SkillCache(cache_max_size, cache_ttl)
        self._query_cache: SkillCache[list[SkillDefinition]] = SkillCache(
            cache_max_size, cache_ttl
        )

    def _coerce(self, definition: SkillDefinition | Mapping[str, Any]) -> SkillDefinition:
        skill, result = self.validator.coerce(definition)
        if skill is None:
            raise SkillValidationError(
                f"Skill validation failed: {result.summary()}",
                skill_id=definition.get("id") if isinstance(definition, Mapping) else None,
                issues=result.errors,
            )
        return skill

    def _find_name_conflict(self, skill: SkillDefinition) -> SkillDefinition | None:
        name = skill.name.lower()
        for other in self._skills.values():
            if other.id != skill.id and other.layer == skill.layer and other.name.lower() == name:
                return other
        return None

    def _invalidate(self, skill_id: str) -> None:
        self._skill_cache.delete(f"skill:{skill_id}")
        # Any query may have included the skill
        self._query_cache.clear()

    def _emit(self, event_type: EventType, skill: SkillDefinition) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(
                event_type, skill_id=skill.id, version=skill.version, layer=skill.layer
            )

    def register(self, definition: SkillDefinition | Mapping[str, Any]) -> SkillDefinition:
        """Register a new skill.

        Args:
            definition: SkillDefinition or raw mapping

        Returns:
            The registered definition

        Raises:
            DuplicateSkillError: If a skill with the same id exists
            NameConflictError: If the name is taken within the same layer
            SkillValidationError: If validation reports errors
        """
        skill = self._coerce(definition)

        if skill.id in self._skills:
            raise DuplicateSkillError(
                f"Skill '{skill.id}' already registered", skill_id=skill.id, operation="register"
            )

        clash = self._find_name_conflict(skill)
        if clash is not None:
            raise NameConflictError(
                f"Skill name '{skill.name}' already used by '{clash.id}' in layer {skill.layer}",
                skill_id=skill.id,
                operation="register",
                suggestions=["Choose a different name or register in another layer"],
            )

        self.validator.ensure_valid(skill)

        stored = skill.model_copy(deep=True)
        self.store.put(stored)
        self._skills[stored.id] = stored
        self._invalidate(stored.id)
        logger.info(f"Registered skill '{stored.id}' v{stored.version} (layer {stored.layer})")
        self._emit(EventType.SKILL_REGISTERED, stored)
        return stored.model_copy(deep=True)

    def resolve(self, skill_id: str) -> SkillDefinition:
        """Get skill by id.

        Raises:
            SkillNotFoundError: If skill not registered
        """
        key = f"skill:{skill_id}"
        cached = self._skill_cache.get(key)
        if cached is not None:
            return cached.model_copy(deep=True)

        skill = self._skills.get(skill_id)
        if skill is None:
            raise SkillNotFoundError(
                f"Skill '{skill_id}' not found in registry", skill_id=skill_id, operation="resolve"
            )
        self._skill_cache.set(key, skill)
        return skill.model_copy(deep=True)

    def cached_definition(self, skill_id: str) -> SkillDefinition | None:
        """Last cached definition for an id, even if expired."""
        cached = self._skill_cache.peek(f"skill:{skill_id}")
        return cached.model_copy(deep=True) if cached is not None else None

    def exists(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def validate(self, definition: SkillDefinition | Mapping[str, Any]) -> ValidationResult:
        """Validate a definition without registering it."""
        return self.validator.validate(definition)

    def discover(
        self, query: DiscoveryQuery | Mapping[str, Any] | None = None, **filters: Any
    ) -> list[SkillDefinition]:
        """Find skills matching all given filters.

        Args:
            query: DiscoveryQuery or mapping of filters
            **filters: Filters as keyword arguments (merged over query)

        Returns:
            Matching definitions ordered by id, after offset/limit
        """
        if query is None:
            query = DiscoveryQuery(**filters)
        elif isinstance(query, Mapping):
            query = DiscoveryQuery(**{**query, **filters})
        elif filters:
            query = query.model_copy(update=filters)

        key = query.cache_key()
        cached = self._query_cache.get(key)
        if cached is not None:
            return _copies(cached)

        matches = [skill for skill in self._ordered() if query.matches(skill)]
        page = matches[query.offset : query.offset + query.limit]
        self._query_cache.set(key, page)
        return _copies(page)

    def update(
        self, skill_id: str, definition: SkillDefinition | Mapping[str, Any]
    ) -> SkillDefinition:
        """Replace a skill definition.

        Raises:
            SkillNotFoundError: If skill not registered
            SkillValidationError: If the id or layer changes, or validation fails
            NameConflictError: If the new name is taken within the layer
        """
        existing = self._skills.get(skill_id)
        if existing is None:
            raise SkillNotFoundError(
                f"Skill '{skill_id}' not found in registry", skill_id=skill_id, operation="update"
            )

        skill = self._coerce(definition)
        if skill.id != skill_id:
            raise SkillValidationError(
                f"Skill id is immutable: cannot change '{skill_id}' to '{skill.id}'",
                skill_id=skill_id,
                operation="update",
            )
        if skill.layer != existing.layer:
            raise SkillValidationError(
                f"Skill layer is fixed at creation: cannot change {existing.layer} to {skill.layer}",
                skill_id=skill_id,
                operation="update",
                suggestions=["Register a new skill in the target layer"],
            )

        clash = self._find_name_conflict(skill)
        if clash is not None:
            raise NameConflictError(
                f"Skill name '{skill.name}' already used by '{clash.id}' in layer {skill.layer}",
                skill_id=skill_id,
                operation="update",
            )

        self.validator.ensure_valid(skill)

        stored = skill.model_copy(deep=True)
        self.store.put(stored)
        self._skills[skill_id] = stored
        self._invalidate(skill_id)
        logger.info(f"Updated skill '{skill_id}' to v{stored.version}")
        self._emit(EventType.SKILL_UPDATED, stored)
        return stored.model_copy(deep=True)

    def unregister(self, skill_id: str) -> None:
        """Unregister a skill.

        Raises:
            SkillNotFoundError: If skill not registered
        """
        skill = self._skills.get(skill_id)
        if skill is None:
            raise SkillNotFoundError(
                f"Skill '{skill_id}' not found in registry",
                skill_id=skill_id,
                operation="unregister",
            )

        dependents = self.get_dependent_skills(skill_id)
        if dependents:
            logger.warning(
                f"Unregistering '{skill_id}' leaves dependents: {[d.id for d in dependents]}"
            )

        self.store.delete(skill_id)
        del self._skills[skill_id]
        self._invalidate(skill_id)
        logger.info(f"Unregistered skill '{skill_id}'")
        self._emit(EventType.SKILL_UNREGISTERED, skill)

    def get_by_layer(self, layer: int) -> list[SkillDefinition]:
        return _copies(skill for skill in self._ordered() if skill.layer == layer)

    def search(self, term: str) -> list[SkillDefinition]:
        """Case-insensitive search over name, description and tags."""
        needle = term.lower()
        return _copies(
            skill
            for skill in self._ordered()
            if needle in skill.name.lower()
            or needle in skill.description.lower()
            or any(needle in tag.lower() for tag in skill.metadata.tags)
        )

    def check_conflicts(self, definition: SkillDefinition | Mapping[str, Any]) -> list[str]:
        """Describe what would block registering a definition.

        Returns:
            Human-readable conflict descriptions (empty if none)
        """
        skill = self._coerce(definition)
        conflicts = []
        if skill.id in self._skills:
            conflicts.append(f"Skill with ID '{skill.id}' already exists")

        clash = self._find_name_conflict(skill)
        if clash is not None:
            conflicts.append(
                f"Skill with name '{skill.name}' already exists in layer {skill.layer}"
            )

        for dep in skill.dependencies:
            if dep.type == DependencyType.SKILL and not dep.optional and dep.id not in self._skills:
                conflicts.append(f"Required dependency '{dep.id}' not found")
        return conflicts

    def get_dependent_skills(self, skill_id: str) -> list[SkillDefinition]:
        """All skills whose dependency list references the given id."""
        return _copies(skill for skill in self._ordered() if skill.depends_on(skill_id))

    def clear_cache(self) -> None:
        self._skill_cache.clear()
        self._query_cache.clear()
        logger.debug("Registry caches cleared")

    def cache_stats(self) -> dict[str, dict[str, Any]]:
        return {
            "skills": self._skill_cache.stats().to_dict(),
            "queries": self._query_cache.stats().to_dict(),
        }

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, skill_id: object) -> bool:
        return skill_id in self._skills

    # Keep last: shadows the builtin for annotations in the class body
    def list(self) -> list[SkillDefinition]:
        """List all registered skills, sorted by id (stable order)."""
        return _copies(self._ordered())

    def _ordered(self) -> "list[SkillDefinition]":
        return [self._skills[skill_id] for skill_id in sorted(self._skills)]
