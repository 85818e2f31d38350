"""Unit tests for skillcore.skills.registry module."""

import pytest

from skillcore.events import EventType
from skillcore.exceptions import (
    DuplicateSkillError,
    NameConflictError,
    SkillNotFoundError,
    SkillValidationError,
)
from skillcore.skills.registry import DiscoveryQuery, SkillRegistry
from skillcore.skills.store import FileSkillStore
from tests.helpers.builders import build_dependency, build_skill


@pytest.mark.unit
@pytest.mark.registry
class TestRegistration:
    """Tests for register/resolve/update/unregister."""

    def test_register_and_resolve(self, registry, add_skill):
        """Test registered skill can be resolved by id."""
        registry.register(add_skill)

        resolved = registry.resolve("add")

        assert resolved.id == "add"
        assert resolved.name == "Add"
        assert "add" in registry
        assert len(registry) == 1

    def test_register_accepts_mapping(self, registry):
        """Test raw mappings are coerced into definitions."""
        registry.register({"id": "upper", "name": "Upper", "version": "1.0.0", "layer": 1})

        assert registry.resolve("upper").layer == 1

    def test_register_returns_copy(self, registry, add_skill):
        """Test mutating the returned definition does not change the registry."""
        returned = registry.register(add_skill)
        returned.description = "changed"

        assert registry.resolve("add").description != "changed"

    def test_reads_return_copies(self, registry, add_skill):
        """Test definitions from resolve, list and discover are detached."""
        registry.register(add_skill)

        registry.resolve("add").description = "changed"
        registry.list()[0].metadata.tags.append("leaked")
        registry.discover(layer=1)[0].version = "9.9.9"
        registry.search("add")[0].name = "Renamed"

        stored = registry.resolve("add")
        assert stored.description != "changed"
        assert "leaked" not in stored.metadata.tags
        assert stored.version == "1.0.0"
        assert stored.name != "Renamed"
        assert registry.discover(layer=1)[0].version == "1.0.0"

    def test_duplicate_id_rejected(self, registry, add_skill):
        """Test registering the same id twice raises."""
        registry.register(add_skill)

        with pytest.raises(DuplicateSkillError) as exc_info:
            registry.register(add_skill)

        assert exc_info.value.code == "duplicate_id"

    def test_name_conflict_within_layer_is_case_insensitive(self, registry, add_skill):
        """Test the same name in the same layer is rejected regardless of case."""
        registry.register(add_skill)

        with pytest.raises(NameConflictError):
            registry.register(build_skill("add-2", name="ADD", function="add"))

    def test_same_name_allowed_in_other_layer(self, registry, add_skill):
        """Test names only need to be unique per layer."""
        registry.register(add_skill)

        registry.register(build_skill("add-shell", layer=2, name="Add", command="echo"))

        assert len(registry) == 2

    def test_layer2_without_sandbox_rejected(self, registry):
        """Test layer 2 skills must declare sandboxed execution."""
        with pytest.raises(SkillValidationError) as exc_info:
            registry.register(build_skill("raw", layer=2, command="echo", security={}))

        codes = [issue.code for issue in exc_info.value.issues]
        assert "LAYER2_SANDBOX_REQUIRED" in codes

    def test_unresolved_dependency_rejected(self, registry):
        """Test required skill dependencies must be registered first."""
        skill = build_skill("needs-add", function="add", dependencies=[build_dependency("add")])

        with pytest.raises(SkillValidationError):
            registry.register(skill)

    def test_deferred_dependency_allowed(self, registry):
        """Test deferred dependencies are not resolved at registration."""
        skill = build_skill(
            "needs-later", function="add", dependencies=[build_dependency("later", deferred=True)]
        )

        registry.register(skill)

        assert registry.exists("needs-later")

    def test_invalid_mapping_raises_validation_error(self, registry):
        """Test field errors surface as SkillValidationError."""
        with pytest.raises(SkillValidationError):
            registry.register({"id": "bad", "name": "Bad", "version": "1.0.0", "layer": 7})

    def test_resolve_missing_raises(self, registry):
        """Test resolving an unknown id raises SkillNotFoundError."""
        with pytest.raises(SkillNotFoundError) as exc_info:
            registry.resolve("nope")

        assert exc_info.value.skill_id == "nope"

    def test_update_replaces_definition(self, registry, add_skill):
        """Test update stores the new version."""
        registry.register(add_skill)

        registry.update("add", add_skill.model_copy(update={"version": "1.1.0"}))

        assert registry.resolve("add").version == "1.1.0"

    def test_update_rejects_id_change(self, registry, add_skill):
        """Test the id of a skill is immutable."""
        registry.register(add_skill)

        with pytest.raises(SkillValidationError):
            registry.update("add", add_skill.model_copy(update={"id": "plus"}))

    def test_update_rejects_layer_change(self, registry, add_skill):
        """Test the layer of a skill is fixed at creation."""
        registry.register(add_skill)
        moved = build_skill("add", layer=2, name="Add", command="echo")

        with pytest.raises(SkillValidationError):
            registry.update("add", moved)

    def test_update_missing_raises(self, registry, add_skill):
        """Test updating an unknown id raises SkillNotFoundError."""
        with pytest.raises(SkillNotFoundError):
            registry.update("add", add_skill)

    def test_unregister_removes_skill(self, registry, add_skill):
        """Test unregistered skills can no longer be resolved."""
        registry.register(add_skill)
        registry.resolve("add")

        registry.unregister("add")

        assert not registry.exists("add")
        with pytest.raises(SkillNotFoundError):
            registry.resolve("add")

    def test_unregister_missing_raises(self, registry):
        """Test unregistering an unknown id raises."""
        with pytest.raises(SkillNotFoundError):
            registry.unregister("nope")

    def test_events_published(self, registry, recorder, add_skill):
        """Test register/update/unregister publish events."""
        registry.register(add_skill)
        registry.update("add", add_skill.model_copy(update={"version": "2.0.0"}))
        registry.unregister("add")

        types = [event.type for event in recorder.events]
        assert types == [
            EventType.SKILL_REGISTERED,
            EventType.SKILL_UPDATED,
            EventType.SKILL_UNREGISTERED,
        ]
        assert recorder.events[1].data["version"] == "2.0.0"


@pytest.mark.unit
@pytest.mark.registry
class TestDiscovery:
    """Tests for discover/search/listing queries."""

    def test_list_is_sorted_by_id(self, populated_registry):
        """Test list() returns skills ordered by id."""
        ids = [skill.id for skill in populated_registry.list()]

        assert ids == sorted(ids)

    def test_discover_by_layer(self, populated_registry):
        """Test layer filter."""
        found = populated_registry.discover(layer=2)

        assert [skill.id for skill in found] == ["echo-cmd"]

    def test_discover_by_name_substring(self, populated_registry):
        """Test name filter is a case-insensitive substring match."""
        found = populated_registry.discover({"name": "ADD"})

        assert {skill.id for skill in found} == {"add", "double-add"}

    def test_discover_filters_are_conjunctive(self, populated_registry):
        """Test all filters must match."""
        assert populated_registry.discover(name="add", layer=2) == []

    def test_discover_by_tags_any_match(self, registry):
        """Test tags match when any tag intersects."""
        skill = build_skill("tagged", function="upper")
        skill.metadata.tags = ["text", "string"]
        registry.register(skill)

        assert registry.discover(tags=["STRING", "other"])[0].id == "tagged"
        assert registry.discover(tags=["other"]) == []

    def test_discover_pagination(self, populated_registry):
        """Test offset and limit are applied after ordering."""
        page = populated_registry.discover(DiscoveryQuery(offset=1, limit=1))

        assert [skill.id for skill in page] == ["double-add"]

    def test_discover_cache_invalidated_on_register(self, registry, add_skill):
        """Test cached query results do not hide new registrations."""
        assert registry.discover(layer=1) == []

        registry.register(add_skill)

        assert [skill.id for skill in registry.discover(layer=1)] == ["add"]

    def test_search_matches_description_and_tags(self, populated_registry):
        """Test search covers name, description and tags."""
        assert {s.id for s in populated_registry.search("test skill echo")} == {"echo-cmd"}
        assert len(populated_registry.search("test")) == 3

    def test_get_by_layer(self, populated_registry):
        """Test get_by_layer returns only that layer."""
        assert {s.id for s in populated_registry.get_by_layer(1)} == {"add", "double-add"}

    def test_get_dependent_skills(self, populated_registry):
        """Test dependents are found through declared dependencies."""
        dependents = populated_registry.get_dependent_skills("add")

        assert [skill.id for skill in dependents] == ["double-add"]

    def test_check_conflicts(self, populated_registry, add_skill):
        """Test check_conflicts describes every blocker without raising."""
        assert populated_registry.check_conflicts(add_skill) == [
            "Skill with ID 'add' already exists"
        ]

        clashing = build_skill(
            "add-2",
            name="Add",
            function="add",
            dependencies=[build_dependency("missing")],
        )
        conflicts = populated_registry.check_conflicts(clashing)

        assert "Skill with name 'Add' already exists in layer 1" in conflicts
        assert "Required dependency 'missing' not found" in conflicts

    def test_validate_does_not_register(self, registry, add_skill):
        """Test validate() only reports."""
        result = registry.validate(add_skill)

        assert result.valid
        assert not registry.exists("add")


@pytest.mark.unit
@pytest.mark.registry
class TestPersistence:
    """Tests for write-through persistence."""

    def test_file_store_survives_restart(self, tmp_path, add_skill):
        """Test a new registry over the same directory sees earlier registrations."""
        store_dir = tmp_path / "skills"
        SkillRegistry(store=FileSkillStore(store_dir)).register(add_skill)

        reloaded = SkillRegistry(store=FileSkillStore(store_dir))

        assert reloaded.resolve("add").name == "Add"

    def test_unregister_deletes_record(self, tmp_path, add_skill):
        """Test unregister removes the persisted record."""
        store_dir = tmp_path / "skills"
        registry = SkillRegistry(store=FileSkillStore(store_dir))
        registry.register(add_skill)

        registry.unregister("add")

        assert not (store_dir / "add.json").exists()
        assert len(SkillRegistry(store=FileSkillStore(store_dir))) == 0

    def test_cache_stats_track_hits(self, registry, add_skill):
        """Test repeated resolves are served from the cache."""
        registry.register(add_skill)

        registry.resolve("add")
        registry.resolve("add")

        stats = registry.cache_stats()["skills"]
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_cached_definition_survives_clear_of_registry_entry(self, registry, add_skill):
        """Test cached_definition returns the last cached value."""
        registry.register(add_skill)
        registry.resolve("add")

        assert registry.cached_definition("add").id == "add"

        registry.clear_cache()
        assert registry.cached_definition("add") is None
