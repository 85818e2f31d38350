"""Unit tests for skillcore.migration.manager module."""

import pytest

from skillcore.exceptions import MigrationError
from skillcore.migration.manager import MigrationManager, package_checksum
from skillcore.migration.models import (
    Environment,
    MigrationStrategy,
    PackageConfiguration,
)
from skillcore.skills.models import DependencyType
from skillcore.skills.registry import SkillRegistry
from tests.helpers.builders import build_dependency, build_skill

FULL_CAPABILITIES = ["file-system", "network", "process-execution", "json-processing"]


def linux(**kwargs):
    return Environment(
        platform="linux", version="3.12.0", capabilities=list(FULL_CAPABILITIES), **kwargs
    )


@pytest.fixture
def manager():
    return MigrationManager(environment=linux())


@pytest.fixture
def target():
    return SkillRegistry()


@pytest.mark.unit
@pytest.mark.migration
class TestExport:
    """Tests for MigrationManager.export_package."""

    def test_export_all(self, manager, populated_registry):
        package = manager.export_package(populated_registry, "everything")

        assert set(package.skill_ids) == {"add", "echo-cmd", "double-add"}
        assert package.skill_ids.index("add") < package.skill_ids.index("double-add")
        assert package.configuration.enabled_layers == [1, 2]
        assert package.checksum == package_checksum(package.skills)
        assert package.metadata.source_environment.platform == "linux"
        assert package.id.startswith("package_")

    def test_export_pulls_in_skill_dependencies(self, manager, populated_registry):
        """Test exporting a skill includes the skills it depends on."""
        package = manager.export_package(populated_registry, "doubler", skill_ids=["double-add"])

        assert package.skill_ids == ["add", "double-add"]

    def test_external_dependencies_collected(self, manager, registry):
        registry.register(
            build_skill(
                "fetch",
                function="add",
                dependencies=[
                    build_dependency("httpx", version="0.27.0", type=DependencyType.LIBRARY),
                ],
            )
        )

        package = manager.export_package(registry, "fetchers")

        assert [dep.id for dep in package.dependencies] == ["httpx"]
        assert package.configuration.dependencies == package.dependencies

    def test_missing_skill(self, manager, registry):
        with pytest.raises(MigrationError, match="not registered"):
            manager.export_package(registry, "nothing", skill_ids=["ghost"])


@pytest.mark.unit
@pytest.mark.migration
class TestCompatibility:
    """Tests for validate_compatibility and adapt_configuration."""

    def test_same_environment(self, manager, populated_registry):
        package = manager.export_package(populated_registry, "p")

        report = manager.validate_compatibility(package, linux())

        assert report.compatible
        assert report.issues == []

    def test_platform_mismatch_is_warning(self, manager, populated_registry):
        package = manager.export_package(populated_registry, "p")
        windows = Environment(platform="win32", version="3.12.0", capabilities=FULL_CAPABILITIES)

        report = manager.validate_compatibility(package, windows)

        assert report.compatible
        assert report.issues[0].type == "platform_incompatibility"
        assert report.adaptations[0].adapted == "win32"

    def test_missing_capability_and_layer(self, manager, populated_registry):
        """Test a target without process execution cannot run layer 2 skills."""
        package = manager.export_package(populated_registry, "p")
        limited = Environment(
            platform="linux", version="3.12.0", capabilities=["file-system", "network"]
        )

        report = manager.validate_compatibility(package, limited)

        assert not report.compatible
        types = {issue.type for issue in report.issues}
        assert types == {"capability_missing", "layer_unavailable"}
        layer_issue = next(i for i in report.issues if i.type == "layer_unavailable")
        assert layer_issue.affected_skills == ["echo-cmd"]

    def test_available_layers(self):
        assert Environment(platform="linux").available_layers() == [1]
        assert linux().available_layers() == [1, 2, 3]

    @pytest.mark.parametrize(
        "platform,skills_path,path_var",
        [
            ("win32", ".\\skills\\core", "/usr/bin;/bin"),
            ("linux", "./skills/core", "/usr/bin:/bin"),
        ],
    )
    def test_adapt_configuration(self, manager, platform, skills_path, path_var):
        config = PackageConfiguration(
            skills_path="./skills/core", environment_variables={"PATH": "/usr/bin:/bin"}
        )

        adapted = manager.adapt_configuration(config, Environment(platform=platform))

        assert adapted.skills_path == skills_path
        assert adapted.environment_variables["PATH"] == path_var
        assert config.skills_path == "./skills/core"


@pytest.mark.unit
@pytest.mark.migration
class TestImport:
    """Tests for MigrationManager.import_package."""

    def test_import_into_empty_registry(self, manager, populated_registry, target):
        package = manager.export_package(populated_registry, "p")

        result = manager.import_package(package, target)

        assert result.success
        assert set(result.migrated_skills) == {"add", "echo-cmd", "double-add"}
        assert target.resolve("double-add").version == "1.0.0"
        assert result.configuration is not None

    def test_conservative_skips_existing(self, manager, populated_registry, target):
        target.register(build_skill("add", name="Add", function="add", version="0.9.0"))
        package = manager.export_package(populated_registry, "p", skill_ids=["add"])

        result = manager.import_package(package, target)

        assert result.skipped_skills == ["add"]
        assert target.resolve("add").version == "0.9.0"
        assert "already exists" in result.warnings[0]

    def test_overwrite_updates_existing(self, manager, populated_registry, target):
        target.register(build_skill("add", name="Add", function="add", version="0.9.0"))
        package = manager.export_package(populated_registry, "p", skill_ids=["add"])

        result = manager.import_package(package, target, strategy="overwrite")

        assert result.migrated_skills == ["add"]
        assert target.resolve("add").version == "1.0.0"

    def test_per_skill_failure_collected(self, manager, populated_registry, target):
        """Test one failing skill does not stop the rest of the import."""
        target.register(build_skill("other-add", name="Add", function="add"))
        package = manager.export_package(populated_registry, "p")

        result = manager.import_package(package, target, MigrationStrategy.CONSERVATIVE)

        assert not result.success
        failed = {f.skill_id for f in result.failed_skills}
        assert "add" in failed
        assert "echo-cmd" in result.migrated_skills
        assert result.failed_skills[0].suggestions

    def test_incompatible_environment_warns(self, manager, populated_registry, target):
        package = manager.export_package(populated_registry, "p", skill_ids=["add"])

        result = manager.import_package(package, target, environment=Environment(platform="linux"))

        assert result.success
        assert result.warnings[0].startswith("Compatibility issues detected")

    def test_tampered_package_rejected(self, manager, populated_registry, target):
        package = manager.export_package(populated_registry, "p", skill_ids=["add"])
        package.skills[0] = package.skills[0].model_copy(update={"version": "6.6.6"})

        with pytest.raises(MigrationError, match="integrity"):
            manager.import_package(package, target)
        assert len(target) == 0

    def test_unknown_strategy(self, manager, populated_registry, target):
        package = manager.export_package(populated_registry, "p")

        with pytest.raises(MigrationError, match="Unknown migration strategy"):
            manager.import_package(package, target, strategy="merge")

    def test_result_to_dict(self, manager, populated_registry, target):
        package = manager.export_package(populated_registry, "p", skill_ids=["add"])

        data = manager.import_package(package, target).to_dict()

        assert data["migrated_skills"] == ["add"]
        assert data["failed_skills"] == []


@pytest.mark.unit
@pytest.mark.migration
class TestPersistence:
    """Tests for save_package and load_package."""

    def test_save_and_load(self, manager, populated_registry, target, tmp_path):
        """Test a saved package loads back and still passes the integrity check."""
        path = tmp_path / "packages" / "p.yaml"
        manager.save_package(manager.export_package(populated_registry, "p"), path)

        loaded = manager.load_package(path)

        assert loaded.name == "p"
        assert manager.import_package(loaded, target).success
        assert not list(path.parent.glob(".package-*"))

    def test_load_missing_file(self, manager, tmp_path):
        with pytest.raises(MigrationError, match="Failed to read"):
            manager.load_package(tmp_path / "missing.yaml")

    def test_load_invalid_yaml(self, manager, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("skills: [unclosed")

        with pytest.raises(MigrationError, match="Invalid YAML"):
            manager.load_package(path)

    def test_load_non_mapping(self, manager, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(MigrationError, match="must contain a mapping"):
            manager.load_package(path)

    def test_load_invalid_package(self, manager, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text("name: p\n")

        with pytest.raises(MigrationError, match="Invalid package"):
            manager.load_package(path)
