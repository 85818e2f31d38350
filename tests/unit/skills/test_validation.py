"""Unit tests for skillcore.skills.validation module."""

import pytest

from skillcore.exceptions import SkillValidationError
from skillcore.skills.models import Workflow
from skillcore.skills.validation import SkillValidator, schema_errors, workflow_issues
from tests.helpers.builders import build_dependency, build_skill


@pytest.fixture
def validator():
    return SkillValidator(skill_exists=lambda skill_id: skill_id == "known")


@pytest.mark.unit
@pytest.mark.registry
class TestSkillValidator:
    """Tests for SkillValidator."""

    def test_valid_skill_has_no_errors(self, validator, add_skill):
        """Test a complete definition validates cleanly."""
        result = validator.validate(add_skill)

        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_missing_fields_reported(self, validator):
        """Test absent required fields become MISSING_* errors."""
        result = validator.validate({"id": "x", "layer": 1})

        assert not result.valid
        assert "MISSING_NAME" in result.error_codes
        assert "MISSING_VERSION" in result.error_codes

    def test_metadata_warnings_do_not_block(self, validator):
        """Test missing author/category/tags and non-semver versions only warn."""
        result = validator.validate(
            {"id": "bare", "name": "Bare", "version": "1.0", "layer": 1}
        )

        assert result.valid
        assert set(result.warning_codes) >= {
            "INVALID_VERSION_FORMAT",
            "MISSING_AUTHOR",
            "MISSING_CATEGORY",
            "MISSING_TAGS",
        }

    def test_invalid_input_schema(self, validator):
        """Test input schemas must be valid JSON schemas."""
        skill = build_skill("s", function="add")
        skill.invocation_spec.input_schema = {"type": "not-a-type"}

        assert "INVALID_INPUT_SCHEMA" in validator.validate(skill).error_codes

    def test_layer1_sandbox_warns(self, validator):
        """Test sandboxing a layer 1 skill is flagged but allowed."""
        skill = build_skill("s", function="add", security={"sandboxed": True})

        result = validator.validate(skill)

        assert result.valid
        assert "LAYER1_SANDBOX_UNNECESSARY" in result.warning_codes

    def test_layer3_short_timeout_warns(self, validator):
        """Test layer 3 timeouts below the minimum are flagged."""
        skill = build_skill("s", layer=3, api="catalog", endpoint="list_items", timeout=100)

        assert "LAYER3_TIMEOUT_TOO_SHORT" in validator.validate(skill).warning_codes

    def test_duplicate_parameters(self, validator):
        """Test parameter names must be unique."""
        skill = build_skill("s", function="add", parameters=[{"name": "a"}, {"name": "a"}])

        assert "DUPLICATE_PARAMETER" in validator.validate(skill).error_codes

    def test_invalid_parameter_name(self, validator):
        """Test parameter names must be identifiers."""
        skill = build_skill("s", function="add", parameters=[{"name": "1bad"}])

        assert "INVALID_PARAMETER_NAME" in validator.validate(skill).error_codes

    def test_default_must_match_validation(self, validator):
        """Test declared defaults are checked against the parameter schema."""
        skill = build_skill(
            "s",
            function="add",
            parameters=[{"name": "n", "default_value": "x", "validation": {"type": "integer"}}],
        )

        assert "INVALID_DEFAULT_VALUE" in validator.validate(skill).error_codes

    def test_example_input_checked(self, validator):
        """Test examples must supply required parameters."""
        data = build_skill("s", function="add", parameters=[{"name": "a"}]).model_dump()
        data["invocation_spec"]["examples"] = [{"name": "empty", "input": {}}]

        assert "EXAMPLE_INPUT_INVALID" in validator.validate(data).error_codes

    def test_example_output_checked(self, validator):
        """Test expected outputs are checked against the output schema."""
        data = build_skill("s", function="add").model_dump()
        data["invocation_spec"]["output_schema"] = {"type": "number"}
        data["invocation_spec"]["examples"] = [
            {"name": "wrong", "input": {}, "expected_output": "three"}
        ]

        assert "EXAMPLE_OUTPUT_INVALID" in validator.validate(data).error_codes

    def test_incomplete_dependency(self, validator):
        """Test dependencies must declare name and version."""
        skill = build_skill(
            "s", function="add", dependencies=[build_dependency("known", version="")]
        )

        assert "INCOMPLETE_DEPENDENCY" in validator.validate(skill).error_codes

    def test_self_dependency(self, validator):
        """Test a skill cannot depend on itself."""
        skill = build_skill("s", function="add", dependencies=[build_dependency("s")])

        assert "SELF_DEPENDENCY" in validator.validate(skill).error_codes

    def test_unresolved_dependency(self, validator):
        """Test required skill dependencies are resolved through the callback."""
        resolved = build_skill("s", function="add", dependencies=[build_dependency("known")])
        unresolved = build_skill("t", function="add", dependencies=[build_dependency("unknown")])
        optional = build_skill(
            "u", function="add", dependencies=[build_dependency("unknown", optional=True)]
        )

        assert validator.validate(resolved).valid
        assert "UNRESOLVED_DEPENDENCY" in validator.validate(unresolved).error_codes
        assert validator.validate(optional).valid

    def test_invalid_workflow_reported(self, validator):
        """Test layer 3 workflows are checked for structural problems."""
        skill = build_skill(
            "wf",
            layer=3,
            workflow={
                "steps": [
                    {"id": "a", "type": "data_transform", "depends_on": ["b"]},
                    {"id": "b", "type": "data_transform", "depends_on": ["a"]},
                ]
            },
        )

        assert "INVALID_WORKFLOW" in validator.validate(skill).error_codes

    def test_ensure_valid_raises_with_issues(self, validator):
        """Test ensure_valid raises SkillValidationError carrying the issues."""
        with pytest.raises(SkillValidationError) as exc_info:
            validator.ensure_valid(build_skill("raw", layer=2, command="echo", security={}))

        assert exc_info.value.skill_id == "raw"
        assert exc_info.value.issues[0].code == "LAYER2_SANDBOX_REQUIRED"
        assert exc_info.value.suggestions


@pytest.mark.unit
@pytest.mark.registry
class TestSchemaHelpers:
    """Tests for schema_errors and workflow_issues."""

    def test_schema_errors_include_path(self):
        """Test instance paths prefix each message."""
        errors = schema_errors(
            {"type": "object", "properties": {"n": {"type": "integer"}}}, {"n": "x"}
        )

        assert len(errors) == 1
        assert errors[0].startswith("n: ")

    def test_workflow_issues(self):
        """Test duplicates, dangling edges and unknown output steps are reported."""
        workflow = Workflow.model_validate(
            {
                "steps": [
                    {"id": "a", "type": "data_transform"},
                    {"id": "a", "type": "data_transform"},
                    {"id": "b", "type": "data_transform", "depends_on": ["ghost"]},
                ],
                "output_step": "missing",
            }
        )

        issues = workflow_issues(workflow)

        assert any("Duplicate step ids: a" in issue for issue in issues)
        assert any("unknown step 'ghost'" in issue for issue in issues)
        assert any("Output step 'missing'" in issue for issue in issues)
