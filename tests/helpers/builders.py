"""Test data builders for creating test fixtures.

This module provides builder functions for creating common test objects
with sensible defaults, making tests more readable and maintainable.
"""

from collections.abc import Callable
from typing import Any

from skillcore.execution.layer3 import ApiEndpoint, ApiParameter, ApiWrapper
from skillcore.extensions.models import SkillExtension
from skillcore.skills.models import SkillDefinition, SkillDependency


def build_skill(
    skill_id: str,
    layer: int = 1,
    name: str | None = None,
    version: str = "1.0.0",
    parameters: list[dict[str, Any]] | None = None,
    dependencies: list[SkillDependency] | None = None,
    **context: Any,
) -> SkillDefinition:
    """Build a skill definition with sensible defaults.

    Args:
        skill_id: Skill id
        layer: Skill layer
        name: Display name (defaults to the id)
        version: Semantic version
        parameters: Parameter dicts in declaration order
        dependencies: Declared dependencies
        **context: execution_context fields (function, command, args, api, ...)

    Example:
        >>> build_skill("add", function="add", parameters=[{"name": "a"}, {"name": "b"}])
        >>> build_skill("echo", layer=2, command="echo")
    """
    if layer == 2:
        context.setdefault("security", {"sandboxed": True})
    return SkillDefinition.model_validate(
        {
            "id": skill_id,
            "name": name or skill_id,
            "version": version,
            "layer": layer,
            "description": f"Test skill {skill_id}",
            "invocation_spec": {
                "parameters": parameters or [],
                "execution_context": context,
            },
            "dependencies": [d.model_dump() for d in dependencies or []],
            "metadata": {"author": "tests", "category": "testing", "tags": ["test"]},
        }
    )


def build_dependency(skill_id: str, version: str = "1.0.0", **kwargs: Any) -> SkillDependency:
    """Build a skill dependency entry."""
    return SkillDependency(id=skill_id, name=skill_id, version=version, **kwargs)


def build_extension(
    ext_id: str,
    base_skill_id: str,
    type: str = "override",
    priority: int = 10,
    implementation: Callable[..., Any] | Any = None,
    **kwargs: Any,
) -> SkillExtension:
    """Build an extension; the default payload echoes its params."""
    return SkillExtension(
        id=ext_id,
        base_skill_id=base_skill_id,
        name=kwargs.pop("name", ext_id),
        version=kwargs.pop("version", "1.0.0"),
        type=type,
        implementation=implementation if implementation is not None else (lambda value: value),
        priority=priority,
        **kwargs,
    )


def build_api(
    name: str = "catalog",
    base_url: str = "https://api.example.test",
    **kwargs: Any,
) -> ApiWrapper:
    """Build an API wrapper with ``get_item`` and ``create_item`` endpoints."""
    return ApiWrapper(
        name=name,
        base_url=base_url,
        endpoints=[
            ApiEndpoint(
                name="get_item",
                method="GET",
                path="/items/{item_id}",
                parameters=[ApiParameter(name="item_id", location="path", required=True)],
            ),
            ApiEndpoint(name="list_items", method="GET", path="/items"),
            ApiEndpoint(name="create_item", method="POST", path="/items"),
        ],
        **kwargs,
    )
