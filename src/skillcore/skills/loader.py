"""Parsing of skill definition documents.

Definitions can be written as YAML or JSON documents, or as a markdown file
with YAML front matter where the markdown body becomes the description:

```
---
id: echo-cmd
name: Echo
version: 1.0.0
layer: 2
---

Echo arguments back to the caller.
```
"""

import json
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from skillcore.exceptions import SkillValidationError
from skillcore.skills.models import SkillDefinition

_FRONT_MATTER = re.compile(r"^---\s*\n(.*?)\n---\s*\n?(.*)", re.DOTALL)


def extract_yaml_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from a markdown document.

    Returns:
        Tuple of (yaml_data, markdown_body)

    Raises:
        SkillValidationError: If front matter is missing or malformed
    """
    match = _FRONT_MATTER.match(content)
    if not match:
        raise SkillValidationError(
            "Document must start with YAML front matter delimited by '---' markers"
        )

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise SkillValidationError(f"Invalid YAML front matter: {e}") from e
    if not isinstance(data, dict):
        raise SkillValidationError("YAML front matter must be a mapping")
    return data, match.group(2).strip()


def parse_skill_document(content: str, fmt: str = "yaml") -> SkillDefinition:
    """Parse a skill definition from text.

    Args:
        content: Document text
        fmt: "yaml", "json" or "markdown"

    Raises:
        SkillValidationError: If the document cannot be parsed or is invalid
    """
    try:
        if fmt == "json":
            data = json.loads(content)
        elif fmt == "markdown":
            data, body = extract_yaml_frontmatter(content)
            if body and not data.get("description"):
                data["description"] = body
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SkillValidationError(f"Invalid {fmt} skill document: {e}") from e

    if not isinstance(data, dict):
        raise SkillValidationError("Skill document must contain a mapping")

    try:
        return SkillDefinition.model_validate(data)
    except PydanticValidationError as e:
        raise SkillValidationError(
            f"Invalid skill definition: {e}", skill_id=data.get("id"), operation="parse"
        ) from e


def load_skill_definition(path: Path) -> SkillDefinition:
    """Load a skill definition file (.yaml/.yml, .json or .md).

    Raises:
        SkillValidationError: If the file is missing, unreadable or invalid
    """
    if not path.is_file():
        raise SkillValidationError(f"Skill definition not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise SkillValidationError(f"Skill definition must be UTF-8 encoded: {path}") from e

    suffix = path.suffix.lower()
    fmt = {".json": "json", ".md": "markdown"}.get(suffix, "yaml")
    return parse_skill_document(content, fmt)


def dump_skill_definition(definition: SkillDefinition) -> str:
    """Serialize a definition to YAML."""
    return yaml.safe_dump(
        definition.model_dump(mode="json", exclude_none=True), sort_keys=False, allow_unicode=True
    )
