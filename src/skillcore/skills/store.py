"""Keyed persistence for skill definitions.

The registry writes through to a SkillStore on every mutation and reads it
once at startup. FileSkillStore keeps one self-describing JSON record per
skill id with atomic writes.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from skillcore.exceptions import RegistryError
from skillcore.skills.models import SkillDefinition

logger = logging.getLogger(__name__)

RECORD_FORMAT = "skillcore.skill/v1"


class SkillStore(Protocol):
    """Keyed read/write surface for skill definitions."""

    def load_all(self) -> dict[str, SkillDefinition]: ...

    def get(self, skill_id: str) -> SkillDefinition | None: ...

    def put(self, definition: SkillDefinition) -> None: ...

    def delete(self, skill_id: str) -> None: ...


class InMemorySkillStore:
    """Store that keeps records in a dictionary. Default when no directory is configured."""

    def __init__(self) -> None:
        self._records: dict[str, str] = {}

    def load_all(self) -> dict[str, SkillDefinition]:
        return {
            skill_id: SkillDefinition.model_validate_json(raw)
            for skill_id, raw in self._records.items()
        }

    def get(self, skill_id: str) -> SkillDefinition | None:
        raw = self._records.get(skill_id)
        return SkillDefinition.model_validate_json(raw) if raw is not None else None

    def put(self, definition: SkillDefinition) -> None:
        self._records[definition.id] = definition.model_dump_json()

    def delete(self, skill_id: str) -> None:
        self._records.pop(skill_id, None)

    def __len__(self) -> int:
        return len(self._records)


class FileSkillStore:
    """Directory of JSON records, one file per skill id.

    Attributes:
        root: Directory holding the records

    Example:
        >>> store = FileSkillStore(Path("~/.skillcore/skills").expanduser())
        >>> store.put(definition)
        >>> store.get(definition.id) == definition
        True
    """

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, skill_id: str) -> Path:
        target = (self.root / f"{skill_id}.json").resolve()
        if target.parent != self.root.resolve():
            raise RegistryError(
                f"Skill id '{skill_id}' escapes the store directory", skill_id=skill_id
            )
        return target

    def _read(self, path: Path) -> SkillDefinition | None:
        try:
            with open(path, encoding="utf-8") as f:
                record = json.load(f)
            if record.get("format") != RECORD_FORMAT:
                logger.warning(f"Skipping {path}: unknown record format {record.get('format')!r}")
                return None
            return SkillDefinition.model_validate(record["definition"])
        except (json.JSONDecodeError, KeyError, PydanticValidationError) as e:
            # Corrupted record, skip it rather than refusing to start
            logger.warning(f"Skipping corrupted skill record {path}: {e}")
            return None

    def load_all(self) -> dict[str, SkillDefinition]:
        definitions = {}
        for path in sorted(self.root.glob("*.json")):
            definition = self._read(path)
            if definition is not None:
                definitions[definition.id] = definition
        logger.debug(f"Loaded {len(definitions)} skill records from {self.root}")
        return definitions

    def get(self, skill_id: str) -> SkillDefinition | None:
        path = self._path_for(skill_id)
        if not path.exists():
            return None
        return self._read(path)

    def put(self, definition: SkillDefinition) -> None:
        """Write a record atomically via temp file + os.replace()."""
        path = self._path_for(definition.id)
        record = {"format": RECORD_FORMAT, "definition": definition.model_dump(mode="json")}

        fd, temp_path = tempfile.mkstemp(dir=self.root, prefix=".skill-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass
            raise

    def delete(self, skill_id: str) -> None:
        path = self._path_for(skill_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
