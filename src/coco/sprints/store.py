"""Persistence for per-sprint results under ``<output>/.coco/sprints``."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import List

from pydantic import ValidationError

from ..utils.atomic import atomic_write_json
from .schema import SprintResult

SPRINTS_RELATIVE_DIR = Path(".coco") / "sprints"
LOGGER = logging.getLogger(__name__)

_SAFE_SPRINT_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class SprintResultStoreError(RuntimeError):
    """Raised when a sprint result cannot be persisted or read back."""


class SprintResultStore:
    """One JSON document per sprint, named after the sprint id."""

    def __init__(self, output_path: Path | str) -> None:
        self.output_path = Path(output_path)
        self.directory = self.output_path / SPRINTS_RELATIVE_DIR

    def path_for(self, sprint_id: str) -> Path:
        if not _SAFE_SPRINT_ID.match(sprint_id) or ".." in sprint_id:
            raise SprintResultStoreError(f"Sprint id {sprint_id!r} cannot be used as a file name")
        return self.directory / f"{sprint_id}.json"

    def save(self, result: SprintResult) -> Path:
        path = self.path_for(result.sprint_id)
        try:
            atomic_write_json(path, result.model_dump(mode="json", by_alias=True))
        except OSError as error:
            raise SprintResultStoreError(f"Failed to write {path}: {error}") from error
        return path

    def load(self, sprint_id: str) -> SprintResult:
        path = self.path_for(sprint_id)
        try:
            return SprintResult.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError as error:
            raise SprintResultStoreError(f"No result recorded for sprint {sprint_id}") from error
        except (OSError, json.JSONDecodeError, ValidationError) as error:
            raise SprintResultStoreError(f"Unable to read {path}: {error}") from error

    def list_results(self) -> List[SprintResult]:
        if not self.directory.is_dir():
            return []
        results: List[SprintResult] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                results.append(self.load(path.stem))
            except SprintResultStoreError as error:
                LOGGER.warning("Skipping unreadable sprint result %s: %s", path, error)
        return results


__all__ = ["SPRINTS_RELATIVE_DIR", "SprintResultStore", "SprintResultStoreError"]
