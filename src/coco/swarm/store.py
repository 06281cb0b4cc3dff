"""JSON persistence for swarm task boards."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..utils.atomic import atomic_write_json
from .schema import SwarmBoard

BOARD_RELATIVE_PATH = Path(".coco") / "swarm" / "task-board.json"
LOGGER = logging.getLogger(__name__)


class BoardStoreError(RuntimeError):
    """Raised when the persisted board cannot be read or written."""


class BoardStore:
    """Load and save the board snapshot under ``<project>/.coco/swarm``.

    The whole board is rewritten on every save. Writes go through a temp file
    and ``os.replace`` so a crash never leaves truncated JSON behind. A single
    writer per board file is assumed.
    """

    def __init__(self, project_root: Path | str) -> None:
        self.project_root = Path(project_root)
        self.board_path = self.project_root / BOARD_RELATIVE_PATH

    def exists(self) -> bool:
        return self.board_path.is_file()

    def save(self, board: SwarmBoard) -> Path:
        payload = board.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            atomic_write_json(self.board_path, payload)
        except OSError as error:
            raise BoardStoreError(f"Failed to write board to {self.board_path}: {error}") from error
        LOGGER.debug(
            "Saved board %s (%d/%d done)",
            board.project_name,
            board.stats.done,
            board.stats.total,
        )
        return self.board_path

    def load(self) -> SwarmBoard:
        try:
            raw = self.board_path.read_text(encoding="utf-8")
        except FileNotFoundError as error:
            raise BoardStoreError(f"No task board found at {self.board_path}") from error
        except OSError as error:
            raise BoardStoreError(f"Failed to read board from {self.board_path}: {error}") from error
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as error:
            raise BoardStoreError(f"Task board at {self.board_path} is not valid JSON: {error}") from error
        try:
            return SwarmBoard.model_validate(data)
        except ValidationError as error:
            raise BoardStoreError(f"Task board at {self.board_path} is malformed: {error}") from error


__all__ = ["BOARD_RELATIVE_PATH", "BoardStore", "BoardStoreError"]
