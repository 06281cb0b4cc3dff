"""Append-only JSONL event log for swarm runs."""

from __future__ import annotations

import json
import logging
import secrets
import time
from datetime import datetime
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import Field, ValidationError

from .schema import RecordModel, SwarmAgentRole, utc_now

EVENTS_RELATIVE_PATH = Path(".coco") / "swarm" / "events.jsonl"
LOGGER = logging.getLogger(__name__)

EventAction = Literal["dispatch", "complete", "fail", "block", "gate_check", "handoff"]


class SwarmEvent(RecordModel):
    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    agent_role: Optional[SwarmAgentRole] = None
    task_id: Optional[str] = None
    feature_id: Optional[str] = None
    action: EventAction
    detail: Any = None
    duration_ms: int = 0


def create_event_id() -> str:
    return f"evt-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def events_path(project_root: Path | str) -> Path:
    return Path(project_root) / EVENTS_RELATIVE_PATH


def append_event(project_root: Path | str, event: SwarmEvent) -> None:
    """Append a single event line, creating the log on first use."""
    path = events_path(project_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(event.model_dump(mode="json", by_alias=True, exclude_none=True))
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line + "\n")


def read_events(project_root: Path | str) -> List[SwarmEvent]:
    """Return every recorded event; a missing log yields an empty list."""
    path = events_path(project_root)
    if not path.is_file():
        return []
    events: List[SwarmEvent] = []
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            events.append(SwarmEvent.model_validate_json(line))
        except ValidationError as error:
            LOGGER.warning("Skipping malformed event on line %d of %s: %s", number, path, error)
    return events


__all__ = [
    "EVENTS_RELATIVE_PATH",
    "EventAction",
    "SwarmEvent",
    "append_event",
    "create_event_id",
    "events_path",
    "read_events",
]
