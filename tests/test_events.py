from __future__ import annotations

from coco.swarm.events import SwarmEvent, append_event, create_event_id, events_path, read_events
from coco.swarm.schema import SwarmAgentRole


def test_append_and_read_events_in_order(tmp_path) -> None:
    first = SwarmEvent(
        id=create_event_id(),
        agent_role=SwarmAgentRole.TDD_DEVELOPER,
        task_id="task-auth-implement",
        feature_id="auth",
        action="dispatch",
    )
    second = SwarmEvent(id=create_event_id(), task_id="task-auth-implement", action="complete", duration_ms=12)

    append_event(tmp_path, first)
    append_event(tmp_path, second)

    events = read_events(tmp_path)
    assert [event.action for event in events] == ["dispatch", "complete"]
    assert events[0].agent_role == SwarmAgentRole.TDD_DEVELOPER
    assert events[1].duration_ms == 12
    assert events_path(tmp_path).read_text(encoding="utf-8").count("\n") == 2


def test_read_events_missing_log_is_empty(tmp_path) -> None:
    assert read_events(tmp_path) == []


def test_read_events_skips_malformed_lines(tmp_path) -> None:
    append_event(tmp_path, SwarmEvent(id="evt-1", action="fail", detail={"reason": "boom"}))
    with events_path(tmp_path).open("a", encoding="utf-8") as handle:
        handle.write("not json\n\n")

    events = read_events(tmp_path)

    assert len(events) == 1
    assert events[0].detail == {"reason": "boom"}


def test_event_ids_are_unique_and_prefixed() -> None:
    ids = {create_event_id() for _ in range(20)}

    assert len(ids) == 20
    assert all(event_id.startswith("evt-") for event_id in ids)
