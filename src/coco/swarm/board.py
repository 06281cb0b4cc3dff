"""Task graph construction and immutable state transitions for swarm boards.

Every transition takes a :class:`SwarmBoard` and returns a new board with a
fresh ``tasks`` list and recomputed ``stats``; the input board is never
modified. Callers own the most recent board value and are responsible for
persisting it (see :mod:`coco.swarm.store`).
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Mapping, Sequence

from .schema import (
    BoardStats,
    SwarmAgentRole,
    SwarmBoard,
    SwarmFeature,
    SwarmSpec,
    SwarmTask,
    TaskStatus,
    TaskType,
    utc_now,
)

LOGGER = logging.getLogger(__name__)

INTEGRATE_TASK_ID = "task-integrate"
INTEGRATION_FEATURE_ID = "integration"

BoardOutcome = Literal["ready", "running", "stalled", "failed", "complete"]

# Source states from which each target state may be entered.
_ALLOWED_SOURCES: Mapping[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.PENDING}),
    TaskStatus.DONE: frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS}),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS}),
    TaskStatus.BLOCKED: frozenset({TaskStatus.PENDING}),
}


class BoardError(ValueError):
    """Raised when a board operation references unknown tasks or features."""


class BoardTransitionError(BoardError):
    """Raised when a task is moved along an edge the state machine forbids."""


@dataclass(slots=True)
class BoardSummary:
    """Snapshot of board counters including the pending count."""

    total: int
    done: int
    failed: int
    in_progress: int
    blocked: int
    pending_count: int


def acceptance_test_task_id(feature_id: str) -> str:
    return f"task-{feature_id}-acceptance-test"


def implement_task_id(feature_id: str) -> str:
    return f"task-{feature_id}-implement"


def compute_stats(tasks: Iterable[SwarmTask]) -> BoardStats:
    """Derive board counters from the task list."""
    task_list = list(tasks)
    counts = Counter(task.status for task in task_list)
    return BoardStats(
        total=len(task_list),
        done=counts[TaskStatus.DONE],
        failed=counts[TaskStatus.FAILED],
        in_progress=counts[TaskStatus.IN_PROGRESS],
        blocked=counts[TaskStatus.BLOCKED],
    )


def _validate_feature_order(features: Sequence[SwarmFeature]) -> None:
    """Ensure feature dependencies only point at features declared earlier."""
    known = {feature.id for feature in features}
    seen: set[str] = set()
    for feature in features:
        if feature.id in seen:
            raise BoardError(f"Duplicate feature id: {feature.id}")
        for dependency in feature.dependencies:
            if dependency not in known:
                raise BoardError(
                    f"Feature {feature.id} depends on unknown feature {dependency}"
                )
            if dependency not in seen:
                raise BoardError(
                    f"Feature {feature.id} depends on {dependency}, which must be declared before it"
                )
        seen.add(feature.id)


def build_board(spec: SwarmSpec) -> SwarmBoard:
    """Create a fresh board from a spec.

    Each feature contributes an acceptance-test task followed by an implement
    task; a single integrate task depends on every implement task.
    """

    _validate_feature_order(spec.features)
    now = utc_now()
    tasks: List[SwarmTask] = []

    for feature in spec.features:
        test_id = acceptance_test_task_id(feature.id)
        tasks.append(
            SwarmTask(
                id=test_id,
                feature_id=feature.id,
                type=TaskType.ACCEPTANCE_TEST,
                title=f"Write acceptance tests (RED) for: {feature.name}",
                description=(
                    f'TDD Red phase: write failing acceptance tests for feature "{feature.name}" '
                    "based on acceptance criteria."
                ),
                dependencies=[implement_task_id(dep) for dep in feature.dependencies],
                created_at=now,
                updated_at=now,
            )
        )
        tasks.append(
            SwarmTask(
                id=implement_task_id(feature.id),
                feature_id=feature.id,
                type=TaskType.IMPLEMENT,
                title=f"Implement: {feature.name}",
                description=(
                    f'TDD Green+Refactor phase: implement "{feature.name}" to make acceptance '
                    "tests pass, then refactor."
                ),
                dependencies=[test_id],
                created_at=now,
                updated_at=now,
            )
        )

    tasks.append(
        SwarmTask(
            id=INTEGRATE_TASK_ID,
            feature_id=INTEGRATION_FEATURE_ID,
            type=TaskType.INTEGRATE,
            title="Integrate all features",
            description=(
                "Run end-to-end integration: resolve conflicts, verify all tests pass, "
                "check the build."
            ),
            dependencies=[implement_task_id(feature.id) for feature in spec.features],
            created_at=now,
            updated_at=now,
        )
    )

    LOGGER.debug("Built board for %s with %d task(s)", spec.project_name, len(tasks))
    return SwarmBoard(
        project_name=spec.project_name,
        features=list(spec.features),
        tasks=tasks,
        stats=compute_stats(tasks),
        quality_config=spec.quality_config,
        created_at=now,
        updated_at=now,
    )


def get_next_task(board: SwarmBoard) -> SwarmTask | None:
    """Return the first pending task whose dependencies are all done."""
    done_ids = {task.id for task in board.tasks if task.status == TaskStatus.DONE}
    for task in board.tasks:
        if task.status != TaskStatus.PENDING:
            continue
        if all(dep in done_ids for dep in task.dependencies):
            return task
    return None


def find_task(board: SwarmBoard, task_id: str) -> SwarmTask:
    for task in board.tasks:
        if task.id == task_id:
            return task
    raise BoardError(f"Unknown task id: {task_id}")


def _transition(
    board: SwarmBoard,
    task_id: str,
    target: TaskStatus,
    changes: Dict[str, Any],
    *,
    count_attempt: bool = False,
) -> SwarmBoard:
    now = utc_now()
    found = False
    tasks: List[SwarmTask] = []
    for task in board.tasks:
        if task.id != task_id:
            tasks.append(task)
            continue
        found = True
        if task.status not in _ALLOWED_SOURCES[target]:
            raise BoardTransitionError(
                f"Task {task_id} cannot move from {task.status.value} to {target.value}"
            )
        update: Dict[str, Any] = {"status": target, "updated_at": now, **changes}
        if count_attempt:
            update["iterations"] = task.iterations + 1
        tasks.append(task.model_copy(update=update))
    if not found:
        raise BoardError(f"Unknown task id: {task_id}")
    return board.model_copy(
        update={"tasks": tasks, "stats": compute_stats(tasks), "updated_at": now}
    )


def mark_task_in_progress(board: SwarmBoard, task_id: str, role: SwarmAgentRole | None = None) -> SwarmBoard:
    """Move a pending task to ``in_progress`` and tag its owner role."""
    return _transition(board, task_id, TaskStatus.IN_PROGRESS, {"assigned_role": role})


def mark_task_done(board: SwarmBoard, task_id: str, result: str) -> SwarmBoard:
    """Record a successful attempt."""
    return _transition(
        board,
        task_id,
        TaskStatus.DONE,
        {"result": result, "failure_reason": None},
        count_attempt=True,
    )


def mark_task_failed(board: SwarmBoard, task_id: str, reason: str) -> SwarmBoard:
    """Record a failed attempt; the task is terminal and never resurrected."""
    return _transition(
        board,
        task_id,
        TaskStatus.FAILED,
        {"failure_reason": reason, "result": None},
        count_attempt=True,
    )


def block_dependents(board: SwarmBoard, failed_task_id: str) -> SwarmBoard:
    """Mark every pending task downstream of a failed task as blocked.

    This is the only transition that produces ``blocked``. It is never applied
    implicitly; callers opt in after recording a failure.
    """

    failed = find_task(board, failed_task_id)
    if failed.status != TaskStatus.FAILED:
        raise BoardTransitionError(
            f"Task {failed_task_id} is {failed.status.value}; only failed tasks block dependents"
        )

    dependents: Dict[str, List[str]] = {}
    for task in board.tasks:
        for dep in task.dependencies:
            dependents.setdefault(dep, []).append(task.id)

    downstream: set[str] = set()
    queue = deque([failed_task_id])
    while queue:
        current = queue.popleft()
        for child in dependents.get(current, []):
            if child not in downstream:
                downstream.add(child)
                queue.append(child)

    now = utc_now()
    reason = f"blocked by {failed_task_id}"
    tasks = [
        task.model_copy(
            update={"status": TaskStatus.BLOCKED, "failure_reason": reason, "updated_at": now}
        )
        if task.id in downstream and task.status == TaskStatus.PENDING
        else task
        for task in board.tasks
    ]
    return board.model_copy(
        update={"tasks": tasks, "stats": compute_stats(tasks), "updated_at": now}
    )


def get_board_stats(board: SwarmBoard) -> BoardSummary:
    counts = Counter(task.status for task in board.tasks)
    return BoardSummary(
        total=len(board.tasks),
        done=counts[TaskStatus.DONE],
        failed=counts[TaskStatus.FAILED],
        in_progress=counts[TaskStatus.IN_PROGRESS],
        blocked=counts[TaskStatus.BLOCKED],
        pending_count=counts[TaskStatus.PENDING],
    )


def superseded_task_ids(board: SwarmBoard) -> set[str]:
    """Ids of failed attempts that a later retry task replaced."""
    return {task.retry_of for task in board.tasks if task.retry_of}


def attempt_number(board: SwarmBoard, task_id: str) -> int:
    """Count the attempts in the retry chain ending at ``task_id``."""
    by_id = {task.id: task for task in board.tasks}
    current = find_task(board, task_id)
    attempt = 1
    while current.retry_of and current.retry_of in by_id:
        attempt += 1
        current = by_id[current.retry_of]
    return attempt


def _root_task_id(board: SwarmBoard, task_id: str) -> str:
    by_id = {task.id: task for task in board.tasks}
    current = find_task(board, task_id)
    while current.retry_of and current.retry_of in by_id:
        current = by_id[current.retry_of]
    return current.id


def schedule_retry(board: SwarmBoard, failed_task_id: str) -> SwarmBoard:
    """Append a fresh pending copy of a failed task and point its dependents at it.

    The failed task stays terminal. The new task is inserted right after it,
    carries ``retry_of`` and takes over every pending dependency edge.
    """

    failed = find_task(board, failed_task_id)
    if failed.status != TaskStatus.FAILED:
        raise BoardTransitionError(
            f"Task {failed_task_id} is {failed.status.value}; only failed tasks can be retried"
        )
    if failed_task_id in superseded_task_ids(board):
        raise BoardTransitionError(f"Task {failed_task_id} has already been retried")

    now = utc_now()
    attempt = attempt_number(board, failed_task_id) + 1
    retry = SwarmTask(
        id=f"{_root_task_id(board, failed_task_id)}-retry-{attempt}",
        feature_id=failed.feature_id,
        type=failed.type,
        title=failed.title,
        description=failed.description,
        dependencies=list(failed.dependencies),
        retry_of=failed_task_id,
        created_at=now,
        updated_at=now,
    )

    tasks: List[SwarmTask] = []
    for task in board.tasks:
        if task.status == TaskStatus.PENDING and failed_task_id in task.dependencies:
            task = task.model_copy(
                update={
                    "dependencies": [retry.id if dep == failed_task_id else dep for dep in task.dependencies],
                    "updated_at": now,
                }
            )
        tasks.append(task)
        if task.id == failed_task_id:
            tasks.append(retry)
    return board.model_copy(
        update={"tasks": tasks, "stats": compute_stats(tasks), "updated_at": now}
    )


def board_outcome(board: SwarmBoard) -> BoardOutcome:
    """Tell apart a finished board from one whose pending tasks cannot start.

    ``failed`` means nothing is left to run but some task failed without a
    retry or was blocked by such a failure.
    """
    if get_next_task(board) is not None:
        return "ready"
    summary = get_board_stats(board)
    if summary.in_progress:
        return "running"
    if summary.pending_count:
        return "stalled"
    superseded = superseded_task_ids(board)
    unresolved = [
        task for task in board.tasks if task.status == TaskStatus.FAILED and task.id not in superseded
    ]
    if unresolved or summary.blocked:
        return "failed"
    return "complete"


__all__ = [
    "INTEGRATE_TASK_ID",
    "INTEGRATION_FEATURE_ID",
    "BoardError",
    "BoardOutcome",
    "BoardSummary",
    "BoardTransitionError",
    "acceptance_test_task_id",
    "attempt_number",
    "block_dependents",
    "board_outcome",
    "build_board",
    "compute_stats",
    "find_task",
    "get_board_stats",
    "get_next_task",
    "implement_task_id",
    "mark_task_done",
    "mark_task_failed",
    "mark_task_in_progress",
    "schedule_retry",
    "superseded_task_ids",
]
