"""Dependency-aware, concurrency-bounded dispatch of agent tasks.

The coordinator knows nothing about boards, sprints, or task status. It takes
a self-contained batch of :class:`AgentTask` values, partitions them into
dependency levels, and runs each level on a thread pool capped at
``max_parallel_agents`` before starting the next one.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Sequence

LOGGER = logging.getLogger(__name__)


class CoordinationError(RuntimeError):
    """Raised when a task batch cannot be scheduled at all."""


@dataclass(slots=True)
class AgentTask:
    """Minimal contract the coordinator needs to dispatch work."""

    id: str
    description: str
    context: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ExecutionOutput:
    """Outcome of executing one task."""

    output: str
    success: bool = True
    duration_ms: int = 0
    error: str | None = None


class AgentExecutor(Protocol):
    """External collaborator that performs the actual work for a task."""

    def execute(self, task: AgentTask) -> ExecutionOutput | str:
        """Run ``task`` and return its output; may raise."""


@dataclass(slots=True)
class CoordinationResult:
    """Results of a coordinated batch keyed by task id."""

    results: Dict[str, ExecutionOutput] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    levels_executed: int = 0
    parallelism_achieved: int = 0
    total_duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


def compute_levels(tasks: Sequence[AgentTask]) -> List[List[AgentTask]]:
    """Partition ``tasks`` into dependency levels.

    Dependencies on ids outside the batch are ignored. Within a level the
    original positional order is preserved.
    """

    by_id: Dict[str, AgentTask] = {}
    for task in tasks:
        if task.id in by_id:
            raise CoordinationError(f"Duplicate task id in batch: {task.id}")
        by_id[task.id] = task

    level_of: Dict[str, int] = {}
    remaining = list(tasks)
    levels: List[List[AgentTask]] = []
    while remaining:
        current: List[AgentTask] = []
        deferred: List[AgentTask] = []
        for task in remaining:
            in_batch = [dep for dep in task.dependencies if dep in by_id]
            if all(dep in level_of for dep in in_batch):
                current.append(task)
            else:
                deferred.append(task)
        if not current:
            stuck = ", ".join(task.id for task in deferred)
            raise CoordinationError(f"Dependency cycle detected among tasks: {stuck}")
        for task in current:
            level_of[task.id] = len(levels)
        levels.append(current)
        remaining = deferred
    return levels


def _normalise_output(value: ExecutionOutput | str, duration_ms: int) -> ExecutionOutput:
    if isinstance(value, ExecutionOutput):
        if not value.duration_ms:
            value.duration_ms = duration_ms
        return value
    return ExecutionOutput(output=str(value), success=True, duration_ms=duration_ms)


class Coordinator:
    """Execute task batches level by level through an :class:`AgentExecutor`."""

    def __init__(self, executor: AgentExecutor) -> None:
        self._executor = executor

    def _run_one(self, task: AgentTask) -> ExecutionOutput:
        started = time.monotonic()
        value = self._executor.execute(task)
        return _normalise_output(value, int((time.monotonic() - started) * 1000))

    def coordinate(self, tasks: Sequence[AgentTask], *, max_parallel_agents: int) -> CoordinationResult:
        """Run ``tasks`` respecting dependencies with bounded parallelism.

        A failing task is recorded in ``results`` and ``errors`` and never
        aborts the batch; its dependents still run.
        """

        if max_parallel_agents < 1:
            raise ValueError("max_parallel_agents must be at least 1")

        started = time.monotonic()
        levels = compute_levels(tasks)
        outcome = CoordinationResult()

        for index, level in enumerate(levels):
            workers = min(max_parallel_agents, len(level))
            outcome.parallelism_achieved = max(outcome.parallelism_achieved, workers)
            LOGGER.debug(
                "Dispatching level %d: %d task(s) on %d worker(s)",
                index,
                len(level),
                workers,
            )
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="coco-agent") as pool:
                future_map = {pool.submit(self._run_one, task): task.id for task in level}
                for future in as_completed(future_map):
                    task_id = future_map[future]
                    try:
                        outcome.results[task_id] = future.result()
                    except Exception as exc:  # noqa: BLE001 - executor failures are contained per task
                        LOGGER.warning("Task %s failed: %s", task_id, exc)
                        outcome.errors.append(f"Task {task_id} failed: {exc}")
                        outcome.results[task_id] = ExecutionOutput(
                            output="",
                            success=False,
                            error=str(exc),
                        )
            outcome.levels_executed += 1

        outcome.total_duration_ms = int((time.monotonic() - started) * 1000)
        return outcome


__all__ = [
    "AgentExecutor",
    "AgentTask",
    "CoordinationError",
    "CoordinationResult",
    "Coordinator",
    "ExecutionOutput",
    "compute_levels",
]
