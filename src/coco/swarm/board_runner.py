"""Sequential driver that works a persisted task board to completion."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from ..agents.coordinator import AgentExecutor, AgentTask, ExecutionOutput
from ..sprints.scoring import DEFAULT_QUALITY_SCORE, parse_coverage, parse_quality_score
from .board import (
    BoardOutcome,
    attempt_number,
    block_dependents,
    board_outcome,
    get_board_stats,
    get_next_task,
    mark_task_done,
    mark_task_failed,
    mark_task_in_progress,
    schedule_retry,
)
from .events import SwarmEvent, append_event, create_event_id
from .schema import QualityConfig, SwarmAgentRole, SwarmBoard, SwarmTask, TaskType
from .store import BoardStore

LOGGER = logging.getLogger(__name__)

ROLE_FOR_TASK_TYPE: Dict[TaskType, SwarmAgentRole] = {
    TaskType.ACCEPTANCE_TEST: SwarmAgentRole.TDD_DEVELOPER,
    TaskType.IMPLEMENT: SwarmAgentRole.TDD_DEVELOPER,
    TaskType.INTEGRATE: SwarmAgentRole.INTEGRATOR,
    TaskType.REVIEW: SwarmAgentRole.EXTERNAL_REVIEWER,
}


def role_for_task(task: SwarmTask) -> SwarmAgentRole:
    return ROLE_FOR_TASK_TYPE.get(task.type, SwarmAgentRole.TDD_DEVELOPER)


class BoardRunner:
    """Pick, dispatch and record board tasks one at a time.

    Every transition is saved before the next step so an interrupted run can
    resume from disk. Runs are strictly sequential because the board file has
    a single writer.

    Implement tasks pass through the board's quality gate: a reported coverage
    below ``min_coverage`` or a review score below ``min_score`` fails the
    attempt. Failed attempts are retried as new tasks until
    ``max_iterations`` attempts have been made.
    """

    def __init__(
        self,
        store: BoardStore,
        executor: AgentExecutor,
        *,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._on_progress = on_progress
        self.outcome: BoardOutcome | None = None

    def run(self, board: SwarmBoard | None = None, *, max_tasks: int | None = None) -> SwarmBoard:
        current = board if board is not None else self._store.load()
        processed = 0
        while max_tasks is None or processed < max_tasks:
            task = get_next_task(current)
            if task is None:
                break
            current = self.run_task(current, task)
            processed += 1

        self.outcome = board_outcome(current)
        summary = get_board_stats(current)
        self._progress(
            f"Board {self.outcome}: {summary.done}/{summary.total} done, "
            f"{summary.failed} failed, {summary.blocked} blocked"
        )
        return current

    def run_task(self, board: SwarmBoard, task: SwarmTask) -> SwarmBoard:
        """Execute one ready task and persist every resulting transition."""
        role = role_for_task(task)
        board = mark_task_in_progress(board, task.id, role)
        self._store.save(board)
        self._record(task, role, "dispatch", detail=task.title)
        self._progress(f"Dispatching {task.id} to {role.value}")

        started = time.monotonic()
        output = self._execute(self._agent_task(task, role))
        gate_failure: Optional[str] = None
        score: Optional[int] = None
        if output.success and task.type == TaskType.IMPLEMENT:
            gate_failure, score = self._quality_gate(task, output.output, board.quality_config)
        duration_ms = int((time.monotonic() - started) * 1000)

        if output.success and gate_failure is None:
            result = output.output if score is None else f"Score: {score}\n\n{output.output}".strip()
            board = mark_task_done(board, task.id, result)
            self._store.save(board)
            self._record(task, role, "complete", duration_ms=duration_ms)
            self._progress(f"Completed {task.id}")
            return board

        attempt = attempt_number(board, task.id)
        retry_allowed = gate_failure is not None and attempt < board.quality_config.max_iterations
        if gate_failure is None:
            reason = output.error or "agent reported failure"
        elif retry_allowed:
            reason = gate_failure
        else:
            reason = f"{gate_failure} after {attempt} attempt(s)"

        board = mark_task_failed(board, task.id, reason)
        if retry_allowed:
            board = schedule_retry(board, task.id)
            self._store.save(board)
            self._record(task, role, "fail", detail=reason, duration_ms=duration_ms)
            retry = next(item for item in board.tasks if item.retry_of == task.id)
            self._record(task, role, "handoff", detail={"retry": retry.id, "attempt": attempt + 1})
            self._progress(f"Gate failed for {task.id} ({reason}); retrying as {retry.id}")
            return board

        failed_board = board
        board = block_dependents(failed_board, task.id)
        self._store.save(board)
        self._record(task, role, "fail", detail=reason, duration_ms=duration_ms)
        blocked = [
            after.id
            for before, after in zip(failed_board.tasks, board.tasks)
            if before.status != after.status
        ]
        if blocked:
            self._record(task, role, "block", detail=blocked)
        self._progress(f"Failed {task.id}: {reason}")
        return board

    def _quality_gate(
        self, task: SwarmTask, report: str, quality: QualityConfig
    ) -> Tuple[Optional[str], Optional[int]]:
        """Return ``(failure_reason, review_score)``; a ``None`` reason means the gate passed."""
        coverage = parse_coverage(report)
        if coverage is not None:
            passed = coverage >= quality.min_coverage
            self._record(
                task,
                SwarmAgentRole.TDD_DEVELOPER,
                "gate_check",
                detail={
                    "gate": "coverage",
                    "passed": passed,
                    "coverage": coverage,
                    "minCoverage": quality.min_coverage,
                },
            )
            if not passed:
                return f"Coverage {coverage}% < {quality.min_coverage}%", None

        review = AgentTask(
            id=f"{task.id}-review",
            description=(
                f"Review the implementation delivered for: {task.title}\n\n"
                f"Implementer report:\n{report}\n\n"
                "Check correctness, test coverage, error handling and maintainability.\n\n"
                'Return a quality score between 0-100 in your response, e.g. "Quality score: 87".'
            ),
            context={
                "role": SwarmAgentRole.EXTERNAL_REVIEWER.value,
                "feature_id": task.feature_id,
                "task_type": TaskType.REVIEW.value,
            },
        )
        verdict = self._execute(review)
        if verdict.success:
            score = parse_quality_score(verdict.output)
        else:
            LOGGER.warning("Review of %s failed; using default score: %s", task.id, verdict.error)
            score = DEFAULT_QUALITY_SCORE

        passed = score >= quality.min_score
        self._record(
            task,
            SwarmAgentRole.EXTERNAL_REVIEWER,
            "gate_check",
            detail={"gate": "review", "passed": passed, "score": score, "minScore": quality.min_score},
        )
        if not passed:
            return f"Review score {score} < {quality.min_score}", score
        return None, score

    def _execute(self, agent_task: AgentTask) -> ExecutionOutput:
        try:
            value = self._executor.execute(agent_task)
        except Exception as exc:  # noqa: BLE001 - executor failures are recorded on the board
            LOGGER.warning("Task %s failed: %s", agent_task.id, exc)
            return ExecutionOutput(output="", success=False, error=str(exc))
        return value if isinstance(value, ExecutionOutput) else ExecutionOutput(output=str(value))

    @staticmethod
    def _agent_task(task: SwarmTask, role: SwarmAgentRole) -> AgentTask:
        return AgentTask(
            id=task.id,
            description=f"{task.title}\n\n{task.description}".strip(),
            context={"role": role.value, "feature_id": task.feature_id, "task_type": task.type.value},
        )

    def _record(
        self,
        task: SwarmTask,
        role: SwarmAgentRole,
        action: str,
        *,
        detail: object = None,
        duration_ms: int = 0,
    ) -> None:
        event = SwarmEvent(
            id=create_event_id(),
            agent_role=role,
            task_id=task.id,
            feature_id=task.feature_id or None,
            action=action,
            detail=detail,
            duration_ms=duration_ms,
        )
        try:
            append_event(self._store.project_root, event)
        except OSError as error:
            LOGGER.warning("Could not append %s event for %s: %s", action, task.id, error)

    def _progress(self, message: str) -> None:
        LOGGER.info("%s", message)
        if self._on_progress is not None:
            self._on_progress(message)


__all__ = ["BoardRunner", "ROLE_FOR_TASK_TYPE", "role_for_task"]
