"""Sprint convergence loop: dispatch, test gate, quality gate, retry.

Each sprint is driven through the :class:`~coco.agents.Coordinator` until the
test suite is clean and a reviewer scores the result at or above the
backlog's quality threshold, or until the iteration budget runs out. Failures
are contained per sprint; :meth:`SprintRunner.run_sprints` always returns a
complete :class:`BuildResult`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Sequence

from ..agents.coordinator import AgentTask, Coordinator
from ..tools.test_runner import TestFailure, TestRunner, TestRunSummary
from ..utils.resource_monitor import get_max_safe_agents
from .aggregate import INTEGRATION_SPRINT_ID, aggregate_results
from .schema import BacklogSpec, BacklogTask, BuildResult, Sprint, SprintResult, SprintTaskRole
from .scoring import DEFAULT_QUALITY_SCORE, parse_quality_score, parse_test_counts, sanitize_for_prompt
from .store import SprintResultStore, SprintResultStoreError

LOGGER = logging.getLogger(__name__)


INTEGRATION_TEST_TASK_ID = "integration-test"
INTEGRATION_REVIEW_TASK_ID = "integration-review"
MAX_REPORTED_FAILURES = 10

_ROLE_HINTS = {
    SprintTaskRole.RESEARCHER: "Research and analyze",
    SprintTaskRole.CODER: "Implement and write code for",
    SprintTaskRole.TESTER: "Write tests and coverage for",
    SprintTaskRole.REVIEWER: "Review and audit quality of",
    SprintTaskRole.OPTIMIZER: "Optimize and refactor",
}

ProgressCallback = Callable[[str], None]


def build_task_description(task: BacklogTask, *, goal: str = "") -> str:
    hint = _ROLE_HINTS.get(task.role, "Implement")
    criteria = "\n".join(f"- {item}" for item in task.acceptance_criteria)
    description = (
        f"[{task.role.value.upper()}] {hint}: {task.title}\n\n"
        f"{task.description}\n\n"
        f"Acceptance criteria:\n{criteria}"
    )
    if goal:
        description = f"{description}\n\nSprint goal: {goal}"
    return description


def backlog_tasks_to_agent_tasks(
    tasks: Sequence[BacklogTask], project_path: str, *, goal: str = ""
) -> List[AgentTask]:
    """Convert backlog entries into coordinator tasks with role-hinted prompts."""
    return [
        AgentTask(
            id=task.id,
            description=build_task_description(task, goal=goal),
            context={
                "project_path": project_path,
                "role": task.role.value,
                "acceptance_criteria": list(task.acceptance_criteria),
                "estimated_turns": task.estimated_turns,
            },
            dependencies=list(task.dependencies),
        )
        for task in tasks
    ]


def build_fix_tasks(sprint_id: str, iteration: int, failures: Sequence[TestFailure]) -> List[AgentTask]:
    """Return the single fix task that replaces the task list after a red test gate."""
    summary = "\n".join(
        f"- {failure.name} ({failure.file}): {failure.message}"
        for failure in list(failures)[:MAX_REPORTED_FAILURES]
    )
    return [
        AgentTask(
            id=f"{sprint_id}-fix-{iteration}-coder",
            description=(
                "Implement fix for failing tests.\n\n"
                f"These tests are currently failing:\n{summary}\n\n"
                "Fix the implementation so all tests pass. Do not modify the tests themselves."
            ),
            context={"iteration": iteration, "sprint_id": sprint_id, "role": SprintTaskRole.CODER.value},
        )
    ]


def build_improvement_tasks(sprint_id: str, iteration: int, current_score: int) -> List[AgentTask]:
    return [
        AgentTask(
            id=f"{sprint_id}-improve-{iteration}",
            description=(
                f"Review and improve code quality (current score: {current_score}).\n\n"
                "Audit the codebase for quality issues such as complexity, duplication, naming "
                "and error handling. Refactor to bring the quality score above the threshold."
            ),
            context={
                "iteration": iteration,
                "sprint_id": sprint_id,
                "current_score": current_score,
                "role": SprintTaskRole.OPTIMIZER.value,
            },
        )
    ]


@dataclass(slots=True)
class _SprintState:
    iteration: int = 0
    success: bool = False
    tests_total: int = 0
    tests_passing: int = 0
    quality_score: int = 0
    errors: List[str] = field(default_factory=list)


class SprintRunner:
    """Drive a :class:`BacklogSpec` sprint by sprint, then run the integration sprint."""

    def __init__(
        self,
        coordinator: Coordinator,
        test_runner: TestRunner,
        *,
        results_store: SprintResultStore | None = None,
        max_agents: Callable[[], int] = get_max_safe_agents,
        on_progress: ProgressCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._coordinator = coordinator
        self._test_runner = test_runner
        self._results_store = results_store
        self._max_agents = max_agents
        self._on_progress = on_progress
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run_sprints(self, spec: BacklogSpec) -> BuildResult:
        started_at = self._clock()
        store = self._results_store or SprintResultStore(spec.output_path)
        results: List[SprintResult] = []

        for sprint in spec.sprints:
            result = self.run_sprint(sprint, spec)
            results.append(result)
            self._persist(store, result)

        self._progress("Running integration sprint...")
        integration = self.run_integration_sprint(spec)
        results.append(integration)
        self._persist(store, integration)

        return aggregate_results(
            results,
            started_at=started_at,
            output_path=spec.output_path,
            clock=self._clock,
        )

    def run_sprint(self, sprint: Sprint, spec: BacklogSpec) -> SprintResult:
        """Iterate one sprint until both gates pass or the budget is spent."""
        self._progress(f"Starting {sprint.id}: {sprint.name}")
        started = self._clock()
        state = _SprintState()
        budget = spec.max_iterations_per_sprint
        agent_tasks = backlog_tasks_to_agent_tasks(sprint.tasks, spec.output_path, goal=sprint.goal)

        while state.iteration < budget:
            state.iteration += 1
            iteration = state.iteration
            prefix = f"  {sprint.id} iter {iteration}"

            self._progress(f"{prefix}: running {len(agent_tasks)} task(s)...")
            self._dispatch(agent_tasks, state, iteration=iteration, prefix=prefix)

            self._progress(f"{prefix}: running tests...")
            summary = self._run_tests(spec)
            state.tests_total = summary.total
            state.tests_passing = summary.passed

            if summary.failed > 0:
                if iteration < budget:
                    self._progress(f"{prefix}: {summary.failed} test failure(s), creating fix task...")
                    agent_tasks = build_fix_tasks(sprint.id, iteration, summary.failures)
                    continue
                self._progress(f"  {sprint.id}: max iterations reached with {summary.failed} test failure(s)")
                state.errors.append(f"Tests still failing after {iteration} iterations")
                state.quality_score = 0
                break

            self._progress(f"{prefix}: quality review...")
            score = self.run_quality_check(spec.output_path, sprint.id, iteration)
            state.quality_score = score

            if score >= spec.quality_threshold:
                state.success = True
                self._progress(
                    f"  {sprint.id}: DONE, score {score}, "
                    f"{state.tests_passing}/{state.tests_total} tests pass"
                )
                break

            if iteration < budget:
                self._progress(f"{prefix}: quality {score} < {spec.quality_threshold}, improving...")
                agent_tasks = build_improvement_tasks(sprint.id, iteration, score)
            else:
                self._progress(
                    f"  {sprint.id}: max iterations reached, quality {score} "
                    f"(threshold {spec.quality_threshold})"
                )
                state.errors.append(f"Quality threshold not met: {score} < {spec.quality_threshold}")

        return SprintResult(
            sprint_id=sprint.id,
            success=state.success,
            tests_total=state.tests_total,
            tests_passing=state.tests_passing,
            quality_score=state.quality_score,
            duration_ms=self._elapsed_ms(started),
            iterations=state.iteration,
            errors=tuple(state.errors),
        )

    def run_quality_check(self, project_path: str, sprint_id: str, iteration: int) -> int:
        """Dispatch one reviewer task and extract its score.

        Any dispatch failure or missing score yields the conservative default.
        """

        safe_path = sanitize_for_prompt(project_path)
        task = AgentTask(
            id=f"{sprint_id}-quality-{iteration}",
            description=(
                f"Review and audit code quality of the project at {safe_path}.\n\n"
                "Check correctness, test coverage, error handling, maintainability, "
                "naming conventions and code organization.\n\n"
                'Return a quality score between 0-100 in your response, e.g. "Quality score: 87".'
            ),
            context={"project_path": safe_path, "sprint_id": sprint_id, "role": SprintTaskRole.REVIEWER.value},
        )
        try:
            outcome = self._coordinator.coordinate([task], max_parallel_agents=1)
        except Exception as exc:  # noqa: BLE001 - reviewer failure resolves to the default score
            LOGGER.warning("Quality review for %s failed: %s", sprint_id, exc)
            return DEFAULT_QUALITY_SCORE

        output = outcome.results.get(task.id)
        if output is None or not output.success:
            LOGGER.warning("Quality review for %s produced no output; using default score", sprint_id)
            return DEFAULT_QUALITY_SCORE
        score = parse_quality_score(output.output)
        LOGGER.debug("Quality review for %s iteration %d scored %d", sprint_id, iteration, score)
        return score

    def run_integration_sprint(self, spec: BacklogSpec) -> SprintResult:
        """Run the cross-feature test and review tasks exactly once."""
        started = self._clock()
        safe_path = sanitize_for_prompt(spec.output_path)
        tasks = [
            AgentTask(
                id=INTEGRATION_TEST_TASK_ID,
                description=(
                    f"Write and execute integration tests for the full project at {safe_path}.\n\n"
                    "Tests should cover cross-feature interactions. Run the test suite and report results."
                ),
                context={"project_path": safe_path, "role": SprintTaskRole.TESTER.value},
            ),
            AgentTask(
                id=INTEGRATION_REVIEW_TASK_ID,
                description=(
                    f"Review and audit global quality of the project at {safe_path}.\n\n"
                    "Assess overall architecture, consistency, error handling and production readiness. "
                    "Provide a final quality score between 0-100."
                ),
                context={"project_path": safe_path, "role": SprintTaskRole.REVIEWER.value},
                dependencies=[INTEGRATION_TEST_TASK_ID],
            ),
        ]

        tests_passing = 0
        tests_total = 0
        quality_score = DEFAULT_QUALITY_SCORE
        errors: List[str] = []

        self._progress("  Integration: running integration tests and global review...")
        try:
            outcome = self._coordinator.coordinate(tasks, max_parallel_agents=2)
        except Exception as exc:  # noqa: BLE001 - contained at sprint level
            LOGGER.warning("Integration sprint dispatch failed: %s", exc)
            errors.append(f"Integration sprint error: {exc}")
        else:
            errors.extend(f"Integration sprint error: {message}" for message in outcome.errors)
            test_output = outcome.results.get(INTEGRATION_TEST_TASK_ID)
            if test_output is not None and test_output.success:
                tests_passing, tests_total = parse_test_counts(test_output.output)
            review_output = outcome.results.get(INTEGRATION_REVIEW_TASK_ID)
            if review_output is not None and review_output.success:
                quality_score = parse_quality_score(review_output.output)

        return SprintResult(
            sprint_id=INTEGRATION_SPRINT_ID,
            success=not errors,
            tests_total=tests_total,
            tests_passing=tests_passing,
            quality_score=quality_score,
            duration_ms=self._elapsed_ms(started),
            iterations=1,
            errors=tuple(errors),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _dispatch(
        self,
        tasks: Sequence[AgentTask],
        state: _SprintState,
        *,
        iteration: int,
        prefix: str,
    ) -> None:
        try:
            outcome = self._coordinator.coordinate(tasks, max_parallel_agents=self._max_agents())
        except Exception as exc:  # noqa: BLE001 - dispatch errors never abort the sprint
            LOGGER.warning("Coordinator error (iter %d): %s", iteration, exc)
            state.errors.append(f"Coordinator error (iter {iteration}): {exc}")
            self._progress(f"{prefix}: coordinator error: {exc}")
            return
        for message in outcome.errors:
            state.errors.append(f"Coordinator error (iter {iteration}): {message}")

    def _run_tests(self, spec: BacklogSpec) -> TestRunSummary:
        try:
            return self._test_runner.run(Path(spec.output_path))
        except Exception as exc:  # noqa: BLE001 - an unrunnable suite counts as zero tests
            LOGGER.info("Test runner unavailable for %s: %s", spec.output_path, exc)
            return TestRunSummary()

    def _persist(self, store: SprintResultStore, result: SprintResult) -> None:
        try:
            path = store.save(result)
        except SprintResultStoreError as error:
            LOGGER.warning("Could not persist result for sprint %s: %s", result.sprint_id, error)
            return
        LOGGER.debug("Saved sprint result %s to %s", result.sprint_id, path)

    def _progress(self, message: str) -> None:
        LOGGER.info("%s", message.strip())
        if self._on_progress is not None:
            self._on_progress(message)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))


__all__ = [
    "INTEGRATION_SPRINT_ID",
    "SprintRunner",
    "backlog_tasks_to_agent_tasks",
    "build_fix_tasks",
    "build_improvement_tasks",
    "build_task_description",
]
