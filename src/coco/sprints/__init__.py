"""Sprint-based build execution with test and quality gates."""

from .aggregate import aggregate_results
from .runner import SprintRunner, backlog_tasks_to_agent_tasks, build_fix_tasks, build_improvement_tasks
from .schema import BacklogSpec, BacklogTask, BuildResult, Sprint, SprintResult, SprintTaskRole, safe_role
from .scoring import DEFAULT_QUALITY_SCORE, parse_quality_score, parse_test_counts, sanitize_for_prompt
from .store import SprintResultStore, SprintResultStoreError

__all__ = [
    "BacklogSpec",
    "BacklogTask",
    "BuildResult",
    "DEFAULT_QUALITY_SCORE",
    "Sprint",
    "SprintResult",
    "SprintResultStore",
    "SprintResultStoreError",
    "SprintRunner",
    "SprintTaskRole",
    "aggregate_results",
    "backlog_tasks_to_agent_tasks",
    "build_fix_tasks",
    "build_improvement_tasks",
    "parse_quality_score",
    "parse_test_counts",
    "safe_role",
    "sanitize_for_prompt",
]
