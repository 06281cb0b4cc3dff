"""Backlog and result records for the sprint runner.

Plain JSON-serialisable records; unlike the swarm board there is no state
machine here, only sprint plans and their immutable outcomes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Tuple

from pydantic import Field, field_validator

from ..swarm.schema import RecordModel


class SprintTaskRole(str, Enum):
    """Agent roles a backlog task may be assigned to."""

    RESEARCHER = "researcher"
    CODER = "coder"
    TESTER = "tester"
    REVIEWER = "reviewer"
    OPTIMIZER = "optimizer"


def safe_role(role: Any) -> SprintTaskRole:
    """Coerce ``role`` to a known role, falling back to ``coder``."""
    if isinstance(role, SprintTaskRole):
        return role
    try:
        return SprintTaskRole(str(role).strip().lower())
    except ValueError:
        return SprintTaskRole.CODER


class BacklogTask(RecordModel):
    """Single unit of work assigned to one agent role."""

    id: str
    title: str
    description: str = ""
    role: SprintTaskRole = SprintTaskRole.CODER
    dependencies: List[str] = Field(default_factory=list)
    acceptance_criteria: List[str] = Field(default_factory=list)
    estimated_turns: int = 10

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value: Any) -> SprintTaskRole:
        return safe_role(value)


class Sprint(RecordModel):
    id: str
    name: str
    goal: str = ""
    tasks: List[BacklogTask] = Field(default_factory=list)


class BacklogSpec(RecordModel):
    """Full sprint plan for a build."""

    project_name: str = ""
    description: str = ""
    tech_stack: List[str] = Field(default_factory=list)
    output_path: str
    sprints: List[Sprint] = Field(default_factory=list)
    quality_threshold: int = Field(default=85, ge=0, le=100)
    max_iterations_per_sprint: int = Field(default=3, ge=1)


class SprintResult(RecordModel):
    """Outcome of one sprint; created once and never modified."""

    sprint_id: str
    success: bool
    tests_total: int = 0
    tests_passing: int = 0
    quality_score: int = 0
    duration_ms: int = 0
    iterations: int = 0
    errors: Tuple[str, ...] = ()


class BuildResult(RecordModel):
    """Aggregate over every feature sprint plus the integration sprint."""

    success: bool
    sprint_results: List[SprintResult] = Field(default_factory=list)
    total_tests: int = 0
    total_duration_ms: int = 0
    final_quality_score: int = 0
    output_path: str = ""


__all__ = [
    "BacklogSpec",
    "BacklogTask",
    "BuildResult",
    "Sprint",
    "SprintResult",
    "SprintTaskRole",
    "safe_role",
]
