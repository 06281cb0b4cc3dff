"""Typed records describing swarm specifications and task boards."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Immutable Pydantic base that persists with camelCase keys."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TaskStatus(str, Enum):
    """Lifecycle states for a board task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"
    BLOCKED = "blocked"


class TaskType(str, Enum):
    """Stage of the feature pipeline a task belongs to."""

    ACCEPTANCE_TEST = "acceptance-test"
    IMPLEMENT = "implement"
    INTEGRATE = "integrate"
    REVIEW = "review"


class SwarmAgentRole(str, Enum):
    """Owner tag recorded when a task is dispatched."""

    PM = "pm"
    ARCHITECT = "architect"
    BEST_PRACTICES = "best-practices"
    TDD_DEVELOPER = "tdd-developer"
    QA = "qa"
    EXTERNAL_REVIEWER = "external-reviewer"
    SECURITY_AUDITOR = "security-auditor"
    INTEGRATOR = "integrator"


class SwarmFeature(RecordModel):
    """Feature with acceptance criteria and ordering constraints."""

    id: str
    name: str
    description: str = ""
    acceptance_criteria: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    priority: Literal["high", "medium", "low"] = "medium"


class SwarmTechStack(RecordModel):
    language: str = "python"
    framework: Optional[str] = None
    database: Optional[str] = None
    testing: Optional[str] = None


class QualityConfig(RecordModel):
    min_score: int = Field(default=85, ge=0, le=100)
    max_iterations: int = Field(default=10, ge=1)
    min_coverage: int = Field(default=80, ge=0, le=100)


class SwarmSpec(RecordModel):
    """Parsed project specification consumed by the board builder."""

    project_name: str = "unnamed-project"
    description: str = ""
    tech_stack: SwarmTechStack = Field(default_factory=SwarmTechStack)
    features: List[SwarmFeature] = Field(default_factory=list)
    quality_config: QualityConfig = Field(default_factory=QualityConfig)


class SwarmTask(RecordModel):
    """Single schedulable unit of work on the board."""

    id: str
    feature_id: str = ""
    type: TaskType
    title: str
    description: str = ""
    dependencies: List[str] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    assigned_role: Optional[SwarmAgentRole] = None
    iterations: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    result: Optional[str] = None
    failure_reason: Optional[str] = None
    retry_of: Optional[str] = None


class BoardStats(RecordModel):
    """Counters derived from the task list; never authoritative."""

    total: int = 0
    done: int = 0
    failed: int = 0
    in_progress: int = 0
    blocked: int = 0


class SwarmBoard(RecordModel):
    """Full task graph for a swarm run."""

    project_name: str
    features: List[SwarmFeature] = Field(default_factory=list)
    tasks: List[SwarmTask] = Field(default_factory=list)
    stats: BoardStats = Field(default_factory=BoardStats)
    quality_config: QualityConfig = Field(default_factory=QualityConfig)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "BoardStats",
    "QualityConfig",
    "RecordModel",
    "SwarmAgentRole",
    "SwarmBoard",
    "SwarmFeature",
    "SwarmSpec",
    "SwarmTask",
    "SwarmTechStack",
    "TaskStatus",
    "TaskType",
    "utc_now",
]
