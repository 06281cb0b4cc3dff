"""Feature task boards: the graph, its persistence and its sequential driver."""

from .board import (
    INTEGRATE_TASK_ID,
    BoardError,
    BoardSummary,
    BoardTransitionError,
    block_dependents,
    board_outcome,
    build_board,
    get_board_stats,
    get_next_task,
    mark_task_done,
    mark_task_failed,
    mark_task_in_progress,
    schedule_retry,
)
from .board_runner import BoardRunner
from .events import SwarmEvent, append_event, read_events
from .schema import (
    QualityConfig,
    SwarmAgentRole,
    SwarmBoard,
    SwarmFeature,
    SwarmSpec,
    SwarmTask,
    TaskStatus,
    TaskType,
)
from .store import BoardStore, BoardStoreError

__all__ = [
    "INTEGRATE_TASK_ID",
    "BoardError",
    "BoardRunner",
    "BoardStore",
    "BoardStoreError",
    "BoardSummary",
    "BoardTransitionError",
    "QualityConfig",
    "SwarmAgentRole",
    "SwarmBoard",
    "SwarmEvent",
    "SwarmFeature",
    "SwarmSpec",
    "SwarmTask",
    "TaskStatus",
    "TaskType",
    "append_event",
    "block_dependents",
    "board_outcome",
    "build_board",
    "get_board_stats",
    "get_next_task",
    "mark_task_done",
    "mark_task_failed",
    "mark_task_in_progress",
    "read_events",
    "schedule_retry",
]
