"""Agent task dispatch: the coordinator and its executors."""

from .coordinator import (
    AgentExecutor,
    AgentTask,
    CoordinationError,
    CoordinationResult,
    Coordinator,
    ExecutionOutput,
    compute_levels,
)
from .executors import AgentExecutionError, CommandAgentExecutor, OfflineAgentExecutor, build_executor

__all__ = [
    "AgentExecutionError",
    "AgentExecutor",
    "AgentTask",
    "CommandAgentExecutor",
    "CoordinationError",
    "CoordinationResult",
    "Coordinator",
    "ExecutionOutput",
    "OfflineAgentExecutor",
    "build_executor",
    "compute_levels",
]
