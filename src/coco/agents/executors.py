"""Concrete agent executors used by the CLI.

The language-model integration lives outside this package. The command
executor shells out to any agent CLI that reads a prompt on stdin and prints
its answer; the offline executor produces deterministic output for dry runs
and tests.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import Any, Mapping

from .coordinator import AgentExecutor, AgentTask, ExecutionOutput

LOGGER = logging.getLogger(__name__)


class AgentExecutionError(RuntimeError):
    """Raised when an external agent cannot complete a task."""


class OfflineAgentExecutor:
    """Local stub that synthesizes deterministic agent output."""

    def __init__(self, *, quality_score: int = 90, passing_tests: int = 0) -> None:
        self.quality_score = quality_score
        self.passing_tests = passing_tests
        self.executed: list[str] = []

    def execute(self, task: AgentTask) -> ExecutionOutput:
        self.executed.append(task.id)
        role = str(task.context.get("role") or "").lower()
        if role in ("reviewer", "external-reviewer"):
            text = f"Offline review of {task.id}.\nQuality score: {self.quality_score}"
        elif role == "tester":
            text = f"Offline test run for {task.id}: {self.passing_tests} passing"
        else:
            headline = task.description.strip().splitlines()[0] if task.description.strip() else task.id
            text = f"Offline agent completed: {headline}"
        return ExecutionOutput(output=text, success=True)


class CommandAgentExecutor:
    """Run an external agent CLI once per task, passing the prompt on stdin."""

    def __init__(
        self,
        command: str,
        *,
        timeout_seconds: int = 900,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        args = shlex.split(command)
        if not args:
            raise ValueError("Agent command must not be empty")
        self.args = args
        self.timeout_seconds = timeout_seconds
        self.cwd = Path(cwd) if cwd else None
        self._env = dict(env or {})

    def _build_env(self, task: AgentTask) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self._env)
        env["COCO_TASK_ID"] = task.id
        role = task.context.get("role")
        if role:
            env["COCO_TASK_ROLE"] = str(role)
        turns = task.context.get("estimated_turns")
        if turns:
            env["COCO_TASK_TURNS"] = str(turns)
        return env

    def execute(self, task: AgentTask) -> ExecutionOutput:
        started = time.monotonic()
        try:
            process = subprocess.run(  # noqa: S603 - command comes from the project configuration
                self.args,
                input=task.description,
                cwd=self.cwd,
                env=self._build_env(task),
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise AgentExecutionError(f"Agent command not found: {self.args[0]}") from error
        except subprocess.TimeoutExpired as error:
            raise AgentExecutionError(
                f"Agent command timed out after {self.timeout_seconds}s for task {task.id}"
            ) from error

        duration_ms = int((time.monotonic() - started) * 1000)
        if process.returncode != 0:
            detail = (process.stderr or "").strip() or (process.stdout or "").strip()
            message = f"Agent command exited with code {process.returncode}"
            if detail:
                message = f"{message}: {detail.splitlines()[-1]}"
            raise AgentExecutionError(message)
        LOGGER.debug("Agent command finished task %s in %d ms", task.id, duration_ms)
        return ExecutionOutput(output=process.stdout, success=True, duration_ms=duration_ms)


def build_executor(config: Mapping[str, Any], *, cwd: Path | None = None) -> AgentExecutor:
    """Construct the executor selected by the ``executor`` config section."""
    section = config.get("executor") or {}
    if not isinstance(section, Mapping):
        section = {}
    kind = str(section.get("kind") or "offline").strip().lower()
    if kind == "offline":
        return OfflineAgentExecutor(quality_score=int(section.get("offline_quality_score", 90)))
    if kind == "command":
        command = str(section.get("command") or "").strip()
        if not command:
            raise ValueError("executor.command is required when executor.kind is 'command'")
        return CommandAgentExecutor(
            command,
            timeout_seconds=int(section.get("timeout_seconds", 900)),
            cwd=cwd,
        )
    raise ValueError(f"Unknown executor kind: {kind}")


__all__ = [
    "AgentExecutionError",
    "CommandAgentExecutor",
    "OfflineAgentExecutor",
    "build_executor",
]
