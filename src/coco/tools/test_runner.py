"""Test-suite execution for the sprint test gate."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Protocol, Sequence

LOGGER = logging.getLogger(__name__)


class TestRunnerError(RuntimeError):
    """Raised when the test runner itself cannot execute."""

    __test__ = False


@dataclass(slots=True)
class TestFailure:
    __test__ = False

    name: str
    message: str = ""
    file: str = ""


@dataclass(slots=True)
class TestRunSummary:
    """Counts reported by one run of the project's test suite."""

    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[TestFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class TestRunner(Protocol):
    __test__ = False

    def run(self, cwd: Path) -> TestRunSummary:
        """Run the suite rooted at ``cwd``; raise :class:`TestRunnerError` if it cannot run."""


def _merge_env(extra: Mapping[str, str] | None) -> Dict[str, str]:
    """Merge provided environment overrides with the current process state."""
    env: Dict[str, str] = os.environ.copy()
    if extra:
        env.update({str(key): str(value) for key, value in extra.items()})
    return env


_SUMMARY_LINE_RE = re.compile(r"^=*\s*(?:\d+\s+\w+.*)\bin\s+[\d.]+s", re.MULTILINE)
_SUMMARY_RE = re.compile(r"(\d+)\s+(passed|failed|errors?|skipped|xfailed|xpassed)\b")
_FAILED_LINE_RE = re.compile(r"^(FAILED|ERROR)\s+(\S+?)(?:\s+-\s+(.*))?$", re.MULTILINE)


def parse_pytest_output(stdout: str, stderr: str = "") -> TestRunSummary:
    """Extract counts and failing test ids from pytest terminal output."""
    text = "\n".join(part for part in (stdout, stderr) if part)
    summary_lines = _SUMMARY_LINE_RE.findall(text)
    source = summary_lines[-1] if summary_lines else text

    counts: Dict[str, int] = {}
    for amount, label in _SUMMARY_RE.findall(source):
        key = "error" if label.startswith("error") else label
        counts[key] = counts.get(key, 0) + int(amount)

    failures: List[TestFailure] = []
    for _kind, node_id, message in _FAILED_LINE_RE.findall(text):
        path, _, name = node_id.partition("::")
        failures.append(
            TestFailure(
                name=name or node_id,
                message=(message or "").strip(),
                file=path,
            )
        )

    passed = counts.get("passed", 0) + counts.get("xpassed", 0)
    failed = counts.get("failed", 0) + counts.get("error", 0)
    skipped = counts.get("skipped", 0) + counts.get("xfailed", 0)
    return TestRunSummary(
        total=passed + failed + skipped,
        passed=passed,
        failed=failed,
        skipped=skipped,
        failures=failures,
    )


class PytestRunner:
    """Run pytest in a subprocess and summarise the result."""

    def __init__(
        self,
        args: Sequence[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
        executable: str = "pytest",
    ) -> None:
        self.args = tuple(args or ("-q", "-rfE"))
        self.executable = executable
        self._env = dict(env or {})

    def _build_env(self, workdir: Path) -> Dict[str, str]:
        env_vars = _merge_env(self._env)
        src_dir = workdir / "src"
        if src_dir.is_dir():
            src_entry = str(src_dir)
            current_pythonpath = env_vars.get("PYTHONPATH")
            if current_pythonpath:
                parts = current_pythonpath.split(os.pathsep)
                if src_entry not in parts:
                    env_vars["PYTHONPATH"] = os.pathsep.join([src_entry, current_pythonpath])
            else:
                env_vars["PYTHONPATH"] = src_entry
        return env_vars

    def run(self, cwd: Path | str) -> TestRunSummary:
        workdir = Path(cwd).resolve()
        if not workdir.is_dir():
            raise TestRunnerError(f"Test directory does not exist: {workdir}")
        if shutil.which(self.executable) is None:
            raise TestRunnerError(f"Executable not available: {self.executable}")

        invocation = (self.executable, *self.args)
        process = subprocess.run(  # noqa: S603 - command is sourced from configuration
            invocation,
            cwd=workdir,
            env=self._build_env(workdir),
            capture_output=True,
            text=True,
            check=False,
        )

        # pytest exit codes: 0 ok, 1 failures, 2 interrupted, 3 internal, 4 usage, 5 no tests.
        if process.returncode == 5:
            return TestRunSummary()
        if process.returncode not in (0, 1, 2):
            detail = (process.stderr or "").strip() or (process.stdout or "").strip()
            last_line = detail.splitlines()[-1] if detail else "no output"
            raise TestRunnerError(f"pytest exited with code {process.returncode}: {last_line}")

        summary = parse_pytest_output(process.stdout, process.stderr)
        if process.returncode != 0 and summary.failed == 0:
            # Non-zero exit with nothing parsed (e.g. a collection error); never report a clean run.
            message = "pytest reported failures" if process.returncode == 1 else "pytest run was interrupted"
            summary.failed = 1
            summary.total += 1
            summary.failures.append(TestFailure(name="pytest", message=message, file=""))
        LOGGER.debug(
            "pytest in %s: %d passed, %d failed, %d skipped",
            workdir,
            summary.passed,
            summary.failed,
            summary.skipped,
        )
        return summary


__all__ = [
    "PytestRunner",
    "TestFailure",
    "TestRunSummary",
    "TestRunner",
    "TestRunnerError",
    "parse_pytest_output",
]
