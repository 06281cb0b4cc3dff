"""Tool integrations used by the sprint gates."""

from .test_runner import PytestRunner, TestFailure, TestRunner, TestRunnerError, TestRunSummary, parse_pytest_output

__all__ = [
    "PytestRunner",
    "TestFailure",
    "TestRunSummary",
    "TestRunner",
    "TestRunnerError",
    "parse_pytest_output",
]
