"""Best-effort extraction of scores and test counts from agent output.

Agent output is free text. The first matching substring wins; when nothing
matches, the quality score falls back to a conservative default that neither
passes a typical threshold nor zeroes out an otherwise working sprint.
"""

from __future__ import annotations

import re

DEFAULT_QUALITY_SCORE = 65

_SCORE_RE = re.compile(r"(?:score|quality)[:\s]+(\d{1,3})", re.IGNORECASE)
_PASSING_RE = re.compile(r"(\d+)\s+pass(?:ing)?", re.IGNORECASE)
_TOTAL_RE = re.compile(r"(\d+)\s+(?:test|spec)", re.IGNORECASE)
_COVERAGE_RE = re.compile(r"coverage[:\s]+(\d{1,3})(?:\.\d+)?\s*%", re.IGNORECASE)
_COVERAGE_TOTAL_RE = re.compile(r"^TOTAL\s.*?(\d{1,3})(?:\.\d+)?%\s*$", re.MULTILINE)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def clamp_score(value: int) -> int:
    return min(100, max(0, value))


def parse_quality_score(text: str | None, *, default: int = DEFAULT_QUALITY_SCORE) -> int:
    """Return the first ``score: NN`` / ``quality: NN`` value, clamped to 0-100."""
    if not text:
        return default
    match = _SCORE_RE.search(text)
    if match is None:
        return default
    return clamp_score(int(match.group(1)))


def parse_test_counts(text: str | None) -> tuple[int, int]:
    """Return ``(passing, total)``; a missing total falls back to the passing count."""
    if not text:
        return 0, 0
    passing_match = _PASSING_RE.search(text)
    passing = int(passing_match.group(1)) if passing_match else 0
    total_match = _TOTAL_RE.search(text)
    total = int(total_match.group(1)) if total_match else passing
    return passing, total


def parse_coverage(text: str | None) -> int | None:
    """Return a reported line-coverage percentage, or ``None`` when absent.

    Accepts ``coverage: 87%`` phrasing and the ``TOTAL`` row of a coverage table.
    """
    if not text:
        return None
    match = _COVERAGE_RE.search(text) or _COVERAGE_TOTAL_RE.search(text)
    if match is None:
        return None
    return clamp_score(int(match.group(1)))


def sanitize_for_prompt(value: str) -> str:
    """Strip control characters before embedding a value in an agent prompt."""
    return _CONTROL_CHARS_RE.sub("", value)


__all__ = [
    "DEFAULT_QUALITY_SCORE",
    "clamp_score",
    "parse_coverage",
    "parse_quality_score",
    "parse_test_counts",
    "sanitize_for_prompt",
]
