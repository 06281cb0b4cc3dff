"""Fold per-sprint results into a single build outcome."""

from __future__ import annotations

import math
import time
from typing import Callable, Sequence

from .schema import BuildResult, SprintResult

INTEGRATION_SPRINT_ID = "integration"


def aggregate_results(
    results: Sequence[SprintResult],
    *,
    started_at: float,
    output_path: str,
    clock: Callable[[], float] = time.monotonic,
) -> BuildResult:
    """Combine feature and integration sprint results.

    The integration sprint re-runs the same suite as the feature sprints, so
    its test total is left out of ``total_tests``. An empty build succeeds
    with a quality score of 0.
    """

    results = list(results)
    total_tests = sum(result.tests_total for result in results if result.sprint_id != INTEGRATION_SPRINT_ID)
    if results:
        # Halves round up.
        final_quality = math.floor(sum(result.quality_score for result in results) / len(results) + 0.5)
    else:
        final_quality = 0
    return BuildResult(
        success=all(result.success for result in results),
        sprint_results=results,
        total_tests=total_tests,
        total_duration_ms=max(0, int((clock() - started_at) * 1000)),
        final_quality_score=final_quality,
        output_path=output_path,
    )


__all__ = ["INTEGRATION_SPRINT_ID", "aggregate_results"]
