from __future__ import annotations

from coco.sprints.aggregate import aggregate_results
from coco.sprints.schema import SprintResult


def _result(sprint_id: str, *, success: bool = True, tests: int = 0, score: int = 90) -> SprintResult:
    return SprintResult(sprint_id=sprint_id, success=success, tests_total=tests, tests_passing=tests, quality_score=score)


def test_integration_tests_are_not_double_counted() -> None:
    results = [_result("S001", tests=10), _result("S002", tests=10), _result("integration", tests=20)]

    build = aggregate_results(results, started_at=0.0, output_path="/tmp/app", clock=lambda: 1.5)

    assert build.total_tests == 20
    assert build.success
    assert build.total_duration_ms == 1500
    assert build.output_path == "/tmp/app"
    assert [item.sprint_id for item in build.sprint_results] == ["S001", "S002", "integration"]


def test_any_failed_sprint_fails_the_build() -> None:
    results = [_result("S001"), _result("integration", success=False)]

    assert not aggregate_results(results, started_at=0.0, output_path="out").success


def test_final_quality_score_is_rounded_mean_including_integration() -> None:
    results = [_result("S001", score=90), _result("S002", score=85), _result("integration", score=88)]

    build = aggregate_results(results, started_at=0.0, output_path="out", clock=lambda: 0.0)

    assert build.final_quality_score == 88


def test_empty_results_succeed_with_zero_score() -> None:
    build = aggregate_results([], started_at=5.0, output_path="out", clock=lambda: 5.0)

    assert build.success
    assert build.final_quality_score == 0
    assert build.total_tests == 0
    assert build.total_duration_ms == 0


def test_final_quality_score_rounds_halves_up() -> None:
    results = [_result("S001", score=86), _result("integration", score=87)]

    assert aggregate_results(results, started_at=0.0, output_path="out").final_quality_score == 87
