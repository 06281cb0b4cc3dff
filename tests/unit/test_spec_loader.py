from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from coco.sprints.schema import SprintTaskRole
from coco.swarm.spec_loader import SpecLoadError, load_backlog_spec, load_swarm_spec


def _write(path: Path, body: str) -> Path:
    path.write_text(textwrap.dedent(body).lstrip(), encoding="utf-8")
    return path


def test_load_swarm_spec_accepts_camel_and_snake_case(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "swarm.yaml",
        """
        projectName: shop
        tech_stack:
          language: python
          framework: fastapi
        features:
          - name: Cart
            acceptanceCriteria: [add item]
          - id: checkout
            name: Checkout
            dependencies: [f-1]
            priority: high
        quality_config:
          minScore: 90
        """,
    )

    spec = load_swarm_spec(path)

    assert spec.project_name == "shop"
    assert spec.tech_stack.framework == "fastapi"
    assert [feature.id for feature in spec.features] == ["f-1", "checkout"]
    assert spec.features[0].acceptance_criteria == ["add item"]
    assert spec.features[1].priority == "high"
    assert spec.quality_config.min_score == 90
    assert spec.quality_config.max_iterations == 10
    assert spec.quality_config.min_coverage == 80


def test_load_swarm_spec_accepts_plain_language_tech_stack(tmp_path: Path) -> None:
    path = _write(tmp_path / "swarm.yaml", "techStack: go\nfeatures:\n  - name: One\n")

    assert load_swarm_spec(path).tech_stack.language == "go"


def test_load_swarm_spec_requires_features(tmp_path: Path) -> None:
    path = _write(tmp_path / "swarm.yaml", "projectName: empty\nfeatures: []\n")

    with pytest.raises(SpecLoadError, match="no features"):
        load_swarm_spec(path)


@pytest.mark.parametrize(
    "body",
    [
        "- just\n- a list\n",
        "features: [[\n",
        "features:\n  - name: A\n    priority: urgent\n",
    ],
)
def test_load_swarm_spec_rejects_malformed_documents(tmp_path: Path, body: str) -> None:
    with pytest.raises(SpecLoadError):
        load_swarm_spec(_write(tmp_path / "swarm.yaml", body))


def test_load_swarm_spec_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SpecLoadError, match="not found"):
        load_swarm_spec(tmp_path / "nope.yaml")


def test_load_backlog_spec_resolves_output_and_coerces_roles(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "backlog.yaml",
        """
        projectName: shop
        outputPath: build/shop
        techStack: [Python, FastAPI]
        sprints:
          - id: S001
            name: Basics
            tasks:
              - id: T001
                title: Scaffold
                role: architect
              - id: T002
                title: Tests
                role: Tester
                dependencies: [T001]
        """,
    )

    spec = load_backlog_spec(path)

    assert spec.output_path == str((tmp_path / "build" / "shop").resolve())
    assert spec.quality_threshold == 85
    assert spec.max_iterations_per_sprint == 3
    assert spec.tech_stack == ["Python", "FastAPI"]
    roles = [task.role for task in spec.sprints[0].tasks]
    assert roles == [SprintTaskRole.CODER, SprintTaskRole.TESTER]


def test_load_backlog_spec_requires_output_path(tmp_path: Path) -> None:
    path = _write(tmp_path / "backlog.yaml", "projectName: shop\nsprints: []\n")

    with pytest.raises(SpecLoadError, match="outputPath"):
        load_backlog_spec(path)


def test_load_backlog_spec_validates_threshold(tmp_path: Path) -> None:
    path = _write(tmp_path / "backlog.yaml", "outputPath: out\nqualityThreshold: 140\n")

    with pytest.raises(SpecLoadError, match="Invalid backlog"):
        load_backlog_spec(path)
