from __future__ import annotations

import os
import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class TinyProject:
    """Fixture payload representing a configured coco project on disk."""

    root: Path
    config_path: Path
    spec_path: Path
    backlog_path: Path

    def run_cli(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Invoke ``python -m coco.cli`` with the provided arguments."""

        env = os.environ.copy()
        pythonpath = str(SRC)
        if env.get("PYTHONPATH"):
            pythonpath = os.pathsep.join([pythonpath, env["PYTHONPATH"]])
        env["PYTHONPATH"] = pythonpath

        command = [sys.executable, "-m", "coco.cli", *args]
        return subprocess.run(  # noqa: S603 - command constructed from known values
            command,
            cwd=self.root,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )


@pytest.fixture()
def tiny_project(tmp_path: Path) -> TinyProject:
    """Create a project with an offline-executor config, a swarm spec and a backlog."""

    root = tmp_path / "tiny-project"
    root.mkdir()

    (root / "config.yaml").write_text(
        textwrap.dedent(
            """
            project:
              name: tiny-project
              repo_root: .
            swarm:
              max_parallel_agents: 2
            sprints:
              quality_threshold: 85
              max_iterations_per_sprint: 2
            executor:
              kind: offline
              offline_quality_score: 92
            logging:
              level: WARNING
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (root / "swarm.yaml").write_text(
        textwrap.dedent(
            """
            projectName: tiny-project
            description: Fixture spec for board commands.
            techStack: python
            features:
              - id: auth
                name: Authentication
                acceptanceCriteria:
                  - users can log in
              - id: profile
                name: Profile page
                dependencies: [auth]
            qualityConfig:
              minScore: 80
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (root / "backlog.yaml").write_text(
        textwrap.dedent(
            """
            projectName: tiny-project
            outputPath: app
            qualityThreshold: 85
            maxIterationsPerSprint: 2
            sprints:
              - id: S001
                name: Foundations
                goal: Scaffold the app
                tasks:
                  - id: T001
                    title: Create package layout
                    role: coder
                    acceptanceCriteria: [package imports]
            """
        ).lstrip(),
        encoding="utf-8",
    )

    return TinyProject(
        root=root,
        config_path=root / "config.yaml",
        spec_path=root / "swarm.yaml",
        backlog_path=root / "backlog.yaml",
    )
