"""CLI commands for coco task boards and sprint builds."""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer

from .agents import AgentExecutor, Coordinator, build_executor
from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    copy_config_template,
    load_config,
    logging_level,
    max_parallel_agents,
    pytest_args,
    resolve_repo_root,
    resource_thresholds,
    write_config,
)
from .sprints import BuildResult, SprintRunner
from .swarm import (
    BoardError,
    BoardRunner,
    BoardStore,
    BoardStoreError,
    board_outcome,
    build_board,
    get_board_stats,
    get_next_task,
)
from .swarm.spec_loader import SpecLoadError, load_backlog_spec, load_swarm_spec
from .tools import PytestRunner
from .utils.resource_monitor import get_max_safe_agents

APP_HELP = "coco multi-task orchestration CLI."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help=APP_HELP)
board_app = typer.Typer(help="Create, inspect and work the feature task board.")
app.add_typer(board_app, name="board")


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override logging.level from the config file (DEBUG, INFO, WARNING, ...).",
    ),
) -> None:
    ctx.obj = {"log_level": log_level}


def _load_settings(ctx: typer.Context, config: str) -> tuple[Path, Dict[str, Any]]:
    """Load the config file, configure logging, and convert errors to exit codes."""
    config_path = Path(config)
    try:
        data = load_config(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    override = (ctx.obj or {}).get("log_level")
    _configure_logging(override or logging_level(data))
    return config_path, data


def _board_store(config_path: Path, config_data: Dict[str, Any]) -> BoardStore:
    return BoardStore(resolve_repo_root(config_data, config_path))


def _make_executor(config_data: Dict[str, Any], cwd: Path) -> AgentExecutor:
    try:
        return build_executor(config_data, cwd=cwd)
    except ValueError as error:
        typer.echo(f"Invalid executor configuration: {error}")
        raise typer.Exit(code=1) from error


def _agent_budget(config_data: Dict[str, Any]) -> Callable[[], int]:
    pinned = max_parallel_agents(config_data)
    if pinned is not None:
        return lambda: pinned
    mem_threshold, cpu_multiplier = resource_thresholds(config_data)
    return functools.partial(
        get_max_safe_agents,
        mem_threshold_pct=mem_threshold,
        cpu_threshold_multiplier=cpu_multiplier,
    )


def _echo_build_result(result: BuildResult) -> None:
    status = "PASSED" if result.success else "FAILED"
    typer.echo(f"Build {status}: {result.output_path}")
    for sprint in result.sprint_results:
        marker = "ok" if sprint.success else "FAIL"
        typer.echo(
            f"- {sprint.sprint_id} [{marker}] score {sprint.quality_score}, "
            f"{sprint.tests_passing}/{sprint.tests_total} tests, {sprint.iterations} iteration(s)"
        )
        for error in sprint.errors:
            typer.echo(f"    {error}")
    typer.echo(
        f"Total tests: {result.total_tests} | Quality: {result.final_quality_score} | "
        f"Duration: {result.total_duration_ms} ms"
    )


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Project name recorded in the config."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    config_data = copy_config_template()
    config_data["project"]["name"] = name or config_path.resolve().parent.name
    write_config(config_path, config_data)
    typer.echo(f"Wrote configuration to {config_path}")


@board_app.command("create")
def board_create(
    ctx: typer.Context,
    spec: Path = typer.Option(..., "--spec", "-s", help="YAML swarm spec describing the features."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    force: bool = typer.Option(False, "--force", help="Replace an existing board."),
) -> None:
    """Build a task board from a spec and persist it."""
    config_path, config_data = _load_settings(ctx, config)
    store = _board_store(config_path, config_data)
    if store.exists() and not force:
        typer.echo(f"Board already exists at {store.board_path}; use --force to replace it.")
        raise typer.Exit(code=1)
    try:
        board = build_board(load_swarm_spec(spec))
        path = store.save(board)
    except (SpecLoadError, BoardError, BoardStoreError) as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    typer.echo(f"Created board for {board.project_name} with {len(board.tasks)} task(s) at {path}")


@board_app.command("status")
def board_status(
    ctx: typer.Context,
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
) -> None:
    """Show task counts and per-task status."""
    config_path, config_data = _load_settings(ctx, config)
    try:
        board = _board_store(config_path, config_data).load()
    except BoardStoreError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    summary = get_board_stats(board)
    typer.echo(f"Board: {board.project_name} [{board_outcome(board)}]")
    typer.echo(
        f"Tasks: total {summary.total} | done {summary.done} | failed {summary.failed} | "
        f"in progress {summary.in_progress} | blocked {summary.blocked} | pending {summary.pending_count}"
    )
    for task in board.tasks:
        line = f"- {task.id} [{task.status.value}] {task.title}"
        if task.failure_reason:
            line = f"{line} ({task.failure_reason})"
        typer.echo(line)


@board_app.command("next")
def board_next(
    ctx: typer.Context,
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
) -> None:
    """Print the next ready task, if any."""
    config_path, config_data = _load_settings(ctx, config)
    try:
        board = _board_store(config_path, config_data).load()
    except BoardStoreError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    task = get_next_task(board)
    if task is None:
        typer.echo(f"No ready task (board is {board_outcome(board)}).")
        return
    typer.echo(f"{task.id}: {task.title}")


@board_app.command("run")
def board_run(
    ctx: typer.Context,
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    max_tasks: Optional[int] = typer.Option(None, "--max-tasks", min=1, help="Stop after this many tasks."),
) -> None:
    """Work ready tasks one at a time until none remain."""
    config_path, config_data = _load_settings(ctx, config)
    store = _board_store(config_path, config_data)
    executor = _make_executor(config_data, store.project_root)
    runner = BoardRunner(store, executor, on_progress=typer.echo)
    try:
        runner.run(max_tasks=max_tasks)
    except (BoardError, BoardStoreError) as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    if runner.outcome in ("stalled", "failed"):
        raise typer.Exit(code=1)


@app.command()
def build(
    ctx: typer.Context,
    backlog: Path = typer.Option(..., "--backlog", "-b", help="YAML backlog describing the sprints."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
) -> None:
    """Run every sprint in a backlog followed by the integration sprint."""
    _config_path, config_data = _load_settings(ctx, config)
    try:
        spec = load_backlog_spec(backlog)
        budget = _agent_budget(config_data)
        test_runner = PytestRunner(pytest_args(config_data))
    except (SpecLoadError, ConfigError) as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error

    output_path = Path(spec.output_path)
    output_path.mkdir(parents=True, exist_ok=True)
    coordinator = Coordinator(_make_executor(config_data, output_path))
    runner = SprintRunner(coordinator, test_runner, max_agents=budget, on_progress=typer.echo)
    result = runner.run_sprints(spec)
    _echo_build_result(result)
    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
