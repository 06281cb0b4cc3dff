"""YAML configuration for coco projects."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml

DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "name": "",
        "repo_root": ".",
    },
    "swarm": {
        "max_parallel_agents": None,
        "memory_threshold_pct": 85,
        "cpu_threshold_multiplier": 0.8,
    },
    "sprints": {
        "quality_threshold": 85,
        "max_iterations_per_sprint": 3,
    },
    "tests": {
        "args": ["-q", "-rfE"],
    },
    "executor": {
        "kind": "offline",
        "command": "",
        "timeout_seconds": 900,
        "offline_quality_score": 90,
    },
    "logging": {
        "level": "INFO",
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used."""


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on ``base`` without mutating either."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration merged over the defaults.

    A missing file yields the defaults unchanged.
    """

    if not config_path.exists():
        return copy_config_template()

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {config_path}: {error}") from error
    except OSError as error:
        raise ConfigError(f"Failed to read config {config_path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    return merge_config(DEFAULT_CONFIG_TEMPLATE, data)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping.")
    return value


def resolve_repo_root(config: Mapping[str, Any], config_path: Path) -> Path:
    """Resolve the repository root relative to the config file."""
    repo_root = Path(str(_section(config, "project").get("repo_root") or "."))
    if not repo_root.is_absolute():
        repo_root = (config_path.parent / repo_root).resolve()
    return repo_root


def max_parallel_agents(config: Mapping[str, Any]) -> Optional[int]:
    """Return the pinned agent budget, or ``None`` to probe system resources."""
    value = _section(config, "swarm").get("max_parallel_agents")
    if value is None:
        return None
    try:
        pinned = int(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f"swarm.max_parallel_agents must be an integer, got {value!r}") from error
    if pinned < 1:
        raise ConfigError("swarm.max_parallel_agents must be at least 1")
    return pinned


def resource_thresholds(config: Mapping[str, Any]) -> tuple[float, float]:
    section = _section(config, "swarm")
    return (
        float(section.get("memory_threshold_pct", 85)),
        float(section.get("cpu_threshold_multiplier", 0.8)),
    )


def pytest_args(config: Mapping[str, Any]) -> Sequence[str]:
    args = _section(config, "tests").get("args") or []
    if isinstance(args, str):
        raise ConfigError("tests.args must be a list of strings")
    return [str(item) for item in args]


def logging_level(config: Mapping[str, Any]) -> str:
    return str(_section(config, "logging").get("level") or "INFO").upper()


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "ConfigError",
    "copy_config_template",
    "load_config",
    "logging_level",
    "max_parallel_agents",
    "merge_config",
    "resolve_repo_root",
    "pytest_args",
    "resource_thresholds",
    "write_config",
]
