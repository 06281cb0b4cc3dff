"""System headroom probes used to size parallel agent dispatch."""

from __future__ import annotations

import math
from dataclasses import dataclass

import psutil

_MB = 1024 * 1024


@dataclass(slots=True)
class ResourceSnapshot:
    """Point-in-time view of process and system resource usage."""

    rss_mb: float
    free_system_mb: float
    total_system_mb: float
    system_memory_pct: float
    load_avg_1m: float
    cpu_count: int


def get_resource_snapshot() -> ResourceSnapshot:
    memory = psutil.virtual_memory()
    try:
        load_avg_1m = psutil.getloadavg()[0]
    except (AttributeError, OSError):
        load_avg_1m = 0.0
    return ResourceSnapshot(
        rss_mb=psutil.Process().memory_info().rss / _MB,
        free_system_mb=memory.available / _MB,
        total_system_mb=memory.total / _MB,
        system_memory_pct=float(memory.percent),
        load_avg_1m=float(load_avg_1m),
        cpu_count=psutil.cpu_count(logical=True) or 1,
    )


def is_memory_pressured(threshold_pct: float = 85) -> bool:
    return get_resource_snapshot().system_memory_pct > threshold_pct


def is_cpu_loaded(threshold_multiplier: float = 0.8) -> bool:
    snapshot = get_resource_snapshot()
    return snapshot.load_avg_1m > snapshot.cpu_count * threshold_multiplier


def max_safe_agents_for(
    snapshot: ResourceSnapshot,
    *,
    mem_threshold_pct: float = 85,
    cpu_threshold_multiplier: float = 0.8,
) -> int:
    """Derive the parallel agent budget from a snapshot.

    Starts at three quarters of the CPU count, halves under memory pressure,
    otherwise drops by a quarter under CPU load, and never goes below one.
    """

    budget = max(1, math.floor(snapshot.cpu_count * 0.75))
    if snapshot.system_memory_pct > mem_threshold_pct:
        budget = max(1, math.floor(budget / 2))
    elif snapshot.load_avg_1m > snapshot.cpu_count * cpu_threshold_multiplier:
        budget = max(1, math.floor(budget * 0.75))
    return budget


def get_max_safe_agents(mem_threshold_pct: float = 85, cpu_threshold_multiplier: float = 0.8) -> int:
    return max_safe_agents_for(
        get_resource_snapshot(),
        mem_threshold_pct=mem_threshold_pct,
        cpu_threshold_multiplier=cpu_threshold_multiplier,
    )


__all__ = [
    "ResourceSnapshot",
    "get_max_safe_agents",
    "get_resource_snapshot",
    "is_cpu_loaded",
    "is_memory_pressured",
    "max_safe_agents_for",
]
