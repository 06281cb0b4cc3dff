from __future__ import annotations

from types import SimpleNamespace

from coco.utils import resource_monitor
from coco.utils.resource_monitor import ResourceSnapshot, get_max_safe_agents, max_safe_agents_for


def _snapshot(*, cpus: int, memory_pct: float = 40.0, load: float = 0.0) -> ResourceSnapshot:
    return ResourceSnapshot(
        rss_mb=100.0,
        free_system_mb=4096.0,
        total_system_mb=8192.0,
        system_memory_pct=memory_pct,
        load_avg_1m=load,
        cpu_count=cpus,
    )


def test_budget_is_three_quarters_of_cpus() -> None:
    assert max_safe_agents_for(_snapshot(cpus=8)) == 6
    assert max_safe_agents_for(_snapshot(cpus=1)) == 1


def test_memory_pressure_halves_budget() -> None:
    assert max_safe_agents_for(_snapshot(cpus=8, memory_pct=90, load=100)) == 3


def test_cpu_load_reduces_budget_by_a_quarter() -> None:
    assert max_safe_agents_for(_snapshot(cpus=8, load=7.0)) == 4
    assert max_safe_agents_for(_snapshot(cpus=8, load=7.0), cpu_threshold_multiplier=1.0) == 6


def test_budget_never_drops_below_one() -> None:
    assert max_safe_agents_for(_snapshot(cpus=2, memory_pct=99)) == 1


def test_get_max_safe_agents_reads_psutil(monkeypatch) -> None:
    fake_psutil = SimpleNamespace(
        virtual_memory=lambda: SimpleNamespace(available=2 * 1024**3, total=8 * 1024**3, percent=50.0),
        getloadavg=lambda: (0.5, 0.5, 0.5),
        cpu_count=lambda logical=True: 4,
        Process=lambda: SimpleNamespace(memory_info=lambda: SimpleNamespace(rss=200 * 1024**2)),
    )
    monkeypatch.setattr(resource_monitor, "psutil", fake_psutil)

    snapshot = resource_monitor.get_resource_snapshot()

    assert snapshot.cpu_count == 4
    assert snapshot.rss_mb == 200
    assert get_max_safe_agents() == 3
