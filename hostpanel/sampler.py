"""Per-refresh resource metrics, read from /proc and df.

Each metric is read on its own and falls back to a sentinel if its source
is unreadable, so one broken counter never blanks the whole snapshot.
"""

from __future__ import annotations

import os
import time

import psutil

from hostpanel.executor import GuardedExecutor
from hostpanel.models import MetricSnapshot

PROC_STAT = "/proc/stat"
PROC_MEMINFO = "/proc/meminfo"
CPU_SAMPLE_INTERVAL = 0.2

# user, nice, system, idle, iowait, irq, softirq, steal
_CPU_FIELDS = 8


def clamp_percent(value: float) -> int:
    return int(max(0, min(100, value)))


def percent_of(used: int, total: int) -> int:
    """Integer percentage of used/total, 0 for an empty total."""
    if total <= 0:
        return 0
    return clamp_percent(used * 100 // total)


# ── CPU ────────────────────────────────────────────────────────────────────


def _read_cpu_times(path: str = PROC_STAT) -> list[int] | None:
    """Read aggregate CPU jiffies from /proc/stat: [user,nice,system,idle,iowait,...]."""
    try:
        with open(path) as f:
            parts = f.readline().split()
        return [int(x) for x in parts[1 : 1 + _CPU_FIELDS]]  # skip "cpu" label
    except (OSError, ValueError):
        return None


def calc_cpu_percent(prev: list[int], curr: list[int]) -> int:
    """Compute overall CPU% from two /proc/stat samples."""
    deltas = [c - p for c, p in zip(curr, prev)]
    total = sum(deltas)
    if total == 0:
        return 0
    # idle + iowait both count as not busy
    idle = deltas[3] + (deltas[4] if len(deltas) > 4 else 0)
    return clamp_percent((total - idle) * 100 // total)


def sample_cpu_percent(interval: float = CPU_SAMPLE_INTERVAL, path: str = PROC_STAT) -> int:
    first = _read_cpu_times(path)
    time.sleep(interval)
    second = _read_cpu_times(path)
    if first is None or second is None:
        return 0
    return calc_cpu_percent(first, second)


# ── Memory / swap ──────────────────────────────────────────────────────────


def _read_meminfo(path: str = PROC_MEMINFO) -> dict[str, int]:
    """Parse /proc/meminfo into {field: kB}. Unparsable lines are skipped."""
    values: dict[str, int] = {}
    try:
        with open(path) as f:
            for line in f:
                key, sep, rest = line.partition(":")
                if not sep:
                    continue
                digits = "".join(c for c in rest if c.isdigit())
                if digits:
                    values[key.strip()] = int(digits)
    except OSError:
        pass
    return values


def read_memory(path: str = PROC_MEMINFO) -> tuple[int, int, int, int, int, int]:
    """Return (mem_total, mem_used, mem_pct, swap_total, swap_used, swap_pct) in MB."""
    info = _read_meminfo(path)

    mem_total = info.get("MemTotal", 0) // 1024
    if "MemAvailable" in info:
        available_kb = info["MemAvailable"]
    else:
        # Kernels before 3.14 have no MemAvailable
        available_kb = info.get("MemFree", 0) + info.get("Buffers", 0) + info.get("Cached", 0)
    mem_used = max(0, mem_total - available_kb // 1024)

    swap_total = info.get("SwapTotal", 0) // 1024
    swap_used = max(0, swap_total - info.get("SwapFree", 0) // 1024)

    return (
        mem_total,
        mem_used,
        percent_of(mem_used, mem_total),
        swap_total,
        swap_used,
        percent_of(swap_used, swap_total),
    )


# ── Disk ───────────────────────────────────────────────────────────────────


def read_disk(executor: GuardedExecutor, mount: str = "/") -> tuple[str, str, int]:
    """Return (size, used, percent) for *mount* as printed by ``df -hP``."""
    out, ok = executor.run("df", "-hP", mount)
    lines = out.splitlines() if ok else []
    if len(lines) < 2:
        return "0", "0", 0
    fields = lines[1].split()
    if len(fields) < 5:
        return "0", "0", 0
    digits = "".join(c for c in fields[4] if c.isdigit())
    pct = clamp_percent(int(digits)) if digits else 0
    return fields[1], fields[2], pct


# ── Misc ───────────────────────────────────────────────────────────────────


def _format_uptime(seconds: float) -> str:
    minutes = int(seconds // 60)
    days, rem = divmod(minutes, 1440)
    hrs, mins = divmod(rem, 60)
    if days:
        return f"{days}d {hrs}h"
    if hrs:
        return f"{hrs}h {mins}m"
    return f"{mins}m"


def _read_uptime() -> str:
    try:
        return _format_uptime(time.time() - psutil.boot_time())
    except (OSError, psutil.Error):
        return "Unknown"


def _read_process_count() -> int | None:
    try:
        return len(psutil.pids())
    except (OSError, psutil.Error):
        return None


def _read_load_average() -> tuple[float, float, float] | None:
    try:
        load1, load5, load15 = os.getloadavg()
    except OSError:
        return None
    return load1, load5, load15


def sample_metrics(
    executor: GuardedExecutor,
    cpu_interval: float = CPU_SAMPLE_INTERVAL,
) -> MetricSnapshot:
    """Gather a fresh snapshot. Blocks for *cpu_interval* while sampling CPU."""
    mem_total, mem_used, mem_pct, swap_total, swap_used, swap_pct = read_memory()
    disk_total, disk_used, disk_pct = read_disk(executor)

    return MetricSnapshot(
        cpu_percent=sample_cpu_percent(cpu_interval),
        load_average=_read_load_average(),
        process_count=_read_process_count(),
        uptime=_read_uptime(),
        mem_total_mb=mem_total,
        mem_used_mb=mem_used,
        mem_percent=mem_pct,
        swap_total_mb=swap_total,
        swap_used_mb=swap_used,
        swap_percent=swap_pct,
        disk_total=disk_total,
        disk_used=disk_used,
        disk_percent=disk_pct,
    )
