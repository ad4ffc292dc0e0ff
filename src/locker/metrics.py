# src/locker/metrics.py
from __future__ import annotations

"""Process-local ledger metrics.

Counters: deposits, withdrawals, locks_destroyed, fees_distributed.
Gauges: lock_count, pending_fees.

Recording is a no-op unless LOCKER_METRICS_ENABLED is truthy, so the ledger
can call these unconditionally.
"""

import os
import threading
import time
from typing import Dict, List

_TRUTHY = {"1", "true", "yes", "y", "on"}

_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    return (os.environ.get("LOCKER_METRICS_ENABLED") or "").strip().lower() in _TRUTHY


def inc_counter(name: str, value: int = 1) -> None:
    if not name or not metrics_enabled():
        return
    with _lock:
        _counters[name] = _counters.get(name, 0) + int(value)


def set_gauge(name: str, value: int) -> None:
    if not name or not metrics_enabled():
        return
    with _lock:
        _gauges[name] = int(value)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    now_ms = int(time.time() * 1000)
    with _lock:
        counters, gauges = dict(_counters), dict(_gauges)
    return {
        "ts_ms": now_ms,
        "started_ms": _started_ms,
        "uptime_ms": now_ms - _started_ms,
        "counters": counters,
        "gauges": gauges,
    }


def format_prometheus(prefix: str = "locker_") -> str:
    pre = (prefix or "").strip() or "locker_"
    snap = snapshot()
    lines: List[str] = [f"{pre}uptime_ms {snap['uptime_ms']}"]
    for kind in ("counters", "gauges"):
        for name, value in sorted(snap[kind].items()):
            lines.append(f"# TYPE {pre}{name} {kind[:-1]}")
            lines.append(f"{pre}{name} {value}")
    return "\n".join(lines) + "\n"
