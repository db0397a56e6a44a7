"""Sniper pipeline metrics: event counters, validation outcomes, stage latency.

Counters accumulate for the process lifetime and are read by the stats
reporter once a minute.
"""

import time
from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class StageLatency:
    """Latency for one pipeline stage (fast_validation, slow_validation, ...)."""

    runs: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        if self.runs == 0:
            return 0.0
        return self.total_ms / self.runs


class PipelineMetrics:
    """Metrics accumulator, one instance per running sniper."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: Counter[str] = Counter()
        self._stages: dict[str, StageLatency] = {}
        self._alerts_by_trigger: Counter[str] = Counter()
        self._start_time = time.monotonic()

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def count(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def record_latency(self, stage: str, latency_ms: float) -> None:
        with self._lock:
            sl = self._stages.setdefault(stage, StageLatency())
            sl.runs += 1
            sl.total_ms += latency_ms
            if latency_ms > sl.max_ms:
                sl.max_ms = latency_ms

    def record_alert(self, trigger: str) -> None:
        with self._lock:
            self._counters["alerts"] += 1
            self._alerts_by_trigger[trigger] += 1

    def get_summary(self) -> dict:
        """Snapshot of all metrics."""
        with self._lock:
            uptime = time.monotonic() - self._start_time
            return {
                "uptime_sec": round(uptime),
                "counters": dict(self._counters),
                "alerts_by_trigger": dict(self._alerts_by_trigger),
                "stages": {
                    name: {
                        "runs": sl.runs,
                        "avg_latency_ms": round(sl.avg_ms),
                        "max_latency_ms": round(sl.max_ms),
                    }
                    for name, sl in self._stages.items()
                },
            }

    def format_stats_line(self) -> str:
        with self._lock:
            c = self._counters
            fast = self._stages.get("fast_validation")
            return (
                f"logs={c['logs_received']} dup={c['logs_duplicate']} "
                f"handler_err={c['handler_errors']} "
                f"fast={c['fast_passed']}/{c['fast_passed'] + c['fast_failed']} "
                f"slow={c['slow_passed']}/{c['slow_passed'] + c['slow_failed']} "
                f"alerts={c['alerts']} expired={c['watchlist_expired']} "
                f"resubs={c['resubscribes']} "
                f"fast_lat={fast.avg_ms if fast else 0:.0f}ms"
            )
