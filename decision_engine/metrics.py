# decision_engine/metrics.py
"""
Prometheus-compatible metrics for the decision engine.

Exposes counters, gauges, and histograms for:
- Decisions by policy
- Reward updates by arm and Q-learning steps
- Persistence latency, failures and cold starts
"""

from __future__ import annotations

from bisect import bisect_left
from collections import defaultdict
from dataclasses import dataclass, field
from itertools import accumulate
from threading import Lock
from typing import Any

# Store writes are local SQLite or an in-process map; seconds
PERSIST_BUCKETS = (0.0005, 0.001, 0.005, 0.025, 0.1, 0.5, 2.5)


@dataclass
class Counter:
    """Monotonic count of events."""

    value: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def inc(self) -> None:
        with self._lock:
            self.value += 1

    def get(self) -> int:
        with self._lock:
            return self.value


@dataclass
class Gauge:
    """Last observed size."""

    value: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def set(self, value: int) -> None:
        with self._lock:
            self.value = value

    def get(self) -> int:
        with self._lock:
            return self.value


@dataclass
class Histogram:
    """
    Latency histogram.

    Each observation lands in exactly one slot; the exported buckets are
    cumulative, with a final +Inf bucket equal to the count.
    """

    buckets: tuple[float, ...] = PERSIST_BUCKETS
    _slots: list[int] = field(default_factory=list, repr=False)
    _sum: float = 0.0
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __post_init__(self) -> None:
        self._slots = [0] * (len(self.buckets) + 1)

    def observe(self, seconds: float) -> None:
        with self._lock:
            self._slots[bisect_left(self.buckets, seconds)] += 1
            self._sum += seconds

    def get(self) -> dict[str, Any]:
        with self._lock:
            cumulative = list(accumulate(self._slots))
            total = self._sum
        count = cumulative[-1]
        bounds = [str(b) for b in self.buckets] + ["+Inf"]
        result: dict[str, Any] = {
            "sum": total,
            "count": count,
            "buckets": dict(zip(bounds, cumulative)),
        }
        if count:
            result["mean"] = total / count
        return result


class EngineMetrics:
    """Registry for all engine metrics."""

    def __init__(self) -> None:
        self.decisions_total: dict[str, Counter] = defaultdict(Counter)
        self.updates_total: dict[str, Counter] = defaultdict(Counter)
        self.learn_total = Counter()
        self.q_states = Gauge()

        self.persist_total: dict[str, Counter] = defaultdict(Counter)
        self.persist_failures_total: dict[str, Counter] = defaultdict(Counter)
        self.persist_duration_seconds: dict[str, Histogram] = defaultdict(Histogram)
        self.cold_starts_total: dict[str, Counter] = defaultdict(Counter)

    def record_decision(self, policy: str) -> None:
        self.decisions_total[policy].inc()

    def record_update(self, arm_id: str) -> None:
        self.updates_total[arm_id].inc()

    def record_learn(self, table_size: int) -> None:
        self.learn_total.inc()
        self.q_states.set(table_size)

    def record_persist(self, key: str, duration_seconds: float, success: bool = True) -> None:
        """Record a store write with timing."""
        self.persist_duration_seconds[key].observe(duration_seconds)
        if success:
            self.persist_total[key].inc()
        else:
            self.persist_failures_total[key].inc()

    def record_cold_start(self, key: str) -> None:
        self.cold_starts_total[key].inc()

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        lines.append("# HELP decision_engine_decisions_total Decisions by policy")
        lines.append("# TYPE decision_engine_decisions_total counter")
        for policy, counter in self.decisions_total.items():
            lines.append(f'decision_engine_decisions_total{{policy="{policy}"}} {counter.get()}')

        lines.append("# HELP decision_engine_updates_total Reward updates by arm")
        lines.append("# TYPE decision_engine_updates_total counter")
        for arm_id, counter in self.updates_total.items():
            lines.append(f'decision_engine_updates_total{{arm="{arm_id}"}} {counter.get()}')

        lines.append("# HELP decision_engine_learn_total Q-learning updates")
        lines.append("# TYPE decision_engine_learn_total counter")
        lines.append(f"decision_engine_learn_total {self.learn_total.get()}")

        lines.append("# HELP decision_engine_q_states Rows in the Q-table")
        lines.append("# TYPE decision_engine_q_states gauge")
        lines.append(f"decision_engine_q_states {self.q_states.get()}")

        lines.append("# HELP decision_engine_persist_total Successful store writes")
        lines.append("# TYPE decision_engine_persist_total counter")
        for key, counter in self.persist_total.items():
            lines.append(f'decision_engine_persist_total{{key="{key}"}} {counter.get()}')

        lines.append("# HELP decision_engine_persist_failures_total Failed store writes")
        lines.append("# TYPE decision_engine_persist_failures_total counter")
        for key, counter in self.persist_failures_total.items():
            lines.append(f'decision_engine_persist_failures_total{{key="{key}"}} {counter.get()}')

        lines.append("# HELP decision_engine_persist_duration_seconds Store write duration")
        lines.append("# TYPE decision_engine_persist_duration_seconds histogram")
        for key, hist in self.persist_duration_seconds.items():
            data = hist.get()
            for bucket, count in data.get("buckets", {}).items():
                lines.append(
                    f'decision_engine_persist_duration_seconds_bucket{{key="{key}",le="{bucket}"}} {count}'
                )
            lines.append(f'decision_engine_persist_duration_seconds_sum{{key="{key}"}} {data["sum"]}')
            lines.append(
                f'decision_engine_persist_duration_seconds_count{{key="{key}"}} {data["count"]}'
            )

        lines.append("# HELP decision_engine_cold_starts_total Loads that fell back to empty state")
        lines.append("# TYPE decision_engine_cold_starts_total counter")
        for key, counter in self.cold_starts_total.items():
            lines.append(f'decision_engine_cold_starts_total{{key="{key}"}} {counter.get()}')

        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        """Export metrics as JSON-serializable dict."""
        return {
            "decisions": {k: v.get() for k, v in self.decisions_total.items()},
            "updates": {k: v.get() for k, v in self.updates_total.items()},
            "learn": {
                "total": self.learn_total.get(),
                "q_states": self.q_states.get(),
            },
            "persist": {
                "ok": {k: v.get() for k, v in self.persist_total.items()},
                "failed": {k: v.get() for k, v in self.persist_failures_total.items()},
                "durations": {k: v.get() for k, v in self.persist_duration_seconds.items()},
            },
            "cold_starts": {k: v.get() for k, v in self.cold_starts_total.items()},
        }


# Global metrics instance
METRICS = EngineMetrics()


def get_metrics() -> EngineMetrics:
    """Get global metrics registry."""
    return METRICS
