"""In-process counters, gauges and latency samples for the radar pipeline."""

from __future__ import annotations

import math
import re
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from statistics import mean
from typing import Deque, Dict, Iterator, List, MutableMapping

_PROMETHEUS_UNSAFE = re.compile(r"[^a-zA-Z0-9_:]")
_QUANTILES = (("p50", 0.5), ("p90", 0.9), ("p99", 0.99))


def prometheus_name(name: str) -> str:
    """Map a dotted metric name such as ``feed.reconnects`` to ``feed_reconnects``."""

    sanitized = _PROMETHEUS_UNSAFE.sub("_", name) or "_"
    if sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


def _quantile(ordered: List[float], fraction: float) -> float:
    index = max(int(math.ceil(fraction * len(ordered))) - 1, 0)
    return ordered[min(index, len(ordered) - 1)]


class MetricsRegistry:
    """Thread-safe store shared by the feed, enrichment workers and the API.

    Histograms keep only the most recent ``max_samples`` observations per name.
    """

    def __init__(self, *, max_samples: int = 1024) -> None:
        self._lock = threading.RLock()
        self._max_samples = max_samples
        self._counters: MutableMapping[str, float] = defaultdict(float)
        self._gauges: Dict[str, float] = {}
        self._samples: Dict[str, Deque[float]] = {}

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            window = self._samples.get(name)
            if window is None:
                window = self._samples[name] = deque(maxlen=self._max_samples)
            window.append(float(value))

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Observe the wall-clock seconds spent inside the block, even on error."""

        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - started)

    def summary(self, name: str) -> Dict[str, float]:
        with self._lock:
            ordered = sorted(self._samples.get(name, ()))
        if not ordered:
            return {}
        stats = {
            "count": float(len(ordered)),
            "avg": mean(ordered),
            "min": ordered[0],
            "max": ordered[-1],
        }
        for label, fraction in _QUANTILES:
            stats[label] = _quantile(ordered, fraction)
        return stats

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            names = list(self._samples)
        return {
            "counters": counters,
            "gauges": gauges,
            "histograms": {name: self.summary(name) for name in names},
        }

    def export_prometheus(self) -> str:
        snap = self.snapshot()
        lines: List[str] = []
        for kind, values in (("counter", snap["counters"]), ("gauge", snap["gauges"])):
            for name, value in sorted(values.items()):
                metric = prometheus_name(name)
                lines.extend((f"# TYPE {metric} {kind}", f"{metric} {value}"))
        for name, stats in sorted(snap["histograms"].items()):
            if not stats:
                continue
            metric = prometheus_name(name)
            lines.append(f"# TYPE {metric} summary")
            for label, _ in _QUANTILES:
                lines.append(f'{metric}{{quantile="{label}"}} {stats[label]}')
            lines.append(f"{metric}_count {stats['count']}")
            lines.append(f"{metric}_sum {stats['avg'] * stats['count']}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._samples.clear()


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry", "prometheus_name"]
