"""Metrics collection for job runs."""

import threading
import time
from typing import Dict, Any
from collections import defaultdict


class MetricsCollector:
    """
    Collects step timings and run counters for a JobManager.
    Implements IMetricsCollector protocol.

    Timers and counters may be touched from the job worker thread while an
    observer asks for a summary, so all access goes through one lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time = time.monotonic()
        self._timers: Dict[str, float] = {}
        self._metrics: Dict[str, list] = defaultdict(list)
        self._counters: Dict[str, int] = defaultdict(int)

    def start_timer(self, name: str) -> None:
        """Start a named timer."""
        with self._lock:
            self._timers[name] = time.monotonic()

    def stop_timer(self, name: str) -> float:
        """
        Stop a named timer and return elapsed time.

        Args:
            name: Timer name

        Returns:
            Elapsed time in seconds

        Raises:
            KeyError: If timer was not started
        """
        with self._lock:
            if name not in self._timers:
                raise KeyError(f"Timer '{name}' was not started")
            elapsed = time.monotonic() - self._timers.pop(name)
            self._metrics[f"{name}_duration"].append(elapsed)
        return elapsed

    def record_metric(self, name: str, value: Any) -> None:
        """Record a metric value."""
        with self._lock:
            self._metrics[name].append(value)

    def increment_counter(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name] += amount

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        with self._lock:
            return self._counters.get(name, 0)

    def get_summary(self) -> Dict[str, Any]:
        """
        Get summary of all metrics.

        Returns:
            Dictionary with ``total_elapsed``, ``counters`` and per-metric
            ``count``/``sum``/``avg``/``min``/``max``/``last`` for numeric series
        """
        with self._lock:
            counters = dict(self._counters)
            series = {name: list(values) for name, values in self._metrics.items()}

        summary = {
            "total_elapsed": self.elapsed_time(),
            "counters": counters,
            "metrics": {}
        }

        for name, values in series.items():
            if not values:
                continue
            if all(isinstance(v, (int, float)) for v in values):
                summary["metrics"][name] = {
                    "count": len(values),
                    "sum": sum(values),
                    "avg": sum(values) / len(values),
                    "min": min(values),
                    "max": max(values),
                    "last": values[-1],
                }
            else:
                summary["metrics"][name] = {
                    "count": len(values),
                    "values": values
                }

        return summary

    def elapsed_time(self) -> float:
        """Get total elapsed time since initialization."""
        return time.monotonic() - self._start_time

    def log_summary(self, logger) -> None:
        """Write a compact summary of counters and step timings to *logger*."""
        summary = self.get_summary()
        if summary['counters']:
            counters = ', '.join(f"{k}={v}" for k, v in sorted(summary['counters'].items()))
            logger.info(f"Counters: {counters}")
        for name, data in sorted(summary['metrics'].items()):
            if 'avg' not in data:
                continue
            if name.endswith('_duration'):
                logger.info(f"{name}: count={data['count']} total={data['sum']:.3f}s max={data['max']:.3f}s")
            else:
                logger.info(f"{name}: count={data['count']} last={data['last']} max={data['max']}")
