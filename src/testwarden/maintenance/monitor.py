"""PerformanceMonitor: per-test metric history, summaries and baselines.

Thread-safe: the maintenance loop writes via :meth:`add_metrics`, the health
loop and synchronous callers read summaries. Every read returns copies.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

import numpy as np

from ..config import InfrastructureConfig
from ..logging_config import get_logger
from .models import (
    PerformanceBaseline,
    PerformanceMetric,
    PerformanceSnapshot,
    PerformanceSummary,
)

logger = get_logger(__name__)

HISTORY_WINDOW = 100
MAX_SLOWEST_TESTS = 5


class PerformanceMonitor:
    """Sliding-window metric history per test name."""

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._metrics: dict[str, deque[PerformanceMetric]] = {}
        self._baselines: dict[str, PerformanceBaseline] = {}
        self._baselines_updated: Optional[datetime] = None

    def add_metrics(self, metrics: Iterable[PerformanceMetric]) -> None:
        """Append metrics, dropping the oldest beyond the window per test."""
        count = 0
        with self._lock:
            for metric in metrics:
                history = self._metrics.get(metric.test_name)
                if history is None:
                    history = self._metrics[metric.test_name] = deque(maxlen=HISTORY_WINDOW)
                history.append(metric)
                count += 1
        logger.debug(f"Recorded {count} metrics")

    def history(self, test_name: str) -> list[PerformanceMetric]:
        with self._lock:
            return list(self._metrics.get(test_name, ()))

    def latest_metrics(self) -> dict[str, PerformanceMetric]:
        with self._lock:
            return {name: h[-1] for name, h in self._metrics.items() if h}

    def test_names(self) -> list[str]:
        with self._lock:
            return sorted(name for name, h in self._metrics.items() if h)

    def generate_summary(self, recent_regressions: Iterable[str] = ()) -> PerformanceSummary:
        """Summarize the latest metric of every test.

        Slow tests are those whose latest duration exceeds
        ``slow_test_threshold``; the five slowest are listed, slowest first.
        """
        with self._lock:
            windows = {name: list(h) for name, h in self._metrics.items() if h}

        threshold = self.config.slow_test_threshold
        memory_limit = self.config.max_memory_usage_bytes
        passing = failing = flaky = 0
        total_duration = timedelta(0)
        slow: list[tuple[timedelta, str]] = []
        memory_heavy: list[str] = []

        for name, window in windows.items():
            latest = window[-1]
            if latest.passed:
                passing += 1
            else:
                failing += 1
            outcomes = {m.passed for m in window}
            if len(outcomes) > 1:
                flaky += 1
            total_duration += latest.duration
            if latest.duration > threshold:
                slow.append((latest.duration, name))
            if latest.memory_bytes > memory_limit:
                memory_heavy.append(name)

        slow.sort(key=lambda pair: (-pair[0], pair[1]))
        total = len(windows)
        return PerformanceSummary(
            total_tests=total,
            passing_tests=passing,
            failing_tests=failing,
            flaky_tests=flaky,
            average_duration=total_duration / total if total else timedelta(0),
            slowest_tests=tuple(name for _, name in slow[:MAX_SLOWEST_TESTS]),
            memory_intensive_tests=tuple(sorted(memory_heavy)),
            recent_regressions=tuple(recent_regressions),
        )

    def update_baselines(self, force: bool = False) -> dict[str, PerformanceBaseline]:
        """Recompute baselines when ``baseline_update_frequency`` has elapsed.

        Returns the current baselines either way.
        """
        now = self._clock()
        with self._lock:
            due = (
                force
                or self._baselines_updated is None
                or now - self._baselines_updated >= self.config.baseline_update_frequency
            )
            if due:
                self._baselines = {
                    name: _baseline(name, list(h), now) for name, h in self._metrics.items() if h
                }
                self._baselines_updated = now
                logger.debug(f"Recomputed {len(self._baselines)} baselines")
            return dict(self._baselines)

    def baselines(self) -> dict[str, PerformanceBaseline]:
        with self._lock:
            return dict(self._baselines)

    def snapshot(self, recent_regressions: Iterable[str] = ()) -> PerformanceSnapshot:
        """Latest metric and window success rate of every test."""
        with self._lock:
            windows = {name: list(h) for name, h in self._metrics.items() if h}
        return PerformanceSnapshot(
            timestamp=self._clock(),
            metrics={name: w[-1] for name, w in windows.items()},
            success_rates={name: _success_rate(w) for name, w in windows.items()},
            summary=self.generate_summary(recent_regressions),
        )


def _success_rate(window: list[PerformanceMetric]) -> float:
    return 100.0 * sum(1 for m in window if m.passed) / len(window)


def _baseline(name: str, window: list[PerformanceMetric], now: datetime) -> PerformanceBaseline:
    durations = np.array([m.duration.total_seconds() for m in window])
    memory = np.array([m.memory_bytes for m in window], dtype=float)
    return PerformanceBaseline(
        test_name=name,
        average_duration=timedelta(seconds=float(np.mean(durations))),
        max_duration=timedelta(seconds=float(np.max(durations))),
        average_memory=int(np.mean(memory)),
        max_memory=int(np.max(memory)),
        success_rate=_success_rate(window),
        sample_size=len(window),
        last_updated=now,
    )
