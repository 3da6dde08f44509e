"""HealthChecker: point-in-time health of the test infrastructure."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional

from ..config import InfrastructureConfig
from ..logging_config import get_logger
from .models import (
    ConflictType,
    DependencyConflict,
    HealthCheck,
    HealthIssue,
    HealthStatus,
    PerformanceSummary,
)

logger = get_logger(__name__)

MAX_HEALTH_HISTORY = 1000

_PRECEDENCE = (HealthStatus.CRITICAL, HealthStatus.WARNING, HealthStatus.HEALTHY)


def aggregate_status(components: Mapping[str, HealthStatus]) -> HealthStatus:
    """Critical if any component is critical, else warning if any warns."""
    statuses = set(components.values())
    for status in _PRECEDENCE[:2]:
        if status in statuses:
            return status
    return HealthStatus.HEALTHY


def _band(value: float, limit: float) -> HealthStatus:
    if value > limit:
        return HealthStatus.CRITICAL
    if value > limit / 2:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


class HealthChecker:
    """Computes and keeps health snapshots."""

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._history: deque[HealthCheck] = deque(maxlen=MAX_HEALTH_HISTORY)

    def check(
        self,
        summary: PerformanceSummary,
        conflicts: Iterable[DependencyConflict] = (),
    ) -> HealthCheck:
        """Build a HealthCheck from a performance summary and dependency conflicts.

        A project with no recorded tests is a warning: nothing is known about it.
        """
        conflicts = list(conflicts)
        components: dict[str, HealthStatus] = {}
        issues: list[HealthIssue] = []

        if summary.total_tests == 0:
            components["test_execution"] = HealthStatus.WARNING
            issues.append(
                HealthIssue("test_execution", "no_tests", HealthStatus.WARNING, "No test results recorded yet")
            )
        else:
            status = _band(summary.failure_rate, self.config.max_failure_rate)
            components["test_execution"] = status
            if status != HealthStatus.HEALTHY:
                issues.append(
                    HealthIssue(
                        "test_execution",
                        "failure_rate",
                        status,
                        f"Failure rate {summary.failure_rate:.1f}% "
                        f"(limit {self.config.max_failure_rate:.1f}%), {summary.failing_tests} failing",
                        auto_fixable=self.config.auto_fix_failing_tests,
                    )
                )

        average = summary.average_duration.total_seconds()
        limit = self.config.max_test_duration.total_seconds()
        status = _band(average, limit)
        components["performance"] = status
        if status != HealthStatus.HEALTHY:
            issues.append(
                HealthIssue(
                    "performance",
                    "slow_tests",
                    status,
                    f"Average test duration {average:.2f}s (limit {limit:.0f}s)",
                    auto_fixable=self.config.auto_optimize_slow_tests,
                )
            )

        security = [c for c in conflicts if c.conflict_type == ConflictType.SECURITY]
        if security:
            components["dependencies"] = HealthStatus.CRITICAL
        elif conflicts:
            components["dependencies"] = HealthStatus.WARNING
        else:
            components["dependencies"] = HealthStatus.HEALTHY
        for conflict in conflicts:
            issues.append(
                HealthIssue(
                    "dependencies",
                    f"{conflict.conflict_type.value}_conflict",
                    HealthStatus.CRITICAL if conflict in security else HealthStatus.WARNING,
                    conflict.description,
                    auto_fixable=conflict.auto_resolvable,
                )
            )

        health = HealthCheck(
            timestamp=self._clock(),
            overall_health=aggregate_status(components),
            components=components,
            issues=tuple(issues),
            metrics={
                "total_tests": float(summary.total_tests),
                "failure_rate": summary.failure_rate,
                "average_duration_seconds": average,
                "flaky_tests": float(summary.flaky_tests),
                "dependency_conflicts": float(len(conflicts)),
            },
        )
        self.add_health_check(health)
        return health

    def add_health_check(self, health: HealthCheck) -> None:
        with self._lock:
            self._history.append(health)
        if health.overall_health != HealthStatus.HEALTHY:
            logger.warning(f"Health {health.overall_health.value}: {len(health.issues)} issues")
        else:
            logger.debug("Health check passed")

    def latest(self) -> Optional[HealthCheck]:
        with self._lock:
            return self._history[-1] if self._history else None

    def history(self) -> list[HealthCheck]:
        with self._lock:
            return list(self._history)
