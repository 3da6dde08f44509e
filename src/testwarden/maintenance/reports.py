"""ReportGenerator: one InfrastructureReport per maintenance cycle.

Recommendations are plain text for humans and always surface failing tests,
unresolved regressions and failed maintenance actions. An alert stays in
the report while it is open, even after its test drops back under the
threshold; only resolving it removes it.

The trend analysis fits a line through the last reports (numpy.polyfit) for
average duration, failure rate and the number of maintenance actions.
"""

from __future__ import annotations

import dataclasses
import itertools
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

import numpy as np

from ..config import InfrastructureConfig
from ..logging_config import get_logger
from .models import (
    ActionStatus,
    FrequencyTrend,
    HealthStatus,
    InfrastructureReport,
    MaintenanceAction,
    OptimizationResult,
    PerformanceBaseline,
    PerformanceSummary,
    RegressionAlert,
    Trend,
    TrendAnalysis,
)

logger = get_logger(__name__)

MAX_REPORTS = 100
TREND_WINDOW = 10

# Slope thresholds per report
_DURATION_SLOPE = 0.05  # relative to the mean duration
_FAILURE_RATE_SLOPE = 0.5  # percentage points
_ACTION_SLOPE = 0.5


def _slope(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=float)
    return float(np.polyfit(x, np.asarray(values, dtype=float), 1)[0])


def analyze_trends(reports: Sequence[InfrastructureReport], max_failure_rate: float) -> TrendAnalysis:
    """Trend over the last TREND_WINDOW reports, oldest first."""
    window = list(reports)[-TREND_WINDOW:]
    if len(window) < 2:
        return TrendAnalysis()

    durations = [r.performance_summary.average_duration.total_seconds() for r in window]
    failure_rates = [r.performance_summary.failure_rate for r in window]
    action_counts = [float(len(r.maintenance_actions)) for r in window]

    mean_duration = float(np.mean(durations))
    relative = _slope(durations) / mean_duration if mean_duration > 0 else 0.0
    if relative > _DURATION_SLOPE:
        performance = Trend.DECLINING
    elif relative < -_DURATION_SLOPE:
        performance = Trend.IMPROVING
    else:
        performance = Trend.STABLE

    failure_slope = _slope(failure_rates)
    if failure_slope > _FAILURE_RATE_SLOPE:
        quality = Trend.DECLINING
    elif failure_slope < -_FAILURE_RATE_SLOPE:
        quality = Trend.IMPROVING
    else:
        quality = Trend.STABLE

    action_slope = _slope(action_counts)
    if action_slope > _ACTION_SLOPE:
        frequency = FrequencyTrend.INCREASING
    elif action_slope < -_ACTION_SLOPE:
        frequency = FrequencyTrend.DECREASING
    else:
        frequency = FrequencyTrend.STABLE

    predicted = []
    if performance == Trend.DECLINING:
        predicted.append("Average test duration is rising; more tests will cross the slow-test threshold")
    next_failure_rate = failure_rates[-1] + failure_slope
    if quality == Trend.DECLINING and next_failure_rate > max_failure_rate:
        predicted.append(
            f"Failure rate is projected to reach {next_failure_rate:.1f}% "
            f"(limit {max_failure_rate:.1f}%) by the next cycle"
        )
    if frequency == FrequencyTrend.INCREASING:
        predicted.append("Maintenance actions are becoming more frequent")

    return TrendAnalysis(
        performance_trend=performance,
        quality_trend=quality,
        maintenance_frequency=frequency,
        predicted_issues=tuple(predicted),
        confidence=min(1.0, (len(window) - 1) / (TREND_WINDOW - 1)),
    )


def carried_over(
    regressions: Iterable[RegressionAlert], open_regressions: Iterable[RegressionAlert]
) -> list[RegressionAlert]:
    """Open alerts not already reported among this cycle's ``regressions``."""
    current = {(a.test_name, a.regression_type) for a in regressions}
    return [
        a for a in open_regressions if not a.resolved and (a.test_name, a.regression_type) not in current
    ]


def build_recommendations(
    summary: PerformanceSummary,
    failing_tests: Iterable[str],
    regressions: Iterable[RegressionAlert],
    actions: Iterable[MaintenanceAction],
    optimizations: Iterable[OptimizationResult],
    flaky_rate_limit: float,
    open_regressions: Iterable[RegressionAlert] = (),
) -> list[str]:
    """Recommendation lines, most urgent first.

    ``open_regressions`` are alerts from earlier cycles that are still
    unresolved; ones already among ``regressions`` are listed once.
    """
    recommendations = []
    for name in sorted(failing_tests):
        recommendations.append(f"Fix failing test {name}")
    for alert in regressions:
        if alert.resolved:
            continue
        recommendations.append(
            f"Investigate {alert.regression_type.value} regression in {alert.test_name}: "
            f"{alert.regression_percent:.1f}% worse than baseline ({alert.severity.value})"
        )
    for alert in carried_over(regressions, open_regressions):
        recommendations.append(
            f"Resolve open {alert.regression_type.value} regression in {alert.test_name} "
            f"detected {alert.detected_at:%Y-%m-%d %H:%M}: "
            f"{alert.regression_percent:.1f}% worse than baseline ({alert.severity.value})"
        )
    for name in summary.slowest_tests:
        recommendations.append(f"Optimize slow test {name}")
    if summary.total_tests:
        flaky_rate = 100.0 * summary.flaky_tests / summary.total_tests
        if flaky_rate > flaky_rate_limit:
            recommendations.append(
                f"Stabilize flaky tests: {summary.flaky_tests} tests ({flaky_rate:.1f}%) changed outcome recently"
            )
    for name in summary.memory_intensive_tests:
        recommendations.append(f"Reduce memory usage of {name}")
    for action in actions:
        if action.status == ActionStatus.FAILED:
            recommendations.append(f"Maintenance action {action.id} on {action.target} failed: {action.error}")
    for result in optimizations:
        recommendations.append(
            f"{result.rule_name} for {result.target} "
            f"(projected {result.improvement_percent:.0f}% {result.improvement_type} improvement)"
        )
    return recommendations


class ReportGenerator:
    """Builds reports and keeps the most recent MAX_REPORTS."""

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._reports: deque[InfrastructureReport] = deque(maxlen=MAX_REPORTS)
        self._ids = itertools.count(1)

    def build_report(
        self,
        summary: PerformanceSummary,
        started: datetime,
        failing_tests: Iterable[str] = (),
        actions: Sequence[MaintenanceAction] = (),
        regressions: Sequence[RegressionAlert] = (),
        optimizations: Sequence[OptimizationResult] = (),
        overall_health: HealthStatus = HealthStatus.UNKNOWN,
        errors: Sequence[str] = (),
        open_regressions: Sequence[RegressionAlert] = (),
        baselines: Iterable[PerformanceBaseline] = (),
    ) -> InfrastructureReport:
        """Assemble, store and return the report of one cycle.

        ``open_regressions`` are the detector's unresolved alerts; those not
        detected again this cycle are kept in the report as carried over.
        """
        now = self._clock()
        with self._lock:
            sequence = next(self._ids)
        recommendations = build_recommendations(
            summary,
            failing_tests,
            regressions,
            actions,
            optimizations,
            self.config.max_flaky_test_rate,
            open_regressions,
        )
        draft = InfrastructureReport(
            id=f"report_{now:%Y%m%d%H%M%S}_{sequence}",
            timestamp=now,
            period=f"{started:%Y-%m-%d %H:%M:%S} - {now:%Y-%m-%d %H:%M:%S}",
            overall_health=overall_health,
            performance_summary=summary,
            maintenance_actions=tuple(actions),
            regressions=tuple(regressions),
            open_regressions=tuple(carried_over(regressions, open_regressions)),
            baselines=tuple(sorted(baselines, key=lambda b: b.test_name)),
            optimizations=tuple(optimizations),
            recommendations=tuple(recommendations),
            errors=tuple(errors),
        )
        with self._lock:
            trend = analyze_trends([*self._reports, draft], self.config.max_failure_rate)
            report = dataclasses.replace(
                draft, trend_analysis=trend, generation_time=max(now - started, timedelta(0))
            )
            self._reports.append(report)
        logger.info(f"Report {report.id}: {len(recommendations)} recommendations, {len(errors)} errors")
        return report

    def add_report(self, report: InfrastructureReport) -> None:
        with self._lock:
            self._reports.append(report)

    def reports(self) -> list[InfrastructureReport]:
        with self._lock:
            return list(self._reports)

    def latest(self) -> Optional[InfrastructureReport]:
        with self._lock:
            return self._reports[-1] if self._reports else None
