"""RegressionDetector: compares the latest snapshot against earlier ones.

For each test in the newest snapshot, the baseline is the mean of the test's
values across the earlier snapshots kept in history. A regression is an
increase in duration or memory, or a decrease in success rate, of more than
``regression_threshold`` percent relative to that baseline.

Alerts are append-only. A later improvement never resolves an alert; only
:meth:`RegressionDetector.resolve_alert` does.
"""

from __future__ import annotations

import dataclasses
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

import numpy as np

from ..config import InfrastructureConfig
from ..logging_config import get_logger
from .models import PerformanceSnapshot, RegressionAlert, RegressionType, Severity

logger = get_logger(__name__)

MAX_SNAPSHOTS = 1000


def severity_for(
    regression_percent: float,
    threshold: float,
    multipliers: Sequence[float] = (2.0, 4.0, 8.0),
) -> Severity:
    """Severity band of a regression.

    With threshold T and multipliers (a, b, c): below a*T low, below b*T
    medium, below c*T high, otherwise critical.
    """
    ratio = regression_percent / threshold if threshold > 0 else float("inf")
    low, medium, high = multipliers
    if ratio < low:
        return Severity.LOW
    if ratio < medium:
        return Severity.MEDIUM
    if ratio < high:
        return Severity.HIGH
    return Severity.CRITICAL


class RegressionDetector:
    """Holds snapshot history and the alert log."""

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._history: list[PerformanceSnapshot] = []
        self._alerts: list[RegressionAlert] = []

    def record_snapshot(self, snapshot: PerformanceSnapshot) -> None:
        """Add a snapshot, dropping ones older than ``performance_history_days``."""
        horizon = snapshot.timestamp - timedelta(days=self.config.performance_history_days)
        with self._lock:
            self._history.append(snapshot)
            self._history = [s for s in self._history if s.timestamp >= horizon][-MAX_SNAPSHOTS:]

    def snapshots(self) -> list[PerformanceSnapshot]:
        with self._lock:
            return list(self._history)

    def detect_regressions(self) -> list[RegressionAlert]:
        """Alerts for regressions in the latest snapshot.

        New regressions are appended to the alert log; a regression that
        already has an open alert returns that alert instead of a duplicate.
        """
        if not self.config.enable_regression_detection:
            return []
        with self._lock:
            if len(self._history) < 2:
                return []
            latest = self._history[-1]
            prior = self._history[:-1]

            found: list[RegressionAlert] = []
            for test_name in sorted(latest.metrics):
                for candidate in self._compare(test_name, latest, prior):
                    found.append(self._record(candidate))
        if found:
            logger.info(f"Detected {len(found)} regressions")
        return found

    def _compare(
        self, test_name: str, latest: PerformanceSnapshot, prior: list[PerformanceSnapshot]
    ) -> list[RegressionAlert]:
        earlier = [s for s in prior if test_name in s.metrics]
        if not earlier:
            return []
        metric = latest.metrics[test_name]
        alerts = []

        durations = [s.metrics[test_name].duration.total_seconds() for s in earlier]
        alert = self._increase(test_name, RegressionType.DURATION, metric.duration.total_seconds(), durations)
        if alert is not None:
            alerts.append(alert)

        memory = [float(s.metrics[test_name].memory_bytes) for s in earlier]
        alert = self._increase(test_name, RegressionType.MEMORY, float(metric.memory_bytes), memory)
        if alert is not None:
            alerts.append(alert)

        rates = [s.success_rates[test_name] for s in earlier if test_name in s.success_rates]
        current_rate = latest.success_rates.get(test_name)
        if rates and current_rate is not None:
            baseline = float(np.mean(rates))
            if baseline > 0:
                percent = 100.0 * (baseline - current_rate) / baseline
                if percent > self.config.regression_threshold:
                    alerts.append(self._alert(test_name, RegressionType.SUCCESS_RATE, current_rate, baseline, percent))
        return alerts

    def _increase(
        self, test_name: str, kind: RegressionType, current: float, history: list[float]
    ) -> Optional[RegressionAlert]:
        baseline = float(np.mean(history))
        if baseline <= 0:
            return None
        percent = 100.0 * (current - baseline) / baseline
        if percent <= self.config.regression_threshold:
            return None
        return self._alert(test_name, kind, current, baseline, percent)

    def _alert(
        self, test_name: str, kind: RegressionType, current: float, baseline: float, percent: float
    ) -> RegressionAlert:
        return RegressionAlert(
            test_name=test_name,
            regression_type=kind,
            current=current,
            baseline=baseline,
            regression_percent=percent,
            severity=severity_for(
                percent, self.config.regression_threshold, self.config.severity_band_multipliers
            ),
            detected_at=self._clock(),
        )

    def _record(self, alert: RegressionAlert) -> RegressionAlert:
        for existing in self._alerts:
            if (
                not existing.resolved
                and existing.test_name == alert.test_name
                and existing.regression_type == alert.regression_type
            ):
                return existing
        self._alerts.append(alert)
        logger.warning(
            f"{alert.regression_type.value} regression in {alert.test_name}: "
            f"{alert.regression_percent:.1f}% ({alert.severity.value})"
        )
        return alert

    def alerts(self, include_resolved: bool = True) -> list[RegressionAlert]:
        with self._lock:
            return [a for a in self._alerts if include_resolved or not a.resolved]

    def open_alerts(self) -> list[RegressionAlert]:
        return self.alerts(include_resolved=False)

    def resolve_alert(
        self, test_name: str, regression_type: RegressionType, resolution_action: str
    ) -> Optional[RegressionAlert]:
        """Mark the open alert for ``test_name``/``regression_type`` resolved.

        Returns the resolved alert, or None when no open alert matches.
        """
        with self._lock:
            for i, alert in enumerate(self._alerts):
                if alert.resolved or alert.test_name != test_name or alert.regression_type != regression_type:
                    continue
                resolved = dataclasses.replace(alert, resolved=True, resolution_action=resolution_action)
                self._alerts[i] = resolved
                logger.info(f"Resolved {regression_type.value} regression in {test_name}: {resolution_action}")
                return resolved
        return None
