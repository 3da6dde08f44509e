"""Tests for RegressionDetector."""

from datetime import timedelta

import pytest

from testwarden.config import InfrastructureConfig
from testwarden.maintenance.models import (
    PerformanceMetric,
    PerformanceSnapshot,
    RegressionType,
    Severity,
)
from testwarden.maintenance.regression import RegressionDetector, severity_for


def snapshot(at, seconds, memory=0, rate=100.0, name="TestA"):
    metric = PerformanceMetric(
        test_name=name,
        test_suite="default",
        duration=timedelta(seconds=seconds),
        timestamp=at,
        memory_bytes=memory,
    )
    return PerformanceSnapshot(timestamp=at, metrics={name: metric}, success_rates={name: rate})


class TestSeverity:
    """Severity bands relative to the threshold."""

    @pytest.mark.parametrize(
        "percent,expected",
        [
            (15.0, Severity.LOW),
            (25.0, Severity.MEDIUM),
            (50.0, Severity.HIGH),
            (80.0, Severity.CRITICAL),
            (500.0, Severity.CRITICAL),
        ],
    )
    def test_bands(self, percent, expected):
        assert severity_for(percent, 10.0) == expected

    def test_monotone(self):
        ranks = [severity_for(p, 10.0).rank for p in range(11, 200)]
        assert ranks == sorted(ranks)


class TestDetect:
    """Comparison of the latest snapshot with earlier ones."""

    def test_needs_two_snapshots(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        assert detector.detect_regressions() == []

    def test_duration_regression(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 1.5))

        alerts = detector.detect_regressions()
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.regression_type == RegressionType.DURATION
        assert alert.regression_percent == pytest.approx(50.0)
        assert alert.severity == Severity.HIGH
        assert alert.baseline == pytest.approx(1.0)

    def test_within_threshold(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 1.05))
        assert detector.detect_regressions() == []

    def test_memory_and_success_rate(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0, memory=1000, rate=100.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 1.0, memory=2000, rate=50.0))

        kinds = {a.regression_type for a in detector.detect_regressions()}
        assert kinds == {RegressionType.MEMORY, RegressionType.SUCCESS_RATE}

    def test_duplicate_returns_existing_alert(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 2.0))
        first = detector.detect_regressions()[0]

        detector.record_snapshot(snapshot(clock.advance(hours=1), 2.0))
        second = detector.detect_regressions()[0]
        assert second is first
        assert len(detector.alerts()) == 1

    def test_disabled(self, clock):
        detector = RegressionDetector(InfrastructureConfig(enable_regression_detection=False), clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 9.0))
        assert detector.detect_regressions() == []

    def test_old_snapshots_dropped(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(days=60), 9.0))
        assert len(detector.snapshots()) == 1
        assert detector.detect_regressions() == []


class TestResolve:
    """Alerts only close when resolved explicitly."""

    def test_improvement_does_not_resolve(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 2.0))
        detector.detect_regressions()
        detector.record_snapshot(snapshot(clock.advance(hours=1), 0.5))
        detector.detect_regressions()
        assert len(detector.open_alerts()) == 1

    def test_resolve_alert(self, clock):
        detector = RegressionDetector(clock=clock)
        detector.record_snapshot(snapshot(clock(), 1.0))
        detector.record_snapshot(snapshot(clock.advance(hours=1), 2.0))
        detector.detect_regressions()

        resolved = detector.resolve_alert("TestA", RegressionType.DURATION, "optimized")
        assert resolved.resolved
        assert resolved.resolution_action == "optimized"
        assert detector.open_alerts() == []
        assert detector.resolve_alert("TestA", RegressionType.DURATION, "again") is None
