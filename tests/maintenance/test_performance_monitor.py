"""Tests for PerformanceMonitor."""

from datetime import datetime, timedelta

import pytest

from testwarden.config import InfrastructureConfig
from testwarden.maintenance.models import PerformanceMetric
from testwarden.maintenance.monitor import HISTORY_WINDOW, PerformanceMonitor

STAMP = datetime(2024, 1, 1, 12, 0, 0)


def metric(name, seconds, passed=True, memory=0):
    return PerformanceMetric(
        test_name=name,
        test_suite="default",
        duration=timedelta(seconds=seconds),
        timestamp=STAMP,
        passed=passed,
        memory_bytes=memory,
    )


class TestSummary:
    """Summary of the latest metric per test."""

    def test_empty(self):
        summary = PerformanceMonitor().generate_summary()
        assert summary.total_tests == 0
        assert summary.failure_rate == 0.0
        assert summary.average_duration == timedelta(0)

    def test_counts_and_average(self):
        monitor = PerformanceMonitor()
        monitor.add_metrics([metric("TestA", 1.0), metric("TestB", 3.0, passed=False)])
        summary = monitor.generate_summary()
        assert summary.total_tests == 2
        assert summary.passing_tests == 1
        assert summary.failing_tests == 1
        assert summary.failure_rate == pytest.approx(50.0)
        assert summary.average_duration == timedelta(seconds=2)

    def test_slowest_tests_capped_and_ordered(self):
        monitor = PerformanceMonitor()
        monitor.add_metrics(metric(f"Test{i}", float(i)) for i in range(1, 9))
        summary = monitor.generate_summary()
        # Test1 at exactly 1s is not above the threshold
        assert summary.slowest_tests == ("Test8", "Test7", "Test6", "Test5", "Test4")
        assert summary.failing_tests == 0

    def test_flaky_and_memory(self):
        config = InfrastructureConfig(max_memory_usage_mb=1)
        monitor = PerformanceMonitor(config)
        monitor.add_metrics([metric("TestFlaky", 0.1), metric("TestHeavy", 0.1, memory=2 * 1024 * 1024)])
        monitor.add_metrics([metric("TestFlaky", 0.1, passed=False)])
        summary = monitor.generate_summary(recent_regressions=["TestHeavy"])
        assert summary.flaky_tests == 1
        assert summary.memory_intensive_tests == ("TestHeavy",)
        assert summary.recent_regressions == ("TestHeavy",)

    def test_history_window(self):
        monitor = PerformanceMonitor()
        monitor.add_metrics(metric("TestA", float(i)) for i in range(HISTORY_WINDOW + 10))
        history = monitor.history("TestA")
        assert len(history) == HISTORY_WINDOW
        assert history[0].duration == timedelta(seconds=10)


class TestBaselines:
    """Baseline recomputation cadence."""

    def test_first_update_computes(self, clock):
        monitor = PerformanceMonitor(clock=clock)
        monitor.add_metrics([metric("TestA", 1.0), metric("TestA", 3.0, passed=False)])
        baselines = monitor.update_baselines()
        baseline = baselines["TestA"]
        assert baseline.average_duration == timedelta(seconds=2)
        assert baseline.max_duration == timedelta(seconds=3)
        assert baseline.success_rate == pytest.approx(50.0)
        assert baseline.sample_size == 2
        assert baseline.last_updated == clock()

    def test_not_recomputed_before_due(self, clock):
        monitor = PerformanceMonitor(clock=clock)
        monitor.add_metrics([metric("TestA", 1.0)])
        monitor.update_baselines()
        monitor.add_metrics([metric("TestA", 5.0)])

        clock.advance(hours=1)
        assert monitor.update_baselines()["TestA"].average_duration == timedelta(seconds=1)

        clock.advance(hours=24)
        assert monitor.update_baselines()["TestA"].average_duration == timedelta(seconds=3)

    def test_force(self, clock):
        monitor = PerformanceMonitor(clock=clock)
        monitor.update_baselines()
        monitor.add_metrics([metric("TestA", 1.0)])
        assert "TestA" in monitor.update_baselines(force=True)


class TestSnapshot:
    """Point-in-time snapshots."""

    def test_success_rates(self, clock):
        monitor = PerformanceMonitor(clock=clock)
        monitor.add_metrics([metric("TestA", 1.0), metric("TestA", 1.0, passed=False)])
        snapshot = monitor.snapshot()
        assert snapshot.timestamp == clock()
        assert snapshot.success_rates == {"TestA": pytest.approx(50.0)}
        assert not snapshot.metrics["TestA"].passed
