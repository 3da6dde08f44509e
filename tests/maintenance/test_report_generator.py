"""Tests for ReportGenerator, recommendations and trends."""

from datetime import timedelta

import pytest

from testwarden.config import InfrastructureConfig
from testwarden.maintenance.models import (
    ActionStatus,
    ActionType,
    FrequencyTrend,
    HealthStatus,
    InfrastructureReport,
    MaintenanceAction,
    OptimizationResult,
    PerformanceSummary,
    RegressionAlert,
    RegressionType,
    Severity,
    Trend,
)
from testwarden.maintenance.reports import ReportGenerator, analyze_trends, build_recommendations


def summary(total=10, failing=0, flaky=0, average=1.0, slowest=(), memory=()):
    return PerformanceSummary(
        total_tests=total,
        passing_tests=total - failing,
        failing_tests=failing,
        flaky_tests=flaky,
        average_duration=timedelta(seconds=average),
        slowest_tests=tuple(slowest),
        memory_intensive_tests=tuple(memory),
    )


def report(at, perf, actions=0):
    action = MaintenanceAction(
        id="a",
        type=ActionType.CLEANUP,
        target="x",
        description="",
        status=ActionStatus.COMPLETED,
        start_time=at,
    )
    return InfrastructureReport(
        id=f"r{at:%H%M%S}",
        timestamp=at,
        period="",
        overall_health=HealthStatus.HEALTHY,
        performance_summary=perf,
        maintenance_actions=(action,) * actions,
    )


def alert(at, name, resolved=False):
    return RegressionAlert(
        test_name=name,
        regression_type=RegressionType.DURATION,
        current=2.0,
        baseline=1.0,
        regression_percent=100.0,
        severity=Severity.CRITICAL,
        detected_at=at,
        resolved=resolved,
    )


class TestRecommendations:
    """Human-readable recommendations."""

    def test_failing_tests_sorted(self):
        lines = build_recommendations(summary(), ["TestB", "TestA"], [], [], [], 2.0)
        assert lines == ["Fix failing test TestA", "Fix failing test TestB"]

    def test_unresolved_regressions_only(self, clock):
        alert = RegressionAlert(
            test_name="TestA",
            regression_type=RegressionType.DURATION,
            current=2.0,
            baseline=1.0,
            regression_percent=100.0,
            severity=Severity.CRITICAL,
            detected_at=clock(),
        )
        resolved = RegressionAlert(
            test_name="TestB",
            regression_type=RegressionType.MEMORY,
            current=2.0,
            baseline=1.0,
            regression_percent=100.0,
            severity=Severity.CRITICAL,
            detected_at=clock(),
            resolved=True,
        )
        lines = build_recommendations(summary(), [], [alert, resolved], [], [], 2.0)
        assert lines == ["Investigate duration regression in TestA: 100.0% worse than baseline (critical)"]

    def test_open_regressions_from_earlier_cycles(self, clock):
        current = alert(clock(), "TestA")
        earlier = alert(clock(), "TestB")
        lines = build_recommendations(
            summary(), [], [current], [], [], 2.0, open_regressions=[current, earlier, alert(clock(), "TestC", True)]
        )
        assert lines == [
            "Investigate duration regression in TestA: 100.0% worse than baseline (critical)",
            "Resolve open duration regression in TestB detected 2024-01-01 12:00: "
            "100.0% worse than baseline (critical)",
        ]

    def test_slow_flaky_and_memory(self):
        perf = summary(total=10, flaky=1, slowest=["TestSlow"], memory=["TestHeavy"])
        lines = build_recommendations(perf, [], [], [], [], 2.0)
        assert lines[0] == "Optimize slow test TestSlow"
        assert lines[1].startswith("Stabilize flaky tests: 1 tests (10.0%)")
        assert lines[2] == "Reduce memory usage of TestHeavy"

    def test_failed_actions_and_optimizations(self, clock):
        failed = MaintenanceAction(
            id="cleanup_1",
            type=ActionType.CLEANUP,
            target="old_test.go",
            description="",
            status=ActionStatus.FAILED,
            start_time=clock(),
            error="permission denied",
        )
        optimization = OptimizationResult(
            rule_id="parallel_execution",
            rule_name="Enable Parallel Test Execution",
            target="TestSlow",
            applied=True,
            improvement_type="performance",
            before_value=45.0,
            after_value=27.0,
            improvement_percent=40.0,
            timestamp=clock(),
        )
        lines = build_recommendations(summary(), [], [], [failed], [optimization], 2.0)
        assert lines == [
            "Maintenance action cleanup_1 on old_test.go failed: permission denied",
            "Enable Parallel Test Execution for TestSlow (projected 40% performance improvement)",
        ]


class TestTrends:
    """Line fits over recent reports."""

    def test_single_report_is_stable(self, clock):
        trend = analyze_trends([report(clock(), summary())], 5.0)
        assert trend.performance_trend == Trend.STABLE
        assert trend.confidence == 0.0

    def test_rising_duration_and_failures(self, clock):
        reports = [
            report(clock.advance(hours=1), summary(total=10, failing=i, average=1.0 + i), actions=i)
            for i in range(4)
        ]
        trend = analyze_trends(reports, 5.0)
        assert trend.performance_trend == Trend.DECLINING
        assert trend.quality_trend == Trend.DECLINING
        assert trend.maintenance_frequency == FrequencyTrend.INCREASING
        assert trend.confidence == pytest.approx(3 / 9)
        assert any("Failure rate is projected" in p for p in trend.predicted_issues)

    def test_improving(self, clock):
        reports = [report(clock.advance(hours=1), summary(average=5.0 - i)) for i in range(3)]
        assert analyze_trends(reports, 5.0).performance_trend == Trend.IMPROVING


class TestReportGenerator:
    """Report assembly and retention."""

    def test_build_report(self, clock):
        generator = ReportGenerator(InfrastructureConfig(), clock=clock)
        started = clock()
        clock.advance(seconds=5)
        result = generator.build_report(
            summary(failing=1),
            started,
            failing_tests=["TestBroken"],
            overall_health=HealthStatus.WARNING,
            errors=["runner failed"],
        )
        assert result.id == "report_20240101120005_1"
        assert result.period == "2024-01-01 12:00:00 - 2024-01-01 12:00:05"
        assert result.generation_time == timedelta(seconds=5)
        assert result.recommendations == ("Fix failing test TestBroken",)
        assert result.errors == ("runner failed",)
        assert generator.latest() is result

    def test_ids_unique_within_a_second(self, clock):
        generator = ReportGenerator(clock=clock)
        first = generator.build_report(summary(), clock())
        second = generator.build_report(summary(), clock())
        assert first.id == "report_20240101120000_1"
        assert second.id == "report_20240101120000_2"

    def test_open_regressions_carried(self, clock):
        generator = ReportGenerator(clock=clock)
        old = alert(clock(), "TestOld")
        again = alert(clock(), "TestAgain")
        result = generator.build_report(summary(), clock(), regressions=[again], open_regressions=[old, again])
        assert result.regressions == (again,)
        assert result.open_regressions == (old,)
        assert len([r for r in result.recommendations if "TestAgain" in r]) == 1

    def test_trend_uses_history(self, clock):
        generator = ReportGenerator(clock=clock)
        for i in range(3):
            started = clock.advance(hours=1)
            latest = generator.build_report(summary(average=1.0 + 2 * i), started)
        assert latest.trend_analysis.performance_trend == Trend.DECLINING
        assert len(generator.reports()) == 3

    def test_serializes(self, clock):
        generator = ReportGenerator(clock=clock)
        data = generator.build_report(summary(), clock()).to_dict()
        assert data["overall_health"] == "unknown"
        assert data["performance_summary"]["total_tests"] == 10
