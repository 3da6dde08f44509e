"""Tests for HealthChecker."""

from datetime import timedelta

from testwarden.config import InfrastructureConfig
from testwarden.maintenance.health import HealthChecker, aggregate_status
from testwarden.maintenance.models import (
    ConflictType,
    DependencyConflict,
    HealthStatus,
    PerformanceSummary,
    Severity,
)


def summary(total=10, failing=0, average=0.1):
    return PerformanceSummary(
        total_tests=total,
        passing_tests=total - failing,
        failing_tests=failing,
        average_duration=timedelta(seconds=average),
    )


def conflict(kind):
    return DependencyConflict(
        dependency="example.com/lib",
        conflicting_with="advisory",
        conflict_type=kind,
        description=f"{kind.value} problem",
        severity=Severity.HIGH,
    )


class TestAggregate:
    """Overall status precedence."""

    def test_precedence(self):
        H, W, C = HealthStatus.HEALTHY, HealthStatus.WARNING, HealthStatus.CRITICAL
        assert aggregate_status({"a": H, "b": H}) == H
        assert aggregate_status({"a": H, "b": W}) == W
        assert aggregate_status({"a": W, "b": C}) == C
        assert aggregate_status({}) == H


class TestCheck:
    """Component health."""

    def test_healthy(self, clock):
        health = HealthChecker(clock=clock).check(summary())
        assert health.overall_health == HealthStatus.HEALTHY
        assert health.issues == ()
        assert health.timestamp == clock()

    def test_no_tests_is_warning(self):
        health = HealthChecker().check(summary(total=0))
        assert health.components["test_execution"] == HealthStatus.WARNING
        assert health.issues[0].type == "no_tests"
        assert health.overall_health == HealthStatus.WARNING

    def test_failure_rate_bands(self):
        checker = HealthChecker(InfrastructureConfig(max_failure_rate=10.0))
        # 6% is above half the limit
        assert checker.check(summary(total=100, failing=6)).components["test_execution"] == HealthStatus.WARNING
        assert checker.check(summary(total=100, failing=11)).components["test_execution"] == HealthStatus.CRITICAL
        assert checker.check(summary(total=100, failing=2)).components["test_execution"] == HealthStatus.HEALTHY

    def test_slow_average_is_critical(self):
        health = HealthChecker().check(summary(average=600.0))
        assert health.components["performance"] == HealthStatus.CRITICAL
        assert any(i.type == "slow_tests" for i in health.issues)

    def test_security_conflict_is_critical(self):
        health = HealthChecker().check(summary(), [conflict(ConflictType.SECURITY)])
        assert health.components["dependencies"] == HealthStatus.CRITICAL
        assert health.overall_health == HealthStatus.CRITICAL
        assert [i.type for i in health.issues] == ["security_conflict"]

    def test_version_conflict_is_warning(self):
        health = HealthChecker().check(summary(), [conflict(ConflictType.VERSION)])
        assert health.components["dependencies"] == HealthStatus.WARNING

    def test_metrics(self):
        health = HealthChecker().check(summary(total=4, failing=1), [conflict(ConflictType.VERSION)])
        assert health.metrics["total_tests"] == 4.0
        assert health.metrics["failure_rate"] == 25.0
        assert health.metrics["dependency_conflicts"] == 1.0


class TestHistory:
    """Kept checks."""

    def test_latest(self):
        checker = HealthChecker()
        assert checker.latest() is None
        first = checker.check(summary())
        second = checker.check(summary(total=0))
        assert checker.latest() is second
        assert checker.history() == [first, second]
