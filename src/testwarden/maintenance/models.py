"""Records for monitoring, maintenance, health and reporting.

Records are frozen. The few status fields that change (``resolved`` on
alerts, ``status`` on actions and executions, ``success_rate`` on rules) are
updated by the owning component replacing the record in its own collection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from ..serialization import Serializable


class RegressionType(str, Enum):
    DURATION = "duration"
    MEMORY = "memory"
    SUCCESS_RATE = "success_rate"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class ActionType(str, Enum):
    FIX = "fix"
    OPTIMIZE = "optimize"
    CLEANUP = "cleanup"
    UPDATE = "update"
    GENERATE = "generate"


class ActionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"  # no health check recorded yet


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class FrequencyTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class DependencyType(str, Enum):
    TEST = "test"
    RUNTIME = "runtime"
    DEV = "dev"


class ConflictType(str, Enum):
    VERSION = "version"
    COMPATIBILITY = "compatibility"
    SECURITY = "security"


# ── performance ────────────────────────────────────────────────────


@dataclass(frozen=True)
class PerformanceMetric(Serializable):
    test_name: str
    test_suite: str
    duration: timedelta
    timestamp: datetime
    passed: bool = True
    memory_bytes: int = 0
    cpu_percent: float = 0.0
    error_message: str = ""


@dataclass(frozen=True)
class PerformanceBaseline(Serializable):
    test_name: str
    average_duration: timedelta
    max_duration: timedelta
    average_memory: int
    max_memory: int
    success_rate: float  # percent, 0-100
    sample_size: int
    last_updated: datetime


@dataclass(frozen=True)
class PerformanceSummary(Serializable):
    total_tests: int = 0
    passing_tests: int = 0
    failing_tests: int = 0
    flaky_tests: int = 0  # both outcomes within the history window
    average_duration: timedelta = timedelta(0)
    slowest_tests: tuple[str, ...] = ()  # slowest first, at most five
    memory_intensive_tests: tuple[str, ...] = ()
    recent_regressions: tuple[str, ...] = ()

    @property
    def failure_rate(self) -> float:
        """Failing share of tests, in percent."""
        if self.total_tests == 0:
            return 0.0
        return 100.0 * self.failing_tests / self.total_tests


@dataclass(frozen=True)
class PerformanceSnapshot(Serializable):
    """Latest metric per test at one point in time."""

    timestamp: datetime
    metrics: dict[str, PerformanceMetric] = field(default_factory=dict)
    success_rates: dict[str, float] = field(default_factory=dict)  # window pass rate, percent
    summary: PerformanceSummary = field(default_factory=PerformanceSummary)


@dataclass(frozen=True)
class RegressionAlert(Serializable):
    test_name: str
    regression_type: RegressionType
    current: float
    baseline: float
    regression_percent: float
    severity: Severity
    detected_at: datetime
    resolved: bool = False
    resolution_action: str = ""


# ── maintenance ────────────────────────────────────────────────────


@dataclass(frozen=True)
class MaintenanceAction(Serializable):
    """Audit record of one maintenance action.

    ``changes`` lists what was changed, or what would be changed when
    changes are not applied, in a form that can be reviewed without
    re-running the action.
    """

    id: str
    type: ActionType
    target: str
    description: str
    status: ActionStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    error: str = ""
    changes: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Dependency(Serializable):
    name: str  # module path
    version: str
    type: DependencyType
    required: bool  # direct requirement (not // indirect)
    last_checked: datetime
    updates_available: bool = False
    latest_version: str = ""
    security_issues: int = 0
    used_by_tests: tuple[str, ...] = ()  # test files importing the module


@dataclass(frozen=True)
class DependencyConflict(Serializable):
    dependency: str
    conflicting_with: str
    conflict_type: ConflictType
    description: str
    severity: Severity
    auto_resolvable: bool = False


@dataclass(frozen=True)
class OptimizationRule(Serializable):
    id: str
    name: str
    condition: str  # e.g. "test_duration > 30s AND parallel_safe = true"
    action: str
    priority: int  # lower runs first
    enabled: bool = True
    success_rate: float = 0.0  # percent of measured applications that improved
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OptimizationResult(Serializable):
    rule_id: str
    rule_name: str
    target: str
    applied: bool
    improvement_type: str
    before_value: float
    after_value: float  # projected until measured
    improvement_percent: float
    timestamp: datetime
    measured: bool = False


@dataclass(frozen=True)
class LearnedPattern(Serializable):
    pattern: str  # rule action
    frequency: int
    success_rate: float
    last_applied: datetime
    context: str  # rule condition


# ── health, scheduling, reports ────────────────────────────────────


@dataclass(frozen=True)
class HealthIssue(Serializable):
    component: str
    type: str
    severity: HealthStatus
    description: str
    auto_fixable: bool = False


@dataclass(frozen=True)
class HealthCheck(Serializable):
    timestamp: datetime
    overall_health: HealthStatus
    components: dict[str, HealthStatus] = field(default_factory=dict)
    issues: tuple[HealthIssue, ...] = ()
    metrics: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduledTask(Serializable):
    id: str
    name: str
    type: str
    schedule: str  # "hourly", "daily" or "weekly"
    next_run: datetime
    enabled: bool = True
    last_run: Optional[datetime] = None
    priority: int = 0
    max_duration: timedelta = timedelta(hours=1)


@dataclass(frozen=True)
class TaskExecution(Serializable):
    task_id: str
    start_time: datetime
    status: ExecutionStatus = ExecutionStatus.RUNNING
    end_time: Optional[datetime] = None
    result: str = ""
    error: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TrendAnalysis(Serializable):
    performance_trend: Trend = Trend.STABLE
    quality_trend: Trend = Trend.STABLE
    maintenance_frequency: FrequencyTrend = FrequencyTrend.STABLE
    predicted_issues: tuple[str, ...] = ()
    confidence: float = 0.0  # 0-1, grows with the number of reports compared


@dataclass(frozen=True)
class InfrastructureReport(Serializable):
    """Outcome of one maintenance cycle.

    ``regressions`` were detected this cycle; ``open_regressions`` are
    earlier alerts that are still unresolved. ``baselines`` are the
    monitor's baselines as of this cycle.
    """

    id: str
    timestamp: datetime
    period: str
    overall_health: HealthStatus
    performance_summary: PerformanceSummary
    maintenance_actions: tuple[MaintenanceAction, ...] = ()
    regressions: tuple[RegressionAlert, ...] = ()
    open_regressions: tuple[RegressionAlert, ...] = ()
    baselines: tuple[PerformanceBaseline, ...] = ()
    optimizations: tuple[OptimizationResult, ...] = ()
    recommendations: tuple[str, ...] = ()
    trend_analysis: TrendAnalysis = field(default_factory=TrendAnalysis)
    generation_time: timedelta = timedelta(0)
    errors: tuple[str, ...] = ()
