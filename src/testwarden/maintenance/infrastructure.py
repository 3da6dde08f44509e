"""SelfMaintainingTestInfrastructure: lifecycle and the maintenance cycle.

One cycle runs strictly in order: collect metrics, snapshot, detect
regressions, maintenance actions, optimizations, dependency analysis,
health, report. Errors from any stage are recorded in the report and the
cycle continues.

While running, three daemon threads share one stop event:

    maintenance  every maintenance_interval (only with continuous_monitoring)
    health       every health_check_interval
    scheduler    every 60 seconds

Usage:
    infra = SelfMaintainingTestInfrastructure(load_config(project_root="."))
    report = infra.run_maintenance()
    infra.start()
    ...
    infra.stop()
"""

from __future__ import annotations

import re
import threading
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..config import InfrastructureConfig
from ..exceptions import AlreadyRunningError, NotRunningError, TestRunnerError, TestWardenError
from ..logging_config import get_logger
from .dependencies import DependencyAnalyzer
from .health import HealthChecker
from .maintainer import TestMaintainer, find_test_function
from .models import (
    ActionStatus,
    HealthCheck,
    InfrastructureReport,
    MaintenanceAction,
    RegressionAlert,
    RegressionType,
    ScheduledTask,
)
from .monitor import PerformanceMonitor
from .optimizer import OptimizationEngine
from .regression import RegressionDetector
from .reports import ReportGenerator
from .runner import TestRunner
from .scheduler import AutomationScheduler

logger = get_logger(__name__)

SCHEDULER_TICK = timedelta(minutes=1)

# TestParse_Empty and TestParse_Nil share the family "TestParse"
_FAMILY = re.compile(r"^([A-Za-z0-9]+?)_")


class SelfMaintainingTestInfrastructure:
    """Owns the components and runs them together.

    Every component can be injected; defaults are built from ``config``.
    Components keep their own locks and exchange copies, so no two component
    locks are ever held at once.
    """

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        runner: Optional[TestRunner] = None,
        monitor: Optional[PerformanceMonitor] = None,
        detector: Optional[RegressionDetector] = None,
        maintainer: Optional[TestMaintainer] = None,
        dependency_analyzer: Optional[DependencyAnalyzer] = None,
        optimizer: Optional[OptimizationEngine] = None,
        health_checker: Optional[HealthChecker] = None,
        scheduler: Optional[AutomationScheduler] = None,
        report_generator: Optional[ReportGenerator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self._clock = clock
        self.runner = runner or TestRunner(
            self.config.test_command, self.config.root_path, timeout=self.config.max_suite_duration
        )
        self.monitor = monitor or PerformanceMonitor(self.config, clock)
        self.detector = detector or RegressionDetector(self.config, clock)
        self.maintainer = maintainer or TestMaintainer(self.config, clock=clock)
        self.dependency_analyzer = dependency_analyzer or DependencyAnalyzer(self.config, clock=clock)
        self.optimizer = optimizer or OptimizationEngine(clock=clock)
        self.health_checker = health_checker or HealthChecker(self.config, clock)
        self.scheduler = scheduler or AutomationScheduler(clock)
        self.report_generator = report_generator or ReportGenerator(self.config, clock)

        self.scheduler.register_handler("cleanup", self._scheduled_cleanup)
        self.scheduler.register_handler("optimization", self._scheduled_optimization)

        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._threads: list[threading.Thread] = []

    # ── lifecycle ──────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._stop_event is not None

    def start(self) -> None:
        """Start the background loops.

        Raises:
            AlreadyRunningError: The loops are already running
        """
        with self._state_lock:
            if self._stop_event is not None:
                raise AlreadyRunningError()
            stop = threading.Event()
            loops: list[tuple[str, timedelta, Callable[[], Any]]] = []
            if self.config.continuous_monitoring:
                loops.append(("maintenance", self.config.maintenance_interval, self.run_maintenance))
            loops.append(("health", self.config.health_check_interval, self.perform_health_check))
            loops.append(("scheduler", SCHEDULER_TICK, self.scheduler.process_scheduled_tasks))
            self._threads = [
                threading.Thread(
                    target=self._loop,
                    args=(name, interval, tick, stop),
                    name=f"testwarden-{name}",
                    daemon=True,
                )
                for name, interval, tick in loops
            ]
            self._stop_event = stop
            for thread in self._threads:
                thread.start()
        logger.info(f"Started {len(self._threads)} background loops for {self.config.root_path}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loops to stop and wait for them.

        A maintenance cycle already in progress finishes first.

        Raises:
            NotRunningError: The loops are not running
        """
        with self._state_lock:
            if self._stop_event is None:
                raise NotRunningError()
            self._stop_event.set()
            threads, self._threads = self._threads, []
            self._stop_event = None
        for thread in threads:
            thread.join(timeout)
        logger.info("Stopped background loops")

    @staticmethod
    def _loop(name: str, interval: timedelta, tick: Callable[[], Any], stop: threading.Event) -> None:
        seconds = interval.total_seconds()
        while not stop.wait(seconds):
            try:
                tick()
            except Exception:
                logger.exception(f"{name} loop iteration failed")

    # ── synchronous operations ─────────────────────────────────────

    def run_maintenance(self) -> InfrastructureReport:
        """Run one full maintenance cycle and return its report."""
        with self._cycle_lock:
            return self._cycle()

    def _cycle(self) -> InfrastructureReport:
        started = self._clock()
        errors: list[str] = []
        logger.info("Maintenance cycle started")

        # The runner blocks on a subprocess; no component lock is held here.
        try:
            metrics = self.runner.collect(started)
        except TestRunnerError as e:
            logger.error(f"Test run failed: {e}")
            errors.append(str(e))
            metrics = []
        self.monitor.add_metrics(metrics)
        baselines = self.monitor.update_baselines()

        open_names = [a.test_name for a in self.detector.open_alerts()]
        self.detector.record_snapshot(self.monitor.snapshot(open_names))
        regressions = self.detector.detect_regressions()
        summary = self.monitor.generate_summary(
            sorted({a.test_name for a in regressions} | set(open_names))
        )

        actions = self._maintenance_actions(summary.slowest_tests, regressions, errors)
        # alerts resolved by an action are reported in their resolved state
        current = {(a.test_name, a.regression_type, a.detected_at): a for a in self.detector.alerts()}
        regressions = [current.get((a.test_name, a.regression_type, a.detected_at), a) for a in regressions]

        try:
            optimizations = self.optimizer.run_optimizations(self.optimization_facts())
        except TestWardenError as e:
            errors.append(f"optimization: {e}")
            optimizations = []

        try:
            dependencies = self.dependency_analyzer.analyze_dependencies()
            actions.extend(self.maintainer.plan_dependency_updates(dependencies))
        except (TestWardenError, OSError) as e:
            errors.append(f"dependency analysis: {e}")

        # read after maintenance, which may have resolved some alerts
        still_open = self.detector.open_alerts()
        health = self.health_checker.check(summary, self.dependency_analyzer.conflicts())
        failing = [name for name, m in self.monitor.latest_metrics().items() if not m.passed]
        report = self.report_generator.build_report(
            summary,
            started,
            failing_tests=failing,
            actions=actions,
            regressions=regressions,
            optimizations=optimizations,
            overall_health=health.overall_health,
            errors=errors,
            open_regressions=still_open,
            baselines=baselines.values(),
        )
        logger.info(
            f"Maintenance cycle finished: {len(actions)} actions, {len(regressions)} regressions, "
            f"health {health.overall_health.value}"
        )
        return report

    def _maintenance_actions(
        self, slowest: tuple[str, ...], regressions: list[RegressionAlert], errors: list[str]
    ) -> list[MaintenanceAction]:
        actions: list[MaintenanceAction] = []
        config = self.config
        if config.auto_optimize_slow_tests:
            targets = list(slowest)
            targets += [
                a.test_name
                for a in regressions
                if a.regression_type == RegressionType.DURATION and a.test_name not in targets
            ]
            for name in targets:
                done = self._attempt("optimize", lambda n=name: [self.maintainer.optimize_slow_test(n)], errors)
                for action in done:
                    self._resolve_addressed(action)
                actions.extend(done)
        if config.auto_cleanup_obsolete_tests:
            actions.extend(self._attempt("cleanup", self.maintainer.cleanup_obsolete_tests, errors))
        if config.auto_generate_missing_tests:
            actions.extend(self._attempt("generate", self.maintainer.generate_missing_tests, errors))
        return actions

    def _resolve_addressed(self, action: MaintenanceAction) -> None:
        """Resolve the open duration alert of a test whose optimization was written."""
        if action.status != ActionStatus.COMPLETED or not action.metadata.get("applied"):
            return
        self.detector.resolve_alert(action.target, RegressionType.DURATION, action.id)

    @staticmethod
    def _attempt(
        stage: str, operation: Callable[[], list[MaintenanceAction]], errors: list[str]
    ) -> list[MaintenanceAction]:
        try:
            return operation()
        except (TestWardenError, OSError) as e:
            logger.error(f"{stage} failed: {e}")
            errors.append(f"{stage}: {e}")
            return []

    def optimization_facts(self) -> dict[str, dict[str, Any]]:
        """Facts for the optimization rules, per test and per test family.

        Parallel safety is read from the test source only for tests slower
        than ``slow_test_threshold``.
        """
        latest = self.monitor.latest_metrics()
        facts: dict[str, dict[str, Any]] = {}
        threshold = self.config.slow_test_threshold
        for name, metric in latest.items():
            entry: dict[str, Any] = {
                "test_duration": metric.duration.total_seconds(),
                "passed": metric.passed,
                "memory_mb": metric.memory_bytes / (1024 * 1024),
            }
            if metric.duration > threshold and "/" not in name:
                location = find_test_function(self.config.root_path, name)
                if location is not None:
                    entry["parallel_safe"] = location.parallel_safe and not location.calls_parallel
            facts[name] = entry

        families = Counter(m.group(1) for m in (_FAMILY.match(n) for n in latest if "/" not in n) if m)
        for family, count in families.items():
            facts[f"{family}_*"] = {"similar_tests": float(count)}
        return facts

    def perform_health_check(self) -> HealthCheck:
        open_names = sorted({a.test_name for a in self.detector.open_alerts()})
        summary = self.monitor.generate_summary(open_names)
        return self.health_checker.check(summary, self.dependency_analyzer.conflicts())

    def get_current_status(self) -> dict[str, Any]:
        """Serializable view of the current state."""
        health = self.health_checker.latest()
        report = self.report_generator.latest()
        return {
            "running": self.is_running,
            "project_root": str(self.config.root_path),
            "overall_health": health.overall_health.value if health else "unknown",
            "last_health_check": health.to_dict() if health else None,
            "performance_summary": self.monitor.generate_summary().to_dict(),
            "open_regressions": [a.to_dict() for a in self.detector.open_alerts()],
            "baselines": [b.to_dict() for _, b in sorted(self.monitor.baselines().items())],
            "maintenance_actions": len(self.maintainer.history()),
            "last_report": report.id if report else None,
            "scheduled_tasks": [t.to_dict() for t in self.scheduler.tasks()],
        }

    # ── scheduled task handlers ────────────────────────────────────

    def _scheduled_cleanup(self, task: ScheduledTask) -> str:
        actions = self.maintainer.cleanup_obsolete_tests()
        changes = sum(len(a.changes) for a in actions)
        return f"{len(actions)} cleanup actions, {changes} changes"

    def _scheduled_optimization(self, task: ScheduledTask) -> str:
        results = self.optimizer.run_optimizations(self.optimization_facts())
        return f"{len(results)} optimization recommendations"
