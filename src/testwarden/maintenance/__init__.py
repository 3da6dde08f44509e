"""Monitoring, regression detection and automated maintenance of a test suite."""

from .dependencies import DependencyAnalyzer
from .health import HealthChecker, aggregate_status
from .infrastructure import SelfMaintainingTestInfrastructure
from .maintainer import TestMaintainer
from .monitor import PerformanceMonitor
from .optimizer import OptimizationEngine
from .regression import RegressionDetector, severity_for
from .reports import ReportGenerator
from .runner import TestRunner, parse_test_output
from .scheduler import AutomationScheduler, calculate_next_run

__all__ = [
    "SelfMaintainingTestInfrastructure",
    "AutomationScheduler",
    "DependencyAnalyzer",
    "HealthChecker",
    "OptimizationEngine",
    "PerformanceMonitor",
    "RegressionDetector",
    "ReportGenerator",
    "TestMaintainer",
    "TestRunner",
    "aggregate_status",
    "calculate_next_run",
    "parse_test_output",
    "severity_for",
]
