"""
testwarden - self-maintaining test infrastructure for Go projects

Synthesizes Go tests from static analysis of source functions, then keeps
the suite healthy: runs it, tracks per-test performance, detects
regressions, performs maintenance actions and reports trends.
"""

__version__ = "0.1.0"

from .config import GenerationOptions, InfrastructureConfig, load_config
from .maintenance.infrastructure import SelfMaintainingTestInfrastructure
from .synthesis.generator import AutomatedTestGenerator

__all__ = [
    "AutomatedTestGenerator",  # Source files -> generated test files
    "SelfMaintainingTestInfrastructure",  # Monitoring and maintenance loops
    "GenerationOptions",
    "InfrastructureConfig",
    "load_config",
]
