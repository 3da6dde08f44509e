"""Exception hierarchy for testwarden."""

from .analysis import (
    AnalysisError,
    FileAccessError,
    ParsingError,
    UnsupportedLanguageError,
)
from .base import TestWardenError
from .config import ConfigurationError, InvalidConfigError
from .runtime import (
    AlreadyRunningError,
    LifecycleError,
    NotRunningError,
    TestRunnerError,
)

__all__ = [
    "TestWardenError",
    "AnalysisError",
    "FileAccessError",
    "ParsingError",
    "UnsupportedLanguageError",
    "ConfigurationError",
    "InvalidConfigError",
    "LifecycleError",
    "AlreadyRunningError",
    "NotRunningError",
    "TestRunnerError",
]
