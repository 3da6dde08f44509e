"""Tests for the testwarden exception hierarchy."""

import pytest

from testwarden.exceptions import (
    AlreadyRunningError,
    AnalysisError,
    ConfigurationError,
    FileAccessError,
    InvalidConfigError,
    LifecycleError,
    NotRunningError,
    ParsingError,
    TestRunnerError as RunnerError,
    TestWardenError as WardenError,
    UnsupportedLanguageError,
)


class TestHierarchy:
    """Every error derives from TestWardenError."""

    @pytest.mark.parametrize(
        "error",
        [
            FileAccessError("a.go", "denied"),
            ParsingError("a.go", "go", "unexpected token"),
            UnsupportedLanguageError("a.py", (".go",)),
            InvalidConfigError("regression_threshold", 0, "must be positive"),
            AlreadyRunningError(),
            NotRunningError(),
            RunnerError("go test", "command not found: go"),
        ],
    )
    def test_base_class(self, error):
        assert isinstance(error, WardenError)

    def test_analysis_errors(self):
        assert issubclass(FileAccessError, AnalysisError)
        assert issubclass(ParsingError, AnalysisError)
        assert issubclass(UnsupportedLanguageError, AnalysisError)

    def test_config_and_lifecycle(self):
        assert issubclass(InvalidConfigError, ConfigurationError)
        assert issubclass(AlreadyRunningError, LifecycleError)
        assert issubclass(NotRunningError, LifecycleError)


class TestMessages:
    """Messages carry their details."""

    def test_details_in_str(self):
        error = InvalidConfigError("regression_threshold", 0, "must be positive")
        assert str(error) == (
            "Invalid configuration for regression_threshold: 0 "
            "(key=regression_threshold, value=0, reason=must be positive)"
        )
        assert error.reason == "must be positive"

    def test_runner_error(self):
        error = RunnerError("go test ./...", "timed out after 60s", returncode=None)
        assert error.message == "Test runner failed: go test ./..."
        assert error.details == {"command": "go test ./...", "reason": "timed out after 60s"}

    def test_runner_error_with_returncode(self):
        error = RunnerError("go list", "failed", returncode=2)
        assert error.returncode == 2
        assert error.details["returncode"] == "2"

    def test_lifecycle_messages(self):
        assert str(AlreadyRunningError()) == "self-maintaining infrastructure is already running"
        assert str(NotRunningError()) == "self-maintaining infrastructure is not running"

    def test_parsing_error(self):
        error = ParsingError("pkg/a.go", "go", "syntax error at line 3")
        assert str(error).startswith("Failed to parse go file: pkg/a.go")
        assert error.reason == "syntax error at line 3"
