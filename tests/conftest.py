"""Shared test fixtures for testwarden tests."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from testwarden.maintenance.runner import RunResult


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class CannedRunner:
    """Command runner returning queued outputs and recording the commands."""

    def __init__(self, *outputs: str, returncode: int = 0):
        self.outputs = list(outputs)
        self.returncode = returncode
        self.commands = []

    def __call__(self, command, cwd, timeout=None) -> RunResult:
        self.commands.append((tuple(command), Path(cwd)))
        output = self.outputs.pop(0) if len(self.outputs) > 1 else (self.outputs[0] if self.outputs else "")
        return RunResult(output=output, returncode=self.returncode, duration=timedelta(seconds=1))


@pytest.fixture
def clock():
    """Fake clock starting at 2024-01-01 12:00."""
    return FakeClock()


@pytest.fixture
def go_project(tmp_path):
    """Empty Go module rooted at tmp_path."""
    (tmp_path / "go.mod").write_text("module example.com/demo\n\ngo 1.21\n")
    return tmp_path


CALC_SOURCE = """package calc

import "errors"

// ErrNegative is returned for negative inputs.
var ErrNegative = errors.New("negative input")

// Add returns the sum of a and b.
func Add(a, b int) int {
\treturn a + b
}

// Divide divides a by b.
func Divide(a, b int) (int, error) {
\tif b == 0 {
\t\treturn 0, errors.New("division by zero")
\t}
\treturn a / b, nil
}

// Sqrt rejects negative numbers.
func Sqrt(x int) (int, error) {
\tif x < 0 {
\t\treturn 0, ErrNegative
\t}
\treturn x, nil
}

func helper() int {
\treturn 1
}
"""


@pytest.fixture
def calc_source():
    """Go source with plain, error-returning and unexported functions."""
    return CALC_SOURCE


@pytest.fixture
def canned_runner():
    """Factory for CannedRunner: ``canned_runner(output, returncode=1)``."""
    return CannedRunner
