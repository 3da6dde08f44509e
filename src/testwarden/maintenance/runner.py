"""Run ``go test`` and parse its verbose output into metrics.

Result lines look like::

    --- PASS: TestExample (0.12s)
        --- FAIL: TestParent/case_1 (0.00s)

Indented lines directly after a FAIL line are the test's log output and
become its ``error_message``. The suite is the part of the name before the
first ``/``, otherwise ``"default"``.
"""

from __future__ import annotations

import dataclasses
import re
import shlex
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from ..exceptions import TestRunnerError
from ..logging_config import get_logger
from .models import PerformanceMetric

logger = get_logger(__name__)

DEFAULT_SUITE = "default"

_RESULT_LINE = re.compile(r"^\s*--- (PASS|FAIL): (\S+) \(([^)]*)\)\s*$")
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_go_duration(text: str) -> Optional[timedelta]:
    """Parse a Go duration string ("0.12s", "1m30s", "250ms"); None if malformed."""
    text = text.strip()
    if not text:
        return None
    sign = -1.0 if text.startswith("-") else 1.0
    body = text.lstrip("+-")
    if body == "0":
        return timedelta(0)
    seconds = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(body):
        if match.start() != pos:
            return None
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(body) or pos == 0:
        return None
    return timedelta(seconds=sign * seconds)


def extract_test_suite(test_name: str) -> str:
    if "/" in test_name:
        return test_name.split("/", 1)[0]
    return DEFAULT_SUITE


def parse_test_output(output: str, timestamp: Optional[datetime] = None) -> list[PerformanceMetric]:
    """Metrics for every PASS/FAIL result line, in output order."""
    timestamp = timestamp or datetime.now()
    metrics: list[PerformanceMetric] = []
    # (index into metrics, collected log lines) of the FAIL awaiting its output
    pending: Optional[tuple[int, list[str]]] = None

    def flush() -> None:
        if pending is not None and pending[1]:
            index, lines = pending
            metrics[index] = dataclasses.replace(metrics[index], error_message="\n".join(lines))

    for raw in output.splitlines():
        match = _RESULT_LINE.match(raw)
        if match:
            flush()
            pending = None
            status, name, duration_text = match.groups()
            duration = parse_go_duration(duration_text)
            if duration is None:
                logger.debug(f"Unparseable duration in test output: {raw!r}")
                continue
            metrics.append(
                PerformanceMetric(
                    test_name=name,
                    test_suite=extract_test_suite(name),
                    duration=duration,
                    timestamp=timestamp,
                    passed=status == "PASS",
                )
            )
            if status == "FAIL":
                pending = (len(metrics) - 1, [])
            continue
        if pending is not None:
            if raw.startswith((" ", "\t")) and raw.strip() and not raw.lstrip().startswith(("=== ", "--- ")):
                pending[1].append(raw.strip())
            else:
                flush()
                pending = None
    flush()
    return metrics


@dataclass(frozen=True)
class RunResult:
    output: str
    returncode: int
    duration: timedelta


CommandRunner = Callable[[Sequence[str], Path, Optional[float]], RunResult]


def run_command(command: Sequence[str], cwd: Path, timeout: Optional[float] = None) -> RunResult:
    """Run ``command`` in ``cwd`` capturing combined output.

    Raises:
        TestRunnerError: The command cannot be started or exceeds ``timeout``.
            A non-zero exit status is returned, not raised.
    """
    display = shlex.join(command)
    started = time.monotonic()
    try:
        result = subprocess.run(
            list(command),
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise TestRunnerError(display, f"command not found: {e.filename or command[0]}")
    except subprocess.TimeoutExpired:
        raise TestRunnerError(display, f"timed out after {timeout:.0f}s")
    except OSError as e:
        raise TestRunnerError(display, str(e))
    return RunResult(
        output=result.stdout or "",
        returncode=result.returncode,
        duration=timedelta(seconds=time.monotonic() - started),
    )


class TestRunner:
    """Runs the project's test command and turns its output into metrics.

    Args:
        command: Test-runner argv, e.g. ``("go", "test", "-v", "./...")``
        project_root: Directory containing go.mod
        timeout: Wall-clock limit for one run
        execute: Replaces subprocess execution (tests inject canned output)
    """

    __test__ = False

    def __init__(
        self,
        command: Sequence[str],
        project_root: Union[str, Path],
        timeout: Optional[timedelta] = None,
        execute: Optional[CommandRunner] = None,
    ) -> None:
        self.command = tuple(command)
        self.project_root = Path(project_root)
        self.timeout = timeout
        self._execute = execute or run_command

    def run(self) -> RunResult:
        """Run the test command once. No component lock may be held by the caller."""
        if self._execute is run_command and not (self.project_root / "go.mod").is_file():
            raise TestRunnerError(shlex.join(self.command), f"no go.mod in {self.project_root}")
        seconds = self.timeout.total_seconds() if self.timeout else None
        logger.info(f"Running {shlex.join(self.command)} in {self.project_root}")
        result = self._execute(self.command, self.project_root, seconds)
        if result.returncode != 0:
            logger.warning(f"Test command exited with status {result.returncode}; parsing its output anyway")
        return result

    def collect(self, timestamp: Optional[datetime] = None) -> list[PerformanceMetric]:
        result = self.run()
        metrics = parse_test_output(result.output, timestamp)
        logger.debug(f"Parsed {len(metrics)} test results in {result.duration.total_seconds():.1f}s")
        return metrics
