"""TestMaintainer: maintenance actions over a Go project's test files.

Every operation returns MaintenanceAction records and appends them to the
audit history. Files are only modified when ``apply_changes`` is enabled;
otherwise the recorded changes describe what would be done. Modified or
removed files are first copied to ``.testwarden/backups/<timestamp>/`` when
``backup_before_changes`` is set.
"""

from __future__ import annotations

import itertools
import re
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from ..config import InfrastructureConfig
from ..exceptions import TestRunnerError, TestWardenError
from ..logging_config import get_logger
from ..synthesis.emitter import generated_source, test_file_path
from ..synthesis.generator import SKIPPED_DIRECTORIES, AutomatedTestGenerator, find_source_files, write_generated_files
from .models import ActionStatus, ActionType, Dependency, MaintenanceAction
from .runner import CommandRunner, run_command

logger = get_logger(__name__)

BACKUP_DIRECTORY = Path(".testwarden") / "backups"

# Calls that change process-wide state; tests making them cannot run in parallel
_PROCESS_STATE_CALLS = ("os.Setenv(", "os.Unsetenv(", "os.Chdir(")


@dataclass(frozen=True)
class TestLocation:
    """Where a top-level Go test function is defined."""

    __test__ = False

    path: Path
    name: str
    var: str  # name of the *testing.T parameter
    body_start: int  # offset just after the opening brace
    body_end: int  # offset of the closing brace
    body: str

    @property
    def calls_parallel(self) -> bool:
        return f"{self.var}.Parallel()" in self.body

    @property
    def parallel_safe(self) -> bool:
        if f"{self.var}.Setenv(" in self.body:
            return False
        return not any(call in self.body for call in _PROCESS_STATE_CALLS)


def iter_test_files(root: Path, pattern: str = "*_test.go") -> Iterator[Path]:
    for path in sorted(root.rglob(pattern)):
        parts = path.relative_to(root).parts[:-1]
        if any(p in SKIPPED_DIRECTORIES or p.startswith(".") for p in parts):
            continue
        yield path


def _matching_brace(text: str, open_index: int) -> int:
    """Offset of the brace closing the one at ``open_index``; -1 if unbalanced.

    Skips braces inside string, rune and raw literals and comments.
    """
    depth = 0
    i = open_index
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "/" and text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end < 0 else end
            continue
        if ch == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end < 0 else end + 2
            continue
        if ch in "\"'":
            i += 1
            while i < n and text[i] != ch:
                i += 2 if text[i] == "\\" else 1
        elif ch == "`":
            end = text.find("`", i + 1)
            i = n if end < 0 else end
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def find_test_function(root: Path, test_name: str) -> Optional[TestLocation]:
    """Locate ``func <name>(t *testing.T)`` for a test or one of its subtests."""
    name = test_name.split("/", 1)[0]
    pattern = re.compile(rf"^func\s+{re.escape(name)}\s*\(\s*(\w+)\s+\*testing\.T\s*\)\s*\{{", re.MULTILINE)
    for path in iter_test_files(root):
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Cannot read {path}: {e}")
            continue
        match = pattern.search(text)
        if match is None:
            continue
        open_index = match.end() - 1
        close_index = _matching_brace(text, open_index)
        if close_index < 0:
            continue
        return TestLocation(
            path=path,
            name=name,
            var=match.group(1),
            body_start=open_index + 1,
            body_end=close_index,
            body=text[open_index + 1 : close_index],
        )
    return None


class TestMaintainer:
    """Performs maintenance actions and keeps their audit history.

    Args:
        config: Infrastructure configuration (project root, flags, generation options)
        generator: Test generator for missing tests; built from ``config.generation`` if omitted
        execute: Command runner for ``go get``; defaults to a subprocess
        clock: Time source for action timestamps
    """

    __test__ = False

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        generator: Optional[AutomatedTestGenerator] = None,
        execute: Optional[CommandRunner] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self.root = self.config.root_path
        self._generator = generator
        self._execute = execute or run_command
        self._clock = clock
        self._lock = threading.RLock()
        self._history: list[MaintenanceAction] = []
        self._ids = itertools.count(1)

    @property
    def generator(self) -> AutomatedTestGenerator:
        if self._generator is None:
            self._generator = AutomatedTestGenerator(self.config.generation)
        return self._generator

    def history(self) -> list[MaintenanceAction]:
        with self._lock:
            return list(self._history)

    # ── operations ─────────────────────────────────────────────────

    def optimize_slow_test(self, test_name: str) -> MaintenanceAction:
        """Make a slow test run in parallel by adding ``t.Parallel()``."""
        started = self._clock()
        description = f"Optimize slow test: {test_name}"
        location = find_test_function(self.root, test_name)
        if location is None:
            return self._finish(
                ActionType.OPTIMIZE,
                test_name,
                description,
                started,
                error=f"test function for {test_name} not found under {self.root}",
            )

        rel = self._relative(location.path)
        metadata = {"optimization_type": "parallel", "file": rel, "applied": False}
        if location.calls_parallel:
            changes = [f"{rel}: {location.name} already calls {location.var}.Parallel(); no change"]
        elif not location.parallel_safe:
            changes = [f"{rel}: {location.name} changes process state and cannot run in parallel; no change"]
        else:
            changes = [f"{rel}: add {location.var}.Parallel() at the start of {location.name}"]
            if self.config.apply_changes:
                try:
                    self._insert_parallel(location)
                except OSError as e:
                    return self._finish(
                        ActionType.OPTIMIZE, test_name, description, started, changes, metadata, error=str(e)
                    )
                metadata["applied"] = True
        return self._finish(ActionType.OPTIMIZE, test_name, description, started, changes, metadata)

    def cleanup_obsolete_tests(self) -> list[MaintenanceAction]:
        """Remove generated test files whose source file no longer exists."""
        started = self._clock()
        obsolete = list(self._obsolete_generated_tests())
        changes = [f"remove {self._relative(p)} (source {source} no longer exists)" for p, source in obsolete]
        metadata = {"cleanup_type": "obsolete", "files": [self._relative(p) for p, _ in obsolete], "applied": False}
        if not obsolete:
            changes = ["no obsolete generated test files found"]
        elif self.config.apply_changes:
            try:
                for path, _ in obsolete:
                    self._backup(path, started)
                    path.unlink()
            except OSError as e:
                return [
                    self._finish(
                        ActionType.CLEANUP, "obsolete_tests", "Remove obsolete test files", started,
                        changes, metadata, error=str(e),
                    )
                ]
            metadata["applied"] = True
        return [
            self._finish(
                ActionType.CLEANUP, "obsolete_tests", "Remove obsolete test files", started, changes, metadata
            )
        ]

    def generate_missing_tests(self) -> list[MaintenanceAction]:
        """Generate test files for source files that have none."""
        started = self._clock()
        description = "Generate missing test cases"
        naming = self.config.generation.test_file_naming
        missing = [
            src
            for src in find_source_files(self.root)
            if not Path(test_file_path(str(src), naming)).exists()
            and not Path(test_file_path(str(src), "suffix")).exists()
        ]
        if not missing:
            return [
                self._finish(
                    ActionType.GENERATE, "missing_tests", description, started,
                    ["every source file already has a test file"], {"generation_type": "missing_coverage"},
                )
            ]

        result = self.generator.generate_for_files(missing)
        cases = {s.file_name: len(s.test_cases) for s in result.suites}
        changes = [
            f"generate {self._relative(Path(name))} ({cases.get(name, 0)} test cases)"
            for name in sorted(result.generated_files)
        ]
        metadata = {
            "generation_type": "missing_coverage",
            "files": len(result.generated_files),
            "estimated_coverage": round(result.coverage.estimated_coverage, 1),
            "warnings": list(result.warnings),
            "errors": list(result.errors),
            "applied": False,
        }
        error = ""
        if self.config.apply_changes and result.generated_files:
            try:
                write_generated_files(result)
                metadata["applied"] = True
            except TestWardenError as e:
                error = str(e)
        if not result.generated_files and result.errors:
            error = f"no test files generated: {len(result.errors)} files failed"
        return [
            self._finish(
                ActionType.GENERATE, "missing_tests", description, started, changes or ["no testable functions found"],
                metadata, error=error,
            )
        ]

    def plan_dependency_updates(self, dependencies: Iterable[Dependency]) -> list[MaintenanceAction]:
        """One update action per dependency with a newer version available.

        Updates run ``go get`` only when both ``apply_changes`` and
        ``auto_update_dependencies`` are enabled.
        """
        actions = []
        apply = self.config.apply_changes and self.config.auto_update_dependencies
        for dep in dependencies:
            if not dep.updates_available or not dep.latest_version:
                continue
            started = self._clock()
            command = ("go", "get", f"{dep.name}@{dep.latest_version}")
            changes = [f"{' '.join(command)} (from {dep.version})"]
            metadata = {"update_type": dep.type.value, "from": dep.version, "to": dep.latest_version, "applied": False}
            error = ""
            if apply:
                try:
                    run = self._execute(command, self.root, None)
                    if run.returncode != 0:
                        error = run.output.strip() or f"go get exited with status {run.returncode}"
                    else:
                        metadata["applied"] = True
                except TestRunnerError as e:
                    error = str(e)
            actions.append(
                self._finish(
                    ActionType.UPDATE, dep.name, f"Update {dep.name} to {dep.latest_version}", started,
                    changes, metadata, error=error,
                )
            )
        return actions

    # ── internals ──────────────────────────────────────────────────

    def _finish(
        self,
        type_: ActionType,
        target: str,
        description: str,
        started: datetime,
        changes: Iterable[str] = (),
        metadata: Optional[dict] = None,
        error: str = "",
    ) -> MaintenanceAction:
        with self._lock:
            action = MaintenanceAction(
                id=f"action_{started:%Y%m%d%H%M%S}_{next(self._ids)}",
                type=type_,
                target=target,
                description=description,
                status=ActionStatus.FAILED if error else ActionStatus.COMPLETED,
                start_time=started,
                end_time=self._clock(),
                error=error,
                changes=tuple(changes),
                metadata=dict(metadata or {}),
            )
            self._history.append(action)
        if error:
            logger.warning(f"{type_.value} action on {target} failed: {error}")
        else:
            logger.info(f"{description}: {len(action.changes)} changes")
        return action

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return str(path)

    def _backup(self, path: Path, when: datetime) -> None:
        if not self.config.backup_before_changes:
            return
        target = self.root / BACKUP_DIRECTORY / f"{when:%Y%m%d-%H%M%S}" / self._relative(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, target)
        logger.debug(f"Backed up {path} to {target}")

    def _insert_parallel(self, location: TestLocation) -> None:
        text = location.path.read_text(encoding="utf-8")
        self._backup(location.path, self._clock())
        updated = text[: location.body_start] + f"\n\t{location.var}.Parallel()" + text[location.body_start :]
        location.path.write_text(updated, encoding="utf-8")

    def _obsolete_generated_tests(self) -> Iterator[tuple[Path, str]]:
        candidates = dict.fromkeys(itertools.chain(iter_test_files(self.root), iter_test_files(self.root, "test_*.go")))
        for path in candidates:
            source = generated_source(path)
            if source is None:
                continue
            # tests/ layout keeps the source one directory up
            if not (path.parent / source).exists() and not (path.parent.parent / source).exists():
                yield path, source
