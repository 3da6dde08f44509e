"""DependencyAnalyzer: module requirements of a Go project and their health.

Reads ``go.mod`` for requirements and replacements, scans ``.go`` files for
the import paths that use each module, and reports conflicts:

    version        the same module required at different versions
    compatibility  ``+incompatible`` majors and replacements by local paths
    security       versions below a known-safe version from ``advisories``

Available updates come from ``go list -m -u -json all`` when
``check_updates`` is enabled.
"""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Mapping, Optional

from ..config import InfrastructureConfig
from ..exceptions import TestRunnerError
from ..logging_config import get_logger
from .models import ConflictType, Dependency, DependencyConflict, DependencyType, Severity
from .runner import CommandRunner, run_command

logger = get_logger(__name__)

_BLOCK_START = re.compile(r"^(require|replace|exclude|retract)\s*\($")
_IMPORT_BLOCK = re.compile(r"^import\s*\((.*?)^\)", re.MULTILINE | re.DOTALL)
_IMPORT_LINE = re.compile(r'^import\s+(?:[\w.]+\s+)?"([^"]+)"', re.MULTILINE)
_QUOTED = re.compile(r'"([^"]+)"')
_VERSION = re.compile(r"^v(\d+)(?:\.(\d+))?(?:\.(\d+))?(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?$")


@dataclass(frozen=True)
class Requirement:
    path: str
    version: str
    indirect: bool = False


@dataclass(frozen=True)
class Replacement:
    old_path: str
    old_version: str
    new_path: str
    new_version: str

    @property
    def is_local(self) -> bool:
        return self.new_path.startswith(("./", "../", "/"))


@dataclass
class GoModule:
    path: str = ""
    go_version: str = ""
    requires: list[Requirement] = field(default_factory=list)
    replaces: list[Replacement] = field(default_factory=list)


def parse_go_mod(text: str) -> GoModule:
    """Parse the directives of a go.mod file that matter for dependency health."""
    module = GoModule()
    block: Optional[str] = None
    for raw in text.splitlines():
        indirect = "// indirect" in raw
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue
        if block is not None:
            if line == ")":
                block = None
                continue
            _directive(module, block, line, indirect)
            continue
        match = _BLOCK_START.match(line)
        if match:
            block = match.group(1)
            continue
        keyword, _, rest = line.partition(" ")
        if keyword == "module":
            module.path = rest.strip().strip('"')
        elif keyword == "go":
            module.go_version = rest.strip()
        elif keyword in ("require", "replace"):
            _directive(module, keyword, rest.strip(), indirect)
    return module


def _directive(module: GoModule, keyword: str, line: str, indirect: bool) -> None:
    if keyword == "require":
        parts = line.split()
        if len(parts) >= 2:
            module.requires.append(Requirement(parts[0].strip('"'), parts[1], indirect))
    elif keyword == "replace":
        old, arrow, new = line.partition("=>")
        if not arrow:
            return
        old_parts, new_parts = old.split(), new.split()
        if not old_parts or not new_parts:
            return
        module.replaces.append(
            Replacement(
                old_path=old_parts[0],
                old_version=old_parts[1] if len(old_parts) > 1 else "",
                new_path=new_parts[0],
                new_version=new_parts[1] if len(new_parts) > 1 else "",
            )
        )


def version_key(version: str) -> tuple[int, int, int, int]:
    """Sort key for semantic versions; pre-releases sort before their release."""
    match = _VERSION.match(version)
    if match is None:
        return (0, 0, 0, 0)
    major, minor, patch, pre, _ = match.groups()
    return (int(major), int(minor or 0), int(patch or 0), 0 if pre else 1)


def import_paths(source: str) -> set[str]:
    """Import paths of a Go file, including blank and dot imports."""
    paths = set(_IMPORT_LINE.findall(source))
    for block in _IMPORT_BLOCK.findall(source):
        paths.update(_QUOTED.findall(block))
    return paths


def parse_update_listing(output: str) -> dict[str, str]:
    """Module path -> newer version, from ``go list -m -u -json all`` output."""
    decoder = json.JSONDecoder()
    updates: dict[str, str] = {}
    pos = 0
    text = output.strip()
    while pos < len(text):
        try:
            obj, end = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            break
        update = obj.get("Update") if isinstance(obj, dict) else None
        if update and obj.get("Path") and update.get("Version"):
            updates[obj["Path"]] = update["Version"]
        pos = end
        while pos < len(text) and text[pos].isspace():
            pos += 1
    return updates


class DependencyAnalyzer:
    """Tracks module dependencies and their conflicts.

    Args:
        config: Infrastructure configuration (project root)
        advisories: Module path -> first version without known security issues
        check_updates: Run ``go list -m -u`` to find newer versions
        execute: Command runner used for ``go list``
    """

    def __init__(
        self,
        config: Optional[InfrastructureConfig] = None,
        advisories: Optional[Mapping[str, str]] = None,
        check_updates: bool = False,
        execute: Optional[CommandRunner] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or InfrastructureConfig()
        self.root = self.config.root_path
        self.advisories = dict(advisories or {})
        self.check_updates = check_updates
        self._execute = execute or run_command
        self._clock = clock
        self._lock = threading.RLock()
        self._dependencies: dict[str, Dependency] = {}
        self._conflicts: list[DependencyConflict] = []

    def dependencies(self) -> list[Dependency]:
        with self._lock:
            return list(self._dependencies.values())

    def conflicts(self) -> list[DependencyConflict]:
        with self._lock:
            return list(self._conflicts)

    def outdated(self) -> list[Dependency]:
        return [d for d in self.dependencies() if d.updates_available]

    def analyze_dependencies(self) -> list[Dependency]:
        """Re-read go.mod and the sources, replacing the tracked state.

        A project without go.mod has no dependencies.
        """
        go_mod = self.root / "go.mod"
        if not go_mod.is_file():
            logger.debug(f"No go.mod in {self.root}; skipping dependency analysis")
            with self._lock:
                self._dependencies, self._conflicts = {}, []
            return []

        module = parse_go_mod(go_mod.read_text(encoding="utf-8", errors="replace"))
        test_users, runtime_users = self._usage(module.requires)
        updates = self._available_updates() if self.check_updates else {}
        now = self._clock()

        dependencies: dict[str, Dependency] = {}
        conflicts: list[DependencyConflict] = []
        seen_versions: dict[str, str] = {}
        for req in module.requires:
            previous = seen_versions.get(req.path)
            if previous is not None and previous != req.version:
                conflicts.append(
                    DependencyConflict(
                        dependency=f"{req.path}@{previous}",
                        conflicting_with=f"{req.path}@{req.version}",
                        conflict_type=ConflictType.VERSION,
                        description=f"{req.path} is required at both {previous} and {req.version}",
                        severity=Severity.MEDIUM,
                        auto_resolvable=True,
                    )
                )
            seen_versions[req.path] = req.version

            security_issues = 0
            safe = self.advisories.get(req.path)
            if safe and version_key(req.version) < version_key(safe):
                security_issues = 1
                conflicts.append(
                    DependencyConflict(
                        dependency=f"{req.path}@{req.version}",
                        conflicting_with=f"{req.path}@{safe}",
                        conflict_type=ConflictType.SECURITY,
                        description=f"{req.path} {req.version} has known security issues; upgrade to {safe} or later",
                        severity=Severity.CRITICAL,
                        auto_resolvable=True,
                    )
                )
            if req.version.endswith("+incompatible"):
                conflicts.append(
                    DependencyConflict(
                        dependency=f"{req.path}@{req.version}",
                        conflicting_with="module-aware major versions",
                        conflict_type=ConflictType.COMPATIBILITY,
                        description=f"{req.path} {req.version} predates Go modules for its major version",
                        severity=Severity.LOW,
                    )
                )

            if req.path in runtime_users:
                dep_type = DependencyType.RUNTIME
            elif req.path in test_users:
                dep_type = DependencyType.TEST
            else:
                dep_type = DependencyType.DEV
            latest = updates.get(req.path, "")
            dependencies[req.path] = Dependency(
                name=req.path,
                version=req.version,
                type=dep_type,
                required=not req.indirect,
                last_checked=now,
                updates_available=bool(latest) and version_key(latest) > version_key(req.version),
                latest_version=latest,
                security_issues=security_issues,
                used_by_tests=tuple(sorted(test_users.get(req.path, ()))),
            )

        for rep in module.replaces:
            if rep.is_local:
                conflicts.append(
                    DependencyConflict(
                        dependency=rep.old_path,
                        conflicting_with=rep.new_path,
                        conflict_type=ConflictType.COMPATIBILITY,
                        description=f"{rep.old_path} is replaced by local path {rep.new_path}",
                        severity=Severity.LOW,
                    )
                )

        with self._lock:
            self._dependencies = dependencies
            self._conflicts = conflicts
        logger.info(f"Analyzed {len(dependencies)} dependencies, {len(conflicts)} conflicts")
        return list(dependencies.values())

    def _usage(self, requires: list[Requirement]) -> tuple[dict[str, set[str]], set[str]]:
        """(module -> test files importing it, modules imported by non-test code)."""
        modules = sorted({r.path for r in requires}, key=len, reverse=True)
        test_users: dict[str, set[str]] = {}
        runtime_users: set[str] = set()
        for path in sorted(self.root.rglob("*.go")):
            rel = path.relative_to(self.root)
            if any(p in ("vendor", "testdata") or p.startswith(".") for p in rel.parts[:-1]):
                continue
            try:
                source = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug(f"Cannot read {path}: {e}")
                continue
            is_test = path.name.endswith("_test.go")
            for imported in import_paths(source):
                owner = next((m for m in modules if imported == m or imported.startswith(m + "/")), None)
                if owner is None:
                    continue
                if is_test:
                    test_users.setdefault(owner, set()).add(rel.as_posix())
                else:
                    runtime_users.add(owner)
        return test_users, runtime_users

    def _available_updates(self) -> dict[str, str]:
        try:
            result = self._execute(("go", "list", "-m", "-u", "-json", "all"), self.root, 120.0)
        except TestRunnerError as e:
            logger.warning(f"Cannot check for dependency updates: {e}")
            return {}
        if result.returncode != 0:
            logger.warning(f"go list exited with status {result.returncode}; update information skipped")
            return {}
        return parse_update_listing(result.output)
