"""Go test-file emission: file layout, import block and file text."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union

from .models import TestSuite

NAMING_STRATEGIES = ("suffix", "package", "parallel")

_MODULE_LINE = re.compile(r"^\s*module\s+(\S+)")
_GENERATED_HEADER = re.compile(r"^// Code generated by testwarden from (\S+)\.$")


def test_file_path(source_path: str, naming: str = "suffix") -> str:
    """Path of the generated test file for ``source_path``.

    suffix: ``x_test.go`` beside the source; package: ``test_x.go`` beside the
    source; parallel: ``tests/x_test.go`` under the source's directory.
    """
    directory, base = os.path.split(source_path)
    stem = os.path.splitext(base)[0]
    if naming == "package":
        return os.path.join(directory, f"test_{stem}.go")
    if naming == "parallel":
        return os.path.join(directory, "tests", f"{stem}_test.go")
    return os.path.join(directory, f"{stem}_test.go")


def test_package_name(package: str, naming: str = "suffix") -> str:
    """Package clause of the generated file: ``tests`` for the parallel layout."""
    return "tests" if naming == "parallel" else package


def find_module_path(source_path: Union[str, Path]) -> Optional[str]:
    """Import path of the package containing ``source_path``.

    Walks up from the file's directory to the nearest ``go.mod`` and joins its
    module path with the relative directory. Returns None without a go.mod.
    """
    directory = Path(source_path).resolve().parent
    for candidate in (directory, *directory.parents):
        go_mod = candidate / "go.mod"
        if not go_mod.is_file():
            continue
        try:
            lines = go_mod.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            return None
        for line in lines:
            match = _MODULE_LINE.match(line)
            if match:
                module = match.group(1).strip('"')
                relative = directory.relative_to(candidate).as_posix()
                return module if relative == "." else f"{module}/{relative}"
        return None
    return None


def generated_source(path: Union[str, Path]) -> Optional[str]:
    """Source file name recorded in a generated file's header, else None."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            first = f.readline().rstrip("\n")
    except OSError:
        return None
    match = _GENERATED_HEADER.match(first)
    return match.group(1) if match else None


def _is_stdlib(path: str) -> bool:
    return "." not in path.split("/", 1)[0]


def render_imports(imports: tuple[tuple[str, str], ...]) -> list[str]:
    """goimports-style block: standard library first, then a blank line and the rest."""
    if not imports:
        return []

    def spec(alias: str, path: str) -> str:
        return f'\t{alias} "{path}"' if alias else f'\t"{path}"'

    std = sorted((p, a) for a, p in imports if _is_stdlib(p))
    third = sorted((p, a) for a, p in imports if not _is_stdlib(p))
    lines = ["import ("]
    lines.extend(spec(a, p) for p, a in std)
    if std and third:
        lines.append("")
    lines.extend(spec(a, p) for p, a in third)
    lines.append(")")
    return lines


def render_suite(suite: TestSuite) -> str:
    """Complete text of the generated test file."""
    source = os.path.basename(suite.source_path) if suite.source_path else "source"
    lines = [
        f"// Code generated by testwarden from {source}.",
        "// Assertions on non-error results only check for non-nil values; replace",
        "// them with expected values before relying on these tests.",
        "",
        f"package {suite.package_name}",
        "",
    ]
    imports = render_imports(suite.imports)
    if imports:
        lines.extend(imports)
        lines.append("")

    blocks = [m.code for m in suite.mocks]
    blocks += [h.code for h in suite.helpers]
    blocks += [c.code for c in suite.test_cases if c.code]
    blocks += [b.code for b in suite.benchmarks]
    blocks += [e.code for e in suite.examples]

    text = "\n".join(lines)
    if blocks:
        text += "\n" + "\n\n".join(block.rstrip("\n") for block in blocks) + "\n"
    return text
