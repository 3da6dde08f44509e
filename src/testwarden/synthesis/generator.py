"""AutomatedTestGenerator: source files in, generated Go test files out.

Ties SourceAnalyzer, TestSynthesizer, CoverageEstimator and the emitter
together and aggregates per-file results. Files are processed independently:
a file that cannot be read or parsed is recorded in ``errors`` and the batch
continues.

Usage:
    generator = AutomatedTestGenerator(GenerationOptions(test_file_naming="suffix"))
    result = generator.generate_for_directory(Path("./pkg"))
    for path, content in result.generated_files.items():
        ...
"""

from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional, Union

from ..analysis.analyzer import SUPPORTED_EXTENSIONS, SourceAnalyzer
from ..analysis.models import FileAnalysis
from ..config import GenerationOptions
from ..exceptions import AnalysisError, FileAccessError
from ..logging_config import get_logger
from .coverage import CoverageEstimator
from .emitter import find_module_path, generated_source, render_suite
from .models import GenerationStatistics, TestGenerationResult, TestKind, TestSuite
from .synthesizer import TestSynthesizer

logger = get_logger(__name__)

# Default worker count: use CPU count, capped at 8 to avoid overwhelming I/O
_DEFAULT_WORKERS = min(os.cpu_count() or 4, 8)

SKIPPED_DIRECTORIES = frozenset({"vendor", "testdata", ".git", "node_modules", ".testwarden"})


def find_source_files(directory: Union[str, Path]) -> list[Path]:
    """Go source files under ``directory``, excluding tests, vendor, testdata and generated files."""
    root = Path(directory)
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRECTORIES and not d.startswith("."))
        for filename in sorted(filenames):
            if Path(filename).suffix not in SUPPORTED_EXTENSIONS or filename.endswith("_test.go"):
                continue
            path = Path(dirpath) / filename
            # test_x.go files written by the "package" layout
            if filename.startswith("test_") and generated_source(path) is not None:
                continue
            files.append(path)
    return files


class AutomatedTestGenerator:
    """Generates Go test files for source files.

    Attributes:
        options: Generation options
        synthesizer: Shared TestSynthesizer
    """

    def __init__(
        self,
        options: Optional[GenerationOptions] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.options = options or GenerationOptions()
        self.synthesizer = TestSynthesizer(self.options)
        self.coverage = CoverageEstimator(self.options.target_coverage)
        self._max_workers = max_workers or _DEFAULT_WORKERS
        # tree-sitter parsers are not shared between threads
        self._local = threading.local()

    def _analyzer(self) -> SourceAnalyzer:
        analyzer = getattr(self._local, "analyzer", None)
        if analyzer is None:
            analyzer = SourceAnalyzer(analyze_dependencies=self.options.analyze_dependencies)
            self._local.analyzer = analyzer
        return analyzer

    # ── single inputs ──────────────────────────────────────────────

    def generate_for_source(
        self, source: Union[str, bytes], path: str = "source.go", import_path: str = ""
    ) -> TestGenerationResult:
        """Generate tests for in-memory Go source.

        Parse errors are recorded in the result rather than raised.
        """
        started = time.monotonic()
        try:
            analysis = self._analyzer().analyze_source(source, path)
        except AnalysisError as e:
            logger.warning(f"Skipping {path}: {e}")
            return TestGenerationResult(errors=(str(e),))
        return self._aggregate([self._suite_for(analysis, import_path)], [analysis], [], time.monotonic() - started)

    def generate_for_file(self, path: Union[str, Path]) -> TestGenerationResult:
        return self.generate_for_files([Path(path)])

    def generate_for_directory(self, directory: Union[str, Path]) -> TestGenerationResult:
        files = find_source_files(directory)
        logger.info(f"Generating tests for {len(files)} Go files under {directory}")
        return self.generate_for_files(files)

    # ── batches ────────────────────────────────────────────────────

    def generate_for_files(self, paths: Iterable[Union[str, Path]], parallel: bool = True) -> TestGenerationResult:
        """Generate tests for many files, collecting per-file errors."""
        file_paths = [Path(p) for p in paths]
        started = time.monotonic()
        suites: list[TestSuite] = []
        analyses: list[FileAnalysis] = []
        errors: list[str] = []

        def _one(fp: Path) -> tuple[FileAnalysis, TestSuite]:
            analysis = self._analyzer().analyze_file(fp)
            import_path = ""
            if self.options.test_file_naming == "parallel":
                import_path = find_module_path(fp) or ""
                if not import_path:
                    raise FileAccessError(fp, "no go.mod found; the parallel layout needs the module path")
            return analysis, self._suite_for(analysis, import_path)

        if not parallel or len(file_paths) < 4:
            outcomes = []
            for fp in file_paths:
                try:
                    outcomes.append(_one(fp))
                except AnalysisError as e:
                    logger.warning(f"Skipping {fp}: {e}")
                    errors.append(str(e))
        else:
            outcomes = []
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                futures = {executor.submit(_one, fp): fp for fp in file_paths}
                for future in as_completed(futures):
                    fp = futures[future]
                    try:
                        outcomes.append(future.result())
                    except AnalysisError as e:
                        logger.warning(f"Skipping {fp}: {e}")
                        errors.append(str(e))
            # as_completed order is arbitrary
            outcomes.sort(key=lambda pair: pair[0].path)
            errors.sort()

        for analysis, suite in outcomes:
            analyses.append(analysis)
            suites.append(suite)
        return self._aggregate(suites, analyses, errors, time.monotonic() - started)

    # ── internals ──────────────────────────────────────────────────

    def _suite_for(self, analysis: FileAnalysis, import_path: str) -> TestSuite:
        suite = self.synthesizer.synthesize(analysis, import_path=import_path)
        logger.debug(f"{analysis.path}: {len(suite.test_cases)} cases, {suite.coverage.estimated_coverage:.1f}% estimated")
        return suite

    def _aggregate(
        self,
        suites: list[TestSuite],
        analyses: list[FileAnalysis],
        errors: list[str],
        elapsed: float,
    ) -> TestGenerationResult:
        generated = {}
        warnings: list[str] = []
        all_errors = list(errors)
        for suite in suites:
            warnings.extend(suite.warnings)
            all_errors.extend(suite.errors)
            if suite.test_cases or suite.benchmarks or suite.examples:
                generated[suite.file_name] = render_suite(suite)

        functions = [fn for a in analyses for fn in a.functions]
        cases = [c for s in suites for c in s.test_cases]
        coverage = self.coverage.estimate_files((a.functions, s.test_cases) for a, s in zip(analyses, suites))
        stats = GenerationStatistics(
            files_analyzed=len(analyses),
            functions_analyzed=len(functions),
            tests_generated=len(cases),
            table_driven_tests=sum(1 for c in cases if c.kind == TestKind.TABLE_DRIVEN),
            mocks_generated=sum(len(s.mocks) for s in suites),
            helpers_generated=sum(len(s.helpers) for s in suites),
            benchmarks_generated=sum(len(s.benchmarks) for s in suites),
            examples_generated=sum(len(s.examples) for s in suites),
            average_complexity=(sum(fn.complexity for fn in functions) / len(functions)) if functions else 0.0,
            generation_time=timedelta(seconds=elapsed),
        )
        return TestGenerationResult(
            suites=tuple(suites),
            generated_files=generated,
            coverage=coverage,
            statistics=stats,
            warnings=tuple(warnings),
            errors=tuple(all_errors),
        )


def write_generated_files(result: TestGenerationResult, overwrite: bool = False) -> list[Path]:
    """Write generated files to disk; existing files are kept unless ``overwrite``."""
    written = []
    for name, content in result.generated_files.items():
        path = Path(name)
        if path.exists() and not overwrite:
            logger.info(f"Not overwriting existing {path}")
            continue
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FileAccessError(path, f"Write failed: {e}")
        written.append(path)
    return written
