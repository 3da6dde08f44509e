"""Test synthesis, coverage estimation and Go test-file emission."""

from .coverage import CoverageEstimator
from .generator import AutomatedTestGenerator, find_source_files, write_generated_files
from .models import CoverageAnalysis, TestCase, TestGenerationResult, TestKind, TestSuite
from .synthesizer import TestSynthesizer

__all__ = [
    "AutomatedTestGenerator",
    "CoverageEstimator",
    "TestSynthesizer",
    "find_source_files",
    "write_generated_files",
    "CoverageAnalysis",
    "TestCase",
    "TestGenerationResult",
    "TestKind",
    "TestSuite",
]
