"""Static analysis of Go source functions."""

from .analyzer import SUPPORTED_EXTENSIONS, SourceAnalyzer, count_complexity, should_generate_tests_for
from .models import (
    DependencyInfo,
    EdgeCase,
    ErrorKind,
    ErrorPath,
    FileAnalysis,
    FunctionAnalysis,
    HappyPath,
    ParameterInfo,
    ReturnInfo,
)

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "SourceAnalyzer",
    "count_complexity",
    "should_generate_tests_for",
    "DependencyInfo",
    "EdgeCase",
    "ErrorKind",
    "ErrorPath",
    "FileAnalysis",
    "FunctionAnalysis",
    "HappyPath",
    "ParameterInfo",
    "ReturnInfo",
]
