"""Analysis-related exceptions: file access, parsing, unsupported sources."""

from pathlib import Path
from typing import List, Union

from .base import TestWardenError


class AnalysisError(TestWardenError):
    """Base class for analysis-related errors."""

    pass


class FileAccessError(AnalysisError):
    """Raised when a source file cannot be accessed or read."""

    def __init__(self, filepath: Union[str, Path], reason: str):
        super().__init__(
            f"Cannot access file: {filepath}",
            details={"filepath": str(filepath), "reason": reason},
        )
        self.filepath = filepath
        self.reason = reason


class ParsingError(AnalysisError):
    """Raised when a source file does not parse cleanly."""

    def __init__(self, filepath: Union[str, Path], language: str, reason: str):
        super().__init__(
            f"Failed to parse {language} file: {filepath}",
            details={"filepath": str(filepath), "language": language, "reason": reason},
        )
        self.filepath = filepath
        self.language = language
        self.reason = reason


class UnsupportedLanguageError(AnalysisError):
    """Raised when asked to analyze a file in a language without a source model."""

    def __init__(self, filepath: Union[str, Path], supported_extensions: List[str]):
        super().__init__(
            f"Unsupported source file: {filepath}",
            details={"filepath": str(filepath), "supported": ", ".join(supported_extensions)},
        )
        self.filepath = filepath
        self.supported_extensions = supported_extensions
