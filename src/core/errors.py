"""logsplit exception hierarchy.

Each error is scoped to the unit it is fatal to: configuration errors stop
the run before any I/O, the others stop a single lineage. Record-level
conditions (parse errors, ordering violations, deletion failures) are
reported as events and counters instead of exceptions.
"""

from __future__ import annotations

from pathlib import Path


class LogSplitError(Exception):
    """Base exception for all logsplit failures."""


class ConfigError(LogSplitError):
    """Raised for invalid runtime configuration."""


class RunConfigError(LogSplitError):
    """Raised for invalid or unsupported YAML run configuration."""


class UnreadableFileError(LogSplitError):
    """Raised when an input file cannot be opened or decompressed at all."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(
            f"Failed to read input file {path}: {reason}. "
            "Check the file permissions and compression, then rerun."
        )
        self.path = path
        self.reason = reason


class AmbiguousLineageError(LogSplitError):
    """Raised when rotated files of one lineage cannot be ordered safely."""

    def __init__(self, lineage_id: str, reason: str, paths: tuple[Path, ...]) -> None:
        super().__init__(
            f"Ambiguous rotation lineage {lineage_id}: {reason}. "
            "Rename or remove the conflicting files and rerun."
        )
        self.lineage_id = lineage_id
        self.reason = reason
        self.paths = paths


class OutputWriteError(LogSplitError):
    """Raised when an output stream cannot be opened, written, or closed."""


class OutputVerificationError(LogSplitError):
    """Raised when a closed output stream does not hold the expected bytes."""
