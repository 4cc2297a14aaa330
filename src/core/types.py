"""Shared typed models.

This module defines the data models passed between the grouper, reader,
splitter, writer, and commit controller so every seam has an explicit,
immutable contract.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal

from core.constants import (
    DEFAULT_DEDUP_WINDOW,
    DEFAULT_FORMAT_DETECT_LINES,
    DEFAULT_ORDER_TOLERANCE_SECONDS,
    DEFAULT_SUFFIX_GRAMMAR,
    DEFAULT_WORKERS,
    SUPPORTED_RECORD_FORMATS,
    UNCLASSIFIED_KEY,
)

CompressionKind = Literal["none", "gzip", "bzip2", "xz"]
SuffixKind = Literal["active", "numeric", "date"]
KeyPolicyMode = Literal["fixed", "payload", "date"]
LineageState = Literal[
    "discovered",
    "reading",
    "writing",
    "verifying",
    "committed",
    "failed",
    "skipped",
]
FailureKind = Literal[
    "unreadable_file",
    "ambiguous_lineage",
    "output_write_error",
    "output_verification_error",
]


@dataclass(frozen=True)
class InputFile:
    """One discovered input file.

    Attributes:
        path: Absolute file path.
        lineage_id: Relative directory plus base name with suffixes removed.
        rotation_index: Position in the lineage, 0 = active/newest.
        suffix_kind: Which rotation suffix grammar matched.
        suffix_value: Raw suffix text, used for date ranking and messages.
        compression: Compression applied to the file.
        size_bytes: File size at discovery time.
    """

    path: Path
    lineage_id: str
    rotation_index: int
    suffix_kind: SuffixKind
    suffix_value: str
    compression: CompressionKind
    size_bytes: int


@dataclass(frozen=True)
class Lineage:
    """Rotated files believed to be successive rotations of one log.

    Attributes:
        lineage_id: Unique id, ``<relative_dir>/<base_name>``.
        relative_dir: Directory relative to the input root.
        base_name: File name with compression and rotation suffix removed.
        files: Member files in discovery order.
    """

    lineage_id: str
    relative_dir: Path
    base_name: str
    files: tuple[InputFile, ...]


@dataclass(frozen=True)
class Record:
    """One parsed log record.

    Attributes:
        timestamp: Naive UTC timestamp.
        payload: Raw line without its trailing newline.
        source_path: Input file the record came from.
        byte_offset: Offset of the line in the decompressed stream.
        line_number: One-based line number.
    """

    timestamp: datetime
    payload: str
    source_path: Path
    byte_offset: int
    line_number: int


@dataclass(frozen=True)
class KeyedRecord:
    """Record routed to a classification key."""

    key: str
    record: Record


@dataclass(frozen=True)
class KeyPolicy:
    """Classification key extraction policy.

    Attributes:
        mode: ``fixed`` (lineage base name), ``payload`` (regex), or ``date``.
        pattern: Regex with a named ``key`` group for payload mode.
        unclassified_key: Fallback key when payload extraction fails.
    """

    mode: KeyPolicyMode = "fixed"
    pattern: str | None = None
    unclassified_key: str = UNCLASSIFIED_KEY

    @property
    def lineage_scoped(self) -> bool:
        """Return whether destinations always embed the lineage base name."""
        return self.mode != "payload"


@dataclass(frozen=True)
class SplitOptions:
    """One split run request.

    Attributes:
        input_root: Root of the rotated log tree.
        output_root: Root of the mirrored destination tree.
        formats: Record formats tried, in order.
        key_policy: Classification policy.
        suffix_grammar: Accepted rotation suffix grammar.
        include_active: Whether unsuffixed (active) files are processed.
        dedup_window: Boundary de-duplication window K.
        order_tolerance_seconds: Allowed backwards step per output stream.
        workers: Parallel lineage workers.
        keep_input: Skip deletion after commit.
        syslog_year: Year assumed for syslog stamps, None = current UTC year.
        detect_lines: Lines scanned per file when detecting its format.
    """

    input_root: Path
    output_root: Path
    formats: tuple[str, ...] = SUPPORTED_RECORD_FORMATS
    key_policy: KeyPolicy = field(default_factory=KeyPolicy)
    suffix_grammar: str = DEFAULT_SUFFIX_GRAMMAR
    include_active: bool = True
    dedup_window: int = DEFAULT_DEDUP_WINDOW
    order_tolerance_seconds: float = DEFAULT_ORDER_TOLERANCE_SECONDS
    workers: int = DEFAULT_WORKERS
    keep_input: bool = False
    syslog_year: int | None = None
    detect_lines: int = DEFAULT_FORMAT_DETECT_LINES


@dataclass(frozen=True)
class DeletionOutcome:
    """Result of one input file deletion."""

    path: Path
    deleted: bool
    error: str | None = None


@dataclass(frozen=True)
class LineageResult:
    """Final outcome of one lineage, returned by the commit controller."""

    lineage_id: str
    state: LineageState
    files: tuple[Path, ...] = ()
    records_read: int = 0
    records_written: int = 0
    parse_errors: int = 0
    duplicates_dropped: int = 0
    replayed_skipped: int = 0
    out_of_order: int = 0
    destinations: tuple[Path, ...] = ()
    deleted_files: tuple[Path, ...] = ()
    deletion_failures: tuple[DeletionOutcome, ...] = ()
    failure_kind: FailureKind | None = None
    failure_message: str | None = None


@dataclass(frozen=True)
class RunSummary:
    """Aggregated results of one split run."""

    results: tuple[LineageResult, ...]
    cancelled: bool = False

    @property
    def failed_lineages(self) -> tuple[str, ...]:
        """Return ids of lineages that ended in ``failed``."""
        return tuple(result.lineage_id for result in self.results if result.state == "failed")

    def state_counts(self) -> dict[str, int]:
        """Count lineages per final state."""
        return dict(Counter(result.state for result in self.results))

    def error_counts(self) -> dict[str, int]:
        """Count each error kind across all lineages."""
        counts: Counter[str] = Counter()
        for result in self.results:
            counts["parse_error"] += result.parse_errors
            counts["out_of_order_record"] += result.out_of_order
            counts["deletion_error"] += len(result.deletion_failures)
            if result.failure_kind is not None:
                counts[result.failure_kind] += 1
        return dict(counts)

    @property
    def exit_code(self) -> int:
        """Return 0 unless at least one lineage failed."""
        return 1 if self.failed_lineages else 0
