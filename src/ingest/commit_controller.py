"""Per-lineage commit controller.

One runner drives one lineage through
``discovered -> reading -> writing -> verifying -> committed | failed``.
Input files are deleted only in ``committed``, after every output stream
the lineage touched has been synced, closed, and verified. A lineage whose
files hold content in no configured format ends ``skipped`` and is left
untouched.
"""

from __future__ import annotations

from contextlib import closing
from datetime import timedelta
from typing import AbstractSet, Iterator

from core.errors import (
    AmbiguousLineageError,
    OutputVerificationError,
    OutputWriteError,
    UnreadableFileError,
)
from core.logging_config import get_logger
from core.reporting import (
    AMBIGUOUS_LINEAGE,
    DELETION_ERROR,
    LINEAGE_FINISHED,
    OUTPUT_VERIFICATION_ERROR,
    OUTPUT_WRITE_ERROR,
    PARSE_ERRORS,
    ROTATION_GAP,
    UNREADABLE_FILE,
    UNRECOGNIZED_FORMAT,
    Reporter,
)
from core.types import (
    DeletionOutcome,
    FailureKind,
    InputFile,
    Lineage,
    LineageResult,
    LineageState,
    Record,
    SplitOptions,
)
from ingest.record_formats import RecordFormat
from ingest.record_reader import FileRecordReader
from ingest.rotation_grouper import missing_rotation_count, ordered_files
from store.filesystem import LocalFileSystem
from store.output_writer import OutputWriter
from transforms.stream_splitter import StreamSplitter, destination_for

_LOGGER = get_logger(__name__)


class LineageCommitRunner:
    """Drive one lineage from discovery to commit or failure."""

    def __init__(
        self,
        lineage: Lineage,
        options: SplitOptions,
        formats: tuple[RecordFormat, ...],
        reference_year: int,
        filesystem: LocalFileSystem,
        reporter: Reporter,
        reserved_names: AbstractSet[str] = frozenset(),
    ) -> None:
        self._lineage = lineage
        self._options = options
        self._formats = formats
        self._reference_year = reference_year
        self._filesystem = filesystem
        self._reporter = reporter
        self._reserved_names = reserved_names
        self.state: LineageState = "discovered"
        self._readers: list[FileRecordReader] = []
        self._splitter: StreamSplitter | None = None
        self._writer: OutputWriter | None = None
        self._records_read = 0

    def run(self) -> LineageResult:
        """Process the lineage and return its final result.

        Only lineage-scoped errors are absorbed here; they move the lineage
        to ``failed`` with no input deleted.
        """
        try:
            result = self._run_stages()
        except AmbiguousLineageError as error:
            self._reporter.emit(
                AMBIGUOUS_LINEAGE,
                lineage_id=self._lineage.lineage_id,
                reason=error.reason,
                paths=[str(path) for path in error.paths],
            )
            result = self._failed("ambiguous_lineage", error)
        except UnreadableFileError as error:
            self._reporter.emit(
                UNREADABLE_FILE,
                lineage_id=self._lineage.lineage_id,
                path=str(error.path),
                reason=error.reason,
            )
            result = self._failed("unreadable_file", error)
        except OutputWriteError as error:
            self._reporter.emit(
                OUTPUT_WRITE_ERROR, lineage_id=self._lineage.lineage_id, error=str(error)
            )
            result = self._failed("output_write_error", error)
        except OutputVerificationError as error:
            self._reporter.emit(
                OUTPUT_VERIFICATION_ERROR, lineage_id=self._lineage.lineage_id, error=str(error)
            )
            result = self._failed("output_verification_error", error)
        self._reporter.emit(
            LINEAGE_FINISHED,
            lineage_id=result.lineage_id,
            state=result.state,
            records_written=result.records_written,
            parse_errors=result.parse_errors,
            deleted_files=len(result.deleted_files),
        )
        return result

    def _run_stages(self) -> LineageResult:
        self._transition("reading")
        files = ordered_files(self._lineage)
        self._report_rotation_gaps()
        self._readers = [
            FileRecordReader(input_file, self._formats, self._filesystem, self._reference_year)
            for input_file in files
        ]
        unrecognized = self._detect_formats()
        if unrecognized:
            self._transition("skipped")
            return self._result()
        self._transition("writing")
        self._splitter = StreamSplitter(
            self._options.key_policy, self._lineage, self._options.dedup_window
        )
        reserved_names = self._reserved_destination_names()
        with self._build_writer() as writer, closing(self._records()) as records:
            self._writer = writer
            for keyed_record in self._splitter.split(records):
                destination = destination_for(
                    self._options.output_root, self._lineage, keyed_record.key, reserved_names
                )
                writer.append(keyed_record, destination)
            self._report_parse_errors()
            self._transition("verifying")
            writer.close()
            writer.verify()
        self._transition("committed")
        deletions = () if self._options.keep_input else self._delete_inputs(files)
        return self._result(deletions)

    def _detect_formats(self) -> list[InputFile]:
        """Return files with content that matched no configured format."""
        unrecognized: list[InputFile] = []
        for reader in self._readers:
            if reader.detect_format(self._options.detect_lines) is not None:
                continue
            if reader.has_content:
                unrecognized.append(reader.input_file)
                self._reporter.emit(
                    UNRECOGNIZED_FORMAT,
                    lineage_id=self._lineage.lineage_id,
                    path=str(reader.input_file.path),
                    formats=list(self._options.formats),
                )
        return unrecognized

    def _records(self) -> Iterator[Record]:
        for reader in self._readers:
            with closing(iter(reader)) as reader_records:
                for record in reader_records:
                    self._records_read += 1
                    yield record

    def _reserved_destination_names(self) -> AbstractSet[str]:
        """Return directory names key streams must avoid in this output directory."""
        output_dir = self._options.output_root / self._lineage.relative_dir
        try:
            existing = self._filesystem.child_directories(output_dir)
        except OSError as error:
            raise OutputWriteError(
                f"Failed to list output directory {output_dir}: {error}. "
                "Check permissions on the output tree and rerun."
            ) from error
        return self._reserved_names | existing

    def _build_writer(self) -> OutputWriter:
        return OutputWriter(
            lineage_id=self._lineage.lineage_id,
            filesystem=self._filesystem,
            reporter=self._reporter,
            order_tolerance=timedelta(seconds=self._options.order_tolerance_seconds),
            formats=self._formats,
            reference_year=self._reference_year,
        )

    def _delete_inputs(self, files: tuple[InputFile, ...]) -> tuple[DeletionOutcome, ...]:
        """Delete inputs oldest first; failures are reported, never rolled back."""
        outcomes: list[DeletionOutcome] = []
        for input_file in files:
            outcome = self._filesystem.delete(input_file.path)
            if not outcome.deleted:
                self._reporter.emit(
                    DELETION_ERROR,
                    lineage_id=self._lineage.lineage_id,
                    path=str(outcome.path),
                    error=outcome.error,
                )
            outcomes.append(outcome)
        return tuple(outcomes)

    def _report_rotation_gaps(self) -> None:
        missing = missing_rotation_count(self._lineage)
        if missing:
            indices = [member.rotation_index for member in self._lineage.files]
            self._reporter.emit(
                ROTATION_GAP,
                lineage_id=self._lineage.lineage_id,
                missing_count=missing,
                lowest_index=min(indices),
                highest_index=max(indices),
            )

    def _report_parse_errors(self) -> None:
        for reader in self._readers:
            if reader.parse_errors:
                self._reporter.emit(
                    PARSE_ERRORS,
                    lineage_id=self._lineage.lineage_id,
                    path=str(reader.input_file.path),
                    count=reader.parse_errors,
                )

    def _transition(self, state: LineageState) -> None:
        _LOGGER.debug(
            "lineage_transition",
            lineage_id=self._lineage.lineage_id,
            from_state=self.state,
            to_state=state,
        )
        self.state = state

    def _failed(self, kind: FailureKind, error: Exception) -> LineageResult:
        self._transition("failed")
        return self._result(failure_kind=kind, failure_message=str(error))

    def _result(
        self,
        deletions: tuple[DeletionOutcome, ...] = (),
        failure_kind: FailureKind | None = None,
        failure_message: str | None = None,
    ) -> LineageResult:
        writer = self._writer
        return LineageResult(
            lineage_id=self._lineage.lineage_id,
            state=self.state,
            files=tuple(member.path for member in self._lineage.files),
            records_read=self._records_read,
            records_written=writer.records_written if writer else 0,
            parse_errors=sum(reader.parse_errors for reader in self._readers),
            duplicates_dropped=self._splitter.duplicates_dropped if self._splitter else 0,
            replayed_skipped=writer.replayed_skipped if writer else 0,
            out_of_order=writer.out_of_order if writer else 0,
            destinations=writer.destinations if writer else (),
            deleted_files=tuple(outcome.path for outcome in deletions if outcome.deleted),
            deletion_failures=tuple(outcome for outcome in deletions if not outcome.deleted),
            failure_kind=failure_kind,
            failure_message=failure_message,
        )
