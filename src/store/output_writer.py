"""Append-only output streams for one lineage.

The writer owns one open handle per destination for the duration of a
lineage. Streams are durable only after ``close`` has flushed, synced and
closed every handle and ``verify`` has confirmed the expected size growth.
Destinations that already exist are indexed first so that records replayed
from a previous, uncommitted run are not appended twice.
"""

from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from types import TracebackType
from typing import BinaryIO

from core.constants import DIGEST_ALGORITHM, PAYLOAD_ENCODING, PAYLOAD_ERRORS
from core.errors import OutputVerificationError, OutputWriteError
from core.reporting import OUT_OF_ORDER_RECORD, OUTPUT_WRITE_ERROR, Reporter
from core.types import KeyedRecord
from ingest.record_formats import RecordFormat
from store.filesystem import LocalFileSystem


@dataclass
class OutputStream:
    """Mutable state of one open destination file."""

    key: str
    destination: Path
    handle: BinaryIO
    initial_size: int
    last_timestamp: datetime | None
    replay_digests: Counter[bytes] = field(default_factory=Counter)
    bytes_written: int = 0
    records_written: int = 0
    closed: bool = False


class OutputWriter:
    """Append keyed records to their destination files."""

    def __init__(
        self,
        lineage_id: str,
        filesystem: LocalFileSystem,
        reporter: Reporter,
        order_tolerance: timedelta,
        formats: tuple[RecordFormat, ...],
        reference_year: int,
    ) -> None:
        self._lineage_id = lineage_id
        self._filesystem = filesystem
        self._reporter = reporter
        self._order_tolerance = order_tolerance
        self._formats = formats
        self._reference_year = reference_year
        self._streams: dict[Path, OutputStream] = {}
        self.records_written = 0
        self.replayed_skipped = 0
        self.out_of_order = 0

    def __enter__(self) -> "OutputWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.abort()

    @property
    def destinations(self) -> tuple[Path, ...]:
        """Return every destination touched by this writer."""
        return tuple(sorted(self._streams))

    def append(self, keyed_record: KeyedRecord, destination: Path) -> None:
        """Append one record to its destination stream.

        Args:
            keyed_record: Classified record.
            destination: Destination file for the record's key.

        Raises:
            OutputWriteError: If the destination cannot be opened or written.
        """
        stream = self._streams.get(destination)
        if stream is None:
            stream = self._open_stream(keyed_record.key, destination)
        record = keyed_record.record
        data = f"{record.payload}\n".encode(PAYLOAD_ENCODING, PAYLOAD_ERRORS)
        digest = _digest(data)
        if stream.replay_digests[digest] > 0:
            stream.replay_digests[digest] -= 1
            self.replayed_skipped += 1
            return
        self._check_order(stream, keyed_record)
        self._write(stream, data)
        stream.records_written += 1
        self.records_written += 1
        if stream.last_timestamp is None or record.timestamp > stream.last_timestamp:
            stream.last_timestamp = record.timestamp

    def close(self) -> None:
        """Flush, sync and close every stream.

        Raises:
            OutputWriteError: If any stream fails to close cleanly.
        """
        failures: list[str] = []
        for stream in self._streams.values():
            if stream.closed:
                continue
            stream.closed = True
            try:
                try:
                    self._filesystem.sync(stream.handle)
                finally:
                    stream.handle.close()
            except OSError as error:
                failures.append(f"{stream.destination}: {error}")
        if failures:
            raise OutputWriteError(
                f"Failed to close output streams for {self._lineage_id}: {'; '.join(failures)}. "
                "Input files were kept; free disk space or fix permissions and rerun."
            )

    def verify(self) -> None:
        """Confirm every closed stream grew by the bytes written to it.

        Raises:
            OutputVerificationError: If a destination is missing or short.
        """
        for stream in self._streams.values():
            if stream.bytes_written == 0:
                continue
            expected_size = stream.initial_size + stream.bytes_written
            try:
                actual_size = self._filesystem.file_size(stream.destination)
            except OSError as error:
                raise OutputVerificationError(
                    f"Cannot verify output {stream.destination}: {error}."
                ) from error
            if actual_size < expected_size:
                raise OutputVerificationError(
                    f"Output {stream.destination} holds {actual_size} bytes, "
                    f"expected at least {expected_size}. Input files were kept."
                )

    def abort(self) -> None:
        """Close any handle left open, reporting close failures."""
        for stream in self._streams.values():
            if stream.closed:
                continue
            try:
                stream.handle.close()
            except OSError as error:
                self._reporter.emit(
                    OUTPUT_WRITE_ERROR,
                    lineage_id=self._lineage_id,
                    destination=str(stream.destination),
                    error=str(error),
                )
            stream.closed = True

    def _open_stream(self, key: str, destination: Path) -> OutputStream:
        initial_size = 0
        last_timestamp: datetime | None = None
        replay_digests: Counter[bytes] = Counter()
        needs_newline = False
        try:
            if self._filesystem.exists(destination):
                initial_size = self._filesystem.file_size(destination)
                replay_digests, last_timestamp, needs_newline = self._index_existing(destination)
            handle = self._filesystem.open_append(destination)
        except OSError as error:
            raise OutputWriteError(
                f"Failed to open output {destination} for {self._lineage_id}: {error}. "
                "Check permissions on the output tree and rerun."
            ) from error
        stream = OutputStream(
            key=key,
            destination=destination,
            handle=handle,
            initial_size=initial_size,
            last_timestamp=last_timestamp,
            replay_digests=replay_digests,
        )
        self._streams[destination] = stream
        if needs_newline:
            self._write(stream, b"\n")
        return stream

    def _index_existing(self, destination: Path) -> tuple[Counter[bytes], datetime | None, bool]:
        """Index an existing destination's lines and latest timestamp."""
        digests: Counter[bytes] = Counter()
        last_timestamp: datetime | None = None
        raw_line = b""
        with self._filesystem.open_read(destination, "none") as handle:
            for raw_line in handle:
                terminated = raw_line if raw_line.endswith(b"\n") else raw_line + b"\n"
                digests[_digest(terminated)] += 1
                timestamp = self._parse_timestamp(terminated)
                if timestamp is not None and (last_timestamp is None or timestamp > last_timestamp):
                    last_timestamp = timestamp
        needs_newline = bool(raw_line) and not raw_line.endswith(b"\n")
        return digests, last_timestamp, needs_newline

    def _parse_timestamp(self, raw_line: bytes) -> datetime | None:
        line = raw_line.rstrip(b"\n").decode(PAYLOAD_ENCODING, PAYLOAD_ERRORS)
        for record_format in self._formats:
            timestamp = record_format.parse(line, self._reference_year)
            if timestamp is not None:
                return timestamp
        return None

    def _check_order(self, stream: OutputStream, keyed_record: KeyedRecord) -> None:
        record = keyed_record.record
        if stream.last_timestamp is None:
            return
        if record.timestamp >= stream.last_timestamp - self._order_tolerance:
            return
        self.out_of_order += 1
        self._reporter.emit(
            OUT_OF_ORDER_RECORD,
            lineage_id=self._lineage_id,
            destination=str(stream.destination),
            source_path=str(record.source_path),
            byte_offset=record.byte_offset,
            line_number=record.line_number,
            timestamp=record.timestamp.isoformat(),
            last_timestamp=stream.last_timestamp.isoformat(),
        )

    def _write(self, stream: OutputStream, data: bytes) -> None:
        try:
            stream.handle.write(data)
        except OSError as error:
            raise OutputWriteError(
                f"Failed to write output {stream.destination} for {self._lineage_id}: {error}. "
                "Input files were kept; free disk space and rerun."
            ) from error
        stream.bytes_written += len(data)


def _digest(data: bytes) -> bytes:
    return hashlib.new(DIGEST_ALGORITHM, data).digest()
