"""Lazy record reader for one input file.

The reader transparently decompresses its file, decodes every line without
loss, and yields parsed records in file order. Lines without a parsable
timestamp are skipped and counted; only a file that cannot be opened or
decompressed at all raises.
"""

from __future__ import annotations

import lzma
import zlib
from contextlib import closing
from datetime import datetime
from typing import Iterator

from core.constants import PAYLOAD_ENCODING, PAYLOAD_ERRORS
from core.errors import UnreadableFileError
from core.types import InputFile, Record
from ingest.record_formats import RecordFormat
from store.filesystem import LocalFileSystem

_DECOMPRESSION_ERRORS = (OSError, EOFError, lzma.LZMAError, zlib.error)


class FileRecordReader:
    """Restartable record sequence over one input file.

    Each iteration reopens the file, so the reader can be scanned for its
    format and then iterated for records. ``parse_errors`` holds the count
    for the most recent iteration.
    """

    def __init__(
        self,
        input_file: InputFile,
        formats: tuple[RecordFormat, ...],
        filesystem: LocalFileSystem,
        reference_year: int,
    ) -> None:
        self.input_file = input_file
        self._formats = formats
        self._filesystem = filesystem
        self._reference_year = reference_year
        self._locked_format: RecordFormat | None = None
        self.parse_errors = 0
        self.has_content = False

    @property
    def format_name(self) -> str | None:
        """Return the locked format name, if one was detected."""
        return self._locked_format.name if self._locked_format else None

    def detect_format(self, max_lines: int) -> str | None:
        """Lock the first configured format that parses a line.

        Args:
            max_lines: Non-blank lines scanned before giving up.

        Returns:
            Detected format name, or None for empty or unrecognized files.

        Raises:
            UnreadableFileError: If the file cannot be read.
        """
        scanned = 0
        with closing(self._iter_lines()) as lines:
            for _, _, line in lines:
                if not line.strip():
                    continue
                self.has_content = True
                if self._parse_timestamp(line) is not None:
                    return self.format_name
                scanned += 1
                if scanned >= max_lines:
                    break
        return None

    def __iter__(self) -> Iterator[Record]:
        self.parse_errors = 0
        with closing(self._iter_lines()) as lines:
            for byte_offset, line_number, line in lines:
                if not line.strip():
                    continue
                timestamp = self._parse_timestamp(line)
                if timestamp is None:
                    self.parse_errors += 1
                    continue
                yield Record(
                    timestamp=timestamp,
                    payload=line,
                    source_path=self.input_file.path,
                    byte_offset=byte_offset,
                    line_number=line_number,
                )

    def _parse_timestamp(self, line: str) -> datetime | None:
        if self._locked_format is not None:
            return self._locked_format.parse(line, self._reference_year)
        for record_format in self._formats:
            timestamp = record_format.parse(line, self._reference_year)
            if timestamp is not None:
                self._locked_format = record_format
                return timestamp
        return None

    def _iter_lines(self) -> Iterator[tuple[int, int, str]]:
        """Yield ``(byte_offset, line_number, line)`` from the decompressed stream."""
        path = self.input_file.path
        try:
            handle = self._filesystem.open_read(path, self.input_file.compression)
        except OSError as error:
            raise UnreadableFileError(path, str(error)) from error
        with handle:
            byte_offset = 0
            line_number = 0
            while True:
                try:
                    raw_line = handle.readline()
                except _DECOMPRESSION_ERRORS as error:
                    raise UnreadableFileError(path, str(error) or type(error).__name__) from error
                if not raw_line:
                    return
                line_number += 1
                yield byte_offset, line_number, _decode_line(raw_line)
                byte_offset += len(raw_line)


def _decode_line(raw_line: bytes) -> str:
    """Decode a line losslessly, dropping its line terminator."""
    return raw_line.rstrip(b"\n").decode(PAYLOAD_ENCODING, PAYLOAD_ERRORS)
