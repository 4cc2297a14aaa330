"""Shared builders for log trees used across tests."""

from __future__ import annotations

import bz2
import gzip
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from core.types import InputFile, KeyPolicy, Record, SplitOptions
from ingest.rotation_grouper import classify_file


class RecordingReporter:
    """Reporter that stores events instead of logging them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []
        self._lock = threading.Lock()

    def emit(self, event: str, **fields: object) -> None:
        with self._lock:
            self.events.append((event, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event: str) -> list[dict[str, object]]:
        return [fields for name, fields in self.events if name == event]


def iso_line(minute: int, message: str = "event") -> str:
    """Build one ISO-stamped log line at 10:<minute> on 2024-03-01."""
    return f"2024-03-01 10:{minute:02d}:00 {message} {minute}"


def write_log(path: Path, lines: list[str], compression: str = "none") -> Path:
    """Write lines to a log file, compressing by extension kind."""
    path.parent.mkdir(parents=True, exist_ok=True)
    body = "".join(f"{line}\n" for line in lines).encode("utf-8")
    if compression == "gzip":
        path.write_bytes(gzip.compress(body))
    elif compression == "bzip2":
        path.write_bytes(bz2.compress(body))
    else:
        path.write_bytes(body)
    return path


def input_file_for(path: Path, root: Path, grammar: str = "numeric") -> InputFile:
    """Classify an existing file the way the scanner does."""
    return classify_file(path, root, grammar, path.stat().st_size)


def make_record(minute: int, source: str = "a.log", message: str = "event") -> Record:
    return Record(
        timestamp=datetime(2024, 3, 1, 10, minute),
        payload=iso_line(minute, message),
        source_path=Path(source),
        byte_offset=0,
        line_number=minute + 1,
    )


def make_options(input_root: Path, output_root: Path, **overrides: Any) -> SplitOptions:
    """Build options for ISO-formatted test trees."""
    options = SplitOptions(
        input_root=input_root,
        output_root=output_root,
        formats=("iso",),
        key_policy=KeyPolicy(),
        workers=2,
    )
    return replace(options, **overrides)


def output_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()
