"""Stream splitting and rotation-boundary de-duplication.

The splitter routes each record of a lineage to a classification key and
drops the copies that rotation tooling re-flushed from the tail of one file
into the head of the next. Records are never dropped for any other reason:
a payload without an extractable key goes to the unclassified stream.
"""

from __future__ import annotations

import re
from collections import Counter, deque
from datetime import datetime
from pathlib import Path
from typing import AbstractSet, Iterable, Iterator

from core.constants import DEFAULT_PAYLOAD_KEY_PATTERN, KEY_COLLISION_SUFFIX
from core.errors import RunConfigError
from core.types import KeyedRecord, KeyPolicy, Lineage, Record

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class StreamSplitter:
    """Classify and de-duplicate the ordered records of one lineage."""

    def __init__(self, policy: KeyPolicy, lineage: Lineage, dedup_window: int) -> None:
        self._policy = policy
        self._lineage = lineage
        self._dedup_window = dedup_window
        self._pattern = compile_key_pattern(policy)
        self.duplicates_dropped = 0

    def split(self, records: Iterable[Record]) -> Iterator[KeyedRecord]:
        """Yield keyed records, dropping duplicates at file boundaries.

        When the source file changes, the last ``dedup_window`` emitted
        ``(timestamp, payload)`` pairs become candidates. Each of the first
        ``dedup_window`` records of the new file that matches a remaining
        candidate is discarded as a re-flushed copy.
        """
        recent: deque[tuple[datetime, str]] = deque(maxlen=self._dedup_window or None)
        candidates: Counter[tuple[datetime, str]] = Counter()
        current_source: Path | None = None
        head_position = 0
        for record in records:
            if record.source_path != current_source:
                if current_source is not None and self._dedup_window:
                    candidates = Counter(recent)
                current_source = record.source_path
                head_position = 0
            pair = (record.timestamp, record.payload)
            if head_position < self._dedup_window:
                head_position += 1
                if candidates[pair] > 0:
                    candidates[pair] -= 1
                    self.duplicates_dropped += 1
                    continue
            if self._dedup_window:
                recent.append(pair)
            yield KeyedRecord(key=self.classify(record), record=record)

    def classify(self, record: Record) -> str:
        """Return the classification key of one record."""
        if self._policy.mode == "fixed":
            return self._lineage.base_name
        if self._policy.mode == "date":
            return f"{self._lineage.base_name}-{record.timestamp:%Y-%m-%d}"
        match = self._pattern.search(record.payload) if self._pattern else None
        if match is not None:
            key = sanitize_key(match.group("key") or "")
            if key is not None:
                return key
        return self._policy.unclassified_key


def compile_key_pattern(policy: KeyPolicy) -> re.Pattern[str] | None:
    """Compile the payload key regex of a policy.

    Returns:
        Compiled pattern for payload mode, otherwise None.

    Raises:
        RunConfigError: If the regex is invalid or lacks a ``key`` group,
            or the unclassified key is not a single safe path component.
    """
    if policy.mode != "payload":
        return None
    validate_unclassified_key(policy.unclassified_key)
    raw_pattern = policy.pattern or DEFAULT_PAYLOAD_KEY_PATTERN
    try:
        pattern = re.compile(raw_pattern)
    except re.error as error:
        raise RunConfigError(
            f"Invalid key pattern {raw_pattern!r}: {error}. Fix the regular expression."
        ) from error
    if "key" not in pattern.groupindex:
        raise RunConfigError(
            f"Key pattern {raw_pattern!r} has no named group 'key'. "
            "Add (?P<key>...) around the classification text."
        )
    return pattern


def sanitize_key(raw_key: str) -> str | None:
    """Reduce a key to one safe path component, or None if nothing remains."""
    key = _UNSAFE_KEY_CHARS.sub("_", raw_key.strip())
    if key in ("", ".", ".."):
        return None
    return key


def validate_unclassified_key(unclassified_key: str) -> str:
    """Return the fallback key unchanged if it is already a safe key.

    Raises:
        RunConfigError: If sanitizing would alter or reject the key.
    """
    if sanitize_key(unclassified_key) != unclassified_key:
        raise RunConfigError(
            f"Invalid unclassified key {unclassified_key!r}: use letters, digits, "
            "'.', '_' or '-' only, and not '.' or '..'."
        )
    return unclassified_key


def destination_for(
    output_root: Path,
    lineage: Lineage,
    key: str,
    reserved_names: AbstractSet[str] = frozenset(),
) -> Path:
    """Map a classification key to its mirrored destination file.

    Args:
        output_root: Root of the mirrored output tree.
        lineage: Lineage the record belongs to.
        key: Sanitized classification key.
        reserved_names: Directory names already claimed inside the
            lineage's output directory.

    Returns:
        Destination path. A key that names a reserved directory gets
        ``KEY_COLLISION_SUFFIX`` appended until the file name is free.
    """
    name = key
    while name in reserved_names:
        name = f"{name}{KEY_COLLISION_SUFFIX}"
    return output_root / lineage.relative_dir / name
