"""Rotation lineage discovery and ordering.

Files are grouped by directory and base name once compression and rotation
suffixes are stripped. The accepted suffix grammar is explicit
configuration: ``numeric`` (``app.log.3``), ``date`` (``app.log-20240101``,
``app.log-2024-01-01``, ``app.log.20240101``) or ``mixed``. A file without a
suffix is the active log, rotation index 0; larger indices are older.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, cast

from core.constants import COMPRESSION_EXTENSIONS
from core.errors import AmbiguousLineageError, ConfigError
from core.logging_config import get_logger
from core.types import CompressionKind, InputFile, Lineage, SuffixKind
from store.filesystem import LocalFileSystem

_NUMERIC_SUFFIX = re.compile(r"^(?P<base>.+)\.(?P<suffix>\d+)$")
_DATE_SUFFIX = re.compile(r"^(?P<base>.+?)(?:-(?P<dashed>\d{4}-\d{2}-\d{2})|[-.](?P<compact>\d{8}))$")
_UNRANKED_INDEX = -1

_LOGGER = get_logger(__name__)


def scan_input_files(
    input_root: Path,
    output_root: Path,
    grammar: str,
    filesystem: LocalFileSystem,
) -> list[InputFile]:
    """List and classify every regular file under the input root.

    Args:
        input_root: Root of the rotated log tree.
        output_root: Destination root, excluded when nested in the input.
        grammar: Rotation suffix grammar.
        filesystem: Filesystem collaborator.

    Returns:
        Classified input files; date-suffixed files are not yet ranked.
        Files that vanish or cannot be stat-ed during the scan are skipped.
    """
    nested_output = _nested_output_root(input_root, output_root)
    input_files: list[InputFile] = []
    for path in filesystem.walk_files(input_root):
        if nested_output is not None and path.resolve().is_relative_to(nested_output):
            continue
        try:
            size_bytes = filesystem.file_size(path)
        except OSError as error:
            _LOGGER.warning("input_file_skipped", path=str(path), error=str(error))
            continue
        input_files.append(classify_file(path, input_root, grammar, size_bytes))
    return input_files


def classify_file(path: Path, input_root: Path, grammar: str, size_bytes: int) -> InputFile:
    """Derive lineage id, rotation suffix, and compression from a path.

    Args:
        path: File path under the input root.
        input_root: Root used to compute the relative directory.
        grammar: ``numeric``, ``date`` or ``mixed``.
        size_bytes: File size in bytes.

    Returns:
        Classified input file.

    Raises:
        ConfigError: If the grammar is unknown.
    """
    name, compression = _strip_compression(path.name)
    base_name, suffix_kind, suffix_value = _strip_rotation_suffix(name, grammar)
    if suffix_kind == "numeric":
        rotation_index = int(suffix_value)
    elif suffix_kind == "date":
        rotation_index = _UNRANKED_INDEX
    else:
        rotation_index = 0
    relative_dir = path.parent.relative_to(input_root)
    return InputFile(
        path=path,
        lineage_id=_lineage_id(relative_dir, base_name),
        rotation_index=rotation_index,
        suffix_kind=suffix_kind,
        suffix_value=suffix_value,
        compression=compression,
        size_bytes=size_bytes,
    )


def discover_lineages(
    input_files: Iterable[InputFile],
    input_root: Path,
    include_active: bool = True,
) -> list[Lineage]:
    """Group input files into lineages.

    Two files group together iff they share a directory and base name after
    suffix removal, so unrelated unrotated files become singletons. Date
    suffixes are ranked newest first starting at index 1.

    Args:
        input_files: Classified files.
        input_root: Root used to compute relative directories.
        include_active: Whether unsuffixed files take part.

    Returns:
        Lineages sorted by id.
    """
    grouped: dict[str, list[InputFile]] = defaultdict(list)
    for input_file in input_files:
        if input_file.suffix_kind == "active" and not include_active:
            continue
        grouped[input_file.lineage_id].append(input_file)
    lineages: list[Lineage] = []
    for lineage_id in sorted(grouped):
        members = _rank_date_suffixes(grouped[lineage_id])
        first_path = members[0].path
        lineages.append(
            Lineage(
                lineage_id=lineage_id,
                relative_dir=first_path.parent.relative_to(input_root),
                base_name=lineage_id.rsplit("/", 1)[-1],
                files=tuple(sorted(members, key=lambda member: member.path)),
            )
        )
    return lineages


def ordered_files(lineage: Lineage) -> tuple[InputFile, ...]:
    """Return lineage files oldest first.

    Raises:
        AmbiguousLineageError: If two files claim one rotation index or the
            lineage mixes numeric and date suffixes.
    """
    suffix_kinds = {member.suffix_kind for member in lineage.files} - {"active"}
    if len(suffix_kinds) > 1:
        raise AmbiguousLineageError(
            lineage.lineage_id,
            "lineage mixes numeric and date rotation suffixes",
            tuple(member.path for member in lineage.files),
        )
    claims: dict[int, list[InputFile]] = defaultdict(list)
    for member in lineage.files:
        claims[member.rotation_index].append(member)
    for rotation_index in sorted(claims):
        claimants = claims[rotation_index]
        if len(claimants) > 1:
            names = ", ".join(sorted(member.path.name for member in claimants))
            raise AmbiguousLineageError(
                lineage.lineage_id,
                f"rotation index {rotation_index} claimed by {names}",
                tuple(member.path for member in claimants),
            )
    return tuple(sorted(lineage.files, key=lambda member: member.rotation_index, reverse=True))


def missing_rotation_count(lineage: Lineage) -> int:
    """Count indices missing from the lineage's contiguous rotation range."""
    indices = {member.rotation_index for member in lineage.files}
    return max(indices) - min(indices) + 1 - len(indices)


def _strip_compression(name: str) -> tuple[str, CompressionKind]:
    for extension, compression in COMPRESSION_EXTENSIONS.items():
        if name.endswith(extension) and len(name) > len(extension):
            return name[: -len(extension)], cast(CompressionKind, compression)
    return name, "none"


def _strip_rotation_suffix(name: str, grammar: str) -> tuple[str, SuffixKind, str]:
    """Split a file name into base name, suffix kind, and suffix value."""
    if grammar not in ("numeric", "date", "mixed"):
        raise ConfigError(
            f"Unknown rotation suffix grammar '{grammar}'. Use numeric, date, or mixed."
        )
    if grammar in ("date", "mixed"):
        date_match = _DATE_SUFFIX.match(name)
        if date_match is not None:
            compact = (date_match.group("dashed") or date_match.group("compact")).replace("-", "")
            if _is_calendar_date(compact):
                return date_match.group("base"), "date", compact
    if grammar in ("numeric", "mixed"):
        numeric_match = _NUMERIC_SUFFIX.match(name)
        if numeric_match is not None:
            return numeric_match.group("base"), "numeric", numeric_match.group("suffix")
    return name, "active", ""


def _rank_date_suffixes(members: list[InputFile]) -> list[InputFile]:
    """Assign date-suffixed files indices 1..n, newest date first."""
    dates = sorted(
        {member.suffix_value for member in members if member.suffix_kind == "date"},
        reverse=True,
    )
    ranks = {date_value: rank for rank, date_value in enumerate(dates, 1)}
    return [
        replace(member, rotation_index=ranks[member.suffix_value])
        if member.suffix_kind == "date"
        else member
        for member in members
    ]


def _is_calendar_date(compact: str) -> bool:
    try:
        datetime.strptime(compact, "%Y%m%d")
    except ValueError:
        return False
    return True


def _lineage_id(relative_dir: Path, base_name: str) -> str:
    if relative_dir == Path("."):
        return base_name
    return f"{relative_dir.as_posix()}/{base_name}"


def _nested_output_root(input_root: Path, output_root: Path) -> Path | None:
    """Return the resolved output root when it lives inside the input tree."""
    resolved_input = input_root.resolve()
    resolved_output = output_root.resolve()
    if resolved_output != resolved_input and resolved_output.is_relative_to(resolved_input):
        return resolved_output
    return None
