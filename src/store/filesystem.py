"""Local filesystem collaborator.

Every touch of the disk made by the pipeline goes through this class so
that listing, decompression, appends, and deletions have one narrow seam.
Deletion reports success or failure per call instead of raising.
"""

from __future__ import annotations

import bz2
import gzip
import lzma
import os
from pathlib import Path
from typing import BinaryIO, Iterator, cast

from core.types import CompressionKind, DeletionOutcome


class LocalFileSystem:
    """Filesystem operations used by the split pipeline."""

    def walk_files(self, root: Path) -> Iterator[Path]:
        """Yield regular files under a root in sorted order.

        Args:
            root: Directory to traverse recursively.

        Returns:
            Iterator of file paths. Symlinks are not followed.
        """
        for path in sorted(root.rglob("*")):
            if path.is_file() and not path.is_symlink():
                yield path

    def child_directories(self, path: Path) -> frozenset[str]:
        """Return names of the directories directly under a path, if it exists."""
        if not path.is_dir():
            return frozenset()
        return frozenset(child.name for child in path.iterdir() if child.is_dir())

    def open_read(self, path: Path, compression: CompressionKind) -> BinaryIO:
        """Open a file for binary reading, undoing its compression."""
        if compression == "gzip":
            return cast(BinaryIO, gzip.open(path, "rb"))
        if compression == "bzip2":
            return cast(BinaryIO, bz2.open(path, "rb"))
        if compression == "xz":
            return cast(BinaryIO, lzma.open(path, "rb"))
        return path.open("rb")

    def open_append(self, path: Path) -> BinaryIO:
        """Open a destination for appending, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return path.open("ab")

    def sync(self, handle: BinaryIO) -> None:
        """Flush a handle and force its bytes to stable storage."""
        handle.flush()
        os.fsync(handle.fileno())

    def exists(self, path: Path) -> bool:
        """Return whether a path exists."""
        return path.exists()

    def file_size(self, path: Path) -> int:
        """Return the current size of a file in bytes."""
        return path.stat().st_size

    def delete(self, path: Path) -> DeletionOutcome:
        """Delete one file and report the outcome."""
        try:
            path.unlink()
        except OSError as error:
            return DeletionOutcome(path=path, deleted=False, error=str(error))
        return DeletionOutcome(path=path, deleted=True)
