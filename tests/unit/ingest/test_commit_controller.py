"""Unit tests for the per-lineage commit controller."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

from core.types import DeletionOutcome, Lineage, SplitOptions
from ingest.commit_controller import LineageCommitRunner
from ingest.record_formats import resolve_formats
from ingest.rotation_grouper import discover_lineages, scan_input_files
from store.filesystem import LocalFileSystem
from tests.log_builders import (
    RecordingReporter,
    iso_line,
    make_options,
    output_lines,
    write_log,
)


class _RefusingDeleteFileSystem(LocalFileSystem):
    def __init__(self, refused_name: str) -> None:
        self.refused_name = refused_name
        self.deleted: list[str] = []

    def delete(self, path: Path) -> DeletionOutcome:
        if path.name == self.refused_name:
            return DeletionOutcome(path=path, deleted=False, error="permission denied")
        self.deleted.append(path.name)
        return super().delete(path)


class _ReadOnlyOutputFileSystem(LocalFileSystem):
    def open_append(self, path: Path) -> BinaryIO:
        raise PermissionError(13, "Permission denied", str(path))


class _ShortOutputFileSystem(LocalFileSystem):
    def __init__(self, output_root: Path) -> None:
        self.output_root = output_root

    def file_size(self, path: Path) -> int:
        if path.is_relative_to(self.output_root):
            return 0
        return super().file_size(path)


def _single_lineage(options: SplitOptions, filesystem: LocalFileSystem) -> Lineage:
    input_files = scan_input_files(
        options.input_root, options.output_root, options.suffix_grammar, filesystem
    )
    (lineage,) = discover_lineages(input_files, options.input_root)
    return lineage


def _run(
    options: SplitOptions,
    reporter: RecordingReporter,
    filesystem: LocalFileSystem | None = None,
):
    filesystem = filesystem or LocalFileSystem()
    runner = LineageCommitRunner(
        _single_lineage(options, filesystem),
        options,
        resolve_formats(options.formats),
        2024,
        filesystem,
        reporter,
    )
    return runner.run()


def test_committed_lineage_writes_output_and_deletes_inputs(
    tmp_path: Path, reporter: RecordingReporter
) -> None:
    """Inputs disappear only after the output is written."""
    input_root = tmp_path / "in"
    write_log(input_root / "app.log.1", [iso_line(0), iso_line(1)])
    write_log(input_root / "app.log", [iso_line(2)])
    filesystem = _RefusingDeleteFileSystem(refused_name="")
    options = make_options(input_root, tmp_path / "out")

    result = _run(options, reporter, filesystem)

    assert result.state == "committed"
    assert output_lines(tmp_path / "out" / "app.log") == [iso_line(0), iso_line(1), iso_line(2)]
    assert filesystem.deleted == ["app.log.1", "app.log"]
    assert reporter.of("lineage_finished")[0]["state"] == "committed"


def test_keep_input_commits_without_deleting(tmp_path: Path, reporter: RecordingReporter) -> None:
    """keep_input leaves the source files in place."""
    input_root = tmp_path / "in"
    source = write_log(input_root / "app.log.1", [iso_line(0)])
    options = make_options(input_root, tmp_path / "out", keep_input=True)

    result = _run(options, reporter)

    assert result.state == "committed" and result.deleted_files == ()
    assert source.exists()


def test_deletion_failure_is_reported_per_file(tmp_path: Path, reporter: RecordingReporter) -> None:
    """One refused deletion does not stop or roll back the others."""
    input_root = tmp_path / "in"
    write_log(input_root / "app.log.2", [iso_line(0)])
    write_log(input_root / "app.log.1", [iso_line(1)])
    filesystem = _RefusingDeleteFileSystem(refused_name="app.log.2")
    options = make_options(input_root, tmp_path / "out")

    result = _run(options, reporter, filesystem)

    assert result.state == "committed"
    assert [outcome.path.name for outcome in result.deletion_failures] == ["app.log.2"]
    assert filesystem.deleted == ["app.log.1"]
    assert reporter.of("deletion_error")[0]["error"] == "permission denied"


def test_unreadable_file_fails_lineage_without_deletion(
    tmp_path: Path, reporter: RecordingReporter
) -> None:
    """A corrupt member keeps every file of the lineage."""
    input_root = tmp_path / "in"
    corrupt = input_root / "app.log.2.gz"
    corrupt.parent.mkdir(parents=True)
    corrupt.write_bytes(b"definitely not gzip")
    healthy = write_log(input_root / "app.log.1", [iso_line(1)])
    options = make_options(input_root, tmp_path / "out")

    result = _run(options, reporter)

    assert (result.state, result.failure_kind) == ("failed", "unreadable_file")
    assert corrupt.exists() and healthy.exists()
    assert reporter.of("unreadable_file")[0]["path"] == str(corrupt)


def test_unrecognized_content_is_skipped(tmp_path: Path, reporter: RecordingReporter) -> None:
    """Files in no configured format are left alone."""
    input_root = tmp_path / "in"
    source = write_log(input_root / "notes.txt", ["remember the milk"])
    options = make_options(input_root, tmp_path / "out")

    result = _run(options, reporter)

    assert result.state == "skipped"
    assert source.exists() and not (tmp_path / "out").exists()
    assert reporter.names()[0] == "unrecognized_format"


def test_write_failure_fails_lineage(tmp_path: Path, reporter: RecordingReporter) -> None:
    """Output that cannot be opened keeps the inputs."""
    input_root = tmp_path / "in"
    source = write_log(input_root / "app.log.1", [iso_line(0)])
    options = make_options(input_root, tmp_path / "out")

    result = _run(options, reporter, _ReadOnlyOutputFileSystem())

    assert (result.state, result.failure_kind) == ("failed", "output_write_error")
    assert source.exists()


def test_parse_errors_are_counted_and_reported(
    tmp_path: Path, reporter: RecordingReporter
) -> None:
    """Skipped records show up in the result and as an event."""
    input_root = tmp_path / "in"
    write_log(input_root / "app.log.1", [iso_line(0), "#### corrupted ####", iso_line(2)])
    options = make_options(input_root, tmp_path / "out")

    result = _run(options, reporter)

    assert (result.state, result.parse_errors, result.records_written) == ("committed", 1, 2)
    assert reporter.of("parse_errors")[0]["count"] == 1


def test_verification_failure_fails_lineage_and_keeps_inputs(
    tmp_path: Path, reporter: RecordingReporter
) -> None:
    """Output shorter than the bytes written blocks every deletion."""
    input_root = tmp_path / "in"
    older = write_log(input_root / "app.log.1", [iso_line(0)])
    active = write_log(input_root / "app.log", [iso_line(1)])
    output_root = tmp_path / "out"
    options = make_options(input_root, output_root)

    result = _run(options, reporter, _ShortOutputFileSystem(output_root))

    assert (result.state, result.failure_kind) == ("failed", "output_verification_error")
    assert result.deleted_files == ()
    assert older.exists() and active.exists()
    assert reporter.of("output_verification_error")[0]["lineage_id"] == "app.log"
