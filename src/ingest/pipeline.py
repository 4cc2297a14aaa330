"""Split run orchestration.

This module discovers lineages under an input root, schedules them on a
worker pool, and aggregates the per-lineage results into a run summary.
Each worker owns its lineage outright; nothing mutable is shared between
workers.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from core.errors import ConfigError
from core.logging_config import get_logger
from core.reporting import RUN_COMPLETED, LoggingReporter, Reporter
from core.types import Lineage, LineageResult, RunSummary, SplitOptions
from ingest.commit_controller import LineageCommitRunner
from ingest.record_formats import RecordFormat, current_reference_year, resolve_formats
from ingest.rotation_grouper import discover_lineages, scan_input_files
from store.filesystem import LocalFileSystem
from transforms.stream_splitter import compile_key_pattern

_LOGGER = get_logger(__name__)


class SplitRunner:
    """Runner for one split invocation over an input tree."""

    def __init__(
        self,
        options: SplitOptions,
        filesystem: LocalFileSystem | None = None,
        reporter: Reporter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._options = options
        self._filesystem = filesystem or LocalFileSystem()
        self._reporter = reporter or LoggingReporter()
        self._cancel_event = cancel_event or threading.Event()
        self._formats: tuple[RecordFormat, ...] = resolve_formats(options.formats)
        self._reference_year = options.syslog_year or current_reference_year()
        self._reserved_names: dict[Path, frozenset[str]] = {}
        compile_key_pattern(options.key_policy)
        _validate_roots(options.input_root, options.output_root)

    def run(self) -> RunSummary:
        """Process every lineage and return the aggregated summary."""
        input_files = scan_input_files(
            self._options.input_root,
            self._options.output_root,
            self._options.suffix_grammar,
            self._filesystem,
        )
        lineages = discover_lineages(
            input_files, self._options.input_root, self._options.include_active
        )
        self._reserved_names = mirrored_directory_names(lineages)
        units = schedule_units(lineages, self._options.key_policy.lineage_scoped)
        _LOGGER.info(
            "split_started",
            input_root=str(self._options.input_root),
            output_root=str(self._options.output_root),
            file_count=len(input_files),
            lineage_count=len(lineages),
            unit_count=len(units),
            workers=self._options.workers,
        )
        results = self._run_units(units)
        summary = RunSummary(
            results=tuple(sorted(results, key=lambda result: result.lineage_id)),
            cancelled=self._cancel_event.is_set(),
        )
        self._reporter.emit(
            RUN_COMPLETED,
            lineage_count=len(summary.results),
            states=summary.state_counts(),
            errors=summary.error_counts(),
            failed_lineages=list(summary.failed_lineages),
            cancelled=summary.cancelled,
        )
        return summary

    def _run_units(self, units: list[tuple[Lineage, ...]]) -> list[LineageResult]:
        results: list[LineageResult] = []
        with ThreadPoolExecutor(max_workers=self._options.workers) as executor:
            futures = [executor.submit(self._run_unit, unit) for unit in units]
            for future in as_completed(futures):
                results.extend(future.result())
        return results

    def _run_unit(self, unit: tuple[Lineage, ...]) -> list[LineageResult]:
        """Run lineages of one unit sequentially, honoring cancellation."""
        results: list[LineageResult] = []
        for lineage in unit:
            if self._cancel_event.is_set():
                results.append(
                    LineageResult(
                        lineage_id=lineage.lineage_id,
                        state="discovered",
                        files=tuple(member.path for member in lineage.files),
                    )
                )
                continue
            runner = LineageCommitRunner(
                lineage,
                self._options,
                self._formats,
                self._reference_year,
                self._filesystem,
                self._reporter,
                self._reserved_names.get(lineage.relative_dir, frozenset()),
            )
            results.append(runner.run())
        return results


def split_logs(
    options: SplitOptions,
    filesystem: LocalFileSystem | None = None,
    reporter: Reporter | None = None,
    cancel_event: threading.Event | None = None,
) -> RunSummary:
    """Split, de-duplicate, and commit every lineage under the input root.

    Args:
        options: Split request options.
        filesystem: Optional filesystem collaborator.
        reporter: Optional event receiver, structured logging by default.
        cancel_event: Event that stops new lineages from starting.

    Returns:
        Summary with one result per discovered lineage.

    Raises:
        ConfigError: If the roots are unusable.
        RunConfigError: If formats or the key policy are invalid.
    """
    return SplitRunner(options, filesystem, reporter, cancel_event).run()


def schedule_units(lineages: list[Lineage], lineage_scoped: bool) -> list[tuple[Lineage, ...]]:
    """Group lineages into independently schedulable units.

    Lineage-scoped destinations cannot collide, so every lineage is its own
    unit. Otherwise lineages sharing an input directory may share a
    destination and run one after another inside a single unit.
    """
    if lineage_scoped:
        return [(lineage,) for lineage in lineages]
    by_directory: dict[Path, list[Lineage]] = defaultdict(list)
    for lineage in lineages:
        by_directory[lineage.relative_dir].append(lineage)
    return [tuple(by_directory[directory]) for directory in sorted(by_directory)]


def mirrored_directory_names(lineages: list[Lineage]) -> dict[Path, frozenset[str]]:
    """Map each output directory to the subdirectory names the run mirrors into it.

    Key stream files never take these names.
    """
    names: dict[Path, set[str]] = defaultdict(set)
    for lineage in lineages:
        parts = lineage.relative_dir.parts
        for depth, name in enumerate(parts):
            names[Path(*parts[:depth])].add(name)
    return {directory: frozenset(children) for directory, children in names.items()}


def _validate_roots(input_root: Path, output_root: Path) -> None:
    if not input_root.is_dir():
        raise ConfigError(
            f"Input path {input_root} is not a directory. Provide the root of the log tree."
        )
    if output_root.exists() and not output_root.is_dir():
        raise ConfigError(f"Output path {output_root} exists and is not a directory.")
    if output_root.resolve() == input_root.resolve():
        raise ConfigError(
            "Output root must differ from the input root; choose a separate output directory."
        )