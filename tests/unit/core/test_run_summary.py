"""Unit tests for run summary aggregation."""

from __future__ import annotations

from pathlib import Path

from core.types import DeletionOutcome, LineageResult, RunSummary


def test_exit_code_is_zero_without_failed_lineages() -> None:
    """Committed and skipped lineages should not fail the run."""
    summary = RunSummary(
        results=(
            LineageResult(lineage_id="a.log", state="committed"),
            LineageResult(lineage_id="b.log", state="skipped"),
        )
    )

    assert summary.exit_code == 0


def test_error_counts_aggregate_every_kind() -> None:
    """Counts should sum per-lineage counters and failure kinds."""
    summary = RunSummary(
        results=(
            LineageResult(
                lineage_id="a.log",
                state="committed",
                parse_errors=2,
                out_of_order=1,
                deletion_failures=(DeletionOutcome(Path("a.log.1"), False, "busy"),),
            ),
            LineageResult(
                lineage_id="svc.log",
                state="failed",
                failure_kind="ambiguous_lineage",
            ),
        )
    )

    counts = summary.error_counts()

    assert counts == {
        "parse_error": 2,
        "out_of_order_record": 1,
        "deletion_error": 1,
        "ambiguous_lineage": 1,
    }
    assert summary.failed_lineages == ("svc.log",)
    assert summary.exit_code == 1
