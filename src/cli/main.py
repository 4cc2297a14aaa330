"""logsplit CLI entry points.

This module maps command-line arguments onto split options and runs the
pipeline. It is the only place that renders human-readable output.
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from types import FrameType
from typing import Any, Sequence

from core.config import SplitConfig
from core.constants import (
    DEFAULT_OUTPUT_ROOT,
    SUPPORTED_KEY_POLICIES,
    SUPPORTED_RECORD_FORMATS,
    SUPPORTED_SUFFIX_GRAMMARS,
)
from core.errors import ConfigError, RunConfigError
from core.run_config import apply_run_config, load_run_config
from core.types import RunSummary, SplitOptions
from ingest.pipeline import split_logs

EXIT_INVALID_INVOCATION = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="logsplit",
        description="Parse, split, and remove rotated log files",
    )
    parser.add_argument("input_root", help="Root directory of rotated log files")
    parser.add_argument(
        "output_root",
        nargs="?",
        default=DEFAULT_OUTPUT_ROOT,
        help="Root of the mirrored output tree (default: ./output)",
    )
    parser.add_argument("--config", help="YAML run config file")
    parser.add_argument("--workers", type=int, help="Lineages processed in parallel")
    parser.add_argument(
        "--key-policy",
        choices=SUPPORTED_KEY_POLICIES,
        help="How records are routed to output streams",
    )
    parser.add_argument("--key-pattern", help="Regex with a named 'key' group for payload policy")
    parser.add_argument(
        "--suffix-grammar",
        choices=SUPPORTED_SUFFIX_GRAMMARS,
        help="Accepted rotation suffixes",
    )
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=SUPPORTED_RECORD_FORMATS,
        help="Record format to accept; repeat to accept several",
    )
    parser.add_argument("--dedup-window", type=int, help="Records compared at rotation boundaries")
    parser.add_argument(
        "--order-tolerance",
        type=float,
        help="Seconds a record may step backwards before it is reported",
    )
    parser.add_argument("--syslog-year", type=int, help="Year assumed for syslog timestamps")
    parser.add_argument(
        "--skip-active",
        action="store_true",
        help="Leave unsuffixed (active) log files alone",
    )
    parser.add_argument(
        "--keep-input",
        action="store_true",
        help="Do not delete input files after commit",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the logsplit CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code: 0 when no lineage failed, 1 when any lineage
        failed, 2 for invalid invocation or configuration.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    cancel_event = threading.Event()
    previous_handler = _install_interrupt_handler(cancel_event)
    try:
        options = build_split_options(args)
        _ensure_output_root(options.output_root)
        summary = split_logs(options, cancel_event=cancel_event)
    except (ConfigError, RunConfigError) as error:
        print(f"config_error={error}", file=sys.stderr)
        return EXIT_INVALID_INVOCATION
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    _print_summary(summary)
    return summary.exit_code


def build_split_options(args: argparse.Namespace) -> SplitOptions:
    """Resolve split options from environment, run config, and flags.

    Args:
        args: Parsed CLI args.

    Returns:
        Options with CLI flags taking precedence over the run config,
        and the run config over environment defaults.
    """
    config = SplitConfig.from_env()
    options = SplitOptions(
        input_root=Path(args.input_root).expanduser().resolve(),
        output_root=Path(args.output_root).expanduser().resolve(),
        suffix_grammar=config.suffix_grammar,
        dedup_window=config.dedup_window,
        order_tolerance_seconds=config.order_tolerance_seconds,
        workers=config.workers,
    )
    if args.config:
        options = apply_run_config(options, load_run_config(args.config))
    overrides: dict[str, Any] = {
        name: value
        for name, value in (
            ("workers", args.workers),
            ("suffix_grammar", args.suffix_grammar),
            ("dedup_window", args.dedup_window),
            ("order_tolerance_seconds", args.order_tolerance),
            ("syslog_year", args.syslog_year),
            ("formats", tuple(args.formats) if args.formats else None),
        )
        if value is not None
    }
    if args.skip_active:
        overrides["include_active"] = False
    if args.keep_input:
        overrides["keep_input"] = True
    if args.key_policy or args.key_pattern:
        overrides["key_policy"] = replace(
            options.key_policy,
            mode=args.key_policy or options.key_policy.mode,
            pattern=args.key_pattern or options.key_policy.pattern,
        )
    options = replace(options, **overrides)
    _validate_counts(options)
    return options


def _validate_counts(options: SplitOptions) -> None:
    if options.workers < 1:
        raise ConfigError(f"Invalid --workers value {options.workers}: expected >= 1.")
    if options.dedup_window < 0:
        raise ConfigError(f"Invalid --dedup-window value {options.dedup_window}: expected >= 0.")
    if options.order_tolerance_seconds < 0:
        raise ConfigError(
            f"Invalid --order-tolerance value {options.order_tolerance_seconds}: expected >= 0."
        )


def _ensure_output_root(output_root: Path) -> None:
    if output_root.exists():
        return
    try:
        output_root.mkdir(parents=True)
    except OSError as error:
        raise ConfigError(f"Failed to create output root {output_root}: {error}.") from error


def _install_interrupt_handler(cancel_event: threading.Event) -> Any:
    """Make SIGINT stop new lineages while in-flight ones finish."""

    def _request_cancel(signum: int, frame: FrameType | None) -> None:
        cancel_event.set()

    return signal.signal(signal.SIGINT, _request_cancel)


def _print_summary(summary: RunSummary) -> None:
    for result in summary.results:
        print(
            f"{result.lineage_id}\t"
            f"{result.state}\t"
            f"{result.records_written}\t"
            f"{result.parse_errors}\t"
            f"{result.failure_message or '-'}"
        )
    for state, count in sorted(summary.state_counts().items()):
        print(f"lineages_{state}={count}")
    for kind, count in sorted(summary.error_counts().items()):
        print(f"{kind}={count}")
    if summary.failed_lineages:
        print(f"failed_lineages={','.join(summary.failed_lineages)}")
    if summary.cancelled:
        print("cancelled=true")
