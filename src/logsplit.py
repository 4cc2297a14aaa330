"""Public SDK surface for logsplit.

This module provides a stable import path for library users.
It re-exports the split entry point and typed option models.
"""

from __future__ import annotations

from core.config import SplitConfig
from core.reporting import LoggingReporter, Reporter
from core.run_config import RunConfig, apply_run_config, load_run_config
from core.types import KeyPolicy, LineageResult, RunSummary, SplitOptions
from ingest.pipeline import SplitRunner, split_logs
from store.filesystem import LocalFileSystem

__all__ = [
    "KeyPolicy",
    "LineageResult",
    "LocalFileSystem",
    "LoggingReporter",
    "Reporter",
    "RunConfig",
    "RunSummary",
    "SplitConfig",
    "SplitOptions",
    "SplitRunner",
    "apply_run_config",
    "load_run_config",
    "split_logs",
]
