"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import SplitConfig
from core.errors import ConfigError


def test_from_env_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fall back to constants when env is unset."""
    for name in (
        "LOGSPLIT_WORKERS",
        "LOGSPLIT_DEDUP_WINDOW",
        "LOGSPLIT_ORDER_TOLERANCE_SECONDS",
        "LOGSPLIT_SUFFIX_GRAMMAR",
    ):
        monkeypatch.delenv(name, raising=False)

    config = SplitConfig.from_env()

    assert (config.workers, config.dedup_window, config.suffix_grammar) == (4, 16, "numeric")


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should parse numeric and grammar values from environment."""
    monkeypatch.setenv("LOGSPLIT_WORKERS", "8")
    monkeypatch.setenv("LOGSPLIT_ORDER_TOLERANCE_SECONDS", "2.5")
    monkeypatch.setenv("LOGSPLIT_SUFFIX_GRAMMAR", "mixed")

    config = SplitConfig.from_env()

    assert (config.workers, config.order_tolerance_seconds, config.suffix_grammar) == (
        8,
        2.5,
        "mixed",
    )


def test_from_env_raises_for_invalid_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for non-numeric or zero worker counts."""
    monkeypatch.setenv("LOGSPLIT_WORKERS", "many")
    with pytest.raises(ConfigError):
        SplitConfig.from_env()

    monkeypatch.setenv("LOGSPLIT_WORKERS", "0")
    with pytest.raises(ConfigError):
        SplitConfig.from_env()


def test_from_env_raises_for_unknown_grammar(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject suffix grammars it cannot order."""
    monkeypatch.setenv("LOGSPLIT_SUFFIX_GRAMMAR", "weekly")

    with pytest.raises(ConfigError):
        SplitConfig.from_env()
