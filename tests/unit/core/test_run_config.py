"""Unit tests for YAML run config loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import RunConfigError
from core.run_config import apply_run_config, load_run_config
from core.types import SplitOptions


def _write_config(tmp_path: Path, body: str) -> str:
    config_path = tmp_path / "run.yaml"
    config_path.write_text(body, encoding="utf-8")
    return str(config_path)


def test_load_run_config_parses_all_sections(tmp_path: Path) -> None:
    """Run config should expose formats, grammar, and key policy."""
    config_path = _write_config(
        tmp_path,
        "version: 1\n"
        "formats: [syslog, iso]\n"
        "suffix_grammar: date\n"
        "include_active: false\n"
        "dedup_window: 4\n"
        "order_tolerance_seconds: 30\n"
        "syslog_year: 2020\n"
        "key_policy:\n"
        "  mode: payload\n"
        "  pattern: '^(?P<key>\\w+):'\n"
        "  unclassified_key: misc\n",
    )

    run_config = load_run_config(config_path)

    assert run_config.formats == ("syslog", "iso")
    assert run_config.suffix_grammar == "date"
    assert run_config.include_active is False
    assert run_config.order_tolerance_seconds == 30.0
    assert run_config.key_policy is not None
    assert (run_config.key_policy.mode, run_config.key_policy.unclassified_key) == (
        "payload",
        "misc",
    )


def test_apply_run_config_overrides_only_set_values(tmp_path: Path) -> None:
    """Unset run-config fields should keep the existing option values."""
    options = SplitOptions(input_root=tmp_path, output_root=tmp_path / "out", workers=3)
    run_config = load_run_config(_write_config(tmp_path, "dedup_window: 2\n"))

    merged = apply_run_config(options, run_config)

    assert (merged.dedup_window, merged.workers) == (2, 3)


@pytest.mark.parametrize(
    "body",
    [
        "unknown_key: 1\n",
        "version: 2\n",
        "formats: [klingon]\n",
        "dedup_window: -1\n",
        "key_policy:\n  mode: random\n",
        "- just\n- a list\n",
    ],
)
def test_load_run_config_rejects_invalid_documents(tmp_path: Path, body: str) -> None:
    """Strict validation should reject unknown or malformed values."""
    with pytest.raises(RunConfigError):
        load_run_config(_write_config(tmp_path, body))


def test_load_run_config_raises_for_missing_file(tmp_path: Path) -> None:
    """A missing file is a run-config error, not an OSError."""
    with pytest.raises(RunConfigError):
        load_run_config(str(tmp_path / "absent.yaml"))


@pytest.mark.parametrize("unclassified_key", ["../../escaped", "nested/key", "..", "''"])
def test_load_run_config_rejects_unsafe_unclassified_key(
    tmp_path: Path, unclassified_key: str
) -> None:
    """The fallback key must stay one safe path component."""
    config_path = _write_config(
        tmp_path,
        f"key_policy:\n  mode: payload\n  unclassified_key: {unclassified_key}\n",
    )

    with pytest.raises(RunConfigError, match="unclassified"):
        load_run_config(config_path)
