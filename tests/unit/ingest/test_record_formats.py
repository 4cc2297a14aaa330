"""Unit tests for timestamp grammars."""

from __future__ import annotations

from datetime import datetime

import pytest

from core.errors import RunConfigError
from ingest.record_formats import resolve_formats


def _parse(format_name: str, line: str, reference_year: int = 2024) -> datetime | None:
    (record_format,) = resolve_formats([format_name])
    return record_format.parse(line, reference_year)


@pytest.mark.parametrize(
    ("format_name", "line", "expected"),
    [
        ("iso", "2020-05-17 10:00:00 started", datetime(2020, 5, 17, 10, 0, 0)),
        ("iso", "2020-05-17T10:00:00+02:00 started", datetime(2020, 5, 17, 8, 0, 0)),
        ("iso", "2020-05-17 10:00:00,123 started", datetime(2020, 5, 17, 10, 0, 0, 123000)),
        ("iso", "2020-05-17 fail2ban banned", datetime(2020, 5, 17)),
        (
            "apache_access",
            '127.0.0.1 - - [17/May/2020:10:00:00 +0200] "GET / HTTP/1.1" 200 12',
            datetime(2020, 5, 17, 8, 0, 0),
        ),
        (
            "apache_error",
            "[Sat May 16 02:07:16.656808 2020] [core:error] [pid 1] failure",
            datetime(2020, 5, 16, 2, 7, 16, 656808),
        ),
        (
            "grafana",
            "t=2020-05-12T18:14:21+0200 lvl=info msg=started",
            datetime(2020, 5, 12, 16, 14, 21),
        ),
    ],
)
def test_formats_parse_utc_timestamps(format_name: str, line: str, expected: datetime) -> None:
    """Each grammar should yield a naive UTC timestamp."""
    assert _parse(format_name, line) == expected


def test_syslog_assumes_reference_year() -> None:
    """Syslog stamps carry no year, so the reference year is used."""
    parsed = _parse("syslog", "May  7 10:00:00 host sshd[42]: accepted", reference_year=2019)

    assert parsed == datetime(2019, 5, 7, 10, 0, 0)


def test_impossible_dates_do_not_parse() -> None:
    """Calendar-invalid stamps are parse failures, not fallback dates."""
    assert _parse("iso", "2020-02-30 10:00:00 tampered") is None


def test_lines_without_stamp_do_not_parse() -> None:
    """Continuation lines should not match any grammar."""
    assert _parse("iso", "    at com.example.Main.run(Main.java:42)") is None


def test_resolve_formats_rejects_unknown_and_empty() -> None:
    """Only explicitly supported formats may be configured."""
    with pytest.raises(RunConfigError):
        resolve_formats(["iso", "json"])
    with pytest.raises(RunConfigError):
        resolve_formats([])
