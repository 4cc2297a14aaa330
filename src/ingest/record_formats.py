"""Timestamp grammars for supported log formats.

Each format is a regular expression with named groups for the calendar
fields it carries. Parsing never guesses beyond the configured formats:
a line either matches one of them and yields a naive UTC timestamp, or it
is a parse error for the reader to count.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from core.errors import RunConfigError

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_MONTH_NUMBERS = {name: index for index, name in enumerate(_MONTHS, 1)}
_MONTH_ALTERNATION = "|".join(_MONTHS)
_WEEKDAY_ALTERNATION = "Mon|Tue|Wed|Thu|Fri|Sat|Sun"
_CLOCK = r"(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"
_TZ = r"(?P<tz>Z|[+-]\d{2}:?\d{2})"


@dataclass(frozen=True)
class RecordFormat:
    """One named timestamp grammar.

    Attributes:
        name: Format identifier used in configuration.
        pattern: Compiled regex exposing calendar named groups.
        anchored: Whether the stamp must start the line.
    """

    name: str
    pattern: re.Pattern[str]
    anchored: bool = True

    def parse(self, line: str, reference_year: int) -> datetime | None:
        """Parse the timestamp of a line.

        Args:
            line: Raw log line.
            reference_year: Year used when the format carries none.

        Returns:
            Naive UTC timestamp, or None if the line does not match.
        """
        match = self.pattern.match(line) if self.anchored else self.pattern.search(line)
        if match is None:
            return None
        return _build_timestamp(match.groupdict(), reference_year)


_FORMATS: dict[str, RecordFormat] = {
    record_format.name: record_format
    for record_format in (
        RecordFormat(
            "iso",
            re.compile(
                r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
                r"(?:[T ](?P<hour>\d{2}):(?P<minute>\d{2})"
                r"(?::(?P<second>\d{2})(?:[.,](?P<fraction>\d{1,9}))?)?"
                rf"{_TZ}?)?(?!\d)"
            ),
        ),
        RecordFormat(
            "syslog",
            re.compile(
                rf"(?P<month_name>{_MONTH_ALTERNATION})\s+(?P<day>\d{{1,2}})\s+{_CLOCK}"
            ),
        ),
        RecordFormat(
            "apache_access",
            re.compile(
                rf"\[(?P<day>\d{{2}})/(?P<month_name>{_MONTH_ALTERNATION})/(?P<year>\d{{4}})"
                rf":{_CLOCK}(?: (?P<tz_compact>[+-]\d{{4}}))?\]"
            ),
            anchored=False,
        ),
        RecordFormat(
            "apache_error",
            re.compile(
                rf"\[(?:{_WEEKDAY_ALTERNATION}) (?P<month_name>{_MONTH_ALTERNATION})"
                rf" (?P<day>\d{{2}}) {_CLOCK}(?:\.(?P<fraction>\d{{1,6}}))? (?P<year>\d{{4}})\]"
            ),
        ),
        RecordFormat(
            "grafana",
            re.compile(
                r"t=(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
                rf"T{_CLOCK}{_TZ} lvl="
            ),
        ),
    )
}


def resolve_formats(names: Iterable[str]) -> tuple[RecordFormat, ...]:
    """Resolve configured format names to grammars.

    Args:
        names: Format names, in the order they should be tried.

    Returns:
        Matching record formats.

    Raises:
        RunConfigError: If a name is unknown or the list is empty.
    """
    resolved: list[RecordFormat] = []
    for name in names:
        record_format = _FORMATS.get(name)
        if record_format is None:
            raise RunConfigError(
                f"Unknown record format '{name}'. Supported formats: {sorted(_FORMATS)}."
            )
        resolved.append(record_format)
    if not resolved:
        raise RunConfigError("At least one record format must be configured.")
    return tuple(resolved)


def current_reference_year() -> int:
    """Return the current UTC year, assumed for year-less syslog stamps."""
    return datetime.now(timezone.utc).year


def _build_timestamp(fields: dict[str, str | None], reference_year: int) -> datetime | None:
    try:
        month = (
            _MONTH_NUMBERS[fields["month_name"]]
            if fields.get("month_name")
            else int(fields["month"] or 0)
        )
        timestamp = datetime(
            int(fields.get("year") or reference_year),
            month,
            int(fields["day"] or 0),
            int(fields.get("hour") or 0),
            int(fields.get("minute") or 0),
            int(fields.get("second") or 0),
            _microseconds(fields.get("fraction")),
        )
    except ValueError:
        return None
    offset = _utc_offset(fields.get("tz") or fields.get("tz_compact"))
    return timestamp - offset if offset is not None else timestamp


def _microseconds(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction[:6].ljust(6, "0"))


def _utc_offset(raw_offset: str | None) -> timedelta | None:
    """Convert ``Z``, ``+0200`` or ``-05:30`` into a timedelta."""
    if raw_offset is None:
        return None
    if raw_offset == "Z":
        return timedelta(0)
    digits = raw_offset[1:].replace(":", "")
    magnitude = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
    return magnitude if raw_offset[0] == "+" else -magnitude
