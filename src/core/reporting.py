"""Structured event reporting for pipeline conditions.

The core reports conditions as named events with keyword fields and never
formats human-readable text itself. The default reporter forwards events
to the structured logger; tests and the CLI may supply their own.
"""

from __future__ import annotations

from typing import Protocol

from core.logging_config import get_logger

UNREADABLE_FILE = "unreadable_file"
AMBIGUOUS_LINEAGE = "ambiguous_lineage"
OUT_OF_ORDER_RECORD = "out_of_order_record"
PARSE_ERRORS = "parse_errors"
ROTATION_GAP = "rotation_gap"
UNRECOGNIZED_FORMAT = "unrecognized_format"
DELETION_ERROR = "deletion_error"
OUTPUT_WRITE_ERROR = "output_write_error"
OUTPUT_VERIFICATION_ERROR = "output_verification_error"
LINEAGE_FINISHED = "lineage_finished"
RUN_COMPLETED = "run_completed"

_WARNING_EVENTS = frozenset(
    {OUT_OF_ORDER_RECORD, PARSE_ERRORS, ROTATION_GAP, UNRECOGNIZED_FORMAT}
)
_ERROR_EVENTS = frozenset(
    {
        UNREADABLE_FILE,
        AMBIGUOUS_LINEAGE,
        DELETION_ERROR,
        OUTPUT_WRITE_ERROR,
        OUTPUT_VERIFICATION_ERROR,
    }
)


class Reporter(Protocol):
    """Receiver of structured pipeline events."""

    def emit(self, event: str, **fields: object) -> None:
        """Record one event."""


class LoggingReporter:
    """Reporter that writes events through the structured logger."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    def emit(self, event: str, **fields: object) -> None:
        """Log an event at a level derived from its kind."""
        if event in _ERROR_EVENTS:
            self._logger.error(event, **fields)
        elif event in _WARNING_EVENTS:
            self._logger.warning(event, **fields)
        else:
            self._logger.info(event, **fields)
