"""Runtime configuration model for logsplit.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from core.constants import (
    DEFAULT_DEDUP_WINDOW,
    DEFAULT_ORDER_TOLERANCE_SECONDS,
    DEFAULT_SUFFIX_GRAMMAR,
    DEFAULT_WORKERS,
    SUPPORTED_SUFFIX_GRAMMARS,
)
from core.errors import ConfigError


@dataclass(frozen=True)
class SplitConfig:
    """Validated runtime configuration.

    Attributes:
        workers: Number of lineages processed in parallel.
        dedup_window: Records compared on each side of a rotation boundary.
        order_tolerance_seconds: Allowed backwards step before a record is
            reported as out of order.
        suffix_grammar: Accepted rotation suffix grammar.
    """

    workers: int
    dedup_window: int
    order_tolerance_seconds: float
    suffix_grammar: str

    @classmethod
    def from_env(cls) -> "SplitConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            ConfigError: If environment values are invalid.
        """
        workers = _parse_positive_int(
            "LOGSPLIT_WORKERS", os.getenv("LOGSPLIT_WORKERS", str(DEFAULT_WORKERS))
        )
        dedup_window = _parse_non_negative_int(
            "LOGSPLIT_DEDUP_WINDOW",
            os.getenv("LOGSPLIT_DEDUP_WINDOW", str(DEFAULT_DEDUP_WINDOW)),
        )
        order_tolerance = _parse_non_negative_float(
            "LOGSPLIT_ORDER_TOLERANCE_SECONDS",
            os.getenv(
                "LOGSPLIT_ORDER_TOLERANCE_SECONDS", str(DEFAULT_ORDER_TOLERANCE_SECONDS)
            ),
        )
        suffix_grammar = os.getenv("LOGSPLIT_SUFFIX_GRAMMAR", DEFAULT_SUFFIX_GRAMMAR)
        if suffix_grammar not in SUPPORTED_SUFFIX_GRAMMARS:
            raise ConfigError(
                "Invalid LOGSPLIT_SUFFIX_GRAMMAR value: "
                f"expected one of {SUPPORTED_SUFFIX_GRAMMARS}, got '{suffix_grammar}'."
            )
        return cls(
            workers=workers,
            dedup_window=dedup_window,
            order_tolerance_seconds=order_tolerance,
            suffix_grammar=suffix_grammar,
        )


def _parse_positive_int(name: str, raw_value: str) -> int:
    value = _parse_non_negative_int(name, raw_value)
    if value == 0:
        raise ConfigError(f"Invalid {name} value: expected a positive integer, got 0.")
    return value


def _parse_non_negative_int(name: str, raw_value: str) -> int:
    """Parse an integer environment value.

    Args:
        name: Environment variable name for error context.
        raw_value: Raw string from environment.

    Returns:
        Parsed non-negative integer.

    Raises:
        ConfigError: If value is not a non-negative integer.
    """
    try:
        value = int(raw_value)
    except ValueError as error:
        raise ConfigError(
            f"Invalid {name} value: expected integer, got '{raw_value}'. "
            f"Set {name} to a numeric value."
        ) from error
    if value < 0:
        raise ConfigError(f"Invalid {name} value: expected >= 0, got {value}.")
    return value


def _parse_non_negative_float(name: str, raw_value: str) -> float:
    try:
        value = float(raw_value)
    except ValueError as error:
        raise ConfigError(
            f"Invalid {name} value: expected a number of seconds, got '{raw_value}'."
        ) from error
    if value < 0:
        raise ConfigError(f"Invalid {name} value: expected >= 0, got {value}.")
    return value
