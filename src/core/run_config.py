"""Typed YAML run configuration.

This module loads optional run-config files that pin record formats, key
policy, and rotation grammar for one input tree. Values found in the file
override environment defaults; CLI flags override both.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, cast

import yaml

from core.constants import (
    RUN_CONFIG_VERSION,
    SUPPORTED_KEY_POLICIES,
    SUPPORTED_RECORD_FORMATS,
    SUPPORTED_SUFFIX_GRAMMARS,
)
from core.errors import RunConfigError
from core.types import KeyPolicy, KeyPolicyMode, SplitOptions
from transforms.stream_splitter import validate_unclassified_key

_ROOT_KEYS = frozenset(
    {
        "version",
        "formats",
        "suffix_grammar",
        "include_active",
        "dedup_window",
        "order_tolerance_seconds",
        "workers",
        "syslog_year",
        "key_policy",
    }
)
_KEY_POLICY_KEYS = frozenset({"mode", "pattern", "unclassified_key"})


@dataclass(frozen=True)
class RunConfig:
    """Validated run-config values; ``None`` means not set in the file."""

    formats: tuple[str, ...] | None = None
    suffix_grammar: str | None = None
    include_active: bool | None = None
    dedup_window: int | None = None
    order_tolerance_seconds: float | None = None
    workers: int | None = None
    syslog_year: int | None = None
    key_policy: KeyPolicy | None = None


def load_run_config(config_path: str) -> RunConfig:
    """Load and validate a YAML run config from disk.

    Args:
        config_path: File path to the YAML document.

    Returns:
        Validated run config.

    Raises:
        RunConfigError: If the file is missing, unparsable, or invalid.
    """
    payload = _load_yaml_payload(config_path)
    root = _expect_mapping(payload, "run config root")
    unknown_keys = sorted(set(root) - _ROOT_KEYS)
    if unknown_keys:
        raise RunConfigError(
            f"Unsupported run config keys: {unknown_keys}. Allowed keys: {sorted(_ROOT_KEYS)}."
        )
    version = root.get("version", RUN_CONFIG_VERSION)
    if version != RUN_CONFIG_VERSION:
        raise RunConfigError(
            f"Unsupported run config version {version!r}; expected {RUN_CONFIG_VERSION}."
        )
    return RunConfig(
        formats=_parse_formats(root.get("formats")),
        suffix_grammar=_parse_choice(
            root.get("suffix_grammar"), "suffix_grammar", SUPPORTED_SUFFIX_GRAMMARS
        ),
        include_active=_parse_bool(root.get("include_active"), "include_active"),
        dedup_window=_parse_int(root.get("dedup_window"), "dedup_window", minimum=0),
        order_tolerance_seconds=_parse_seconds(root.get("order_tolerance_seconds")),
        workers=_parse_int(root.get("workers"), "workers", minimum=1),
        syslog_year=_parse_int(root.get("syslog_year"), "syslog_year", minimum=1),
        key_policy=_parse_key_policy(root.get("key_policy")),
    )


def apply_run_config(options: SplitOptions, run_config: RunConfig) -> SplitOptions:
    """Overlay values set in a run config onto split options."""
    overrides = {
        name: value
        for name, value in (
            ("formats", run_config.formats),
            ("suffix_grammar", run_config.suffix_grammar),
            ("include_active", run_config.include_active),
            ("dedup_window", run_config.dedup_window),
            ("order_tolerance_seconds", run_config.order_tolerance_seconds),
            ("workers", run_config.workers),
            ("syslog_year", run_config.syslog_year),
            ("key_policy", run_config.key_policy),
        )
        if value is not None
    }
    return replace(options, **overrides)


def _load_yaml_payload(config_path: str) -> object:
    config_file = Path(config_path).expanduser().resolve()
    if not config_file.exists():
        raise RunConfigError(
            f"Run config file does not exist at {config_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(config_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise RunConfigError(
            f"Failed to read run config at {config_file}: {error}. "
            "Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise RunConfigError(
            f"Failed to parse YAML run config at {config_file}: {error}. "
            "Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise RunConfigError(f"Run config at {config_file} is empty.")
    return payload


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise RunConfigError(f"Invalid {context}: expected mapping, got {type(value).__name__}.")
    for key in value:
        if not isinstance(key, str):
            raise RunConfigError(
                f"Invalid {context}: expected string keys, got {type(key).__name__}."
            )
    return cast(Mapping[str, object], value)


def _parse_formats(value: object) -> tuple[str, ...] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not value:
        raise RunConfigError("Invalid formats: expected a non-empty list of format names.")
    for item in value:
        if item not in SUPPORTED_RECORD_FORMATS:
            raise RunConfigError(
                f"Invalid formats entry: expected one of {SUPPORTED_RECORD_FORMATS}, got {item!r}."
            )
    return tuple(value)


def _parse_choice(value: object, field_name: str, choices: tuple[str, ...]) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or value not in choices:
        raise RunConfigError(f"Invalid {field_name}: expected one of {choices}, got {value!r}.")
    return value


def _parse_bool(value: object, field_name: str) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise RunConfigError(f"Invalid {field_name}: expected true or false, got {value!r}.")
    return value


def _parse_int(value: object, field_name: str, minimum: int) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise RunConfigError(
            f"Invalid {field_name}: expected integer >= {minimum}, got {value!r}."
        )
    return value


def _parse_seconds(value: object) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise RunConfigError(
            f"Invalid order_tolerance_seconds: expected number >= 0, got {value!r}."
        )
    return float(value)


def _parse_key_policy(value: object) -> KeyPolicy | None:
    if value is None:
        return None
    mapping = _expect_mapping(value, "key_policy")
    unknown_keys = sorted(set(mapping) - _KEY_POLICY_KEYS)
    if unknown_keys:
        raise RunConfigError(
            f"Unsupported key_policy keys: {unknown_keys}. "
            f"Allowed keys: {sorted(_KEY_POLICY_KEYS)}."
        )
    mode = _parse_choice(mapping.get("mode", "fixed"), "key_policy.mode", SUPPORTED_KEY_POLICIES)
    pattern = mapping.get("pattern")
    if pattern is not None and not isinstance(pattern, str):
        raise RunConfigError("Invalid key_policy.pattern: expected a regex string.")
    policy = KeyPolicy(mode=cast(KeyPolicyMode, mode), pattern=pattern)
    unclassified_key = mapping.get("unclassified_key")
    if unclassified_key is not None:
        if not isinstance(unclassified_key, str):
            raise RunConfigError("Invalid key_policy.unclassified_key: expected a string.")
        policy = replace(policy, unclassified_key=validate_unclassified_key(unclassified_key))
    return policy
