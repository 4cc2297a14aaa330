"""Core constants used across logsplit modules.

This module centralizes defaults and fixed names.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_OUTPUT_ROOT = "output"
DEFAULT_WORKERS = 4
DEFAULT_DEDUP_WINDOW = 16
DEFAULT_ORDER_TOLERANCE_SECONDS = 60.0
DEFAULT_FORMAT_DETECT_LINES = 64
DEFAULT_SUFFIX_GRAMMAR = "numeric"
DEFAULT_KEY_POLICY = "fixed"
DEFAULT_LOG_LEVEL = "info"
UNCLASSIFIED_KEY = "unclassified"
KEY_COLLISION_SUFFIX = ".log"
SUPPORTED_SUFFIX_GRAMMARS = ("numeric", "date", "mixed")
SUPPORTED_KEY_POLICIES = ("fixed", "payload", "date")
SUPPORTED_RECORD_FORMATS = ("iso", "syslog", "apache_access", "apache_error", "grafana")
COMPRESSION_EXTENSIONS = {".gz": "gzip", ".bz2": "bzip2", ".xz": "xz"}
PAYLOAD_ENCODING = "utf-8"
PAYLOAD_ERRORS = "surrogateescape"
DIGEST_ALGORITHM = "sha256"
# Syslog program tag: "May 17 10:00:00 host sshd[42]: ..." -> "sshd"
DEFAULT_PAYLOAD_KEY_PATTERN = r"^\w{3}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2}\s+\S+\s+(?P<key>[^\s\[:]+)"
RUN_CONFIG_VERSION = 1
