"""Command-line interface for logsplit."""
