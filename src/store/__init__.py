"""Filesystem access and durable output streams."""
