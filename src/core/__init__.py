"""Shared configuration, types, errors, and reporting."""
