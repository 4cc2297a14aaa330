"""Log ingestion pipeline.

This package discovers rotation lineages, reads their records, and drives
each lineage through the commit state machine.
"""
