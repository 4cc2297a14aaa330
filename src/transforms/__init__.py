"""Record stream transforms applied between reading and writing."""
