"""Scheduled narrative refresh pipeline."""

__version__ = "1.0.0"
