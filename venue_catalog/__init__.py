"""Venue catalog deduplication engine."""

__version__ = "1.0.0"
