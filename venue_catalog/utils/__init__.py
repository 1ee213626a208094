"""Utility modules for the deduplication engine."""

from venue_catalog.utils.geo import distance_meters, haversine_distance, is_valid_coordinates
from venue_catalog.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Geographic utilities
    "is_valid_coordinates",
    "haversine_distance",
    "distance_meters",
]
