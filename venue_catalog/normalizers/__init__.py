"""
Data normalization utilities.

These modules turn free-text venue fields into comparable keys.
"""

from .address import has_street_detail, normalize_address, normalize_locality
from .names import compact_name, has_enumeration_suffix, is_numbered_slug, normalize_venue_name

__all__ = [
    'normalize_address',
    'normalize_locality',
    'has_street_detail',
    'normalize_venue_name',
    'compact_name',
    'has_enumeration_suffix',
    'is_numbered_slug',
]
