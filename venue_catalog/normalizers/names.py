"""
Venue name and slug normalization utilities.
"""

import re
import unicodedata
from typing import Optional


# Trailing enumeration: "Arcade II", "Arcade ii", "Booth #2", "Booth No. 3", "RAW 2", "Booth-3".
# Single-letter numerals match uppercase only ("Bar i" is not enumerated)
ENUMERATION_SUFFIX = re.compile(
    r"(?:\s(?:I|V|X|(?i:II|III|IV|VI|VII|VIII|IX))"
    r"|\s?#\s?\d+"
    r"|\s[Nn][Oo]\.?\s?\d+"
    r"|[\s-]\d+)\s*$"
)

# Slugs created for later duplicates get a numeric suffix: "beauty-bar-2"
NUMBERED_SLUG = re.compile(r"-\d+$")


def normalize_venue_name(name: Optional[str]) -> str:
    """Normalize a venue name for grouping.

    Lowercases, drops a leading "the", removes punctuation and collapses
    whitespace, so "The Knockout" and "Knockout!" share a key.
    """
    if not name:
        return ""

    text = name.lower().strip()
    text = re.sub(r"^the\s+", "", text)
    text = re.sub(r"[^\w\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def compact_name(name: Optional[str]) -> str:
    """Reduce a name to lowercase ASCII letters and digits only."""
    if not name:
        return ""

    text = unicodedata.normalize("NFKD", name)
    text = "".join(c for c in text if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]", "", text.lower())


def has_enumeration_suffix(name: Optional[str]) -> bool:
    """Check if a name ends like one of several enumerated machines."""
    if not name:
        return False
    return bool(ENUMERATION_SUFFIX.search(name.strip()))


def is_numbered_slug(slug: Optional[str]) -> bool:
    """Check if a slug carries a numeric duplicate suffix."""
    if not slug:
        return False
    return bool(NUMBERED_SLUG.search(slug))
