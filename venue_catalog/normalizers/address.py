"""
Address normalization utilities.

Turns free-text postal addresses into comparison keys. The substitution
tables are deliberately small: this is token substitution, not address
parsing.
"""

import re
from typing import Optional


# Spelling variants, replaced anywhere in the text (German compounds
# like "Hauptstraße" carry the suffix inside the word)
SPELLING_VARIANTS = {
    "straße": "strasse",
}

# Street-suffix abbreviations, replaced as whole words only
SUFFIX_ABBREVIATIONS = {
    "street": "st",
    "avenue": "ave",
    "boulevard": "blvd",
    "drive": "dr",
    "road": "rd",
    "lane": "ln",
    "place": "pl",
    "court": "ct",
    "parkway": "pkwy",
    "highway": "hwy",
    "square": "sq",
    "suite": "ste",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
}

_SUFFIX_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(SUFFIX_ABBREVIATIONS, key=len, reverse=True)) + r")\b"
)

# "Hauptstr. 5" and "Hauptstrasse 5" should meet
_GERMAN_STR_PATTERN = re.compile(r"(\w*)str\b")

_PUNCTUATION = re.compile(r"[,.]")
_WHITESPACE = re.compile(r"\s+")


def normalize_address(address: Optional[str]) -> str:
    """Normalize an address into a comparison key.

    Lowercases, strips commas and periods, applies the abbreviation tables
    and collapses whitespace.

    Args:
        address: Raw address text

    Returns:
        Normalized key, or empty string if the input is empty/None
    """
    if not address:
        return ""

    text = _PUNCTUATION.sub("", address.lower())

    for variant, canonical in SPELLING_VARIANTS.items():
        text = text.replace(variant, canonical)

    text = _SUFFIX_PATTERN.sub(lambda m: SUFFIX_ABBREVIATIONS[m.group(1)], text)
    text = _GERMAN_STR_PATTERN.sub(lambda m: f"{m.group(1)}strasse", text)

    return _WHITESPACE.sub(" ", text).strip()


def normalize_locality(city: Optional[str]) -> str:
    """Normalize a city/locality name for use in grouping keys."""
    if not city:
        return ""
    return _WHITESPACE.sub(" ", city.lower()).strip()


def has_street_detail(address: Optional[str], city: Optional[str], min_length: int = 10) -> bool:
    """Check whether an address carries street-level content.

    An address has no street detail when, once normalized, it is empty,
    equals the normalized city, is shorter than ``min_length``, or contains
    no digit (no house number).
    """
    normalized = normalize_address(address)
    if not normalized:
        return False
    if normalized == normalize_address(city):
        return False
    if len(normalized) < min_length:
        return False
    return any(c.isdigit() for c in normalized)
