"""Completeness scoring and keeper selection."""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from venue_catalog.models import VenueRecord
from venue_catalog.normalizers import is_numbered_slug


def score_venue(venue: VenueRecord) -> int:
    """Score a venue by how much useful information it carries.

    Pure function of field presence; higher is more complete.
    """
    score = 0

    # Core location data
    if venue.has_coordinates:
        score += 10
    if venue.postal_code:
        score += 3
    if venue.state:
        score += 2

    # Address quality
    address = venue.address or ""
    if any(c.isdigit() for c in address):
        score += 15
    if address and address.strip().lower() != (venue.name or "").strip().lower():
        score += 10
    score += min(len(address) // 10, 10)

    # Content richness
    if venue.description:
        score += 20
    if venue.photo_exterior_url:
        score += 15
    if venue.photo_interior_url:
        score += 10
    if venue.photo_sample_strips:
        score += 15

    # Machine details
    if venue.machine_type:
        score += 8
    if venue.photo_type:
        score += 5
    if venue.machine_model:
        score += 8
    if venue.machine_manufacturer:
        score += 5

    # Operational info
    if venue.hours:
        score += 7
    if venue.cost:
        score += 5
    if venue.features:
        score += 5

    # Source quality
    score += min(len(venue.source_urls) * 3, 10)
    if venue.geocoded_at:
        score += 5

    # Prefer original slugs over "-2", "-3" copies
    if not is_numbered_slug(venue.slug):
        score += 12

    return score


@dataclass(frozen=True)
class ScoredVenue:
    venue: VenueRecord
    score: int


def _rank_key(scored: ScoredVenue):
    created = scored.venue.created_at
    return (
        -scored.score,
        is_numbered_slug(scored.venue.slug),
        created is None,
        created or datetime.min,
        scored.venue.id,
    )


def rank_members(members: Sequence[VenueRecord]) -> list[ScoredVenue]:
    """Score and order group members; the first one is the keeper.

    Ties on score go to the un-numbered slug, then the earliest created
    record, then the smallest identifier.
    """
    scored = [ScoredVenue(m, score_venue(m)) for m in members]
    return sorted(scored, key=_rank_key)
