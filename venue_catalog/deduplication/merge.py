"""
Field-by-field merge of a duplicate group onto its keeper.

Pure transformation: no store access. The payload lists every field the
merge manages; fields outside ``MERGE_FIELDS`` never appear in it and are
left as they are on the keeper.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from venue_catalog.models import VenueRecord

# Keeper's value if present, else the first value found among the others
SCALAR_FIELDS = (
    "machine_type",
    "machine_model",
    "machine_manufacturer",
    "photo_type",
    "hours",
    "cost",
)

PHOTO_FIELDS = (
    "photo_exterior_url",
    "photo_interior_url",
    "ai_preview_url",
)

# Filled only when the keeper has nothing
FILL_FIELDS = (
    "postal_code",
    "state",
    "source_primary",
)

# Unioned across the group, keeper's values first
SET_FIELDS = (
    "photo_sample_strips",
    "source_names",
    "source_urls",
    "features",
)

DESCRIPTION_SEPARATOR = "\n\n"


@dataclass
class MergeResult:
    payload: dict[str, Any]
    # Non-empty values that lost to the keeper's value, by field
    discarded: dict[str, list[Any]] = field(default_factory=dict)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _first_present(keeper: VenueRecord, others: Sequence[VenueRecord], name: str) -> Any:
    value = getattr(keeper, name)
    if _present(value):
        return value
    for other in others:
        value = getattr(other, name)
        if _present(value):
            return value
    return None


def _ordered_union(lists: Iterable[list | None]) -> list:
    seen = set()
    result = []
    for values in lists:
        for value in values or []:
            if _present(value) and value not in seen:
                seen.add(value)
                result.append(value)
    return result


def merge_descriptions(descriptions: Iterable[str | None]) -> str | None:
    """Join distinct descriptions with a blank line, keeping first-seen order."""
    unique = []
    for text in descriptions:
        if _present(text) and text not in unique:
            unique.append(text)
    if not unique:
        return None
    return DESCRIPTION_SEPARATOR.join(unique)


def merge_venues(keeper: VenueRecord, others: Sequence[VenueRecord]) -> MergeResult:
    """
    Combine a duplicate group's information onto the keeper.

    Args:
        keeper: The record that survives
        others: The records to be removed, in ranking order

    Returns:
        MergeResult with the payload to write to the keeper and the
        conflicting values the payload could not hold
    """
    payload: dict[str, Any] = {}
    discarded: dict[str, list[Any]] = {}

    for name in SCALAR_FIELDS + PHOTO_FIELDS + FILL_FIELDS:
        chosen = _first_present(keeper, others, name)
        payload[name] = chosen
        losers = _ordered_union(
            [[getattr(o, name)] for o in others if getattr(o, name) != chosen]
        )
        if losers:
            discarded[name] = losers

    payload["description"] = merge_descriptions(
        [keeper.description] + [o.description for o in others]
    )

    for name in SET_FIELDS:
        payload[name] = _ordered_union(
            [getattr(keeper, name)] + [getattr(o, name) for o in others]
        )

    # Coordinates travel together with their geocoding timestamp
    if keeper.has_coordinates:
        donor = keeper
    else:
        donor = next((o for o in others if o.has_coordinates), keeper)
    point = (donor.latitude, donor.longitude)
    payload["latitude"], payload["longitude"] = point

    members = [keeper, *others]
    if donor.has_coordinates:
        # Only a record geocoded to the same point may supply the timestamp
        sources = [m for m in members if m.has_coordinates and (m.latitude, m.longitude) == point]
    else:
        sources = members
    geocoded_at = donor.geocoded_at
    if geocoded_at is None:
        geocoded_at = next((m.geocoded_at for m in sources if m.geocoded_at is not None), None)
    payload["geocoded_at"] = geocoded_at

    for member in members:
        if member.geocoded_at is not None and member.geocoded_at != geocoded_at:
            if member.geocoded_at not in discarded.get("geocoded_at", []):
                discarded.setdefault("geocoded_at", []).append(member.geocoded_at)

    for other in others:
        if other is donor or not other.has_coordinates:
            continue
        if (other.latitude, other.longitude) != point:
            discarded.setdefault("coordinates", []).append([other.latitude, other.longitude])

    return MergeResult(payload=payload, discarded=discarded)
