"""
In-memory representation of venue records.

The deduplication engine works on plain ``VenueRecord`` values, never on
ORM objects, so grouping, scoring and merging stay pure.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any


@dataclass
class VenueRecord:
    """
    One catalog entry describing a physical location.

    Produced by the record store; the identifier is the only stable reference
    used during merge and delete.
    """
    # Required fields
    id: str
    name: str
    slug: str
    city: str
    country: str

    # Location
    address: str | None = None
    state: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    # Content
    description: str | None = None
    photo_exterior_url: str | None = None
    photo_interior_url: str | None = None
    photo_sample_strips: list[str] = field(default_factory=list)
    ai_preview_url: str | None = None

    # Machine classification
    machine_type: str | None = None
    photo_type: str | None = None
    machine_model: str | None = None
    machine_manufacturer: str | None = None

    # Operational info
    hours: str | None = None
    cost: str | None = None
    features: list[str] = field(default_factory=list)

    # Provenance
    source_names: list[str] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)
    source_primary: str | None = None

    # Timestamps
    created_at: datetime | None = None
    geocoded_at: datetime | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict (timestamps as ISO strings)."""
        data = asdict(self)
        for key in ("created_at", "geocoded_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VenueRecord":
        """Build a record from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        for key in ("created_at", "geocoded_at"):
            if isinstance(values.get(key), str):
                values[key] = datetime.fromisoformat(values[key])

        for key in ("photo_sample_strips", "features", "source_names", "source_urls"):
            if values.get(key) is None:
                values[key] = []
            else:
                values[key] = list(values[key])

        values["id"] = str(values["id"])
        return cls(**values)


# Fields the merge step writes back to the keeper
MERGE_FIELDS = (
    "description",
    "photo_exterior_url",
    "photo_interior_url",
    "photo_sample_strips",
    "ai_preview_url",
    "machine_type",
    "photo_type",
    "machine_model",
    "machine_manufacturer",
    "hours",
    "cost",
    "features",
    "source_names",
    "source_urls",
    "source_primary",
    "postal_code",
    "state",
    "latitude",
    "longitude",
    "geocoded_at",
)
