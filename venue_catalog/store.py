"""
Record store access for the deduplication engine.

The engine only needs three operations from storage: a bulk read of every
venue, "update these fields on this venue", and "delete this venue". Each
write runs in its own transaction so one failure never takes other entries
down with it.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from venue_catalog.database import Venue, get_session
from venue_catalog.errors import RecordNotFoundError, StoreError, StoreReadError
from venue_catalog.models import VenueRecord


class VenueStore(ABC):
    """Interface of the relational record store."""

    @abstractmethod
    def fetch_all(self) -> list[VenueRecord]:
        """Read every venue, oldest first. Raises StoreReadError."""

    @abstractmethod
    def update_fields(self, record_id: str, payload: dict[str, Any]) -> None:
        """Write ``payload`` onto one venue. Raises StoreError."""

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Delete one venue by identifier. Raises StoreError."""


_READONLY_COLUMNS = {"id", "created_at"}
_DATETIME_COLUMNS = {"created_at", "geocoded_at"}


def venue_to_record(venue: Venue) -> VenueRecord:
    """Convert an ORM row into a plain record."""
    return VenueRecord(
        id=str(venue.id),
        name=venue.name,
        slug=venue.slug,
        city=venue.city,
        country=venue.country,
        address=venue.address,
        state=venue.state,
        postal_code=venue.postal_code,
        latitude=venue.latitude,
        longitude=venue.longitude,
        description=venue.description,
        photo_exterior_url=venue.photo_exterior_url,
        photo_interior_url=venue.photo_interior_url,
        photo_sample_strips=list(venue.photo_sample_strips or []),
        ai_preview_url=venue.ai_preview_url,
        machine_type=venue.machine_type,
        photo_type=venue.photo_type,
        machine_model=venue.machine_model,
        machine_manufacturer=venue.machine_manufacturer,
        hours=venue.hours,
        cost=venue.cost,
        features=list(venue.features or []),
        source_names=list(venue.source_names or []),
        source_urls=list(venue.source_urls or []),
        source_primary=venue.source_primary,
        created_at=venue.created_at,
        geocoded_at=venue.geocoded_at,
    )


class SqlVenueStore(VenueStore):
    """
    SQLAlchemy-backed venue store.

    Args:
        session_factory: Callable returning a new Session (defaults to SessionLocal)
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def fetch_all(self) -> list[VenueRecord]:
        try:
            with get_session(self.session_factory) as session:
                rows = session.scalars(
                    select(Venue).order_by(Venue.created_at, Venue.id)
                ).all()
                records = [venue_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreReadError(f"Failed to read venues: {e}") from e

        logger.info(f"Fetched {len(records)} venues from the record store")
        return records

    def count(self) -> int:
        """Number of venues currently stored."""
        try:
            with get_session(self.session_factory) as session:
                return session.scalar(select(func.count()).select_from(Venue)) or 0
        except SQLAlchemyError as e:
            raise StoreReadError(f"Failed to count venues: {e}") from e

    def update_fields(self, record_id: str, payload: dict[str, Any]) -> None:
        columns = Venue.__table__.columns.keys()
        unknown = [k for k in payload if k not in columns or k in _READONLY_COLUMNS]
        if unknown:
            raise StoreError(f"Cannot update fields {unknown} on venue {record_id}")

        try:
            with get_session(self.session_factory) as session:
                venue = session.get(Venue, record_id)
                if venue is None:
                    raise RecordNotFoundError(record_id)

                for key, value in payload.items():
                    if key in _DATETIME_COLUMNS and isinstance(value, str):
                        value = datetime.fromisoformat(value)
                    setattr(venue, key, value)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update venue {record_id}: {e}") from e

    def delete(self, record_id: str) -> None:
        try:
            with get_session(self.session_factory) as session:
                venue = session.get(Venue, record_id)
                if venue is None:
                    raise RecordNotFoundError(record_id)
                session.delete(venue)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete venue {record_id}: {e}") from e

    def add_all(self, records: Iterable[VenueRecord]) -> int:
        """Insert records (used by seeding scripts and tests)."""
        count = 0
        try:
            with get_session(self.session_factory) as session:
                for record in records:
                    data = record.to_dict()
                    for key in _DATETIME_COLUMNS:
                        data[key] = getattr(record, key)
                    if data["created_at"] is None:
                        data.pop("created_at")
                    session.add(Venue(**data))
                    count += 1
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert venues: {e}") from e
        return count
