# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for venue catalog tests."""

import itertools
import os
from datetime import datetime, timedelta
from typing import Generator

import pytest

# Set test environment variables before importing the package
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DISABLE_LOGGING", "1")

from venue_catalog.errors import RecordNotFoundError, StoreError, StoreReadError  # noqa: E402
from venue_catalog.models import VenueRecord  # noqa: E402
from venue_catalog.store import VenueStore  # noqa: E402


class InMemoryVenueStore(VenueStore):
    """Dict-backed store with injectable failures."""

    def __init__(self, records=()):
        self.records = {r.id: r for r in records}
        self.fail_updates: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_reads = False
        self.calls: list[tuple[str, str]] = []

    def fetch_all(self) -> list[VenueRecord]:
        if self.fail_reads:
            raise StoreReadError("connection refused")
        return sorted(self.records.values(), key=lambda r: (r.created_at or datetime.min, r.id))

    def update_fields(self, record_id, payload):
        self.calls.append(("update", record_id))
        if record_id in self.fail_updates:
            raise StoreError(f"update of {record_id} rejected")
        if record_id not in self.records:
            raise RecordNotFoundError(record_id)
        record = self.records[record_id]
        for key, value in payload.items():
            if key in ("created_at", "geocoded_at") and isinstance(value, str):
                value = datetime.fromisoformat(value)
            setattr(record, key, value)

    def delete(self, record_id):
        self.calls.append(("delete", record_id))
        if record_id in self.fail_deletes:
            raise StoreError(f"delete of {record_id} rejected")
        if record_id not in self.records:
            raise RecordNotFoundError(record_id)
        del self.records[record_id]


@pytest.fixture
def make_venue():
    """Factory for venue records with sensible defaults."""
    counter = itertools.count(1)
    base_time = datetime(2024, 1, 1, 12, 0, 0)

    def _make(**overrides) -> VenueRecord:
        n = next(counter)
        data = {
            "id": f"venue-{n:03d}",
            "name": "Photo Booth",
            "slug": f"photo-booth-v{n}",
            "city": "Springfield",
            "country": "United States",
            "address": "123 Main Street, Springfield",
            "created_at": base_time + timedelta(minutes=n),
        }
        data.update(overrides)
        return VenueRecord(**data)

    return _make


@pytest.fixture
def memory_store() -> InMemoryVenueStore:
    """Empty in-memory store; tests add records as needed."""
    return InMemoryVenueStore()


@pytest.fixture
def dedup_settings(tmp_path):
    """Deduplication settings writing plans under a temporary directory."""
    from venue_catalog.config import DedupSettings
    return DedupSettings(plan_dir=tmp_path / "plans")


@pytest.fixture
def session_factory() -> Generator:
    """Session factory bound to a fresh in-memory SQLite database."""
    from sqlalchemy.orm import sessionmaker
    from venue_catalog.database import create_all_tables, drop_all_tables, make_engine

    engine = make_engine("sqlite://")
    create_all_tables(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    drop_all_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    """SQLAlchemy venue store over the in-memory database."""
    from venue_catalog.store import SqlVenueStore
    return SqlVenueStore(session_factory)
