"""
Database models for the venue catalog.

Uses SQLAlchemy 2.0. JSON columns become JSONB on PostgreSQL and plain JSON
elsewhere, so the same models run against SQLite for local work and tests.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from venue_catalog.config import settings

JSONType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Database Engine and Session
# =============================================================================

def make_engine(url: str, echo: bool = False):
    """Create an engine with options suited to the backend behind ``url``."""
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            # One shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **options)

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,        # Connection timeout to prevent hanging
        pool_recycle=1800,      # Recycle connections every 30 minutes
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000"  # 30s query timeout
        },
    )


engine = make_engine(settings.database.url, echo=settings.pipeline.log_level == "DEBUG")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session(session_factory=None):
    """Context manager for database sessions."""
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================================
# Base Model
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Venue Model
# =============================================================================

class Venue(Base):
    """
    A catalog entry for one physical location.

    Rows are created by the crawl and submission pipelines, enriched by
    enrichment passes, and removed only by the deduplication engine.
    """
    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Core fields
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Location
    address: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    city: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Photos
    photo_exterior_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_interior_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_sample_strips: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    ai_preview_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Machine classification
    machine_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    photo_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    machine_model: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    machine_manufacturer: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Operational info
    hours: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cost: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    features: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Provenance
    source_names: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    source_urls: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    source_primary: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    geocoded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_venues_city_created", "city", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Venue {self.name} ({self.city})>"


# =============================================================================
# Deduplication Audit Models
# =============================================================================

class DedupRun(Base):
    """Header of one persisted deduplication plan."""
    __tablename__ = "dedup_runs"

    run_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    header: Mapped[dict] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<DedupRun {self.run_id}>"


class DedupPlanEntry(Base):
    """
    One planned merge: the keeper, its merged payload and the removals.

    Written for the whole plan before execution starts.
    """
    __tablename__ = "dedup_plan_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    run_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("dedup_runs.run_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_id: Mapped[str] = mapped_column(Text, nullable=False)  # sorted member ids

    keeper_id: Mapped[str] = mapped_column(String(64), nullable=False)
    remove_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    locality: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Everything else needed to replay or review the entry
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("run_id", "entry_id", name="uq_dedup_plan_entry"),
        Index("idx_dedup_plan_entries_run", "run_id"),
    )


class DedupPlanOutcome(Base):
    """
    What happened when one plan entry was executed.

    Appended after each entry so an interrupted run can be resumed.
    """
    __tablename__ = "dedup_plan_outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    plan_entry_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("dedup_plan_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)

    updated: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    failed_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    skipped_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    executed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_dedup_plan_outcomes_run", "run_id"),
    )


# =============================================================================
# Helper Functions
# =============================================================================

def create_all_tables(bind=None):
    """Create all database tables."""
    Base.metadata.create_all(bind=bind or engine)


def drop_all_tables(bind=None):
    """Drop all database tables. USE WITH CAUTION!"""
    Base.metadata.drop_all(bind=bind or engine)
