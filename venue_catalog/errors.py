"""Exception types raised by the venue catalog engine."""


class CatalogError(Exception):
    """Base class for all venue catalog errors."""


class StoreError(CatalogError):
    """A record store operation failed."""


class StoreReadError(StoreError):
    """The bulk read of venue records failed. Fatal for a run."""


class RecordNotFoundError(StoreError):
    """An update or delete targeted an identifier that does not exist."""

    def __init__(self, record_id: str):
        super().__init__(f"Venue {record_id} not found")
        self.record_id = record_id


class PlanArtifactError(CatalogError):
    """The deduplication plan could not be persisted or loaded."""
