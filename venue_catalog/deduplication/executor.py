"""
Sequential execution of a deduplication plan against the record store.

Entries are applied one at a time: first the merged payload is written to
the keeper, then every other member is deleted. There is no rollback; a
partially applied plan is a valid end state and the recorded outcomes say
exactly how far each entry got.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from loguru import logger

from venue_catalog.deduplication.plan import DeduplicationPlan, EntryOutcome, PlanEntry
from venue_catalog.deduplication.sinks import PlanSink
from venue_catalog.errors import RecordNotFoundError, StoreError
from venue_catalog.store import VenueStore


@dataclass
class RunSummary:
    """Result of executing (or resuming) a deduplication plan."""
    run_id: str
    groups_considered: int = 0
    groups_distinct: int = 0
    groups_processed: int = 0
    records_kept: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    updates_failed: int = 0
    deletes_failed: int = 0
    deletes_skipped: int = 0
    entries_skipped: int = 0
    cancelled: bool = False
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def operations_failed(self) -> int:
        return self.updates_failed + self.deletes_failed

    @property
    def duration_seconds(self) -> float | None:
        """Calculate duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class EntryProgress:
    """Accumulated outcomes of one entry across earlier executions."""
    updated: bool = False
    deleted_ids: set[str] = field(default_factory=set)

    def outstanding(self, entry: PlanEntry) -> list[str]:
        return [rid for rid in entry.remove_ids if rid not in self.deleted_ids]

    def is_complete(self, entry: PlanEntry) -> bool:
        return self.updated and not self.outstanding(entry)


def collect_progress(outcomes: Iterable[EntryOutcome]) -> dict[str, EntryProgress]:
    """Fold recorded outcomes into per-entry progress."""
    progress: dict[str, EntryProgress] = {}
    for outcome in outcomes:
        state = progress.setdefault(outcome.entry_id, EntryProgress())
        state.updated = state.updated or outcome.updated
        state.deleted_ids.update(outcome.deleted_ids)
    return progress


class PlanExecutor:
    """
    Applies plan entries to a venue store and records each outcome.

    Args:
        store: Record store to mutate
        sink: Plan sink receiving one outcome per executed entry
        should_stop: Checked between entries; returning True stops the run
    """

    def __init__(
        self,
        store: VenueStore,
        sink: PlanSink,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        self.store = store
        self.sink = sink
        self.should_stop = should_stop or (lambda: False)

    def execute(
        self,
        plan: DeduplicationPlan,
        previous_outcomes: Optional[Iterable[EntryOutcome]] = None,
    ) -> RunSummary:
        """
        Execute every entry of ``plan`` that is not already fully applied.

        Args:
            plan: Persisted deduplication plan
            previous_outcomes: Outcomes recorded by an earlier, interrupted
                execution of the same plan

        Returns:
            RunSummary with counts for this execution only
        """
        summary = RunSummary(
            run_id=plan.run_id,
            groups_considered=plan.groups_considered,
            groups_distinct=plan.groups_distinct,
            started_at=datetime.now(),
        )
        progress = collect_progress(previous_outcomes or [])

        for index, entry in enumerate(plan.entries):
            if self.should_stop():
                summary.cancelled = True
                logger.warning(
                    f"Run {plan.run_id} cancelled after {index} of {len(plan.entries)} entries"
                )
                break

            state = progress.get(entry.entry_id)
            if state is not None and state.is_complete(entry):
                summary.entries_skipped += 1
                continue

            if state is not None and state.updated:
                outcome = self._retry_removals(entry, state.outstanding(entry), summary)
            else:
                outcome = self._apply_entry(entry, summary)

            summary.groups_processed += 1
            self.sink.record_outcome(plan.run_id, outcome)

        summary.completed_at = datetime.now()
        logger.info(
            f"Run {plan.run_id}: {summary.groups_processed} groups processed, "
            f"{summary.records_deleted} records deleted, "
            f"{summary.operations_failed} operations failed"
        )
        return summary

    def _apply_entry(self, entry: PlanEntry, summary: RunSummary) -> EntryOutcome:
        outcome = EntryOutcome(entry_id=entry.entry_id, keeper_id=entry.keeper_id)

        try:
            self.store.update_fields(entry.keeper_id, entry.payload)
        except StoreError as e:
            summary.updates_failed += 1
            summary.deletes_skipped += len(entry.remove_ids)
            summary.errors.append(f"update {entry.keeper_id}: {e}")
            outcome.error = str(e)
            outcome.skipped_ids = list(entry.remove_ids)
            logger.error(
                f"Failed to update keeper {entry.keeper_id} ({entry.keeper_name}): {e}; "
                f"skipping {len(entry.remove_ids)} removals"
            )
            return outcome

        outcome.updated = True
        summary.records_updated += 1
        summary.records_kept += 1

        self._delete_all(entry.remove_ids, outcome, summary)
        return outcome

    def _retry_removals(
        self,
        entry: PlanEntry,
        outstanding: list[str],
        summary: RunSummary,
    ) -> EntryOutcome:
        # Keeper already carries the merged payload
        outcome = EntryOutcome(entry_id=entry.entry_id, keeper_id=entry.keeper_id, updated=True)
        summary.records_kept += 1
        logger.info(f"Retrying {len(outstanding)} outstanding removals for {entry.keeper_name}")
        self._delete_all(outstanding, outcome, summary)
        return outcome

    def _delete_all(self, record_ids: list[str], outcome: EntryOutcome, summary: RunSummary) -> None:
        for record_id in record_ids:
            try:
                self.store.delete(record_id)
            except RecordNotFoundError:
                # Removed by an earlier execution that died before recording it
                logger.warning(f"Venue {record_id} already absent, treating as removed")
                outcome.deleted_ids.append(record_id)
                continue
            except StoreError as e:
                summary.deletes_failed += 1
                summary.errors.append(f"delete {record_id}: {e}")
                outcome.failed_ids.append(record_id)
                outcome.error = str(e)
                logger.error(f"Failed to delete venue {record_id}: {e}")
                continue

            outcome.deleted_ids.append(record_id)
            summary.records_deleted += 1
