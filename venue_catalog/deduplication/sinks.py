"""
Plan artifact sinks.

The plan is written in full before execution starts, and each entry's
outcome is appended as soon as the entry finishes. Either sink can reload a
run so an interrupted execution can be resumed.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from venue_catalog.database import DedupPlanEntry, DedupPlanOutcome, DedupRun, get_session
from venue_catalog.deduplication.plan import DeduplicationPlan, EntryOutcome, PlanEntry
from venue_catalog.errors import PlanArtifactError


class PlanSink(ABC):
    """Destination of deduplication plans and their execution outcomes."""

    @abstractmethod
    def write_plan(self, plan: DeduplicationPlan) -> str:
        """Persist the whole plan. Returns a human-readable location."""

    @abstractmethod
    def record_outcome(self, run_id: str, outcome: EntryOutcome) -> None:
        """Durably append one entry's outcome."""

    @abstractmethod
    def load(self, run_id: str) -> tuple[DeduplicationPlan, list[EntryOutcome]]:
        """Reload a plan and all outcomes recorded so far."""

    @abstractmethod
    def list_runs(self) -> list[str]:
        """Run ids known to this sink, newest first."""


# =============================================================================
# JSON Lines file sink
# =============================================================================

class JsonLinesPlanSink(PlanSink):
    """
    One JSON Lines file per run: a plan header line, one line per entry,
    then one outcome line per executed entry.

    Args:
        plan_dir: Directory holding ``dedup-plan-<run_id>.jsonl`` files
    """

    def __init__(self, plan_dir: Path):
        self.plan_dir = Path(plan_dir)

    def path_for(self, run_id: str) -> Path:
        return self.plan_dir / f"dedup-plan-{run_id}.jsonl"

    def write_plan(self, plan: DeduplicationPlan) -> str:
        dest_path = self.path_for(plan.run_id)
        temp_path = dest_path.with_suffix(dest_path.suffix + ".tmp")

        try:
            self.plan_dir.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(json.dumps({"type": "plan", **plan.header()}, ensure_ascii=False) + "\n")
                for entry in plan.entries:
                    f.write(json.dumps({"type": "entry", **entry.to_dict()}, ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())

            # Atomic rename (overwrites existing)
            temp_path.replace(dest_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PlanArtifactError(f"Could not write plan to {dest_path}: {e}") from e

        logger.info(f"Deduplication plan saved: {dest_path}")
        return str(dest_path)

    def record_outcome(self, run_id: str, outcome: EntryOutcome) -> None:
        path = self.path_for(run_id)
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps({"type": "outcome", **outcome.to_dict()}, ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PlanArtifactError(f"Could not append outcome to {path}: {e}") from e

    def load(self, run_id: str) -> tuple[DeduplicationPlan, list[EntryOutcome]]:
        path = self.path_for(run_id)
        if not path.exists():
            raise PlanArtifactError(f"No plan found for run {run_id} ({path})")

        header: dict[str, Any] | None = None
        entries: list[PlanEntry] = []
        outcomes: list[EntryOutcome] = []

        with open(path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    # A crash mid-append can leave a torn last line
                    logger.warning(f"Skipping unreadable line {line_number} in {path}")
                    continue

                kind = data.pop("type", None)
                if kind == "plan":
                    header = data
                elif kind == "entry":
                    entries.append(PlanEntry.from_dict(data))
                elif kind == "outcome":
                    outcomes.append(EntryOutcome.from_dict(data))

        if header is None:
            raise PlanArtifactError(f"Plan file {path} has no header line")

        return DeduplicationPlan.from_header(header, entries), outcomes

    def list_runs(self) -> list[str]:
        if not self.plan_dir.exists():
            return []
        prefix = "dedup-plan-"
        runs = [p.stem[len(prefix):] for p in self.plan_dir.glob(f"{prefix}*.jsonl")]
        return sorted(runs, reverse=True)


# =============================================================================
# Database sink
# =============================================================================

class DatabasePlanSink(PlanSink):
    """
    Stores plans in the ``dedup_runs`` / ``dedup_plan_entries`` /
    ``dedup_plan_outcomes`` tables.

    Args:
        session_factory: Callable returning a new Session (defaults to SessionLocal)
    """

    _DETAIL_KEYS = ("keeper_name", "strategies", "scores", "discarded", "removed_snapshots")

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def write_plan(self, plan: DeduplicationPlan) -> str:
        try:
            with get_session(self.session_factory) as session:
                session.add(DedupRun(run_id=plan.run_id, header=plan.header()))
                session.flush()
                for position, entry in enumerate(plan.entries):
                    data = entry.to_dict()
                    session.add(DedupPlanEntry(
                        run_id=plan.run_id,
                        position=position,
                        entry_id=entry.entry_id,
                        keeper_id=entry.keeper_id,
                        remove_ids=data["remove_ids"],
                        payload=data["payload"],
                        justification=entry.justification,
                        locality=entry.locality,
                        details={k: data[k] for k in self._DETAIL_KEYS},
                    ))
        except SQLAlchemyError as e:
            raise PlanArtifactError(f"Could not store plan {plan.run_id}: {e}") from e

        logger.info(f"Deduplication plan saved to database: run {plan.run_id}")
        return f"dedup_runs/{plan.run_id}"

    def record_outcome(self, run_id: str, outcome: EntryOutcome) -> None:
        try:
            with get_session(self.session_factory) as session:
                entry_pk = session.scalar(
                    select(DedupPlanEntry.id).where(
                        DedupPlanEntry.run_id == run_id,
                        DedupPlanEntry.entry_id == outcome.entry_id,
                    )
                )
                if entry_pk is None:
                    raise PlanArtifactError(f"Entry {outcome.entry_id} not part of run {run_id}")
                session.add(DedupPlanOutcome(
                    plan_entry_id=entry_pk,
                    run_id=run_id,
                    updated=outcome.updated,
                    deleted_ids=list(outcome.deleted_ids),
                    failed_ids=list(outcome.failed_ids),
                    skipped_ids=list(outcome.skipped_ids),
                    error=outcome.error,
                ))
        except SQLAlchemyError as e:
            raise PlanArtifactError(f"Could not store outcome for run {run_id}: {e}") from e

    def load(self, run_id: str) -> tuple[DeduplicationPlan, list[EntryOutcome]]:
        try:
            with get_session(self.session_factory) as session:
                run = session.get(DedupRun, run_id)
                if run is None:
                    raise PlanArtifactError(f"No plan found for run {run_id}")

                rows = session.scalars(
                    select(DedupPlanEntry)
                    .where(DedupPlanEntry.run_id == run_id)
                    .order_by(DedupPlanEntry.position)
                ).all()
                entry_ids = {row.id: row.entry_id for row in rows}
                entries = [
                    PlanEntry.from_dict({
                        "entry_id": row.entry_id,
                        "keeper_id": row.keeper_id,
                        "remove_ids": row.remove_ids,
                        "payload": row.payload,
                        "justification": row.justification,
                        "locality": row.locality,
                        **(row.details or {}),
                    })
                    for row in rows
                ]

                outcome_rows = session.scalars(
                    select(DedupPlanOutcome)
                    .where(DedupPlanOutcome.run_id == run_id)
                    .order_by(DedupPlanOutcome.id)
                ).all()
                keepers = {e.entry_id: e.keeper_id for e in entries}
                outcomes = []
                for row in outcome_rows:
                    entry_id = entry_ids[row.plan_entry_id]
                    outcomes.append(EntryOutcome(
                        entry_id=entry_id,
                        keeper_id=keepers[entry_id],
                        updated=row.updated,
                        deleted_ids=list(row.deleted_ids or []),
                        failed_ids=list(row.failed_ids or []),
                        skipped_ids=list(row.skipped_ids or []),
                        error=row.error,
                    ))

                header = dict(run.header)
        except SQLAlchemyError as e:
            raise PlanArtifactError(f"Could not load plan {run_id}: {e}") from e

        return DeduplicationPlan.from_header(header, entries), outcomes

    def list_runs(self) -> list[str]:
        try:
            with get_session(self.session_factory) as session:
                return list(session.scalars(
                    select(DedupRun.run_id).order_by(DedupRun.created_at.desc(), DedupRun.run_id.desc())
                ).all())
        except SQLAlchemyError as e:
            raise PlanArtifactError(f"Could not list runs: {e}") from e


def make_sink(dedup_settings=None, session_factory=None) -> PlanSink:
    """Build the plan sink selected by configuration."""
    if dedup_settings is None:
        from venue_catalog.config import settings
        dedup_settings = settings.dedup

    if dedup_settings.plan_sink == "database":
        return DatabasePlanSink(session_factory)
    return JsonLinesPlanSink(dedup_settings.plan_dir)
