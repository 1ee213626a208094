"""
End-to-end deduplication run: read, plan, persist, execute.

The plan is always persisted before the first mutation. If the store cannot
be read or the plan cannot be persisted, nothing is changed.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from loguru import logger

from venue_catalog.deduplication.executor import PlanExecutor, RunSummary
from venue_catalog.deduplication.plan import DeduplicationPlan, DeduplicationPlanner
from venue_catalog.deduplication.sinks import PlanSink
from venue_catalog.models import VenueRecord
from venue_catalog.store import VenueStore


@dataclass
class RunResult:
    """A persisted plan and, when it was executed, the execution summary."""
    plan: DeduplicationPlan
    location: str
    summary: Optional[RunSummary] = None


def build_plan(
    records: Sequence[VenueRecord],
    dedup_settings=None,
    run_id: Optional[str] = None,
) -> DeduplicationPlan:
    """Group, classify, score and merge ``records`` into a plan. No side effects."""
    if dedup_settings is None:
        from venue_catalog.config import settings
        dedup_settings = settings.dedup
    return DeduplicationPlanner.from_settings(dedup_settings).build(records, run_id=run_id)


def run_deduplication(
    store: VenueStore,
    sink: PlanSink,
    dedup_settings=None,
    execute: bool = True,
    should_stop: Optional[Callable[[], bool]] = None,
) -> RunResult:
    """
    Run a full deduplication pass.

    Args:
        store: Record store to read and mutate
        sink: Where the plan and outcomes are persisted
        dedup_settings: DedupSettings (defaults to the global settings)
        execute: False builds and persists the plan only
        should_stop: Cooperative cancellation check, polled between entries

    Returns:
        RunResult with the plan, its location and (if executed) the summary

    Raises:
        StoreReadError: The record store could not be read
        PlanArtifactError: The plan could not be persisted
    """
    records = store.fetch_all()
    plan = build_plan(records, dedup_settings)
    location = sink.write_plan(plan)

    result = RunResult(plan=plan, location=location)
    if not execute:
        logger.info(f"Plan-only run {plan.run_id}; no records changed")
        return result

    if not plan.entries:
        logger.info("No duplicate groups found")

    with logger.contextualize(run_id=plan.run_id):
        result.summary = PlanExecutor(store, sink, should_stop).execute(plan)
    return result


def resume_run(
    run_id: str,
    store: VenueStore,
    sink: PlanSink,
    should_stop: Optional[Callable[[], bool]] = None,
) -> RunResult:
    """
    Continue executing a persisted plan.

    Entries already fully applied are skipped; entries whose keeper update
    succeeded retry only their outstanding removals.
    """
    plan, outcomes = sink.load(run_id)
    logger.info(f"Resuming run {run_id}: {len(plan.entries)} entries, {len(outcomes)} outcomes recorded")

    with logger.contextualize(run_id=run_id):
        summary = PlanExecutor(store, sink, should_stop).execute(plan, previous_outcomes=outcomes)
    return RunResult(plan=plan, location=run_id, summary=summary)
