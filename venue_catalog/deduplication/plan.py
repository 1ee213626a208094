"""
Deduplication plan: what will be merged and removed, decided before any write.

A plan is built in full from one snapshot of the record store and persisted
through a plan sink before execution starts, so every run can be reviewed
or replayed offline.
"""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Sequence

from loguru import logger

from venue_catalog.deduplication.distinctness import DistinctnessClassifier
from venue_catalog.deduplication.grouping import (
    DuplicateGroup,
    GroupingStrategy,
    build_strategies,
    find_candidate_groups,
)
from venue_catalog.deduplication.merge import merge_venues
from venue_catalog.deduplication.scoring import rank_members
from venue_catalog.models import VenueRecord


def jsonable(value: Any) -> Any:
    """Convert timestamps (also nested in lists/dicts) to ISO strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def new_run_id() -> str:
    """Timestamped, collision-safe run identifier."""
    return f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"


@dataclass
class PlanEntry:
    """One resolved duplicate group."""
    entry_id: str                     # sorted member ids joined by "|"
    keeper_id: str
    keeper_name: str
    remove_ids: list[str]
    payload: dict[str, Any]
    justification: str
    locality: str
    strategies: list[str] = field(default_factory=list)
    scores: dict[str, int] = field(default_factory=dict)
    discarded: dict[str, list[Any]] = field(default_factory=dict)
    # Full copies of the records to be removed, for manual restore
    removed_snapshots: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "keeper_id": self.keeper_id,
            "keeper_name": self.keeper_name,
            "remove_ids": list(self.remove_ids),
            "payload": jsonable(self.payload),
            "justification": self.justification,
            "locality": self.locality,
            "strategies": list(self.strategies),
            "scores": dict(self.scores),
            "discarded": jsonable(self.discarded),
            "removed_snapshots": jsonable(self.removed_snapshots),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanEntry":
        return cls(
            entry_id=data["entry_id"],
            keeper_id=data["keeper_id"],
            keeper_name=data.get("keeper_name", ""),
            remove_ids=list(data["remove_ids"]),
            payload=dict(data["payload"]),
            justification=data.get("justification", ""),
            locality=data.get("locality", ""),
            strategies=list(data.get("strategies", [])),
            scores=dict(data.get("scores", {})),
            discarded=dict(data.get("discarded", {})),
            removed_snapshots=list(data.get("removed_snapshots", [])),
        )


@dataclass
class EntryOutcome:
    """What executing one plan entry did."""
    entry_id: str
    keeper_id: str
    updated: bool = False
    deleted_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "keeper_id": self.keeper_id,
            "updated": self.updated,
            "deleted_ids": list(self.deleted_ids),
            "failed_ids": list(self.failed_ids),
            "skipped_ids": list(self.skipped_ids),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntryOutcome":
        return cls(
            entry_id=data["entry_id"],
            keeper_id=data["keeper_id"],
            updated=bool(data.get("updated")),
            deleted_ids=list(data.get("deleted_ids", [])),
            failed_ids=list(data.get("failed_ids", [])),
            skipped_ids=list(data.get("skipped_ids", [])),
            error=data.get("error"),
        )


@dataclass
class DeduplicationPlan:
    """The full set of planned merges for one run."""
    run_id: str
    created_at: datetime
    entries: list[PlanEntry] = field(default_factory=list)
    records_scanned: int = 0
    groups_considered: int = 0
    groups_distinct: int = 0
    distinct_by_rule: dict[str, int] = field(default_factory=dict)

    @property
    def removal_count(self) -> int:
        return sum(len(e.remove_ids) for e in self.entries)

    def header(self) -> dict[str, Any]:
        """Plan metadata without the entries."""
        return {
            "run_id": self.run_id,
            "created_at": self.created_at.isoformat(),
            "records_scanned": self.records_scanned,
            "groups_considered": self.groups_considered,
            "groups_distinct": self.groups_distinct,
            "distinct_by_rule": dict(self.distinct_by_rule),
            "entry_count": len(self.entries),
            "removal_count": self.removal_count,
        }

    @classmethod
    def from_header(cls, header: dict[str, Any], entries: list[PlanEntry]) -> "DeduplicationPlan":
        return cls(
            run_id=header["run_id"],
            created_at=datetime.fromisoformat(header["created_at"]),
            entries=entries,
            records_scanned=header.get("records_scanned", 0),
            groups_considered=header.get("groups_considered", 0),
            groups_distinct=header.get("groups_distinct", 0),
            distinct_by_rule=dict(header.get("distinct_by_rule", {})),
        )


def plan_entry_for_group(group: DuplicateGroup) -> PlanEntry:
    """Pick the keeper of a resolved group and merge the rest onto it."""
    ranked = rank_members(group.members)
    keeper = ranked[0].venue
    others = [s.venue for s in ranked[1:]]
    merged = merge_venues(keeper, others)

    average = round(sum(s.score for s in ranked) / len(ranked))
    justification = (
        f"Best score: {ranked[0].score} (avg: {average}) "
        f"via {', '.join(group.strategies)}"
    )

    return PlanEntry(
        entry_id="|".join(group.member_ids),
        keeper_id=keeper.id,
        keeper_name=keeper.name,
        remove_ids=[o.id for o in others],
        payload=merged.payload,
        justification=justification,
        locality=group.locality,
        strategies=list(group.strategies),
        scores={s.venue.id: s.score for s in ranked},
        discarded=merged.discarded,
        removed_snapshots=[o.to_dict() for o in others],
    )


class DeduplicationPlanner:
    """
    Builds a deduplication plan from a snapshot of all venues.

    Args:
        strategies: Grouping strategies in evaluation order
        classifier: Distinctness classifier for candidate groups
    """

    def __init__(
        self,
        strategies: Optional[Sequence[GroupingStrategy]] = None,
        classifier: Optional[DistinctnessClassifier] = None,
    ):
        self.strategies = list(strategies) if strategies is not None else []
        self.classifier = classifier or DistinctnessClassifier()

    @classmethod
    def from_settings(cls, dedup_settings) -> "DeduplicationPlanner":
        return cls(
            strategies=build_strategies(dedup_settings.strategies, dedup_settings),
            classifier=DistinctnessClassifier.from_settings(dedup_settings),
        )

    def build(self, records: Sequence[VenueRecord], run_id: Optional[str] = None) -> DeduplicationPlan:
        registry = find_candidate_groups(records, self.strategies)
        resolution = registry.resolve(self.classifier.classify)

        by_rule = Counter(verdict.rule for _, verdict in resolution.distinct)
        plan = DeduplicationPlan(
            run_id=run_id or new_run_id(),
            created_at=datetime.now(),
            records_scanned=len(records),
            groups_considered=resolution.considered,
            groups_distinct=len(resolution.distinct),
            distinct_by_rule=dict(by_rule),
        )

        for group in resolution.resolved:
            entry = plan_entry_for_group(group)
            plan.entries.append(entry)
            logger.debug(
                f"{len(group)}x {group.locality}: keeping {entry.keeper_name} "
                f"({entry.keeper_id}), removing {len(entry.remove_ids)}"
            )

        logger.info(
            f"Plan {plan.run_id}: {len(plan.entries)} groups to merge, "
            f"{plan.removal_count} records to remove, "
            f"{plan.groups_distinct} distinct groups left alone"
        )
        return plan
