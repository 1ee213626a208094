"""
Venue deduplication: group, classify, score, merge, plan and execute.
"""

from venue_catalog.deduplication.distinctness import (
    Classification,
    DistinctnessClassifier,
    DistinctnessRule,
    Verdict,
)
from venue_catalog.deduplication.executor import PlanExecutor, RunSummary
from venue_catalog.deduplication.grouping import (
    DuplicateGroup,
    GroupRegistry,
    build_strategies,
    find_candidate_groups,
)
from venue_catalog.deduplication.merge import MergeResult, merge_venues
from venue_catalog.deduplication.plan import (
    DeduplicationPlan,
    DeduplicationPlanner,
    EntryOutcome,
    PlanEntry,
)
from venue_catalog.deduplication.runner import RunResult, build_plan, resume_run, run_deduplication
from venue_catalog.deduplication.scoring import rank_members, score_venue
from venue_catalog.deduplication.sinks import (
    DatabasePlanSink,
    JsonLinesPlanSink,
    PlanSink,
    make_sink,
)

__all__ = [
    # Grouping
    "DuplicateGroup",
    "GroupRegistry",
    "build_strategies",
    "find_candidate_groups",
    # Classification
    "Classification",
    "DistinctnessClassifier",
    "DistinctnessRule",
    "Verdict",
    # Scoring and merge
    "score_venue",
    "rank_members",
    "MergeResult",
    "merge_venues",
    # Plans
    "PlanEntry",
    "EntryOutcome",
    "DeduplicationPlan",
    "DeduplicationPlanner",
    "PlanSink",
    "JsonLinesPlanSink",
    "DatabasePlanSink",
    "make_sink",
    # Execution
    "PlanExecutor",
    "RunSummary",
    "RunResult",
    "build_plan",
    "run_deduplication",
    "resume_run",
]
