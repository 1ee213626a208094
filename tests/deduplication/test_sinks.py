# SPDX-License-Identifier: MIT
"""Tests for plan artifact sinks."""

import json
from datetime import datetime

import pytest

from venue_catalog.deduplication.plan import DeduplicationPlan, EntryOutcome, PlanEntry
from venue_catalog.deduplication.sinks import DatabasePlanSink, JsonLinesPlanSink, make_sink
from venue_catalog.errors import PlanArtifactError


@pytest.fixture
def sample_plan() -> DeduplicationPlan:
    entries = [
        PlanEntry(
            entry_id="a|b",
            keeper_id="a",
            keeper_name="Photo Booth",
            remove_ids=["b"],
            payload={"description": "Booth", "geocoded_at": datetime(2024, 2, 1)},
            justification="Best score: 80 (avg: 60) via address",
            locality="springfield",
            strategies=["address"],
            scores={"a": 80, "b": 40},
            removed_snapshots=[{"id": "b", "name": "Photo Booth"}],
        ),
        PlanEntry(
            entry_id="c|d|e",
            keeper_id="d",
            keeper_name="Lucky Bar",
            remove_ids=["c", "e"],
            payload={"cost": "$5"},
            justification="Best score: 70 (avg: 50) via address, name",
            locality="springfield",
            strategies=["address", "name"],
        ),
    ]
    return DeduplicationPlan(
        run_id="20240101_120000_abc123",
        created_at=datetime(2024, 1, 1, 12, 0, 0),
        entries=entries,
        records_scanned=10,
        groups_considered=3,
        groups_distinct=1,
        distinct_by_rule={"enumerated_names": 1},
    )


class TestJsonLinesPlanSink:
    """Test the JSON Lines file sink."""

    def test_writes_header_and_entries(self, tmp_path, sample_plan):
        sink = JsonLinesPlanSink(tmp_path / "plans")

        location = sink.write_plan(sample_plan)

        lines = (tmp_path / "plans" / "dedup-plan-20240101_120000_abc123.jsonl").read_text().splitlines()
        assert location.endswith("dedup-plan-20240101_120000_abc123.jsonl")
        assert [json.loads(line)["type"] for line in lines] == ["plan", "entry", "entry"]
        assert json.loads(lines[0])["removal_count"] == 3

    def test_no_temp_file_left(self, tmp_path, sample_plan):
        sink = JsonLinesPlanSink(tmp_path)
        sink.write_plan(sample_plan)

        assert list(tmp_path.glob("*.tmp")) == []

    def test_load_plan_and_outcomes(self, tmp_path, sample_plan):
        sink = JsonLinesPlanSink(tmp_path)
        sink.write_plan(sample_plan)
        sink.record_outcome(sample_plan.run_id, EntryOutcome("a|b", "a", updated=True, deleted_ids=["b"]))

        plan, outcomes = sink.load(sample_plan.run_id)

        assert plan.run_id == sample_plan.run_id
        assert plan.groups_distinct == 1
        assert [e.entry_id for e in plan.entries] == ["a|b", "c|d|e"]
        assert plan.entries[0].payload["geocoded_at"] == "2024-02-01T00:00:00"
        assert plan.entries[0].scores == {"a": 80, "b": 40}
        assert len(outcomes) == 1
        assert outcomes[0].deleted_ids == ["b"]

    def test_torn_last_line_is_ignored(self, tmp_path, sample_plan):
        sink = JsonLinesPlanSink(tmp_path)
        sink.write_plan(sample_plan)
        with open(sink.path_for(sample_plan.run_id), "a") as f:
            f.write('{"type": "outcome", "entry_id": "a|')

        _, outcomes = sink.load(sample_plan.run_id)

        assert outcomes == []

    def test_missing_run(self, tmp_path):
        with pytest.raises(PlanArtifactError):
            JsonLinesPlanSink(tmp_path).load("nope")

    def test_unwritable_directory(self, tmp_path, sample_plan):
        blocker = tmp_path / "plans"
        blocker.write_text("not a directory")

        with pytest.raises(PlanArtifactError):
            JsonLinesPlanSink(blocker).write_plan(sample_plan)

    def test_list_runs_newest_first(self, tmp_path, sample_plan):
        sink = JsonLinesPlanSink(tmp_path)
        sink.write_plan(sample_plan)
        sample_plan.run_id = "20250101_120000_def456"
        sink.write_plan(sample_plan)

        assert sink.list_runs() == ["20250101_120000_def456", "20240101_120000_abc123"]

    def test_list_runs_without_directory(self, tmp_path):
        assert JsonLinesPlanSink(tmp_path / "missing").list_runs() == []


class TestDatabasePlanSink:
    """Test the database table sink."""

    def test_round_trip(self, session_factory, sample_plan):
        sink = DatabasePlanSink(session_factory)
        sink.write_plan(sample_plan)
        sink.record_outcome(
            sample_plan.run_id,
            EntryOutcome("c|d|e", "d", updated=True, deleted_ids=["c"], failed_ids=["e"], error="locked"),
        )

        plan, outcomes = sink.load(sample_plan.run_id)

        assert [e.entry_id for e in plan.entries] == ["a|b", "c|d|e"]
        assert plan.entries[1].remove_ids == ["c", "e"]
        assert plan.entries[0].removed_snapshots == [{"id": "b", "name": "Photo Booth"}]
        assert plan.records_scanned == 10
        assert outcomes[0].entry_id == "c|d|e"
        assert outcomes[0].keeper_id == "d"
        assert outcomes[0].failed_ids == ["e"]
        assert outcomes[0].error == "locked"

    def test_outcome_for_unknown_entry(self, session_factory, sample_plan):
        sink = DatabasePlanSink(session_factory)
        sink.write_plan(sample_plan)

        with pytest.raises(PlanArtifactError):
            sink.record_outcome(sample_plan.run_id, EntryOutcome("x|y", "x"))

    def test_missing_run(self, session_factory):
        with pytest.raises(PlanArtifactError):
            DatabasePlanSink(session_factory).load("nope")

    def test_duplicate_run_rejected(self, session_factory, sample_plan):
        sink = DatabasePlanSink(session_factory)
        sink.write_plan(sample_plan)

        with pytest.raises(PlanArtifactError):
            sink.write_plan(sample_plan)

    def test_list_runs(self, session_factory, sample_plan):
        sink = DatabasePlanSink(session_factory)
        sink.write_plan(sample_plan)

        assert sink.list_runs() == [sample_plan.run_id]


class TestMakeSink:
    """Test sink selection from settings."""

    def test_file_sink_by_default(self, dedup_settings):
        sink = make_sink(dedup_settings)

        assert isinstance(sink, JsonLinesPlanSink)
        assert sink.plan_dir == dedup_settings.plan_dir

    def test_database_sink(self, dedup_settings, session_factory):
        dedup_settings.plan_sink = "database"

        assert isinstance(make_sink(dedup_settings, session_factory), DatabasePlanSink)
