# SPDX-License-Identifier: MIT
"""Tests for end-to-end deduplication runs."""

import pytest
from loguru import logger

from venue_catalog.deduplication.runner import build_plan, resume_run, run_deduplication
from venue_catalog.deduplication.sinks import DatabasePlanSink, JsonLinesPlanSink
from venue_catalog.errors import PlanArtifactError, StoreReadError


@pytest.fixture
def seeded_store(make_venue, memory_store):
    records = [
        make_venue(description="Booth by the door"),
        make_venue(photo_exterior_url="https://img/a.jpg"),
        make_venue(name="Arcade I", address="77 Ocean Avenue, Springfield"),
        make_venue(name="Arcade II", address="77 Ocean Avenue, Springfield"),
    ]
    memory_store.records = {r.id: r for r in records}
    return memory_store


class TestRunDeduplication:
    """Test run_deduplication()."""

    def test_full_run(self, seeded_store, dedup_settings):
        sink = JsonLinesPlanSink(dedup_settings.plan_dir)

        result = run_deduplication(seeded_store, sink, dedup_settings)

        assert result.summary.groups_considered == 2
        assert result.summary.groups_distinct == 1
        assert result.summary.records_deleted == 1
        assert len(seeded_store.records) == 3
        assert sink.list_runs() == [result.plan.run_id]

    def test_execution_logs_carry_run_id(self, seeded_store, dedup_settings):
        sink = JsonLinesPlanSink(dedup_settings.plan_dir)
        run_ids = []
        handler = logger.add(lambda message: run_ids.append(message.record["extra"].get("run_id")))
        try:
            result = run_deduplication(seeded_store, sink, dedup_settings)
        finally:
            logger.remove(handler)

        assert result.plan.run_id in run_ids

    def test_plan_only_changes_nothing(self, seeded_store, dedup_settings):
        sink = JsonLinesPlanSink(dedup_settings.plan_dir)

        result = run_deduplication(seeded_store, sink, dedup_settings, execute=False)

        assert result.summary is None
        assert len(result.plan.entries) == 1
        assert seeded_store.calls == []

    def test_plan_written_before_any_mutation(self, seeded_store, dedup_settings, mocker):
        sink = mocker.Mock()
        sink.write_plan.return_value = "somewhere"
        events = []
        sink.write_plan.side_effect = lambda plan: events.append("plan") or "somewhere"
        original_update = seeded_store.update_fields

        def tracking_update(record_id, payload):
            events.append("update")
            return original_update(record_id, payload)

        seeded_store.update_fields = tracking_update

        run_deduplication(seeded_store, sink, dedup_settings)

        assert events[0] == "plan"
        assert "update" in events

    def test_read_failure_is_fatal(self, seeded_store, dedup_settings, mocker):
        seeded_store.fail_reads = True
        sink = mocker.Mock()

        with pytest.raises(StoreReadError):
            run_deduplication(seeded_store, sink, dedup_settings)

        sink.write_plan.assert_not_called()

    def test_unpersisted_plan_is_not_executed(self, seeded_store, dedup_settings, mocker):
        sink = mocker.Mock()
        sink.write_plan.side_effect = PlanArtifactError("read-only filesystem")

        with pytest.raises(PlanArtifactError):
            run_deduplication(seeded_store, sink, dedup_settings)

        assert seeded_store.calls == []

    def test_second_run_is_a_no_op(self, seeded_store, dedup_settings):
        sink = JsonLinesPlanSink(dedup_settings.plan_dir)
        run_deduplication(seeded_store, sink, dedup_settings)
        seeded_store.calls.clear()

        second = run_deduplication(seeded_store, sink, dedup_settings)

        assert second.plan.entries == []
        assert seeded_store.calls == []


class TestResumeRun:
    """Test resume_run()."""

    def test_resume_after_cancellation(self, seeded_store, dedup_settings):
        sink = JsonLinesPlanSink(dedup_settings.plan_dir)
        first = run_deduplication(seeded_store, sink, dedup_settings, should_stop=lambda: True)
        assert first.summary.cancelled
        assert len(seeded_store.records) == 4

        resumed = resume_run(first.plan.run_id, seeded_store, sink)

        assert resumed.summary.records_deleted == 1
        assert len(seeded_store.records) == 3

    def test_resume_with_database_sink(self, seeded_store, dedup_settings, session_factory):
        sink = DatabasePlanSink(session_factory)
        first = run_deduplication(seeded_store, sink, dedup_settings, should_stop=lambda: True)

        resumed = resume_run(first.plan.run_id, seeded_store, sink)

        assert resumed.summary.groups_processed == 1
        assert len(seeded_store.records) == 3

    def test_unknown_run(self, memory_store, tmp_path):
        with pytest.raises(PlanArtifactError):
            resume_run("missing", memory_store, JsonLinesPlanSink(tmp_path))


class TestBuildPlan:
    """Test build_plan()."""

    def test_pure(self, seeded_store, dedup_settings):
        records = seeded_store.fetch_all()

        first = build_plan(records, dedup_settings, run_id="a")
        second = build_plan(records, dedup_settings, run_id="b")

        assert [e.to_dict() for e in first.entries] == [e.to_dict() for e in second.entries]
        assert seeded_store.calls == []
