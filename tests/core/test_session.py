"""Tests for the in-memory session state."""

import asyncio
import json

import pytest

from batterylens.config import PipelineSettings
from batterylens.exceptions import (
    BatchAlreadyRunningError,
    BatchDispatchError,
    BatteryNotFoundError,
    InvalidJobStateError,
    JobNotFoundError,
    SessionImportError,
)
from batterylens.models import ChartInfo, ErrorKind, ExtractionResult, ImageJobStatus
from batterylens.session import SessionState

MINUTE_MS = 60 * 1000
BASE_TS = 1705276800000


class TestDuplicates:
    """Tests for duplicate detection on upload."""

    def test_duplicate_within_one_upload_is_held(self, session, job_factory):
        jobs = session.add_jobs([job_factory("a.png"), job_factory("a.png", BASE_TS + 1)])
        assert jobs[0].status == ImageJobStatus.QUEUED
        assert jobs[1].status == ImageJobStatus.DUPLICATE
        assert jobs[1].awaiting_decision

    def test_skip_policy_makes_duplicates_final(self, fake_extractor, job_factory):
        session = SessionState(settings=PipelineSettings(duplicate_policy="skip"), extractor=fake_extractor)
        jobs = session.add_jobs([job_factory("a.png"), job_factory("a.png", BASE_TS + 1)])
        assert jobs[1].status == ImageJobStatus.DUPLICATE
        assert not jobs[1].awaiting_decision
        with pytest.raises(InvalidJobStateError):
            session.decide_duplicate(jobs[1].id, process=True)

    @pytest.mark.asyncio
    async def test_processed_file_name_is_duplicate(self, session, job_factory):
        session.add_jobs([job_factory("a.png")])
        await session.run_batch()
        (job,) = session.add_jobs([job_factory("a.png", BASE_TS + 5)])
        assert job.status == ImageJobStatus.DUPLICATE

    def test_failed_job_name_is_not_blocking(self, session, job_factory):
        (first,) = session.add_jobs([job_factory("a.png")])
        first.status = ImageJobStatus.ERROR
        (second,) = session.add_jobs([job_factory("a.png", BASE_TS + 1)])
        assert second.status == ImageJobStatus.QUEUED

    def test_decide_process_queues_job(self, session, job_factory):
        jobs = session.add_jobs([job_factory("a.png"), job_factory("a.png", BASE_TS + 1)])
        job = session.decide_duplicate(jobs[1].id, process=True)
        assert job.status == ImageJobStatus.QUEUED
        assert not job.awaiting_decision

    def test_decide_skip_keeps_duplicate(self, session, job_factory):
        jobs = session.add_jobs([job_factory("a.png"), job_factory("a.png", BASE_TS + 1)])
        job = session.decide_duplicate(jobs[1].id, process=False)
        assert job.status == ImageJobStatus.DUPLICATE
        assert not job.awaiting_decision

    def test_same_job_id_is_made_unique(self, session, job_factory):
        jobs = session.add_jobs([job_factory("a.png"), job_factory("a.png")])
        assert jobs[0].id != jobs[1].id
        assert len(session.list_jobs()) == 2


class TestRequeue:
    """Tests for manual re-queue."""

    def test_requeue_error_job(self, session, job_factory):
        (job,) = session.add_jobs([job_factory("a.png")])
        job.status = ImageJobStatus.ERROR
        job.error = "boom"
        session.requeue(job.id)
        assert job.status == ImageJobStatus.QUEUED
        assert job.error is None

    def test_requeue_clears_error_kind(self, session, job_factory):
        (job,) = session.add_jobs([job_factory("a.png")])
        job.status = ImageJobStatus.ERROR
        job.error = "Batch aborted"
        job.error_kind = ErrorKind.ABORTED
        session.requeue(job.id)
        assert job.error_kind is None

    def test_requeue_non_error_job(self, session, job_factory):
        (job,) = session.add_jobs([job_factory("a.png")])
        job.status = ImageJobStatus.SUCCESS
        with pytest.raises(InvalidJobStateError):
            session.requeue(job.id)

    def test_requeue_unknown_job(self, session):
        with pytest.raises(JobNotFoundError):
            session.requeue("missing")


class TestRunBatch:
    """Tests for batches run through the session."""

    @pytest.mark.asyncio
    async def test_results_are_merged_per_battery(self, session, job_factory, fake_extractor):
        fake_extractor.replies = {
            "a.png": ExtractionResult(success=True, battery_id="A", extracted_data='{"soc": 50}', timestamp=BASE_TS),
            "b.png": ExtractionResult(success=True, battery_id="A", extracted_data='{"soc": 52}', timestamp=BASE_TS + MINUTE_MS),
            "c.png": ExtractionResult(success=True, battery_id="B", extracted_data='{"soc": 90}', timestamp=BASE_TS),
        }
        session.add_jobs([job_factory("a.png"), job_factory("b.png"), job_factory("c.png")])

        summary = await session.run_batch()

        assert summary.succeeded == 3
        assert sorted(summary.batteries) == ["A", "B"]
        assert session.get_series("A") == [{"timestamp": BASE_TS, "soc": 51.0}]
        assert sorted(session.get_record("A").processed_file_names) == ["a.png", "b.png"]
        assert session.processed_file_names() == {"a.png", "b.png", "c.png"}

    @pytest.mark.asyncio
    async def test_chart_info_refreshed_after_batch(self, session, job_factory, chart_info_provider):
        session.add_jobs([job_factory("a.png")])
        await session.run_batch()
        assert len(chart_info_provider.calls) == 1
        assert session.get_record("BAT-1").chart_info is not None

    @pytest.mark.asyncio
    async def test_clear_is_refused_during_chart_info_refresh(self, job_factory, fake_extractor):
        fake_extractor.replies = {
            "a.png": ExtractionResult(success=True, battery_id="A", extracted_data='{"soc": 50}'),
            "b.png": ExtractionResult(success=True, battery_id="B", extracted_data='{"soc": 60}'),
        }
        refused = []

        async def provider(metrics, time_range, insights):
            try:
                session.clear()
            except BatchAlreadyRunningError as e:
                refused.append(e)
                raise
            return ChartInfo(title="t", description="d")

        session = SessionState(settings=PipelineSettings(), extractor=fake_extractor, chart_info_provider=provider)
        session.add_jobs([job_factory("a.png"), job_factory("b.png")])

        summary = await session.run_batch()

        assert summary.succeeded == 2
        assert len(refused) == 2
        assert sorted(session.battery_ids()) == ["A", "B"]
        assert not session.batch_running

    @pytest.mark.asyncio
    async def test_only_queued_jobs_run(self, session, job_factory, fake_extractor):
        session.add_jobs([job_factory("a.png"), job_factory("a.png", BASE_TS + 1)])
        await session.run_batch()
        assert fake_extractor.calls == ["a.png"]

    @pytest.mark.asyncio
    async def test_second_batch_is_rejected_while_running(self, job_factory, extractor_factory):
        session = SessionState(settings=PipelineSettings(), extractor=extractor_factory(delay=0.05))
        session.add_jobs([job_factory("a.png")])

        first = asyncio.create_task(session.run_batch())
        await asyncio.sleep(0.01)
        assert session.batch_running
        with pytest.raises(BatchAlreadyRunningError):
            await session.run_batch()
        await first
        assert not session.batch_running

    @pytest.mark.asyncio
    async def test_no_extractor_configured(self, job_factory):
        session = SessionState(settings=PipelineSettings())
        session.add_jobs([job_factory("a.png")])
        with pytest.raises(BatchDispatchError):
            await session.run_batch()

    @pytest.mark.asyncio
    async def test_events_are_published(self, session, job_factory):
        queue = session.subscribe()
        session.add_jobs([job_factory("a.png")])
        await session.run_batch()

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        names = [e.event for e in events]

        assert names[0] == "job"
        assert "progress" in names
        assert names[-1] == "batch"
        progress = [e.data for e in events if e.event == "progress"]
        assert progress[-1]["percent"] == 100
        assert all("preview" not in e.data for e in events if e.event == "job")


class TestChartInfo:
    """Tests for chart info refresh."""

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_chart_info(self, session, chart_info_provider):
        await session.merge_points("A", [{"timestamp": BASE_TS, "soc": 50.0}])
        session.get_record("A").chart_info = ChartInfo(title="Old", description="Kept")
        chart_info_provider.fail = True

        assert await session.refresh_chart_info("A") is None
        assert session.get_record("A").chart_info == ChartInfo(title="Old", description="Kept")

    @pytest.mark.asyncio
    async def test_without_provider(self, fake_extractor):
        session = SessionState(settings=PipelineSettings(), extractor=fake_extractor)
        await session.merge_points("A", [{"timestamp": BASE_TS, "soc": 50.0}])
        assert await session.refresh_chart_info("A") is None

    @pytest.mark.asyncio
    async def test_unknown_battery_is_skipped(self, session, chart_info_provider):
        assert await session.refresh_chart_info("missing") is None
        assert chart_info_provider.calls == []


class TestExportImport:
    """Tests for session export and import."""

    @pytest.mark.asyncio
    async def test_round_trip(self, session):
        await session.merge_points("A", [{"timestamp": BASE_TS + i * 10 * MINUTE_MS, "soc": float(i)} for i in range(3)], ["a.png"])
        session.get_record("A").chart_info = ChartInfo(title="T", description="D")

        exported = json.dumps(session.export_session())
        restored = SessionState(settings=PipelineSettings())
        assert await restored.import_session(exported) == ["A"]

        assert restored.get_series("A") == session.get_series("A")
        assert restored.get_record("A").chart_info == ChartInfo(title="T", description="D")
        assert restored.processed_file_names() == {"a.png"}

    @pytest.mark.asyncio
    async def test_export_shape_and_cap(self):
        session = SessionState(settings=PipelineSettings(export_max_points=2))
        await session.merge_points("A", [{"timestamp": BASE_TS + i * 10 * MINUTE_MS, "soc": float(i)} for i in range(5)], ["a.png"])

        exported = session.export_session()

        assert set(exported["A"]) == {"history", "chartInfo", "processedFileNames"}
        assert [p["soc"] for p in exported["A"]["history"]] == [3.0, 4.0]
        assert len(session.get_series("A")) == 5

    @pytest.mark.asyncio
    async def test_import_merges_with_existing_series(self, session):
        await session.merge_points("A", [{"timestamp": BASE_TS, "soc": 50.0}])
        payload = {"A": {"history": [{"timestamp": BASE_TS + MINUTE_MS, "soc": 52.0}, {"timestamp": BASE_TS + 60 * MINUTE_MS, "soc": 40.0}]}}

        await session.import_session(payload)

        assert session.get_series("A") == [{"timestamp": BASE_TS, "soc": 51.0}, {"timestamp": BASE_TS + 60 * MINUTE_MS, "soc": 40.0}]

    @pytest.mark.asyncio
    async def test_import_keeps_existing_chart_info_when_file_has_none(self, session):
        await session.merge_points("A", [{"timestamp": BASE_TS, "soc": 50.0}])
        session.get_record("A").chart_info = ChartInfo(title="Existing", description="")
        await session.import_session({"A": {"history": [], "chartInfo": None}})
        assert session.get_record("A").chart_info.title == "Existing"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            b"{not json",
            b"[1, 2]",
            b'{"A": {"history": "nope"}}',
            b'{"A": {"history": [{"soc": 1}]}}',
            b'{"A": {"history": [{"timestamp": 1, "soc": "high"}]}}',
            b'{"A": {"history": [{"timestamp": 1, "soc": NaN}]}}',
            b'{"": {"history": []}}',
        ],
    )
    async def test_malformed_import_leaves_session_untouched(self, session, payload):
        await session.merge_points("A", [{"timestamp": BASE_TS, "soc": 50.0}], ["a.png"])
        before = session.export_session()

        with pytest.raises(SessionImportError):
            await session.import_session(payload, source="bad.json")

        assert session.export_session() == before

    @pytest.mark.asyncio
    async def test_partial_validity_imports_nothing(self, session):
        payload = {"A": {"history": [{"timestamp": BASE_TS, "soc": 1.0}]}, "B": {"history": [{"soc": 2.0}]}}
        with pytest.raises(SessionImportError):
            await session.import_session(payload)
        assert session.battery_ids() == []


class TestClear:
    """Tests for clearing the session."""

    @pytest.mark.asyncio
    async def test_clear(self, session, job_factory):
        session.add_jobs([job_factory("a.png")])
        await session.run_batch()
        session.clear()
        assert session.battery_ids() == []
        assert session.list_jobs() == []
        with pytest.raises(BatteryNotFoundError):
            session.get_record("BAT-1")
