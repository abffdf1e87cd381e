"""
In-memory session state.

A SessionState owns everything a user builds up while working with the
dashboard: the canonical series of every battery, the ImageJob list, and
the registry of file names that already produced data. It is the only
place those structures are mutated.

Series mutations (merging batch results, importing a session file,
updating chart info) take ``SessionState.lock`` and re-read the current
record inside it, so concurrent writers never lose each other's updates.
Only one extraction batch runs at a time.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Iterable
from contextlib import suppress
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from batterylens.config import PipelineSettings, get_settings
from batterylens.exceptions import (
    BatchAlreadyRunningError,
    BatchDispatchError,
    BatteryNotFoundError,
    InvalidJobStateError,
    JobNotFoundError,
    SessionImportError,
)
from batterylens.extraction import (
    BatchExtractionController,
    BatchProgress,
    ChartInfoProvider,
    ConcurrencyPolicy,
    Extractor,
    JobOutcome,
)
from batterylens.models import (
    BatteryRecord,
    ChartInfo,
    DuplicatePolicy,
    ImageJob,
    ImageJobStatus,
    session_export_adapter,
)
from batterylens.pipeline import TIMESTAMP_KEY, DataPoint, merge_series
from batterylens.pipeline.stats import available_metrics, summarize_series
from batterylens.utils import validators

logger = logging.getLogger(__name__)

__all__ = ["BatchSummary", "SessionEvent", "SessionState"]

# Statuses whose file names block a new upload with the same name
_PENDING_STATUSES = (ImageJobStatus.QUEUED, ImageJobStatus.PROCESSING, ImageJobStatus.SUCCESS)


class SessionEvent(BaseModel):
    """Event published to session subscribers (SSE clients)."""

    event: str
    data: dict[str, Any]


class BatchSummary(BaseModel):
    """Summary of a batch run through the session."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    batteries: list[str] = Field(default_factory=list)


def _job_payload(job: ImageJob) -> dict[str, Any]:
    return job.model_dump(mode="json", exclude={"preview"})


class SessionState:
    """Single owner of the per-battery series, the job list and the file registry.

    Args:
        settings: Pipeline settings (defaults to the global settings)
        extractor: Extraction collaborator used by ``run_batch``
        chart_info_provider: Optional chart title/description collaborator
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        extractor: Extractor | None = None,
        chart_info_provider: ChartInfoProvider | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.extractor = extractor
        self.chart_info_provider = chart_info_provider
        self.duplicate_policy = DuplicatePolicy(self.settings.duplicate_policy)
        self.lock = asyncio.Lock()

        self._records: dict[str, BatteryRecord] = {}
        self._jobs: dict[str, ImageJob] = {}
        self._batch_running = False
        self._subscribers: set[asyncio.Queue[SessionEvent | None]] = set()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def batch_running(self) -> bool:
        return self._batch_running

    def battery_ids(self) -> list[str]:
        return list(self._records)

    def get_record(self, battery_id: str) -> BatteryRecord:
        """Get the record of one battery.

        Raises:
            BatteryNotFoundError: If the session has no data for the battery
        """
        record = self._records.get(battery_id)
        if record is None:
            raise BatteryNotFoundError(f"Battery '{battery_id}' not found")
        return record

    def get_series(self, battery_id: str) -> list[DataPoint]:
        return self.get_record(battery_id).history

    def list_jobs(self) -> list[ImageJob]:
        return list(self._jobs.values())

    def get_job(self, job_id: str) -> ImageJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job '{job_id}' not found")
        return job

    def processed_file_names(self) -> set[str]:
        """File names that already produced data in this session."""
        names: set[str] = set()
        for record in self._records.values():
            names.update(record.processed_file_names)
        return names

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self) -> asyncio.Queue[SessionEvent | None]:
        """Register a subscriber queue. ``None`` on the queue means the session closed it."""
        queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[SessionEvent | None]) -> None:
        self._subscribers.discard(queue)

    def close_subscribers(self) -> None:
        for queue in list(self._subscribers):
            with suppress(RuntimeError):
                queue.put_nowait(None)
        self._subscribers.clear()

    def _publish(self, event: str, data: dict[str, Any]) -> None:
        message = SessionEvent(event=event, data=data)
        for queue in self._subscribers:
            queue.put_nowait(message)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def _unique_job_id(self, job_id: str) -> str:
        if job_id not in self._jobs:
            return job_id
        suffix = 2
        while f"{job_id}#{suffix}" in self._jobs:
            suffix += 1
        return f"{job_id}#{suffix}"

    def add_jobs(self, jobs: Iterable[ImageJob]) -> list[ImageJob]:
        """Add uploaded jobs, flagging duplicate file names.

        A job is a duplicate when its file name already produced data in this
        session, or another job with that name is queued, in flight or done
        (this includes earlier jobs of the same upload). With the ``skip``
        policy duplicates are final; with ``ask`` they wait for a decision.

        Returns:
            The added jobs, in upload order.
        """
        blocked = self.processed_file_names()
        blocked.update(job.name for job in self._jobs.values() if job.status in _PENDING_STATUSES)

        added: list[ImageJob] = []
        for job in jobs:
            job.id = self._unique_job_id(job.id)
            if job.name in blocked:
                job.status = ImageJobStatus.DUPLICATE
                job.awaiting_decision = self.duplicate_policy == DuplicatePolicy.ASK
                job.error = f"Duplicate file name: {job.name}"
                logger.info(f"Flagged duplicate upload {job.name} (policy={self.duplicate_policy.value})")
            else:
                job.status = ImageJobStatus.QUEUED
                blocked.add(job.name)
            self._jobs[job.id] = job
            added.append(job)
            self._publish("job", _job_payload(job))
        return added

    def decide_duplicate(self, job_id: str, process: bool) -> ImageJob:
        """Resolve a held duplicate: ``process`` queues it, otherwise it stays a duplicate.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobStateError: If the job is not awaiting a decision
        """
        job = self.get_job(job_id)
        if job.status != ImageJobStatus.DUPLICATE or not job.awaiting_decision:
            raise InvalidJobStateError(f"Job '{job_id}' is not awaiting a duplicate decision")

        job.awaiting_decision = False
        if process:
            job.status = ImageJobStatus.QUEUED
            job.error = None
        self._publish("job", _job_payload(job))
        return job

    def requeue(self, job_id: str) -> ImageJob:
        """Put a failed job back in the queue.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobStateError: If the job is not in the ``error`` status
        """
        job = self.get_job(job_id)
        if not job.status.can_requeue():
            raise InvalidJobStateError(f"Job '{job_id}' cannot be re-queued from status '{job.status.value}'")
        job.status = ImageJobStatus.QUEUED
        job.error = None
        job.error_kind = None
        self._publish("job", _job_payload(job))
        return job

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def run_batch(self, extractor: Extractor | None = None) -> BatchSummary:
        """Extract every queued job and merge the results.

        Successful results are merged into their battery's series as they
        settle. Chart info is refreshed afterwards for every battery that
        received data.

        Raises:
            BatchAlreadyRunningError: If another batch is in flight
            BatchDispatchError: If no extractor is configured or dispatch fails
        """
        if self._batch_running:
            raise BatchAlreadyRunningError("A batch is already running")

        extract = extractor or self.extractor
        if extract is None:
            raise BatchDispatchError("No extraction service is configured")

        jobs = [job for job in self._jobs.values() if job.status == ImageJobStatus.QUEUED]
        updated: list[str] = []

        async def on_outcome(outcome: JobOutcome) -> None:
            if outcome.data_point is None or outcome.battery_id is None:
                return
            await self.merge_points(outcome.battery_id, [outcome.data_point], [outcome.file_name])
            if outcome.battery_id not in updated:
                updated.append(outcome.battery_id)

        async def on_progress(progress: BatchProgress) -> None:
            self._publish("progress", progress.model_dump(mode="json"))

        async def on_job(job: ImageJob) -> None:
            self._publish("job", _job_payload(job))

        controller = BatchExtractionController(
            extract,
            policy=ConcurrencyPolicy.from_settings(self.settings),
            on_outcome=on_outcome,
            on_progress=on_progress,
            on_job=on_job,
        )

        self._batch_running = True
        try:
            result = await controller.run(jobs)
            for battery_id in updated:
                await self.refresh_chart_info(battery_id)
        finally:
            self._batch_running = False

        summary = BatchSummary(total=result.total, succeeded=result.succeeded, failed=result.failed, batteries=updated)
        self._publish("batch", summary.model_dump(mode="json"))
        return summary

    async def merge_points(self, battery_id: str, points: list[DataPoint], file_names: Iterable[str] = ()) -> BatteryRecord:
        """Merge new points into a battery's series, creating the battery on first data."""
        async with self.lock:
            record = self._records.get(battery_id)
            if record is None:
                record = BatteryRecord()
                self._records[battery_id] = record
                logger.info(f"New battery: {battery_id}")
            record.history = merge_series(record.history, points, self.settings.merge_window_ms)
            for name in file_names:
                if name not in record.processed_file_names:
                    record.processed_file_names.append(name)
            return record

    # ------------------------------------------------------------------
    # Chart info
    # ------------------------------------------------------------------

    async def refresh_chart_info(self, battery_id: str, time_range: str = "all") -> ChartInfo | None:
        """Ask the chart-info collaborator for a new title and description.

        Failures are logged and leave the existing chart info in place. A
        battery that is gone (session cleared) is skipped.

        Returns:
            The new chart info, or None when it was not updated.
        """
        provider = self.chart_info_provider
        record = self._records.get(battery_id)
        if provider is None or record is None:
            return None

        series = list(record.history)
        metrics = [m for m in available_metrics(series) if any(m in p for p in series)]
        try:
            info = await provider(metrics, time_range, summarize_series(series, metrics))
        except Exception as e:
            logger.warning(f"Chart info update failed for battery {battery_id}: {e}")
            return None

        async with self.lock:
            record = self._records.get(battery_id)
            if record is None:
                return None
            record.chart_info = info
        return info

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_session(self) -> dict[str, Any]:
        """Export all batteries as a JSON-ready mapping.

        Each history is capped to the most recent ``export_max_points`` points.
        """
        limit = self.settings.export_max_points
        exported: dict[str, Any] = {}
        for battery_id, record in self._records.items():
            capped = BatteryRecord(
                history=record.history[-limit:],
                chart_info=record.chart_info,
                processed_file_names=list(record.processed_file_names),
            )
            exported[battery_id] = capped.model_dump(mode="json", by_alias=True)
        return exported

    @staticmethod
    def parse_session_file(payload: bytes | str | dict[str, Any], source: str = "session") -> dict[str, BatteryRecord]:
        """Parse and fully validate a session export.

        Raises:
            SessionImportError: If the payload is not a valid session export
        """
        if isinstance(payload, (bytes, str)):
            try:
                payload = json.loads(payload)
            except (UnicodeDecodeError, ValueError) as e:
                raise SessionImportError(source, f"invalid JSON ({e})") from e

        if not isinstance(payload, dict):
            raise SessionImportError(source, "expected a JSON object keyed by battery id")

        try:
            records = session_export_adapter.validate_python(payload)
        except ValidationError as e:
            raise SessionImportError(source, f"invalid session data ({e.error_count()} errors)") from e

        for battery_id, record in records.items():
            try:
                validators.validate_battery_id(battery_id)
            except ValueError as e:
                raise SessionImportError(source, str(e)) from e

            for position, point in enumerate(record.history):
                timestamp = point.get(TIMESTAMP_KEY)
                if timestamp is None:
                    raise SessionImportError(source, f"point {position} of battery {battery_id} has no timestamp")
                if not all(math.isfinite(value) for value in point.values()):
                    raise SessionImportError(source, f"point {position} of battery {battery_id} has a non-finite value")
                point[TIMESTAMP_KEY] = int(timestamp)

        return records

    async def import_session(self, payload: bytes | str | dict[str, Any], source: str = "session") -> list[str]:
        """Import a session export, merging it into the current state.

        The whole file is validated before anything changes. Each battery's
        history is merged as a fresh batch of incoming points; chart info from
        the file replaces the current one when present.

        Returns:
            The imported battery ids.

        Raises:
            SessionImportError: If the file is malformed. The session is left untouched.
        """
        records = self.parse_session_file(payload, source)

        async with self.lock:
            for battery_id, incoming in records.items():
                record = self._records.setdefault(battery_id, BatteryRecord())
                record.history = merge_series(record.history, incoming.history, self.settings.merge_window_ms)
                if incoming.chart_info is not None:
                    record.chart_info = incoming.chart_info
                for name in incoming.processed_file_names:
                    if name not in record.processed_file_names:
                        record.processed_file_names.append(name)

        logger.info(f"Imported {len(records)} batteries from {source}")
        self._publish("import", {"batteries": list(records)})
        return list(records)

    def clear(self) -> None:
        """Drop all batteries, jobs and processed file names.

        Raises:
            BatchAlreadyRunningError: If a batch is in flight
        """
        if self._batch_running:
            raise BatchAlreadyRunningError("Cannot clear the session while a batch is running")
        self._records.clear()
        self._jobs.clear()
        logger.info("Session cleared")
        self._publish("clear", {})
