"""
Batch extraction controller.

Runs one batch of ImageJobs through the external extractor with adaptive
concurrency. A single dispatcher coroutine starts jobs in queue order,
waits for whichever call settles first and applies the outcome. It is the
only place job status is mutated during a batch, so status, progress and
the concurrency limit are always updated together.

Per-job failures (extractor exceptions, ``success=False`` replies,
unparseable data) become the job's ``error`` status. Only a failure of the
dispatch machinery itself, such as a raising callback, aborts the batch
with ``BatchDispatchError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from pydantic import BaseModel, Field

from batterylens.exceptions import BatchDispatchError, DataParseError
from batterylens.models import ErrorKind, ImageJob, ImageJobStatus
from batterylens.pipeline import build_data_point, parse_extracted_data, verify_metrics
from batterylens.utils import validators

from .base import Extractor
from .policy import ConcurrencyPolicy

logger = logging.getLogger(__name__)

__all__ = ["BatchExtractionController", "BatchProgress", "BatchResult", "JobOutcome"]


class JobOutcome(BaseModel):
    """Result of one settled extraction."""

    job_id: str
    file_name: str
    status: ImageJobStatus
    battery_id: str | None = None
    data_point: dict[str, Any] | None = None
    verified_metrics: dict[str, bool] | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ImageJobStatus.SUCCESS


class BatchProgress(BaseModel):
    """Progress of a running batch, emitted after every settled job."""

    finished: int = 0
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    percent: float = 0.0
    concurrency: int = 0


class BatchResult(BaseModel):
    """Summary of a completed batch."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    outcomes: list[JobOutcome] = Field(default_factory=list)


OutcomeCallback = Callable[[JobOutcome], Awaitable[None]]
ProgressCallback = Callable[[BatchProgress], Awaitable[None]]
JobCallback = Callable[[ImageJob], Awaitable[None]]


class BatchExtractionController:
    """Drive a batch of image jobs through an extractor.

    Args:
        extract: Extraction collaborator
        policy: Adaptive concurrency policy (a fresh default policy when omitted)
        on_outcome: Awaited for every settled job, in settle order
        on_progress: Awaited with the updated progress after every settled job
        on_job: Awaited whenever a job changes status
    """

    def __init__(
        self,
        extract: Extractor,
        policy: ConcurrencyPolicy | None = None,
        on_outcome: OutcomeCallback | None = None,
        on_progress: ProgressCallback | None = None,
        on_job: JobCallback | None = None,
    ) -> None:
        self.extract = extract
        self.policy = policy or ConcurrencyPolicy()
        self.on_outcome = on_outcome
        self.on_progress = on_progress
        self.on_job = on_job

    async def run(self, jobs: list[ImageJob]) -> BatchResult:
        """Process jobs until every one of them has settled.

        Args:
            jobs: Jobs to process, in queue order. Their status is updated in place.

        Returns:
            BatchResult with one outcome per job, in settle order.

        Raises:
            BatchDispatchError: If a callback or the dispatcher itself fails.
                In-flight extraction calls are cancelled first.
        """
        total = len(jobs)
        queue = deque(jobs)
        in_flight: dict[asyncio.Task[JobOutcome], ImageJob] = {}
        result = BatchResult(total=total)
        progress = BatchProgress(total=total, concurrency=self.policy.limit)

        logger.info(f"Starting batch of {total} jobs (concurrency={self.policy.limit})")

        try:
            while queue or in_flight:
                while queue and len(in_flight) < self.policy.limit:
                    job = queue.popleft()
                    job.status = ImageJobStatus.PROCESSING
                    job.error = None
                    job.error_kind = None
                    await self._notify_job(job)
                    task = asyncio.create_task(self._extract_one(job), name=f"extract:{job.id}")
                    in_flight[task] = job

                done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    job = in_flight.pop(task)
                    outcome = task.result()
                    self._apply(job, outcome)

                    limit = self.policy.record(outcome.succeeded)
                    result.outcomes.append(outcome)
                    progress.finished += 1
                    if outcome.succeeded:
                        progress.succeeded += 1
                    else:
                        progress.failed += 1
                    progress.percent = progress.finished / total * 100
                    progress.concurrency = limit

                    logger.debug(f"Job {job.id} settled as {job.status.value} ({progress.finished}/{total}, limit={limit})")

                    await self._notify_job(job)
                    if self.on_outcome is not None:
                        await self.on_outcome(outcome)
                    if self.on_progress is not None:
                        await self.on_progress(progress.model_copy())
        except asyncio.CancelledError:
            await self._abort(in_flight)
            raise
        except Exception as e:
            await self._abort(in_flight)
            logger.error(f"Batch dispatch failed: {e}", exc_info=True)
            raise BatchDispatchError(f"Batch dispatch failed: {e}") from e

        result.succeeded = progress.succeeded
        result.failed = progress.failed
        logger.info(f"Batch finished: {result.succeeded} succeeded, {result.failed} failed out of {total}")
        return result

    async def _notify_job(self, job: ImageJob) -> None:
        if self.on_job is not None:
            await self.on_job(job)

    async def _abort(self, in_flight: dict[asyncio.Task[JobOutcome], ImageJob]) -> None:
        """Cancel in-flight calls and fail their jobs so they can be re-queued."""
        for task in in_flight:
            task.cancel()
        for task in in_flight:
            with suppress(asyncio.CancelledError):
                await task

        aborted = list(in_flight.values())
        in_flight.clear()
        for job in aborted:
            job.status = ImageJobStatus.ERROR
            job.error = "Batch aborted"
            job.error_kind = ErrorKind.ABORTED
        for job in aborted:
            try:
                await self._notify_job(job)
            except Exception as e:
                logger.warning(f"Could not report aborted job {job.id}: {e}")

    @staticmethod
    def _apply(job: ImageJob, outcome: JobOutcome) -> None:
        job.status = outcome.status
        job.error = outcome.error
        job.error_kind = outcome.error_kind
        if outcome.battery_id is not None:
            job.battery_id = outcome.battery_id
        job.verified_metrics = outcome.verified_metrics

    async def _extract_one(self, job: ImageJob) -> JobOutcome:
        """Call the extractor for one job and turn the reply into an outcome.

        Never raises except on cancellation.
        """

        def failed(message: str, battery_id: str | None = None, kind: ErrorKind = ErrorKind.EXTRACTION) -> JobOutcome:
            logger.warning(f"Extraction failed for {job.name}: {message}")
            return JobOutcome(
                job_id=job.id,
                file_name=job.name,
                status=ImageJobStatus.ERROR,
                battery_id=battery_id,
                error=message,
                error_kind=kind,
            )

        try:
            reply = await self.extract(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return failed(str(e) or type(e).__name__)

        if not reply.success:
            return failed(reply.error or "Extraction failed", reply.battery_id)
        if not reply.battery_id:
            return failed("Extraction returned no battery id")
        try:
            validators.validate_battery_id(reply.battery_id)
        except ValueError as e:
            return failed(str(e))

        try:
            extracted = parse_extracted_data(reply.extracted_data or "", battery_id=reply.battery_id, file_name=job.name)
            timestamp = reply.timestamp if reply.timestamp is not None else job.timestamp
            point = build_data_point(extracted, timestamp)
        except (DataParseError, ValueError) as e:
            return failed(str(e), reply.battery_id, ErrorKind.PARSE)

        return JobOutcome(
            job_id=job.id,
            file_name=job.name,
            status=ImageJobStatus.SUCCESS,
            battery_id=reply.battery_id,
            data_point=point,
            verified_metrics=verify_metrics(extracted),
        )
