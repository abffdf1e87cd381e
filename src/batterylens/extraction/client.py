"""
HTTP adapters for the external extraction and chart-info services.

Both services are plain JSON-over-HTTP endpoints. The extraction service
receives one image as a data URI and replies with the battery id and the
raw readings; the chart-info service receives a series summary and replies
with a title and description.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from batterylens.config import get_chart_info_url, get_extraction_url, get_request_timeout
from batterylens.exceptions import ExtractionError
from batterylens.models import ChartInfo, ExtractionResult, ImageJob, to_data_uri

logger = logging.getLogger(__name__)

__all__ = ["HttpChartInfoProvider", "HttpExtractor", "calculate_backoff_delay"]

# Retry configuration for an overloaded chart-info service
_MAX_ATTEMPTS = 5
_BASE_DELAY_SECONDS = 1.0
_MAX_DELAY_SECONDS = 30.0
_JITTER_SECONDS = 1.0


def calculate_backoff_delay(retry_count: int) -> float:
    """Calculate exponential backoff delay with jitter.

    Args:
        retry_count: Number of failed attempts so far (1 for the first retry)

    Returns:
        Delay in seconds before the next attempt
    """
    delay = min(_BASE_DELAY_SECONDS * (2 ** max(retry_count - 1, 0)), _MAX_DELAY_SECONDS)
    return delay + random.random() * _JITTER_SECONDS


class _HttpService:
    """Owns an httpx.AsyncClient unless one is supplied."""

    def __init__(self, url: str, timeout: float | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout if timeout is not None else get_request_timeout())

    async def _post_json(self, payload: dict[str, Any]) -> httpx.Response:
        return await self._client.post(self.url, json=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HttpExtractor(_HttpService):
    """Extractor that POSTs ``{image, fileName}`` to the extraction service.

    Accepted replies are ``{success, batteryId, extractedData, timestamp?}``
    and ``{success: false, error}``. Transport errors, non-2xx statuses and
    malformed replies raise, which the batch controller records as a job
    error.
    """

    @classmethod
    def from_env(cls) -> HttpExtractor | None:
        """Create an extractor for BATTERYLENS_EXTRACTION_URL, or None when it is unset."""
        url = get_extraction_url()
        return cls(url) if url else None

    async def __call__(self, job: ImageJob) -> ExtractionResult:
        try:
            response = await self._post_json({"image": to_data_uri(job.data, job.name), "fileName": job.name})
            response.raise_for_status()
            reply = response.json()
        except httpx.HTTPStatusError as e:
            raise ExtractionError(f"Extraction service returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Extraction request failed: {e}") from e
        except ValueError as e:
            raise ExtractionError("Extraction service returned invalid JSON") from e

        if not isinstance(reply, dict):
            raise ExtractionError(f"Unexpected extraction reply: {type(reply).__name__}")
        return ExtractionResult.from_reply(reply, file_name=job.name)


class HttpChartInfoProvider(_HttpService):
    """Chart-info provider that POSTs ``{metrics, timeRange, insights}``.

    HTTP 503 replies are retried with exponential backoff and jitter, up to
    five attempts in total. Any other failure raises immediately.
    """

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = _MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(url, timeout=timeout, client=client)
        self.max_attempts = max_attempts
        self._sleep = sleep

    @classmethod
    def from_env(cls) -> HttpChartInfoProvider | None:
        """Create a provider for BATTERYLENS_CHART_INFO_URL, or None when it is unset."""
        url = get_chart_info_url()
        return cls(url) if url else None

    async def __call__(self, metrics: list[str], time_range: str, insights: str) -> ChartInfo:
        payload = {"metrics": metrics, "timeRange": time_range, "insights": insights}

        for attempt in range(1, self.max_attempts + 1):
            response = await self._post_json(payload)
            if response.status_code != 503:
                break
            if attempt >= self.max_attempts:
                raise ExtractionError("Chart-info service is overloaded (max retries reached)")
            delay = calculate_backoff_delay(attempt)
            logger.info(f"Chart-info service overloaded, retrying in {delay:.1f}s (attempt {attempt})")
            await self._sleep(delay)

        response.raise_for_status()
        return ChartInfo.model_validate(response.json())
