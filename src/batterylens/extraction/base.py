"""
Collaborator interfaces for the extraction layer.

The OCR/LLM extraction call and the chart-info call are external services.
Anything that matches these protocols can be plugged into the batch
controller and the session, including plain async functions.
"""

from __future__ import annotations

from typing import Protocol

from batterylens.models import ChartInfo, ExtractionResult, ImageJob

__all__ = ["ChartInfoProvider", "Extractor"]


class Extractor(Protocol):
    """Extracts a battery id and raw readings from one image.

    Implementations either return an ExtractionResult (``success=False`` for
    a reported failure) or raise; both are treated as a failed job.
    """

    async def __call__(self, job: ImageJob) -> ExtractionResult: ...


class ChartInfoProvider(Protocol):
    """Suggests a chart title and description for a battery's series."""

    async def __call__(self, metrics: list[str], time_range: str, insights: str) -> ChartInfo: ...
