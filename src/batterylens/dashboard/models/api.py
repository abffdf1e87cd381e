"""
Models for the dashboard API.

This module defines the request and response bodies that are specific to
the HTTP surface. Domain models (ImageJob, ChartInfo, RangeSummary, ...)
are returned as they are.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from batterylens.models import ChartInfo
from batterylens.pipeline.stats import RangeSummary

__all__ = [
    "BatterySummary",
    "DuplicateDecision",
    "HealthResponse",
    "ImportResponse",
    "SelectionResponse",
    "ViewResponse",
]


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class BatterySummary(BaseModel):
    """One entry of the battery list."""

    id: str
    point_count: int
    first_timestamp: int | None = None
    last_timestamp: int | None = None
    chart_info: ChartInfo | None = None
    processed_file_count: int = 0


class DuplicateDecision(BaseModel):
    """Request body resolving a held duplicate."""

    action: Literal["process", "skip"]


class ViewResponse(BaseModel):
    """Chart view of one battery.

    ``points`` is gap-padded; ``canonical_index`` holds the canonical index
    of each entry of ``points`` (null for gap points). ``brush_points`` is the
    same range without padding, for the brush/zoom control.
    """

    battery_id: str
    range: str
    gap_threshold_ms: int
    metrics: list[str]
    points: list[dict[str, Any]]
    canonical_index: list[int | None]
    brush_points: list[dict[str, Any]]
    brush_index: list[int]


class SelectionResponse(BaseModel):
    """Canonical indices of a brush or timestamp selection.

    Both indices are null when the selection contains no real point.
    """

    battery_id: str
    start_index: int | None = None
    end_index: int | None = None
    summary: RangeSummary | None = None


class ImportResponse(BaseModel):
    batteries: list[str] = Field(default_factory=list)
