"""Range-filtered, gap-padded chart views of a battery series.

A view is a disposable projection of the canonical series for one time
range. Wherever two consecutive points are further apart than the gap
threshold, a synthetic point with every metric set to ``None`` is inserted
so that line charts break instead of drawing a straight line across the
gap. Synthetic points have no canonical index and can never be the
endpoint of a brush or zoom selection.
"""

from __future__ import annotations

import calendar
from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .builder import TIMESTAMP_KEY, DataPoint

__all__ = [
    "DEFAULT_GAP_THRESHOLD_MS",
    "RangeFilter",
    "ViewSeries",
    "build_view",
    "range_start",
    "resolve_brush",
    "resolve_selection",
    "resolve_view_indices",
]

DEFAULT_GAP_THRESHOLD_MS = 2 * 60 * 60 * 1000

# Synthetic gap points sit this fraction of the threshold after the previous point
GAP_POINT_OFFSET_RATIO = 0.25


class RangeFilter(Enum):
    """Time range of a chart view, counted back from now."""

    DAY = "1d"
    WEEK = "1w"
    MONTH = "1m"
    ALL = "all"


class ViewSeries(BaseModel):
    """Display-ready projection of a battery series.

    Attributes:
        points: Filtered points in time order with synthetic gap points inserted
        canonical_index: For each entry of ``points``, its index in the canonical
            series, or None for a synthetic gap point
        brush_points: Filtered points without gap padding (brush/zoom domain)
        brush_index: Canonical index of each entry of ``brush_points``
    """

    range: RangeFilter = RangeFilter.ALL
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS
    metrics: list[str] = Field(default_factory=list)
    points: list[dict[str, Any]] = Field(default_factory=list)
    canonical_index: list[int | None] = Field(default_factory=list)
    brush_points: list[dict[str, Any]] = Field(default_factory=list)
    brush_index: list[int] = Field(default_factory=list)

    @property
    def gap_count(self) -> int:
        return sum(1 for idx in self.canonical_index if idx is None)


def _subtract_month(dt: datetime) -> datetime:
    year, month = (dt.year - 1, 12) if dt.month == 1 else (dt.year, dt.month - 1)
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def range_start(range_filter: RangeFilter, now_ms: int) -> int | None:
    """Earliest timestamp (UNIX ms) included by a range filter.

    ``1d`` and ``1w`` subtract fixed durations, ``1m`` subtracts one calendar
    month (clamping the day to the length of the previous month).

    Returns:
        Start of the window, or None for ``all``.
    """
    if range_filter == RangeFilter.ALL:
        return None

    now = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
    if range_filter == RangeFilter.DAY:
        start = now - timedelta(days=1)
    elif range_filter == RangeFilter.WEEK:
        start = now - timedelta(weeks=1)
    else:
        start = _subtract_month(now)
    return int(start.timestamp() * 1000)


def build_view(
    series: list[DataPoint],
    range_filter: RangeFilter = RangeFilter.ALL,
    now_ms: int | None = None,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> ViewSeries:
    """Build a chart view of a canonical series.

    Args:
        series: Canonical series (sorted by timestamp)
        range_filter: Time range to keep
        now_ms: Reference time in UNIX ms (defaults to the current time)
        gap_threshold_ms: Gap above which a synthetic null point is inserted

    Returns:
        ViewSeries with gap-padded points and the index mapping back to ``series``
    """
    if now_ms is None:
        now_ms = int(datetime.now(tz=timezone.utc).timestamp() * 1000)

    start = range_start(range_filter, now_ms)
    selected = [(idx, point) for idx, point in enumerate(series) if start is None or point[TIMESTAMP_KEY] >= start]
    selected.sort(key=lambda item: item[1][TIMESTAMP_KEY])

    metrics: list[str] = []
    seen: set[str] = set()
    for _, point in selected:
        for key in point:
            if key != TIMESTAMP_KEY and key not in seen:
                seen.add(key)
                metrics.append(key)

    points: list[dict[str, Any]] = []
    canonical_index: list[int | None] = []
    offset = int(gap_threshold_ms * GAP_POINT_OFFSET_RATIO)

    previous: DataPoint | None = None
    for idx, point in selected:
        if previous is not None and point[TIMESTAMP_KEY] - previous[TIMESTAMP_KEY] > gap_threshold_ms:
            gap_point: dict[str, Any] = {TIMESTAMP_KEY: previous[TIMESTAMP_KEY] + offset}
            gap_point.update(dict.fromkeys(metrics))
            points.append(gap_point)
            canonical_index.append(None)
        points.append(dict(point))
        canonical_index.append(idx)
        previous = point

    return ViewSeries(
        range=range_filter,
        gap_threshold_ms=gap_threshold_ms,
        metrics=metrics,
        points=points,
        canonical_index=canonical_index,
        brush_points=[dict(point) for _, point in selected],
        brush_index=[idx for idx, _ in selected],
    )


def resolve_selection(series: list[DataPoint], start_ts: float, end_ts: float) -> tuple[int, int] | None:
    """Map a timestamp selection onto canonical series indices.

    Args:
        series: Canonical (unfiltered, unpadded) series, sorted by timestamp
        start_ts: Selection start in UNIX ms
        end_ts: Selection end in UNIX ms

    Returns:
        ``(first index with timestamp >= start_ts, last index with timestamp <= end_ts)``,
        or None when the selection contains no canonical point.
    """
    start = bisect_left(series, start_ts, key=lambda p: p[TIMESTAMP_KEY])
    end = bisect_right(series, end_ts, key=lambda p: p[TIMESTAMP_KEY]) - 1
    if start >= len(series) or end < 0 or start > end:
        return None
    return start, end


def resolve_brush(view: ViewSeries, series: list[DataPoint], start_index: int, end_index: int) -> tuple[int, int] | None:
    """Map brush indices (positions in ``view.brush_points``) onto canonical indices.

    Returns:
        Canonical ``(start, end)`` or None when the indices are out of range.
    """
    count = len(view.brush_points)
    if not (0 <= start_index < count and 0 <= end_index < count):
        return None
    if start_index > end_index:
        start_index, end_index = end_index, start_index

    start_ts = view.brush_points[start_index][TIMESTAMP_KEY]
    end_ts = view.brush_points[end_index][TIMESTAMP_KEY]
    return resolve_selection(series, start_ts, end_ts)


def resolve_view_indices(view: ViewSeries, series: list[DataPoint], start_index: int, end_index: int) -> tuple[int, int] | None:
    """Map indices into the gap-padded ``view.points`` onto canonical indices.

    An endpoint that lands on a synthetic gap point moves inwards to the
    nearest real point (forwards for the start, backwards for the end).

    Returns:
        Canonical ``(start, end)`` or None when no real point lies in the range.
    """
    count = len(view.points)
    if not (0 <= start_index < count and 0 <= end_index < count):
        return None
    if start_index > end_index:
        start_index, end_index = end_index, start_index

    while start_index <= end_index and view.canonical_index[start_index] is None:
        start_index += 1
    while end_index >= start_index and view.canonical_index[end_index] is None:
        end_index -= 1
    if start_index > end_index:
        return None

    start_ts = view.points[start_index][TIMESTAMP_KEY]
    end_ts = view.points[end_index][TIMESTAMP_KEY]
    return resolve_selection(series, start_ts, end_ts)
