"""Time-windowed merge of battery series.

Readings for one battery arrive in irregular, unordered batches. Merging
re-sorts everything by timestamp and collapses points that sit within the
merge window of each other into a single aggregate point.

Anchoring rule: an aggregate point takes the timestamp of the earliest
member of its group. Grouping itself chains: a point joins the current
group when it is within the window of the group's latest member.

Merging is not idempotent across batch boundaries. Merging the points
``a, b, c`` in one batch can yield different groups than merging ``a, b``
first and ``c`` later, because the second merge sees the aggregate of
``a, b`` (anchored at ``a``) instead of ``b``.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

from .builder import TIMESTAMP_KEY, DataPoint

__all__ = ["DEFAULT_MERGE_WINDOW_MS", "collapse_group", "group_points", "merge_series"]

DEFAULT_MERGE_WINDOW_MS = 5 * 60 * 1000


def _has_valid_timestamp(point: Any) -> bool:
    if not isinstance(point, dict):
        return False
    ts = point.get(TIMESTAMP_KEY)
    return isinstance(ts, (int, float)) and not isinstance(ts, bool) and math.isfinite(ts)


def group_points(points: list[DataPoint], window_ms: int) -> list[list[DataPoint]]:
    """Partition timestamp-sorted points into merge groups in one pass.

    A new group starts whenever a point is more than ``window_ms`` after the
    last point placed in the current group.
    """
    groups: list[list[DataPoint]] = []
    for point in points:
        if groups and point[TIMESTAMP_KEY] - groups[-1][-1][TIMESTAMP_KEY] <= window_ms:
            groups[-1].append(point)
        else:
            groups.append([point])
    return groups


def collapse_group(group: list[DataPoint]) -> DataPoint:
    """Collapse one merge group into a single point.

    Single-member groups are returned as a copy. Otherwise every metric is
    averaged over the members that define it, so a member missing a metric
    does not pull its mean towards zero.
    """
    if len(group) == 1:
        return dict(group[0])

    sums: dict[str, float] = {}
    counts: dict[str, int] = {}
    for point in group:
        for key, value in point.items():
            if key == TIMESTAMP_KEY or value is None:
                continue
            sums[key] = sums.get(key, 0.0) + value
            counts[key] = counts.get(key, 0) + 1

    merged: DataPoint = {TIMESTAMP_KEY: group[0][TIMESTAMP_KEY]}
    for key, total in sums.items():
        merged[key] = total / counts[key]
    return merged


def merge_series(
    existing: Iterable[DataPoint] | None,
    incoming: Iterable[DataPoint] | None,
    window_ms: int = DEFAULT_MERGE_WINDOW_MS,
) -> list[DataPoint]:
    """Merge new points into a battery series.

    Args:
        existing: Current canonical series (any order)
        incoming: New points from a batch (any order, possibly overlapping)
        window_ms: Merge window in milliseconds

    Returns:
        A new series sorted ascending by timestamp in which consecutive points
        are more than ``window_ms`` apart. Neither input is modified. Points
        without a finite timestamp are dropped.

    Examples:
        >>> merge_series([], [{"timestamp": 0, "soc": 50}, {"timestamp": 60_000, "soc": 52}])
        [{'timestamp': 0, 'soc': 51.0}]
    """
    combined = [p for p in (*(existing or ()), *(incoming or ())) if _has_valid_timestamp(p)]
    combined.sort(key=lambda p: p[TIMESTAMP_KEY])
    return [collapse_group(group) for group in group_points(combined, window_ms)]
