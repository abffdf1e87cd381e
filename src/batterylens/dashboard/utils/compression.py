"""
View compression for binary dashboard responses.

The MessagePack view format is column-oriented: one array of
delta-compressed timestamps and one value array per metric, with gap
points carried as nil values.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from batterylens.pipeline import TIMESTAMP_KEY, ViewSeries

logger = logging.getLogger(__name__)


def delta_compress(values: list[int | float]) -> list[int | float]:
    """Delta-compress a sequence using NumPy.

    Args:
        values: List of numeric values

    Returns:
        Delta-compressed list where first value is absolute,
        subsequent values are deltas from previous value
    """
    if not values:
        return []
    arr = np.asarray(values)
    deltas = np.concatenate([[arr[0]], np.diff(arr)])
    return deltas.tolist()


def compress_view(view: ViewSeries, battery_id: str) -> dict[str, Any]:
    """Convert a view to the column-oriented MessagePack payload.

    Returns:
        ``{battery_id, range, timestamps, metrics: {name: [values]}, canonical_index, brush_index}``
        where ``timestamps`` is delta-compressed and covers the gap-padded points.
    """
    timestamps = [int(point[TIMESTAMP_KEY]) for point in view.points]
    columns = {metric: [point.get(metric) for point in view.points] for metric in view.metrics}

    logger.debug(f"Compressed view of {battery_id}: {len(timestamps)} points, {len(columns)} metrics")

    return {
        "battery_id": battery_id,
        "range": view.range.value,
        "timestamps": delta_compress(timestamps),
        "metrics": columns,
        "canonical_index": view.canonical_index,
        "brush_index": view.brush_index,
    }
