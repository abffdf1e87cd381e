"""
BatteryLens ingestion pipeline.

Synchronous transforms from raw extraction output to chart-ready views:
- normalize: metric key normalization
- builder: flattening extraction JSON into data points
- merge: time-windowed merge of per-battery series
- view: range filtering, gap padding and brush index reconciliation
- stats: analytics over a series
"""

from .builder import TIMESTAMP_KEY, DataPoint, build_data_point, parse_extracted_data, verify_metrics
from .merge import DEFAULT_MERGE_WINDOW_MS, merge_series
from .normalize import CORE_METRICS, normalize_key
from .view import (
    DEFAULT_GAP_THRESHOLD_MS,
    RangeFilter,
    ViewSeries,
    build_view,
    resolve_brush,
    resolve_selection,
    resolve_view_indices,
)

__all__ = [
    "CORE_METRICS",
    "DEFAULT_GAP_THRESHOLD_MS",
    "DEFAULT_MERGE_WINDOW_MS",
    "TIMESTAMP_KEY",
    "DataPoint",
    "RangeFilter",
    "ViewSeries",
    "build_data_point",
    "build_view",
    "merge_series",
    "normalize_key",
    "parse_extracted_data",
    "resolve_brush",
    "resolve_selection",
    "resolve_view_indices",
    "verify_metrics",
]
