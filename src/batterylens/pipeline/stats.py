"""
Series analytics for the dashboard.

This module provides the derived numbers shown next to the trend chart:
- averages over a brushed range of the canonical series
- hour-of-day statistics across all days (day-over-day chart)
- an assessment of the most recent reading
- the short insights text handed to the chart-info collaborator
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import numpy as np
import polars as pl
from pydantic import BaseModel

from .builder import TIMESTAMP_KEY, DataPoint
from .normalize import CORE_METRICS

logger = logging.getLogger(__name__)

__all__ = [
    "HourlyStat",
    "MetricAverage",
    "RangeSummary",
    "StateAssessment",
    "assess_current_state",
    "available_metrics",
    "hourly_statistics",
    "range_averages",
    "summarize_series",
]

# Readings older than this are not assessed
STATE_MAX_AGE_MS = 6 * 60 * 60 * 1000

VOLTAGE_DIFFERENCE_LIMIT = 0.1
DISCHARGE_CURRENT_THRESHOLD = -0.1
LOW_SOC_PERCENT = 30.0
CRITICAL_SOC_PERCENT = 15.0


class MetricAverage(BaseModel):
    """Sum, count and average of one metric over a range."""

    sum: float = 0.0
    count: int = 0
    average: float = 0.0


class RangeSummary(BaseModel):
    """Averages over an inclusive slice of the canonical series."""

    start_index: int
    end_index: int
    start_timestamp: int
    end_timestamp: int
    stats: dict[str, MetricAverage]


class HourlyStat(BaseModel):
    """Distribution of one metric within one UTC hour of the day."""

    hour: int
    label: str
    min: float
    max: float
    mean: float
    median: float
    std: float
    q1: float
    q3: float
    count: int


class StateAssessment(BaseModel):
    """Assessment of the latest reading of a battery."""

    timestamp: int
    requires_attention: bool = False
    is_stale: bool = False
    voltage_difference_ok: bool = True
    estimated_runtime_hours: float | None = None
    remaining_capacity: float | None = None
    generator_suggestion: str | None = None
    recommendation: str = ""


def available_metrics(series: list[DataPoint]) -> list[str]:
    """List metric names present in a series.

    Core metrics always come first (in their canonical order) so they stay
    selectable even before any reading provides them; the rest follow sorted.
    """
    extra: set[str] = set()
    for point in series:
        extra.update(key for key in point if key != TIMESTAMP_KEY)
    extra.difference_update(CORE_METRICS)
    return [*CORE_METRICS, *sorted(extra)]


def range_averages(series: list[DataPoint], start_index: int, end_index: int, metrics: list[str] | None = None) -> RangeSummary | None:
    """Average each metric over ``series[start_index:end_index + 1]``.

    Args:
        series: Canonical series
        start_index: First canonical index (inclusive)
        end_index: Last canonical index (inclusive)
        metrics: Metrics to summarize (defaults to all present in the slice)

    Returns:
        RangeSummary, or None when the slice is empty. Points missing a metric
        are skipped for that metric only.
    """
    if start_index < 0 or end_index < start_index:
        return None
    sliced = series[start_index : end_index + 1]
    if not sliced:
        return None

    if metrics is None:
        metrics = [m for m in available_metrics(sliced) if any(m in p for p in sliced)]

    stats: dict[str, MetricAverage] = {}
    for metric in metrics:
        values = [p[metric] for p in sliced if isinstance(p.get(metric), (int, float))]
        total = float(sum(values))
        stats[metric] = MetricAverage(sum=total, count=len(values), average=total / len(values) if values else 0.0)

    return RangeSummary(
        start_index=start_index,
        end_index=start_index + len(sliced) - 1,
        start_timestamp=int(sliced[0][TIMESTAMP_KEY]),
        end_timestamp=int(sliced[-1][TIMESTAMP_KEY]),
        stats=stats,
    )


def _format_hour(hour: int) -> str:
    period = "AM" if hour < 12 else "PM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display} {period}"


def hourly_statistics(series: list[DataPoint], metric: str) -> list[HourlyStat]:
    """Compute hour-of-day statistics of one metric across all days.

    Buckets are UTC hours. Only hours with at least one reading are returned.
    ``std`` is the population standard deviation; quartiles use linear
    interpolation.
    """
    rows = [(int(p[TIMESTAMP_KEY]), float(p[metric])) for p in series if isinstance(p.get(metric), (int, float))]
    if not rows:
        return []

    df = pl.DataFrame(rows, schema={"timestamp": pl.Int64, "value": pl.Float64}, orient="row")
    df = df.with_columns(pl.from_epoch("timestamp", time_unit="ms").dt.hour().cast(pl.Int64).alias("hour"))

    grouped = (
        df.group_by("hour")
        .agg(
            pl.col("value").min().alias("min"),
            pl.col("value").max().alias("max"),
            pl.col("value").mean().alias("mean"),
            pl.col("value").median().alias("median"),
            pl.col("value").std(ddof=0).alias("std"),
            pl.col("value").quantile(0.25, interpolation="linear").alias("q1"),
            pl.col("value").quantile(0.75, interpolation="linear").alias("q3"),
            pl.len().alias("count"),
        )
        .sort("hour")
    )

    return [HourlyStat(label=_format_hour(row["hour"]), **row) for row in grouped.iter_rows(named=True)]


def _is_daylight(timestamp_ms: int) -> bool:
    hour = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).hour
    return 6 < hour < 18


def assess_current_state(point: DataPoint, now_ms: int | None = None) -> StateAssessment:
    """Assess the latest reading of a battery.

    Checks the cell voltage difference, estimates the remaining runtime from
    capacity and discharge current, and flags a low state of charge at night.
    Readings older than six hours are reported as stale without analysis.
    """
    if now_ms is None:
        now_ms = int(datetime.now(tz=timezone.utc).timestamp() * 1000)

    timestamp = int(point[TIMESTAMP_KEY])
    if now_ms - timestamp > STATE_MAX_AGE_MS:
        return StateAssessment(timestamp=timestamp, is_stale=True)

    assessment = StateAssessment(timestamp=timestamp)
    notes: list[str] = []

    v_diff = point.get("v_diff")
    if isinstance(v_diff, (int, float)) and v_diff > VOLTAGE_DIFFERENCE_LIMIT:
        assessment.voltage_difference_ok = False
        assessment.requires_attention = True
        notes.append("High voltage difference detected. Immediate attention required.")

    capacity = point.get("capacity")
    current = point.get("current")
    if isinstance(capacity, (int, float)) and capacity > 0:
        assessment.remaining_capacity = float(capacity)
        if isinstance(current, (int, float)) and current < DISCHARGE_CURRENT_THRESHOLD:
            hours = capacity / -current
            assessment.estimated_runtime_hours = hours
            whole = int(hours)
            minutes = round((hours - whole) * 60)
            notes.append(f"With the current load, the battery is estimated to last for {whole}h {minutes}m.")
        elif isinstance(current, (int, float)) and current >= 0:
            # -1 marks charging/idle
            assessment.estimated_runtime_hours = -1.0
            notes.append("The battery is currently charging or idle.")

    soc = point.get("soc")
    if not _is_daylight(timestamp) and isinstance(soc, (int, float)) and soc < LOW_SOC_PERCENT:
        assessment.requires_attention = True
        notes.append("Low battery detected at night. Consider starting the generator.")
        if soc < CRITICAL_SOC_PERCENT:
            assessment.generator_suggestion = "Battery is critically low. Recommend running both chargers at 2000w for faster charging."
        else:
            assessment.generator_suggestion = "Recommend running one charger at 1000w with eco-mode for efficiency."

    if not notes:
        notes.append("System operating within normal parameters.")
    assessment.recommendation = " ".join(notes)
    return assessment


def summarize_series(series: list[DataPoint], metrics: list[str] | None = None) -> str:
    """Describe a series in a few sentences for the chart-info collaborator."""
    if not series:
        return "No readings."

    start = datetime.fromtimestamp(series[0][TIMESTAMP_KEY] / 1000, tz=timezone.utc)
    end = datetime.fromtimestamp(series[-1][TIMESTAMP_KEY] / 1000, tz=timezone.utc)
    parts: list[str] = [f"{len(series)} readings from {start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M} UTC."]

    for metric in metrics or available_metrics(series):
        values = np.asarray([p[metric] for p in series if isinstance(p.get(metric), (int, float))], dtype=float)
        if values.size == 0:
            continue
        parts.append(
            f"{metric}: first {values[0]:.3f}, last {values[-1]:.3f}, mean {values.mean():.3f}, min {values.min():.3f}, max {values.max():.3f}."
        )

    summary = " ".join(parts)
    logger.debug(f"Series summary: {summary}")
    return summary
