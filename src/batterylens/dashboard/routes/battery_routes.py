"""
Battery data routes for the BatteryLens dashboard.

This module handles the read side of the chart front end:
- Battery list
- Range-filtered, gap-padded chart views (JSON or MessagePack)
- Brush/zoom and timestamp selection reconciliation
- Day-over-day statistics and current-state assessment
- Chart info refresh
"""

from __future__ import annotations

import logging

import msgpack
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from batterylens.exceptions import BatteryNotFoundError
from batterylens.models import BatteryRecord, ChartInfo
from batterylens.pipeline import (
    RangeFilter,
    build_view,
    resolve_brush,
    resolve_selection,
    resolve_view_indices,
)
from batterylens.pipeline.stats import HourlyStat, StateAssessment, assess_current_state, hourly_statistics, range_averages
from batterylens.utils.timestamp import parse_to_ms

from ..dependencies import SessionDep, ValidatedBattery
from ..models import BatterySummary, SelectionResponse, ViewResponse
from ..utils.compression import compress_view
from .api_routes import verify_csrf_header

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_record(session: SessionDep, battery_id: str) -> BatteryRecord:
    try:
        return session.get_record(battery_id)
    except BatteryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


def _parse_range(value: str) -> RangeFilter:
    try:
        return RangeFilter(value)
    except ValueError:
        valid = ", ".join(r.value for r in RangeFilter)
        raise HTTPException(status_code=400, detail=f"Invalid range: {value}. Must be one of: {valid}") from None


@router.get("/api/batteries")
async def list_batteries(session: SessionDep) -> list[BatterySummary]:
    """List every battery with data in the session."""
    summaries = []
    for battery_id in session.battery_ids():
        record = session.get_record(battery_id)
        history = record.history
        summaries.append(
            BatterySummary(
                id=battery_id,
                point_count=len(history),
                first_timestamp=int(history[0]["timestamp"]) if history else None,
                last_timestamp=int(history[-1]["timestamp"]) if history else None,
                chart_info=record.chart_info,
                processed_file_count=len(record.processed_file_names),
            )
        )
    return summaries


@router.get("/api/batteries/{battery_id}/view")
async def battery_view(
    battery_id: ValidatedBattery,
    session: SessionDep,
    range: str = Query(default="all", description="Time range: 1d, 1w, 1m or all"),
    format: str = "json",
) -> Response:
    """Get the chart view of a battery.

    Args:
        battery_id: Battery id.
        range: Time range counted back from now.
        format: Response format - "json" (default) or "msgpack".

    Returns:
        - For "json" format: ViewResponse
        - For "msgpack" format: column-oriented payload with delta-compressed timestamps,
          application/x-msgpack content type

    Raises:
        HTTPException: 400 for an invalid range or format, 404 if the battery is unknown.
    """
    if format not in ("json", "msgpack"):
        raise HTTPException(status_code=400, detail=f"Invalid format: {format}. Must be 'json' or 'msgpack'")

    range_filter = _parse_range(range)
    record = _get_record(session, battery_id)
    view = build_view(record.history, range_filter, gap_threshold_ms=session.settings.gap_threshold_ms)

    if format == "msgpack":
        content = msgpack.packb(compress_view(view, battery_id))
        return Response(content=content, media_type="application/x-msgpack")

    body = ViewResponse(battery_id=battery_id, range=range_filter.value, **view.model_dump(exclude={"range"}))
    return Response(content=body.model_dump_json(), media_type="application/json")


@router.get("/api/batteries/{battery_id}/selection")
async def timestamp_selection(
    battery_id: ValidatedBattery,
    session: SessionDep,
    start: str = Query(..., description="Selection start (UNIX ms or ISO 8601)"),
    end: str = Query(..., description="Selection end (UNIX ms or ISO 8601)"),
) -> SelectionResponse:
    """Map a timestamp selection onto canonical indices and summarize it.

    Raises:
        HTTPException: 400 for unparseable timestamps, 404 if the battery is unknown.
    """
    try:
        start_ms = parse_to_ms(start)
        end_ms = parse_to_ms(end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    series = _get_record(session, battery_id).history
    resolved = resolve_selection(series, start_ms, end_ms)
    if resolved is None:
        return SelectionResponse(battery_id=battery_id)

    start_index, end_index = resolved
    return SelectionResponse(
        battery_id=battery_id,
        start_index=start_index,
        end_index=end_index,
        summary=range_averages(series, start_index, end_index),
    )


@router.get("/api/batteries/{battery_id}/brush")
async def brush_selection(
    battery_id: ValidatedBattery,
    session: SessionDep,
    start_index: int,
    end_index: int,
    range: str = Query(default="all", description="Time range of the view the indices refer to"),
    padded: bool = Query(default=False, description="Indices refer to the gap-padded points instead of the brush points"),
) -> SelectionResponse:
    """Map brush or zoom indices of a view onto canonical indices.

    Brush indices refer to ``brush_points`` of the view; with ``padded=true``
    they refer to the gap-padded ``points`` and endpoints on gap points move
    inwards to the nearest real point.

    Raises:
        HTTPException: 400 for an invalid range, 404 if the battery is unknown.
    """
    range_filter = _parse_range(range)
    series = _get_record(session, battery_id).history
    view = build_view(series, range_filter, gap_threshold_ms=session.settings.gap_threshold_ms)

    if padded:
        resolved = resolve_view_indices(view, series, start_index, end_index)
    else:
        resolved = resolve_brush(view, series, start_index, end_index)
    if resolved is None:
        return SelectionResponse(battery_id=battery_id)

    canonical_start, canonical_end = resolved
    return SelectionResponse(
        battery_id=battery_id,
        start_index=canonical_start,
        end_index=canonical_end,
        summary=range_averages(series, canonical_start, canonical_end),
    )


@router.get("/api/batteries/{battery_id}/hourly")
async def hourly_stats(battery_id: ValidatedBattery, session: SessionDep, metric: str = "soc") -> list[HourlyStat]:
    """Get hour-of-day statistics of one metric (day-over-day chart)."""
    series = _get_record(session, battery_id).history
    return hourly_statistics(series, metric)


@router.get("/api/batteries/{battery_id}/state")
async def current_state(battery_id: ValidatedBattery, session: SessionDep) -> StateAssessment:
    """Assess the most recent reading of a battery.

    Raises:
        HTTPException: 404 if the battery is unknown or has no readings.
    """
    series = _get_record(session, battery_id).history
    if not series:
        raise HTTPException(status_code=404, detail=f"Battery '{battery_id}' has no readings")
    return assess_current_state(series[-1])


@router.post("/api/batteries/{battery_id}/chart-info", dependencies=[Depends(verify_csrf_header)])
async def refresh_chart_info(battery_id: ValidatedBattery, session: SessionDep, range: str = "all") -> ChartInfo | None:
    """Regenerate the chart title and description of a battery.

    Returns:
        The current chart info. It is unchanged when the chart-info service
        is not configured or fails.
    """
    range_filter = _parse_range(range)
    record = _get_record(session, battery_id)
    await session.refresh_chart_info(battery_id, time_range=range_filter.value)
    return record.chart_info
