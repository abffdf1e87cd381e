"""
Session data models.

These models describe the per-battery state held by a session and the
JSON blob it is exported to and imported from.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

__all__ = [
    "ChartInfo",
    "BatteryRecord",
    "SessionExport",
    "session_export_adapter",
]


class ChartInfo(BaseModel):
    """Advisory chart title and description for a battery's series."""

    title: str
    description: str


class BatteryRecord(BaseModel):
    """Everything the session knows about one battery.

    ``history`` is the canonical merged series. Each point is a mapping
    of metric name to number with a mandatory ``timestamp`` in UNIX ms.
    """

    model_config = ConfigDict(populate_by_name=True)

    history: list[dict[str, float | int]] = Field(default_factory=list)
    chart_info: ChartInfo | None = Field(default=None, alias="chartInfo")
    processed_file_names: list[str] = Field(default_factory=list, alias="processedFileNames")


SessionExport = dict[str, BatteryRecord]

session_export_adapter: TypeAdapter[dict[str, BatteryRecord]] = TypeAdapter(SessionExport)
