"""
Image job models.

An ImageJob is one unit of extraction work tied to one uploaded image
(or one image entry of an uploaded ZIP archive).
"""

from __future__ import annotations

import base64
import json
import mimetypes
from typing import Any

from pydantic import BaseModel, Field

from batterylens.models.status import ErrorKind, ImageJobStatus

__all__ = ["ImageJob", "ExtractionResult", "make_job_id", "to_data_uri"]


def make_job_id(name: str, modified_ms: int | None = None, archive: str | None = None) -> str:
    """Build a stable job id.

    Args:
        name: File name, or the entry path inside an archive
        modified_ms: File modification time in UNIX ms (plain uploads)
        archive: Archive file name when the image came from a ZIP

    Returns:
        ``"{archive}/{name}"`` for archive entries, ``"{name}:{modified_ms}"`` otherwise
    """
    if archive is not None:
        return f"{archive}/{name}"
    return f"{name}:{modified_ms if modified_ms is not None else 0}"


def to_data_uri(data: bytes, name: str) -> str:
    """Encode image bytes as a base64 data URI, guessing the MIME type from the name."""
    mime, _ = mimetypes.guess_type(name)
    if name.lower().endswith(".webp"):
        mime = "image/webp"
    return f"data:{mime or 'application/octet-stream'};base64,{base64.b64encode(data).decode('ascii')}"


class ImageJob(BaseModel):
    """One queued image awaiting extraction.

    Raw image bytes are kept on the model for the extractor but never
    serialized.
    """

    id: str = Field(..., description="Stable id derived from name and mtime, or archive path")
    name: str = Field(..., description="File name used for duplicate detection")
    preview: str = Field(default="", description="Preview payload (data URI)")
    timestamp: int = Field(..., description="Capture time in UNIX ms (file modification time)")
    status: ImageJobStatus = ImageJobStatus.QUEUED
    error: str | None = None
    error_kind: ErrorKind | None = None
    battery_id: str | None = None
    verified_metrics: dict[str, bool] | None = None
    awaiting_decision: bool = False
    data: bytes = Field(default=b"", exclude=True, repr=False)

    def __str__(self) -> str:
        return f"ImageJob(id={self.id}, status={self.status.value})"


class ExtractionResult(BaseModel):
    """Reply of the external extraction collaborator for one image."""

    success: bool
    battery_id: str | None = None
    extracted_data: str | None = None
    timestamp: int | float | None = None
    error: str | None = None
    file_name: str | None = None

    @classmethod
    def from_reply(cls, reply: dict[str, Any], file_name: str | None = None) -> ExtractionResult:
        """Build a result from a camelCase service reply.

        Accepts both ``batteryId``/``extractedData`` and their snake_case forms.
        """
        extracted = reply.get("extractedData", reply.get("extracted_data"))
        if extracted is not None and not isinstance(extracted, str):
            extracted = json.dumps(extracted)
        return cls(
            success=bool(reply.get("success", False)),
            battery_id=reply.get("batteryId", reply.get("battery_id")),
            extracted_data=extracted,
            timestamp=reply.get("timestamp"),
            error=reply.get("error"),
            file_name=file_name,
        )
