"""
BatteryLens data models package.

This package contains the job, status and session models shared by the
pipeline, the session state and the dashboard API.
"""

from batterylens.models.job import ExtractionResult, ImageJob, make_job_id, to_data_uri
from batterylens.models.session import BatteryRecord, ChartInfo, SessionExport, session_export_adapter
from batterylens.models.status import DuplicatePolicy, ErrorKind, ImageJobStatus

__all__ = [
    "BatteryRecord",
    "ChartInfo",
    "DuplicatePolicy",
    "ErrorKind",
    "ExtractionResult",
    "ImageJob",
    "ImageJobStatus",
    "SessionExport",
    "make_job_id",
    "session_export_adapter",
    "to_data_uri",
]
