"""
BatteryLens extraction layer.

This package runs uploaded images through the external extraction service:
- archive: turning uploads and ZIP archives into ImageJobs
- policy: adaptive (AIMD) concurrency limit
- controller: batch dispatch, status updates and progress
- client: HTTP adapters for the extraction and chart-info services
"""

from .archive import expand_archive, is_archive, is_image_name, make_upload_job
from .base import ChartInfoProvider, Extractor
from .client import HttpChartInfoProvider, HttpExtractor
from .controller import BatchExtractionController, BatchProgress, BatchResult, JobOutcome
from .policy import ConcurrencyPolicy, adjust_limit

__all__ = [
    "BatchExtractionController",
    "BatchProgress",
    "BatchResult",
    "ChartInfoProvider",
    "ConcurrencyPolicy",
    "Extractor",
    "HttpChartInfoProvider",
    "HttpExtractor",
    "JobOutcome",
    "adjust_limit",
    "expand_archive",
    "is_archive",
    "is_image_name",
    "make_upload_job",
]
