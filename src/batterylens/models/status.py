"""
Image job status enumeration and utilities.

This module provides the status enumeration for image jobs and the
rules for which transitions are allowed.
"""

from enum import Enum


class ImageJobStatus(Enum):
    """Image job status enumeration.

    Represents the current state of one queued image:
    - queued: Waiting for the next batch
    - processing: Extraction call in flight
    - success: Extraction parsed and merged into the battery series
    - duplicate: Filename already seen in this session
    - error: Extraction or parsing failed
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    ERROR = "error"

    def can_requeue(self) -> bool:
        """Only failed jobs may be put back in the queue by hand."""
        return self == ImageJobStatus.ERROR


class DuplicatePolicy(Enum):
    """Session-wide handling of duplicate filenames.

    - ask: Hold the duplicate until the user decides to process or skip it
    - skip: Flag the duplicate and never process it
    """

    ASK = "ask"
    SKIP = "skip"


class ErrorKind(Enum):
    """Why a job ended in the ``error`` status.

    - extraction: The extraction call failed or returned an unusable reply
    - parse: The reply's extracted data could not be parsed into a reading
    - aborted: The batch was aborted while the job was in flight
    """

    EXTRACTION = "extraction"
    PARSE = "parse"
    ABORTED = "aborted"
