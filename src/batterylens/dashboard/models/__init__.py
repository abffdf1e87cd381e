"""Request and response models for the dashboard API."""

from .api import (
    BatterySummary,
    DuplicateDecision,
    HealthResponse,
    ImportResponse,
    SelectionResponse,
    ViewResponse,
)

__all__ = [
    "BatterySummary",
    "DuplicateDecision",
    "HealthResponse",
    "ImportResponse",
    "SelectionResponse",
    "ViewResponse",
]
