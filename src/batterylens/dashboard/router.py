"""
BatteryLens dashboard APIRouter aggregation.

This module aggregates all route handlers from sub-modules:
- api_routes: workflow endpoints (uploads, jobs, batches, session)
- battery_routes: per-battery chart data endpoints
- sse_routes: Server-Sent Events streaming endpoints
"""

from __future__ import annotations

from fastapi import APIRouter

from .dependencies import configure_session
from .routes import api_router, battery_router, sse_router

router = APIRouter()
router.include_router(api_router)
router.include_router(battery_router)
router.include_router(sse_router)

__all__ = ["router", "configure_session"]
