"""
BatteryLens dashboard routes.

This package contains route handlers organized by type:
- api_routes: health, uploads, jobs, batches and session endpoints
- battery_routes: chart views, selections and statistics per battery
- sse_routes: Server-Sent Events streaming endpoints
"""

from .api_routes import router as api_router
from .battery_routes import router as battery_router
from .sse_routes import router as sse_router

__all__ = ["api_router", "battery_router", "sse_router"]
