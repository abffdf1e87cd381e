"""
FastAPI application for the BatteryLens dashboard
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from batterylens.config import is_dev_mode

from .dependencies import current_session
from .router import router

logger = logging.getLogger(__name__)


# Global state for SSE connection management
class AppState:
    """Application state for managing SSE connections during shutdown."""

    def __init__(self) -> None:
        self.active_sse_connections: set[asyncio.Queue] = set()
        self.active_sse_tasks: set[asyncio.Task] = set()
        self.shutting_down = False


app_state = AppState()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"

        # Image previews are delivered as data: URIs
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "font-src 'self'; "
            "connect-src 'self'; "
            "frame-ancestors 'none'"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle.

    On shutdown, signal all active SSE connections to close and release the
    HTTP clients of the external collaborators. In development mode, SSE
    tasks are cancelled outright for a fast restart.
    """
    yield

    app_state.shutting_down = True

    for queue in list(app_state.active_sse_connections):
        with contextlib.suppress(RuntimeError, OSError):
            await queue.put(None)  # Sentinel value to signal shutdown

    session = current_session()
    if session is not None:
        session.close_subscribers()
        for collaborator in (session.extractor, session.chart_info_provider):
            aclose = getattr(collaborator, "aclose", None)
            if aclose is not None:
                await aclose()

    if is_dev_mode():
        logger.info(f"[DEV MODE] Cancelling {len(app_state.active_sse_tasks)} active SSE tasks")
        for task in list(app_state.active_sse_tasks):
            task.cancel()

        if app_state.active_sse_tasks:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    asyncio.gather(*app_state.active_sse_tasks, return_exceptions=True),
                    timeout=0.1,
                )
        logger.info("[DEV MODE] SSE tasks cancelled, shutdown complete")

    app_state.shutting_down = False


app = FastAPI(
    title="BatteryLens Dashboard",
    description="Battery monitor photo extraction and trend charts",
    docs_url="/docs/dashboard",
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)  # ty: ignore[invalid-argument-type]

# CORS middleware - credentials disabled for security with wildcard origins
app.add_middleware(
    CORSMiddleware,  # ty: ignore[invalid-argument-type]
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "X-Requested-With"],
)

app.include_router(router)
