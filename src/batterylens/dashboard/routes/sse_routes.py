"""
Server-Sent Events (SSE) routes for the BatteryLens dashboard.

This module handles real-time streaming endpoints:
- Batch progress and job status streaming
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

from batterylens.config import is_dev_mode

from ..dependencies import SessionDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/batches/stream")
async def stream_batches(session: SessionDep) -> EventSourceResponse:
    """Stream session events using Server-Sent Events (SSE).

    Returns:
        EventSourceResponse streaming session events. Event types:
        - `ready`: sent once with the number of known jobs
        - `job`: an ImageJob changed status (without preview)
        - `progress`: `BatchProgress` after every settled job
        - `batch`: `BatchSummary` when a batch finished
        - `import` / `clear`: the session data was replaced or dropped
    """
    from ..main import app_state

    async def event_generator():
        current_task = asyncio.current_task()
        if current_task is not None:
            app_state.active_sse_tasks.add(current_task)

        shutdown_queue: asyncio.Queue[None] = asyncio.Queue()
        app_state.active_sse_connections.add(shutdown_queue)
        events = session.subscribe()

        # In dev mode, use shorter timeout for faster shutdown detection
        dev_mode = is_dev_mode()
        wait_timeout = 1.0 if dev_mode else None

        pending_event: asyncio.Task | None = None
        try:
            yield {"event": "ready", "data": json.dumps({"jobs": len(session.list_jobs())})}

            while True:
                if dev_mode and app_state.shutting_down:
                    logger.info("[SSE] Dev mode: shutdown flag detected")
                    break

                if pending_event is None:
                    pending_event = asyncio.create_task(events.get(), name="session_event")
                shutdown_task = asyncio.create_task(shutdown_queue.get(), name="shutdown_task")

                done, _ = await asyncio.wait(
                    [pending_event, shutdown_task],
                    return_when=asyncio.FIRST_COMPLETED,
                    timeout=wait_timeout,
                )

                if shutdown_task not in done:
                    shutdown_task.cancel()
                    with suppress(asyncio.CancelledError):
                        await shutdown_task

                if not done:
                    continue

                if shutdown_task in done:
                    logger.info("[SSE] Shutdown requested")
                    break

                message = pending_event.result()
                pending_event = None
                if message is None:
                    logger.info("[SSE] Session closed the stream")
                    break
                yield {"event": message.event, "data": json.dumps(message.data)}

        except asyncio.CancelledError:
            logger.info("[SSE] Generator cancelled")
            raise
        finally:
            session.unsubscribe(events)
            app_state.active_sse_connections.discard(shutdown_queue)
            if current_task is not None:
                app_state.active_sse_tasks.discard(current_task)
            if pending_event is not None and not pending_event.done():
                pending_event.cancel()
                with suppress(asyncio.CancelledError):
                    await pending_event

    return EventSourceResponse(event_generator())
