"""
FastAPI dependency injection for the BatteryLens dashboard.

This module provides reusable dependencies for:
- SessionState singleton management
- Path parameter validation (battery ids)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException
from fastapi import Path as PathParam

from batterylens.extraction import HttpChartInfoProvider, HttpExtractor
from batterylens.session import SessionState
from batterylens.utils import validators

# Mutable container for an explicitly configured session
_custom_session: list[SessionState | None] = [None]


def _create_session() -> SessionState:
    """Create a session wired to the HTTP collaborators configured in the environment."""
    if _custom_session[0] is not None:
        return _custom_session[0]
    return SessionState(
        extractor=HttpExtractor.from_env(),
        chart_info_provider=HttpChartInfoProvider.from_env(),
    )


@lru_cache(maxsize=1)
def _get_cached_session() -> SessionState:
    """Get cached session instance."""
    return _create_session()


def get_session() -> SessionState:
    """Get the SessionState singleton instance."""
    return _get_cached_session()


def configure_session(session: SessionState | None = None) -> None:
    """Replace the session singleton.

    Clears the cached session so the next request uses ``session``, or a
    fresh environment-configured session when None.

    Args:
        session: Session to serve. If None, a new default session is created on demand.
    """
    _get_cached_session.cache_clear()
    _custom_session[0] = session


def current_session() -> SessionState | None:
    """Return the cached session if one was created, without creating it."""
    if _get_cached_session.cache_info().currsize == 0:
        return None
    return _get_cached_session()


def get_validated_battery(battery_id: Annotated[str, PathParam(description="Battery id")]) -> str:
    """Validate battery id path parameter.

    Args:
        battery_id: Battery id from URL path.

    Returns:
        Validated battery id.

    Raises:
        HTTPException: 400 if battery id is invalid.
    """
    try:
        validators.validate_battery_id(battery_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return battery_id


# Type aliases for dependency injection
ValidatedBattery = Annotated[str, Depends(get_validated_battery)]
SessionDep = Annotated[SessionState, Depends(get_session)]
