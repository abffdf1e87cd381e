"""Timestamp helpers.

Every timestamp BatteryLens stores or returns is an integer count of UNIX
milliseconds. These helpers convert to and from that representation and
raise ValueError for input they cannot interpret.
"""

from __future__ import annotations

from datetime import datetime, timezone


def now_ms() -> int:
    """Current time in UNIX milliseconds."""
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def parse_to_datetime(ts_value: str | int | float | datetime) -> datetime:
    """Parse a timestamp to a UTC datetime.

    Args:
        ts_value: datetime (naive values are taken as UTC), UNIX milliseconds,
            or an ISO 8601 string (a trailing ``Z`` is accepted)

    Returns:
        Timezone-aware datetime.

    Raises:
        ValueError: If the value is None, empty or not a recognized format.
    """
    if ts_value is None:
        raise ValueError("Timestamp cannot be None")

    if isinstance(ts_value, datetime):
        if ts_value.tzinfo is None:
            return ts_value.replace(tzinfo=timezone.utc)
        return ts_value

    if isinstance(ts_value, bool):
        raise ValueError("Timestamp cannot be a boolean")

    if isinstance(ts_value, (int, float)):
        return datetime.fromtimestamp(ts_value / 1000, tz=timezone.utc)

    if isinstance(ts_value, str):
        ts_str = ts_value.strip()
        if not ts_str:
            raise ValueError("Timestamp string cannot be empty")
        if ts_str.endswith("Z"):
            ts_str = ts_str[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(ts_str)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format. Expected ISO 8601 string or UNIX milliseconds.") from exc
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed

    raise ValueError(f"Unsupported timestamp type: {type(ts_value)}. Expected datetime, int, float, or ISO 8601 string.")


def parse_to_ms(ts_value: str | int | float | datetime) -> int:
    """Normalize a timestamp to UNIX milliseconds.

    Numeric strings are read as milliseconds, other strings as ISO 8601.

    Raises:
        ValueError: If the value cannot be interpreted.
    """
    if isinstance(ts_value, (int, float)) and not isinstance(ts_value, bool):
        return int(ts_value)

    if isinstance(ts_value, str):
        stripped = ts_value.strip()
        try:
            return int(float(stripped))
        except (ValueError, OverflowError):
            pass

    return int(parse_to_datetime(ts_value).timestamp() * 1000)


def zip_time_to_ms(date_time: tuple[int, int, int, int, int, int]) -> int:
    """Convert a ZIP entry's ``date_time`` tuple (stored without zone) to UNIX ms, taken as UTC."""
    return int(datetime(*date_time, tzinfo=timezone.utc).timestamp() * 1000)
