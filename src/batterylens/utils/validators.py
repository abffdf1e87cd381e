"""Input validators for BatteryLens.

Battery ids are opaque strings, so validation only guards against values
that cannot be a real identifier or that would be unsafe to echo back in
headers and file names.
"""

import re

__all__ = ["validate_battery_id", "validate_file_name", "safe_file_name"]

# Control characters (including NUL) are never part of an id or file name
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_.\-]")

MAX_BATTERY_ID_LENGTH = 256
MAX_FILE_NAME_LENGTH = 255


def validate_battery_id(battery_id: str) -> None:
    """Validate a battery id from user input.

    Args:
        battery_id: Battery id from a URL path or an imported session

    Raises:
        ValueError: If the id is empty, too long or contains control characters

    Examples:
        >>> validate_battery_id("BAT-001")  # OK
        >>> validate_battery_id("")  # Raises ValueError
    """
    if not battery_id or not battery_id.strip():
        raise ValueError("Invalid battery id. The id must not be empty.")
    if len(battery_id) > MAX_BATTERY_ID_LENGTH:
        raise ValueError(f"Invalid battery id. The id must be at most {MAX_BATTERY_ID_LENGTH} characters.")
    if _CONTROL_CHARS.search(battery_id):
        raise ValueError("Invalid battery id. Control characters are not allowed.")


def validate_file_name(name: str) -> None:
    """Validate an uploaded file name.

    Raises:
        ValueError: If the name is empty, too long or contains control characters
    """
    if not name or not name.strip():
        raise ValueError("Invalid file name. The name must not be empty.")
    if len(name) > MAX_FILE_NAME_LENGTH:
        raise ValueError(f"Invalid file name. The name must be at most {MAX_FILE_NAME_LENGTH} characters.")
    if _CONTROL_CHARS.search(name):
        raise ValueError("Invalid file name. Control characters are not allowed.")


def safe_file_name(name: str) -> str:
    """Reduce a string to characters that are safe in a download file name."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name) or "session"
