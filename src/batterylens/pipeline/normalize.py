"""Metric key normalization.

Extracted field names are free-form (``"Pack_Voltage"``, ``"Temp1"``,
``"Remaining Cap"``). They are mapped onto a small canonical set by
substring matching, in a fixed priority order, falling back to a cleaned
form of the original key.

Known limitation: substring matching is a heuristic. A field such as
``"overcurrent_protection_voltage"`` is a protection threshold, yet it
matches ``"volt"`` and lands in ``voltage``. The priority order below is
part of the contract and must not change.
"""

from __future__ import annotations

import re

__all__ = ["CANONICAL_KEYS", "CORE_METRICS", "normalize_key"]

# Checked in this order; first match wins
CANONICAL_KEYS: tuple[tuple[str, str], ...] = (
    ("soc", "soc"),
    ("volt", "voltage"),
    ("curr", "current"),
    ("cap", "capacity"),
    ("temp", "temperature"),
)

CORE_METRICS: tuple[str, ...] = tuple(canonical for _, canonical in CANONICAL_KEYS)

_INVALID_KEY_CHARS = re.compile(r"[^a-z0-9_]")
_REPEATED_UNDERSCORES = re.compile(r"_+")


def normalize_key(raw_key: str) -> str:
    """Map a raw extracted field name to a canonical or cleaned metric key.

    Args:
        raw_key: Field name as produced by the extraction step

    Returns:
        One of ``soc``, ``voltage``, ``current``, ``capacity``, ``temperature``
        when the lower-cased key contains the matching substring, otherwise the
        key lower-cased with everything outside ``[a-z0-9_]`` removed and runs
        of underscores collapsed. May be an empty string, which callers treat
        as "unnamed".

    Examples:
        >>> normalize_key("Pack_Voltage_1")
        'voltage'
        >>> normalize_key("XYZ123")
        'xyz123'
        >>> normalize_key("temp_voltage")
        'voltage'
    """
    lowered = raw_key.lower()
    for needle, canonical in CANONICAL_KEYS:
        if needle in lowered:
            return canonical
    cleaned = _INVALID_KEY_CHARS.sub("", lowered)
    return _REPEATED_UNDERSCORES.sub("_", cleaned)
