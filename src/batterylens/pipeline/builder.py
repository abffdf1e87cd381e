"""Data point construction from raw extraction output.

The extraction service returns an arbitrary (possibly nested) JSON object.
This module flattens it into a single ``DataPoint``: a mapping of
normalized metric names to finite floats plus a mandatory integer
``timestamp`` in UNIX milliseconds.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from batterylens.exceptions import DataParseError

from .normalize import CORE_METRICS, normalize_key

__all__ = [
    "TIMESTAMP_KEY",
    "DataPoint",
    "build_data_point",
    "coerce_number",
    "parse_extracted_data",
    "verify_metrics",
]

TIMESTAMP_KEY = "timestamp"

DataPoint = dict[str, Any]

# Leading number of a string, the way a lenient float parser reads "12.5 V" or "85%"
_LEADING_NUMBER = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")


def coerce_number(value: Any) -> float | None:
    """Coerce one extracted leaf value to a finite float.

    Args:
        value: Leaf value from the parsed extraction JSON

    Returns:
        The finite float value, or None when the value is not numeric.
        Booleans and None are never numeric. Strings are read by their
        leading number. A single-element list is read as its element;
        any other list is not numeric.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match is None:
            return None
        number = float(match.group(0))
    elif isinstance(value, list):
        if len(value) != 1 or isinstance(value[0], (list, dict)):
            return None
        return coerce_number(value[0])
    else:
        return None

    if not math.isfinite(number):
        return None
    return number


def _flatten_into(point: DataPoint, obj: dict[str, Any], prefix: str) -> None:
    for key, value in obj.items():
        if str(key).lower() == TIMESTAMP_KEY:
            continue

        path = f"{prefix}_{key}" if prefix else str(key)

        if isinstance(value, dict):
            _flatten_into(point, value, path)
            continue

        number = coerce_number(value)
        if number is None:
            continue

        metric = normalize_key(path)
        # Unnamed keys are discarded. Later readings overwrite earlier ones,
        # except temperature where the first sensor is kept
        if not metric or metric == TIMESTAMP_KEY:
            continue
        if metric == "temperature" and metric in point:
            continue
        point[metric] = number


def build_data_point(extracted: dict[str, Any], timestamp: int | float) -> DataPoint:
    """Flatten a parsed extraction result into a DataPoint.

    Nested objects are walked recursively, their keys joined to the parent
    key with ``_`` before normalization. Keys equal to ``timestamp``
    (case-insensitive) are skipped at every level. Values that cannot be
    coerced to a finite number are dropped.

    Args:
        extracted: Parsed extraction JSON (top-level object)
        timestamp: Capture time in UNIX milliseconds

    Returns:
        A DataPoint that always contains ``timestamp``

    Raises:
        ValueError: If timestamp is not a finite number
    """
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or not math.isfinite(timestamp):
        raise ValueError(f"Invalid timestamp: {timestamp!r}")

    point: DataPoint = {TIMESTAMP_KEY: int(timestamp)}
    _flatten_into(point, extracted, "")
    return point


def parse_extracted_data(raw: str, battery_id: str | None = None, file_name: str | None = None) -> dict[str, Any]:
    """Parse the ``extractedData`` string of an extraction result.

    Args:
        raw: JSON text produced by the extraction service
        battery_id: Battery the data belongs to (for error reporting)
        file_name: Source image name (for error reporting)

    Returns:
        The parsed top-level JSON object

    Raises:
        DataParseError: If the text is not valid JSON or not a JSON object
    """
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise DataParseError(str(e), battery_id=battery_id, file_name=file_name) from e

    if not isinstance(parsed, dict):
        raise DataParseError(
            f"expected a JSON object, got {type(parsed).__name__}",
            battery_id=battery_id,
            file_name=file_name,
        )
    return parsed


def verify_metrics(extracted: dict[str, Any]) -> dict[str, bool]:
    """Report which core metrics the raw extraction provided.

    Args:
        extracted: Parsed extraction JSON

    Returns:
        Mapping of each core metric to whether a key normalizing to it carried
        a usable numeric value.
    """
    point = build_data_point(extracted, 0)
    return {metric: metric in point for metric in CORE_METRICS}
