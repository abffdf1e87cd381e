"""
BatteryLens - battery monitor photos to trend charts.

Photos of battery-monitor displays are sent to an external extraction
service; the readings are normalized into per-battery time series that are
merged, filtered and served as chart-ready views.

Examples:
    >>> from batterylens import merge_series
    >>> merge_series([], [{"timestamp": 0, "soc": 50}, {"timestamp": 60_000, "soc": 52}])
    [{'timestamp': 0, 'soc': 51.0}]
"""

__version__ = "0.1.0"

from batterylens.logger import setup_logger
from batterylens.pipeline import build_data_point, build_view, merge_series, normalize_key
from batterylens.session import SessionState

__all__ = [
    "SessionState",
    "build_data_point",
    "build_view",
    "merge_series",
    "normalize_key",
    "setup_logger",
]
