"""Dashboard utilities."""

from .compression import compress_view, delta_compress

__all__ = ["compress_view", "delta_compress"]
