"""Adaptive concurrency policy for batch extraction.

Additive increase, multiplicative decrease: every successful extraction
raises the in-flight limit by one, every failure halves it. The limit
always stays within ``[floor, ceiling]``.
"""

from __future__ import annotations

from batterylens.config import PipelineSettings

__all__ = ["ConcurrencyPolicy", "adjust_limit"]


def adjust_limit(current: int, succeeded: bool, floor: int, ceiling: int) -> int:
    """Compute the next concurrency limit.

    Args:
        current: Current limit
        succeeded: Whether the job that just settled succeeded
        floor: Lowest allowed limit
        ceiling: Highest allowed limit

    Returns:
        ``min(ceiling, current + 1)`` after a success,
        ``max(floor, current // 2)`` after a failure.
    """
    if succeeded:
        return min(ceiling, current + 1)
    return max(floor, current // 2)


class ConcurrencyPolicy:
    """Mutable holder of the current concurrency limit."""

    def __init__(self, initial: int = 5, floor: int = 2, ceiling: int = 15) -> None:
        if floor < 1:
            raise ValueError(f"Concurrency floor must be at least 1, got {floor}")
        if ceiling < floor:
            raise ValueError(f"Concurrency ceiling ({ceiling}) is below floor ({floor})")
        self.floor = floor
        self.ceiling = ceiling
        self.limit = min(ceiling, max(floor, initial))

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> ConcurrencyPolicy:
        return cls(
            initial=settings.initial_concurrency,
            floor=settings.min_concurrency,
            ceiling=settings.max_concurrency,
        )

    def record(self, succeeded: bool) -> int:
        """Update the limit after a job settles and return the new value."""
        self.limit = adjust_limit(self.limit, succeeded, self.floor, self.ceiling)
        return self.limit

    def __repr__(self) -> str:
        return f"ConcurrencyPolicy(limit={self.limit}, floor={self.floor}, ceiling={self.ceiling})"
