"""Wall-clock budget and action cap resolution for a research run."""
import time
from typing import Optional


class Budget:
    """Wall-clock time budget tracker."""

    def __init__(self, seconds: float, clock=time.monotonic):
        """Initialize budget with total seconds.

        Args:
            seconds: Total wall-clock seconds for the run
            clock: Monotonic clock, injectable for tests
        """
        self._clock = clock
        self.deadline = clock() + seconds

    def remaining(self) -> float:
        """Remaining seconds, never below 0.1 so it stays usable as a timeout."""
        return max(0.1, self.deadline - self._clock())

    def is_expired(self) -> bool:
        return self._clock() >= self.deadline


def resolve_action_cap(mode_cap: int, requested: Optional[int]) -> int:
    """Apply an optional caller budget, which may lower but never raise the mode cap."""
    if requested is None:
        return mode_cap
    return max(1, min(mode_cap, int(requested)))
