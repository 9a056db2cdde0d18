"""Global crawl deadline checked at every suspension point."""

from __future__ import annotations

import time
from typing import Callable, Optional

from .error_codes import ErrorCode

Clock = Callable[[], float]


class CrawlDeadlineExceeded(Exception):
    error_code = ErrorCode.DEADLINE


class Deadline:
    """Absolute deadline measured on ``clock``; ``seconds=None`` never expires."""

    def __init__(self, seconds: Optional[float], *, clock: Clock = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        if self.expired:
            raise CrawlDeadlineExceeded(f"Global timeout exceeded ({self.seconds}s)")

    def clamp(self, seconds: float) -> float:
        """Return ``seconds`` shortened so it never waits past the deadline."""

        remaining = self.remaining()
        if remaining is None:
            return seconds
        return min(seconds, remaining)


__all__ = ["Clock", "CrawlDeadlineExceeded", "Deadline"]
