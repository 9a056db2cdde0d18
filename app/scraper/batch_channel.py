from __future__ import annotations

import queue
import time
from typing import Callable, List, Optional

from . import config
from .deadline import Clock, Deadline
from .logging_utils import _scraper_event
from .models import RawRecord

Batch = List[RawRecord]
IdleFn = Callable[[float], None]


class BatchChannel:
    """
    Bounded FIFO of parsed batches between the response listener and the crawler.

    The listener publishes from inside browser event dispatch; the crawler
    drains and receives from its own loop. With the Playwright sync API events
    are only dispatched while the driver is inside a Playwright call, so
    ``receive`` hands control to ``idle`` (normally ``session.wait``) between
    polls instead of blocking on the queue.
    """

    def __init__(
        self,
        maxsize: Optional[int] = None,
        *,
        poll_seconds: Optional[float] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._queue: "queue.Queue[Batch]" = queue.Queue(
            maxsize=max(1, maxsize if maxsize is not None else config.BATCH_QUEUE_MAX)
        )
        self._poll_seconds = poll_seconds if poll_seconds is not None else config.BATCH_POLL_SECONDS
        self._clock = clock
        self.published = 0
        self.dropped = 0

    def publish(self, batch: Batch) -> bool:
        """Queue ``batch``; return False when the channel is full."""

        try:
            self._queue.put_nowait(list(batch))
        except queue.Full:
            # Blocking here would stall the event dispatch that drains us.
            self.dropped += 1
            _scraper_event(
                "state",
                phase="batch_channel",
                kind="queue_overflow",
                rows=len(batch),
                pending=self._queue.qsize(),
                dropped=self.dropped,
            )
            return False
        self.published += 1
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self) -> List[Batch]:
        """Return every queued batch in arrival order."""

        batches: List[Batch] = []
        while True:
            try:
                batches.append(self._queue.get_nowait())
            except queue.Empty:
                return batches

    def receive(
        self,
        timeout: Optional[float],
        *,
        idle: IdleFn,
        deadline: Optional[Deadline] = None,
    ) -> Optional[Batch]:
        """Return the next batch, or None once ``timeout`` seconds pass.

        ``timeout=None`` waits until a batch arrives; only ``deadline`` bounds
        it then, raising ``CrawlDeadlineExceeded``.
        """

        ends_at = None if timeout is None else self._clock() + timeout
        while True:
            try:
                return self._queue.get_nowait()
            except queue.Empty:
                pass

            if deadline is not None:
                deadline.check()

            step = self._poll_seconds
            if ends_at is not None:
                remaining = ends_at - self._clock()
                if remaining <= 0:
                    return None
                step = min(step, remaining)
            if deadline is not None:
                step = deadline.clamp(step)
            idle(step)


__all__ = ["Batch", "BatchChannel"]
