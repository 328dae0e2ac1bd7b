import logging
import threading
from typing import List

from posthog_lite.types import QueuedEvent


class EventQueue(object):
    """FIFO buffer of events waiting to be delivered."""

    def __init__(self):
        self._items = []  # type: List[QueuedEvent]
        self._lock = threading.Lock()

    def append(self, item: QueuedEvent) -> int:
        """Add `item` at the tail, returning the new length"""
        with self._lock:
            self._items.append(item)
            return len(self._items)

    def drain(self, limit: int) -> List[QueuedEvent]:
        """Remove and return up to `limit` items from the head, oldest first"""
        with self._lock:
            items = self._items[:limit]
            del self._items[: len(items)]
            return items

    def __len__(self):
        with self._lock:
            return len(self._items)


class FlushScheduler(object):
    """Decides when the queue should be flushed.

    The first enqueue on a fresh client flushes straight away so connectivity
    problems show up early. After that a flush happens once `flush_at` events
    are waiting, or when the idle timer fires. Only one timer is ever pending
    and later enqueues never push it back.
    """

    log = logging.getLogger("posthog_lite")

    def __init__(self, flush_at, flush_interval, flush, timer_factory=threading.Timer):
        self.flush_at = flush_at
        self.flush_interval = flush_interval
        self.flush = flush
        self.timer_factory = timer_factory
        self.flushed = False
        self.timer = None
        self._lock = threading.Lock()

    def on_enqueue(self, queue_length: int):
        with self._lock:
            if not self.flushed:
                self.flushed = True
                should_flush = True
            elif queue_length >= self.flush_at:
                should_flush = True
            else:
                should_flush = False
                self._start_timer()

        if should_flush:
            self.flush()

    def _start_timer(self):
        if self.timer is not None or not self.flush_interval or self.flush_interval <= 0:
            return
        timer = None

        def fire():
            self._on_timer(timer)

        timer = self.timer_factory(self.flush_interval, fire)
        timer.daemon = True
        self.timer = timer
        timer.start()
        self.log.debug("flush timer armed for %s seconds", self.flush_interval)

    def _on_timer(self, timer):
        with self._lock:
            # a timer cancelled after it started firing must not clear its successor
            if self.timer is not timer:
                return
            self.timer = None
        self.log.debug("flush timer fired")
        self.flush()

    def cancel(self):
        with self._lock:
            timer, self.timer = self.timer, None
        if timer is not None:
            timer.cancel()

    @property
    def pending(self) -> bool:
        return self.timer is not None
