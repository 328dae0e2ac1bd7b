import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional

from posthog_lite.event_queue import EventQueue
from posthog_lite.request import batch_post
from posthog_lite.retry import RetryPolicy
from posthog_lite.types import Batch


class BatchDispatcher(object):
    """Drains the client's queue and delivers the events in batches."""

    log = logging.getLogger("posthog_lite")

    def __init__(
        self,
        queue: EventQueue,
        api_key: str,
        flush_at=20,
        host=None,
        on_error=None,
        gzip=False,
        timeout=None,
        retry_policy: Optional[RetryPolicy] = None,
        enable=True,
        sync_mode=False,
        thread=1,
        before_flush=None,
    ):
        self.queue = queue
        self.api_key = api_key
        self.flush_at = flush_at
        self.host = host
        self.on_error = on_error
        self.gzip = gzip
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.enable = enable
        self.sync_mode = sync_mode
        self.before_flush = before_flush
        self._in_flight = set()
        self._lock = threading.Lock()
        self._executor = None
        self._closed = False
        if not sync_mode:
            self._executor = ThreadPoolExecutor(
                max_workers=max(thread, 1), thread_name_prefix="posthog_lite"
            )

    def flush(self) -> "Future[Optional[Batch]]":
        """Deliver up to `flush_at` queued events.

        The returned future resolves to the delivered `Batch`, to None when
        there was nothing to send, or to the delivery error. Events whose
        future was cancelled while queued are dropped from the batch.
        """
        result = Future()
        if not self.enable:
            result.set_result(None)
            return result

        if self.before_flush:
            self.before_flush()

        # draining happens under the queue lock, so two racing flushes
        # never hand out the same event
        items = [
            item
            for item in self.queue.drain(self.flush_at)
            if item.future.set_running_or_notify_cancel()
        ]
        if not items:
            result.set_result(None)
            return result

        batch = Batch(self.api_key, tuple(item.message for item in items))
        result.set_running_or_notify_cancel()
        with self._lock:
            inline = self.sync_mode or self._closed
            if not inline:
                self._in_flight.add(result)
                result.add_done_callback(self._discard)
                self._executor.submit(self._deliver, batch, items, result)
        if inline:
            self._deliver(batch, items, result)
        return result

    def _discard(self, future):
        with self._lock:
            self._in_flight.discard(future)

    def _deliver(self, batch, items, result):
        error = None
        try:
            self.request(batch)
        except Exception as e:
            self.log.error("error uploading: %s", e)
            error = e

        try:
            for item in items:
                if error is None:
                    item.future.set_result(None)
                else:
                    item.future.set_exception(error)
            if error is not None and self.on_error:
                try:
                    self.on_error(error, batch)
                except Exception as hook_error:
                    self.log.exception(f"Error in on_error callback: {hook_error}")
        finally:
            # the flush future always settles, join() waits on it
            if error is None:
                self.log.debug("delivered batch of %d events", len(batch))
                result.set_result(batch)
            else:
                result.set_exception(error)

    def request(self, batch: Batch):
        """Attempt to upload the batch and retry before raising an error"""
        return self.retry_policy.call(
            batch_post,
            self.api_key,
            self.host,
            gzip=self.gzip,
            timeout=self.timeout,
            batch=list(batch.events),
        )

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def join(self, timeout=None):
        """Wait for deliveries that are already running"""
        with self._lock:
            pending = list(self._in_flight)
        if pending:
            wait(pending, timeout=timeout)

    def close(self):
        """Release the delivery threads. Later flushes deliver on the calling thread."""
        with self._lock:
            self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=False)
