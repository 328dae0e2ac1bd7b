from dataclasses import dataclass, field
from typing import Any, Callable, Dict

import backoff
import requests

from posthog_lite.request import APIError


def is_error_retryable(exc: Exception) -> bool:
    # network level errors: connection refused / reset, timeouts
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, APIError):
        if exc.status == "N/A":
            return False
        # retry on server errors and when rate limited,
        # don't retry on other client errors
        return exc.status >= 500 or exc.status == 429
    # malformed requests, serialization errors, ...
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """How a failed HTTP call is retried.

    A policy holds no per-call state, so one instance can be shared by every
    delivery a client makes while two clients never see each other's counts.
    """

    max_retries: int = 3
    is_retryable: Callable[[Exception], bool] = is_error_retryable
    wait_gen: Callable[..., Any] = backoff.expo
    wait_gen_kwargs: Dict[str, Any] = field(default_factory=dict)
    jitter: Callable[[float], float] = backoff.full_jitter

    def call(self, func, *args, **kwargs):
        """Call `func`, retrying with backoff; the last error is raised once retries run out."""

        def giveup(exc):
            return not self.is_retryable(exc)

        @backoff.on_exception(
            self.wait_gen,
            Exception,
            max_tries=self.max_retries + 1,
            giveup=giveup,
            jitter=self.jitter,
            logger="posthog_lite",
            **self.wait_gen_kwargs,
        )
        def send_request():
            return func(*args, **kwargs)

        return send_request()
