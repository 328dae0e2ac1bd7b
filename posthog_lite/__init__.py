from typing import Callable, Optional  # noqa: F401

from posthog_lite.client import Client
from posthog_lite.errors import ConfigurationError, StaleDataWarning
from posthog_lite.request import APIError, TransportError
from posthog_lite.retry import RetryPolicy
from posthog_lite.types import Batch, FlagDefinition
from posthog_lite.version import VERSION

__version__ = VERSION

__all__ = [
    "APIError",
    "Batch",
    "Client",
    "ConfigurationError",
    "FlagDefinition",
    "Posthog",
    "RetryPolicy",
    "StaleDataWarning",
    "TransportError",
]

"""Settings."""
api_key = None  # type: Optional[str]
host = None  # type: Optional[str]
on_error = None  # type: Optional[Callable]
debug = False  # type: bool
sync_mode = False  # type: bool
enable = True  # type: bool
personal_api_key = None  # type: Optional[str]
poll_interval = 30  # type: int
flush_at = 20  # type: int
flush_interval = 10  # type: float
feature_flags_request_timeout_seconds = 3  # type: int
gzip = False  # type: bool
max_retries = 3  # type: int
timeout = None  # type: Optional[float]
thread = 1  # type: int

default_client = None  # type: Optional[Client]


def capture(event, **kwargs):
    """
    Capture an event for a user.

    For example:
    ```python
    posthog_lite.capture('movie played', distinct_id='distinct id', properties={'movie_id': '123'})
    ```
    """
    return _proxy("capture", event, **kwargs)


def identify(distinct_id, **kwargs):
    """Identify a user and set properties on them."""
    return _proxy("identify", distinct_id, **kwargs)


def alias(distinct_id, alias, **kwargs):
    """Link `alias` to `distinct_id`."""
    return _proxy("alias", distinct_id, alias, **kwargs)


def group_identify(group_type, group_key, **kwargs):
    """Set properties on a group."""
    return _proxy("group_identify", group_type, group_key, **kwargs)


def is_feature_enabled(key, distinct_id, default_result=False, groups=None):
    """
    Use feature flags to enable or disable features for users.

    For example:
    ```python
    if posthog_lite.is_feature_enabled('beta feature', 'distinct id'):
        # do something
    ```

    A `personal_api_key` must be set for feature flags to work.
    """
    return _proxy(
        "is_feature_enabled",
        key,
        distinct_id,
        default_result=default_result,
        groups=groups,
    )


def load_feature_flags(force_reload=False):
    """Load feature flag definitions from PostHog."""
    return _proxy("load_feature_flags", force_reload=force_reload)


def flush():
    """Tell the client to flush."""
    return _proxy("flush")


def join():
    """Block program until in-flight deliveries finish"""
    _proxy("join")


def shutdown():
    """Flush all messages and cleanly shutdown the client"""
    _proxy("shutdown")


def setup():
    global default_client
    if not default_client:
        if not api_key:
            raise ConfigurationError("API key is required")
        default_client = Client(
            api_key,
            host=host,
            debug=debug,
            on_error=on_error,
            sync_mode=sync_mode,
            enable=enable,
            personal_api_key=personal_api_key,
            poll_interval=poll_interval,
            flush_at=flush_at,
            flush_interval=flush_interval,
            feature_flags_request_timeout_seconds=feature_flags_request_timeout_seconds,
            gzip=gzip,
            max_retries=max_retries,
            timeout=timeout,
            thread=thread,
        )


def _proxy(method, *args, **kwargs):
    """Create an analytics client if one doesn't exist and send to it."""
    setup()

    fn = getattr(default_client, method)
    return fn(*args, **kwargs)


class Posthog(Client):
    pass
