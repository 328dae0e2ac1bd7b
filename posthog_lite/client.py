import atexit
import json
import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Dict, Optional
from typing_extensions import Unpack
from uuid import uuid4

from dateutil.tz import tzutc

from posthog_lite.args import ID_CLASSES, OptionalCaptureArgs, OptionalIdentifyArgs
from posthog_lite.dispatcher import BatchDispatcher
from posthog_lite.errors import ConfigurationError
from posthog_lite.event_queue import EventQueue, FlushScheduler
from posthog_lite.feature_flags import FeatureFlagsPoller
from posthog_lite.request import DEFAULT_HOST, DatetimeSerializer
from posthog_lite.retry import RetryPolicy
from posthog_lite.types import Batch, QueuedEvent
from posthog_lite.utils import clean, guess_timezone, remove_trailing_slash, require
from posthog_lite.version import VERSION

LIB_NAME = "posthog-lite"

# Oversized messages are still sent; the server decides what to do with them.
MAX_MSG_SIZE = 32 * 1024


def stringify_id(val):
    if val is None:
        return None
    if isinstance(val, str):
        return val
    return str(val)


class Client(object):
    """
    Buffers analytics events and ships them in batches, and answers feature
    flag checks from a periodically refreshed set of flag definitions.

    Examples:
        ```python
        from posthog_lite import Client
        client = Client('<ph_project_api_key>', host='<ph_app_host>')
        client.capture('movie played', distinct_id='user-1')
        client.shutdown()
        ```
    """

    log = logging.getLogger("posthog_lite")

    def __init__(
        self,
        api_key: str,
        host=None,
        debug=False,
        on_error=None,
        flush_at=20,
        flush_interval=10,
        gzip=False,
        max_retries=3,
        sync_mode=False,
        timeout=None,
        thread=1,
        poll_interval=30,
        personal_api_key=None,
        feature_flags_request_timeout_seconds=3,
        enable=True,
        retry_policy: Optional[RetryPolicy] = None,
        timer_factory=threading.Timer,
    ):
        """
        Initialize a new client instance.

        Args:
            api_key: The project API key, used to ingest events.
            host: The host to use for the client.
            flush_at: How many queued events trigger a flush (at least 1).
            flush_interval: Seconds an event may wait before the queue is flushed. 0 disables the timer.
            personal_api_key: Required for feature flags.
            enable: When False, nothing is buffered and no request is ever made.
            timer_factory: Builds the flush timer, `threading.Timer` compatible.
        """
        if not api_key:
            raise ConfigurationError("You must pass your PostHog project's api key.")

        # api_key: This should be the Team API Key (token), public
        self.api_key = api_key
        self.host = remove_trailing_slash(host or DEFAULT_HOST)
        self.debug = debug
        self.on_error = on_error
        self.flush_at = max(flush_at, 1) if flush_at is not None else 20
        self.flush_interval = flush_interval
        self.timeout = timeout
        self.sync_mode = sync_mode
        self._enable = enable if isinstance(enable, bool) else True
        self.retry_policy = retry_policy or RetryPolicy(max_retries=max_retries)

        # personal_api_key: This should be a generated Personal API Key, private
        self.personal_api_key = personal_api_key

        if debug:
            # Ensures that debug level messages are logged when debug mode is on.
            # Otherwise, defaults to WARNING level.
            logging.basicConfig()
            self.log.setLevel(logging.DEBUG)
        else:
            self.log.setLevel(logging.WARNING)

        self.queue = EventQueue()
        self.scheduler = FlushScheduler(
            self.flush_at,
            flush_interval,
            flush=self._scheduled_flush,
            timer_factory=timer_factory,
        )
        self.dispatcher = BatchDispatcher(
            self.queue,
            self.api_key,
            flush_at=self.flush_at,
            host=self.host,
            on_error=on_error,
            gzip=gzip,
            timeout=timeout,
            retry_policy=self.retry_policy,
            enable=self._enable,
            sync_mode=sync_mode,
            thread=thread,
            before_flush=self.scheduler.cancel,
        )
        self.feature_flags_poller = FeatureFlagsPoller(
            self.api_key,
            personal_api_key=personal_api_key,
            host=self.host,
            poll_interval=poll_interval,
            timeout=feature_flags_request_timeout_seconds,
            retry_policy=self.retry_policy,
            on_error=on_error,
        )

        if not sync_mode:
            # On program exit, stop the timers and wait for deliveries that
            # are already running. This is *not* the same as flushing the
            # queue: call shutdown() to guarantee delivery.
            atexit.register(self.join)

        if personal_api_key and self._enable:
            self.feature_flags_poller.start()

    @property
    def enable(self) -> bool:
        return self._enable

    def capture(self, event: str, **kwargs: Unpack[OptionalCaptureArgs]) -> Future:
        """
        Capture an event.

        Examples:
            ```python
            client.capture('movie played', distinct_id='user-1', properties={'movie_id': '123'})
            client.capture('purchase', distinct_id='user-1', groups={'company': 'id:5'})
            ```
        """
        distinct_id = kwargs.get("distinct_id")
        properties = kwargs.get("properties") or {}
        groups = kwargs.get("groups")

        require("distinct_id", distinct_id, ID_CLASSES)
        require("event", event)

        properties = dict(properties)
        if groups:
            require("groups", groups, dict)
            properties["$groups"] = groups

        msg = {
            "event": event,
            "distinct_id": stringify_id(distinct_id),
            "properties": properties,
            "timestamp": kwargs.get("timestamp"),
            "uuid": kwargs.get("uuid"),
        }
        return self._enqueue("capture", msg)

    def identify(self, distinct_id, **kwargs: Unpack[OptionalIdentifyArgs]) -> Future:
        """
        Identify a user and set properties on them.

        Examples:
            ```python
            client.identify('user-1', properties={'email': 'max@example.com'})
            ```
        """
        require("distinct_id", distinct_id, ID_CLASSES)

        msg = {
            "event": "$identify",
            "distinct_id": stringify_id(distinct_id),
            "$set": kwargs.get("properties") or {},
            "properties": {},
            "timestamp": kwargs.get("timestamp"),
            "uuid": kwargs.get("uuid"),
        }
        return self._enqueue("identify", msg)

    def alias(self, distinct_id, alias, timestamp=None, uuid=None) -> Future:
        """
        Create an alias between two distinct IDs.

        Examples:
            ```python
            client.alias('user-1', 'anonymous-id')
            ```
        """
        require("distinct_id", distinct_id, ID_CLASSES)
        require("alias", alias, ID_CLASSES)

        msg = {
            "event": "$create_alias",
            "distinct_id": stringify_id(distinct_id),
            "properties": {
                "distinct_id": stringify_id(distinct_id),
                "alias": stringify_id(alias),
            },
            "timestamp": timestamp,
            "uuid": uuid,
        }
        return self._enqueue("alias", msg)

    def group_identify(
        self, group_type: str, group_key: str, **kwargs: Unpack[OptionalIdentifyArgs]
    ) -> Future:
        """
        Identify a group and set its properties.

        Examples:
            ```python
            client.group_identify('company', 'company_id_in_your_db', properties={
                'name': 'Awesome Inc.',
                'employees': 11
            })
            ```
        """
        require("group_type", group_type)
        require("group_key", group_key, ID_CLASSES)

        msg: Dict[str, Any] = {
            "event": "$groupidentify",
            "distinct_id": "$%s_%s" % (group_type, group_key),
            "properties": {
                "$group_type": group_type,
                "$group_key": stringify_id(group_key),
                "$group_set": kwargs.get("properties") or {},
            },
            "timestamp": kwargs.get("timestamp"),
            "uuid": kwargs.get("uuid"),
        }
        return self._enqueue("capture", msg)

    def _enqueue(self, type, msg) -> Future:
        if msg.get("uuid"):
            msg["uuid"] = stringify_id(msg["uuid"])
        else:
            # Always send a uuid, so the server can deduplicate retried batches
            msg["uuid"] = str(uuid4())

        msg["properties"]["$lib"] = LIB_NAME
        msg["properties"]["$lib_version"] = VERSION

        return self.enqueue(type, msg)

    def _check_size(self, msg):
        size = len(json.dumps(msg, cls=DatetimeSerializer).encode())
        if size > MAX_MSG_SIZE:
            self.log.warning(
                "Your message must be < 32kb. This is currently surfaced as a warning, the message will still be sent. (%d bytes)",
                size,
            )

    def enqueue(self, type: str, message: dict) -> Future:
        """Add `message` to the queue and flush it if needed.

        The returned future resolves to None once the message was delivered,
        or to the delivery error.
        """
        future = Future()
        if not self._enable:
            future.set_result(None)
            return future

        msg = dict(message)
        msg["type"] = type
        msg["library"] = LIB_NAME
        msg["library_version"] = VERSION

        timestamp = msg.get("timestamp")
        if timestamp is None:
            timestamp = datetime.now(tz=tzutc())
        if isinstance(timestamp, datetime):
            timestamp = guess_timezone(timestamp).isoformat()
        msg["timestamp"] = timestamp

        if "distinctId" in msg:
            msg["distinct_id"] = msg.pop("distinctId")

        msg = clean(msg)
        self._check_size(msg)
        self.log.debug("queueing: %s", msg)

        length = self.queue.append(QueuedEvent(msg, future))
        self.scheduler.on_enqueue(length)
        return future

    def _scheduled_flush(self):
        self.flush()

    def flush(self) -> "Future[Optional[Batch]]":
        """
        Send up to `flush_at` queued events now.

        Examples:
            ```python
            client.capture('event_name', distinct_id='user-1')
            batch = client.flush().result()
            ```
        """
        return self.dispatcher.flush()

    def join(self, timeout=None):
        """
        Stop the timers and wait for deliveries already in progress. Call `shutdown()` instead.
        """
        self.scheduler.cancel()
        self.feature_flags_poller.stop()
        self.dispatcher.join(timeout=timeout)

    def shutdown(self, timeout=None):
        """
        Flush all messages and cleanly shutdown the client. Call this before the process ends in serverless environments to avoid data loss.

        Examples:
            ```python
            client.shutdown()
            ```
        """
        self.scheduler.cancel()
        while self._enable and len(self.queue):
            self.flush()
        self.join(timeout=timeout)
        self.dispatcher.close()

    def load_feature_flags(self, force_reload=False):
        """
        Load feature flag definitions, if they have not been loaded yet or `force_reload` is set.

        Category:
            Feature Flags
        """
        if not self._enable:
            return
        if not self.personal_api_key:
            raise ConfigurationError(
                "You have to specify the option personal_api_key to use feature flags."
            )
        self.feature_flags_poller.load_feature_flags(force_reload=force_reload)

    def is_feature_enabled(
        self, key, distinct_id, default_result=False, groups=None
    ) -> bool:
        """
        Use feature flags to enable or disable features for users.

        Examples:
            ```python
            if client.is_feature_enabled('beta feature', 'distinct id'):
                # do something
            if client.is_feature_enabled('groups feature', 'distinct id', groups={"organization": "5"}):
                # do something
            ```

        Category:
            Feature Flags
        """
        if not self._enable:
            return default_result
        return self.feature_flags_poller.is_feature_enabled(
            key, distinct_id, default_result=default_result, groups=groups
        )

    @property
    def feature_flag_definitions(self):
        return self.feature_flags_poller.cache.definitions
