import hashlib
import logging
from datetime import timedelta
from typing import Optional

from posthog_lite.errors import ConfigurationError, StaleDataWarning
from posthog_lite.flag_cache import FlagCache
from posthog_lite.poller import Poller
from posthog_lite.request import APIError, decide, get_feature_flag_definitions
from posthog_lite.retry import RetryPolicy
from posthog_lite.types import FlagDefinition

__LONG_SCALE__ = float(0xFFFFFFFFFFFFFFF)

log = logging.getLogger("posthog_lite")


# This function takes a distinct_id and a feature flag key and returns a float between 0 and 1.
# Given the same distinct_id and key, it'll always return the same float. These floats are
# uniformly distributed between 0 and 1, so if we want to show this feature to 20% of traffic
# we can do _hash(key, distinct_id) < 0.2
def _hash(key: str, distinct_id: str, salt: str = "") -> float:
    hash_key = f"{key}.{distinct_id}{salt}"
    hash_val = int(hashlib.sha1(hash_key.encode("utf-8")).hexdigest()[:15], 16)
    return hash_val / __LONG_SCALE__


def is_simple_flag_enabled(
    key: str, distinct_id: str, rollout_percentage: Optional[float]
) -> bool:
    # no rollout percentage means the flag is on for everyone
    if rollout_percentage is None:
        return True
    return _hash(key, str(distinct_id)) * 100 < rollout_percentage


class FeatureFlagsPoller:
    """Keeps the flag definitions fresh and answers flag checks.

    Simple flags are answered from the local cache. Complex flags, and any
    check scoped to groups, go to the decide endpoint. A failed refresh keeps
    whatever was loaded before.
    """

    log = logging.getLogger("posthog_lite")

    def __init__(
        self,
        project_api_key: str,
        personal_api_key: Optional[str] = None,
        host=None,
        poll_interval=30,
        timeout=3,
        retry_policy: Optional[RetryPolicy] = None,
        on_error=None,
    ):
        self.project_api_key = project_api_key
        self.personal_api_key = personal_api_key
        self.host = host
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.on_error = on_error
        self.cache = FlagCache()
        self.poller = None
        self._stopped = False

    def start(self):
        """Load the definitions once, then keep refreshing them every `poll_interval` seconds."""
        if not self.personal_api_key:
            self.log.warning(
                "[FEATURE FLAGS] You have to specify a personal_api_key to use feature flags."
            )
            return
        if self.poller and self.poller.is_alive():
            return

        self._stopped = False
        self._load_feature_flags()
        self.poller = Poller(
            interval=timedelta(seconds=self.poll_interval),
            execute=self._load_feature_flags,
        )
        self.poller.start()

    def stop(self):
        self._stopped = True
        if self.poller:
            self.poller.stop()

    def load_feature_flags(self, force_reload=False):
        if force_reload:
            self.cache.invalidate()
        if not self.cache.loaded:
            self._load_feature_flags()

    def _load_feature_flags(self):
        if self._stopped:
            return

        try:
            response = self.retry_policy.call(
                get_feature_flag_definitions,
                self.personal_api_key,
                self.host,
                timeout=self.timeout,
            )
            definitions = [
                FlagDefinition.from_json(flag) for flag in response if flag.get("key")
            ]
        except APIError as e:
            if e.status == 401:
                self.log.error(
                    "[FEATURE FLAGS] Error loading feature flags: To use feature flags, please set a valid personal_api_key. More information: https://posthog.com/docs/api/overview"
                )
            else:
                self.log.error(f"[FEATURE FLAGS] Error loading feature flags: {e}")
            self._report_stale(e)
        except Exception as e:
            self.log.warning(
                "[FEATURE FLAGS] Fetching feature flags failed with following error. We will retry in %s seconds."
                % self.poll_interval
            )
            self.log.warning(e)
            self._report_stale(e)
        else:
            self.cache.replace(definitions)
            self.log.debug("[FEATURE FLAGS] Loaded %d flag definitions", len(definitions))

    def _report_stale(self, error):
        if not self.on_error:
            return
        try:
            self.on_error(StaleDataWarning(error), None)
        except Exception as e:
            self.log.exception(f"[FEATURE FLAGS] Error in on_error callback: {e}")

    def is_feature_enabled(self, key, distinct_id, default_result=False, groups=None):
        if not self.personal_api_key:
            raise ConfigurationError(
                "You have to specify the option personal_api_key to use feature flags."
            )
        if not key or not isinstance(key, str):
            raise ConfigurationError('You must pass a "key".')
        if distinct_id is None or distinct_id == "":
            raise ConfigurationError('You must pass a "distinctId".')
        if not isinstance(default_result, bool):
            raise ConfigurationError('"defaultResult" must be a boolean.')
        if groups is not None and not isinstance(groups, dict):
            raise ConfigurationError('You must pass an object for "groups".')

        self.load_feature_flags()

        flag = self.cache.snapshot().definitions.get(key)
        if flag is None:
            return default_result
        if not flag.active:
            return False

        # group membership rules only live on the server
        if flag.is_simple and not groups:
            return self._is_simple_flag_enabled(
                key=key,
                distinct_id=distinct_id,
                rollout_percentage=flag.rollout_percentage,
            )

        return self._get_flag_from_decide(key, distinct_id, groups or {}, default_result)

    def _get_flag_from_decide(self, key, distinct_id, groups, default_result):
        if self._stopped:
            self.log.debug("[FEATURE FLAGS] Not calling decide for %s after shutdown", key)
            return default_result
        try:
            response = self.retry_policy.call(
                decide,
                self.project_api_key,
                self.host,
                timeout=self.timeout,
                distinct_id=str(distinct_id),
                groups=groups,
            )
        except Exception as e:
            self.log.error(f"[FEATURE FLAGS] Unable to get flag remotely: {e}")
            return default_result

        enabled_flags = response.get("featureFlags") or []
        if isinstance(enabled_flags, dict):
            return bool(enabled_flags.get(key))
        return key in enabled_flags

    def _is_simple_flag_enabled(self, key, distinct_id, rollout_percentage):
        return is_simple_flag_enabled(key, distinct_id, rollout_percentage)
