import time
import unittest
from datetime import datetime

import mock
from dateutil.tz import tzutc
from freezegun import freeze_time
from parameterized import parameterized

from posthog_lite.errors import ConfigurationError, StaleDataWarning
from posthog_lite.feature_flags import FeatureFlagsPoller, _hash, is_simple_flag_enabled
from posthog_lite.request import APIError
from posthog_lite.test.test_utils import FAKE_TEST_API_KEY, no_wait_policy
from posthog_lite.types import COMPLEX, SIMPLE, FlagDefinition

MOCK_FLAGS = [
    {"key": "simpleFlag", "is_simple_flag": True, "rollout_percentage": None, "active": True},
    {"key": "enabled-flag", "is_simple_flag": False, "rollout_percentage": None, "active": True},
    {"key": "disabled-flag", "is_simple_flag": False, "rollout_percentage": None, "active": True},
    {"key": "inactive-flag", "is_simple_flag": True, "rollout_percentage": 100, "active": False},
    {"key": "zero-flag", "is_simple_flag": True, "rollout_percentage": 0, "active": True},
]


class TestHashing(unittest.TestCase):
    def test_simple_flag_calculation(self):
        # hashing + mathematical operations must stay consistent across libs
        self.assertTrue(is_simple_flag_enabled("a", "b", 42))
        self.assertFalse(is_simple_flag_enabled("a", "b", 40))

    def test_hash_is_deterministic_and_in_range(self):
        value = _hash("a", "b")
        self.assertEqual(value, _hash("a", "b"))
        self.assertTrue(0.41 < value < 0.42)

    def test_salt_changes_bucket(self):
        self.assertNotEqual(_hash("a", "b"), _hash("a", "b", salt="variant"))

    @parameterized.expand(
        [
            ("no_rollout", None, True),
            ("full_rollout", 100, True),
            ("zero_rollout", 0, False),
        ]
    )
    def test_rollout_edges(self, _name, rollout_percentage, expected):
        self.assertEqual(is_simple_flag_enabled("a", "b", rollout_percentage), expected)

    def test_flag_definition_from_json(self):
        simple = FlagDefinition.from_json(MOCK_FLAGS[0])
        complex_ = FlagDefinition.from_json(MOCK_FLAGS[1])
        self.assertEqual(simple.kind, SIMPLE)
        self.assertIsNone(simple.rollout_percentage)
        self.assertEqual(complex_.kind, COMPLEX)
        self.assertEqual(FlagDefinition.from_json(MOCK_FLAGS[3]).rollout_percentage, 100.0)


class TestFeatureFlagsPoller(unittest.TestCase):
    def setUp(self):
        self.on_error = mock.Mock()
        self.poller = FeatureFlagsPoller(
            FAKE_TEST_API_KEY,
            personal_api_key="my very secret key",
            host="http://localhost:6042",
            retry_policy=no_wait_policy(max_retries=0),
            on_error=self.on_error,
        )

    def tearDown(self):
        self.poller.stop()

    def test_require_personal_api_key(self):
        poller = FeatureFlagsPoller(FAKE_TEST_API_KEY)
        with mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions") as patch_get:
            with self.assertRaises(ConfigurationError) as ctx:
                poller.is_feature_enabled("simpleFlag", "some id")
        self.assertEqual(
            ctx.exception.message,
            "You have to specify the option personal_api_key to use feature flags.",
        )
        patch_get.assert_not_called()

    @parameterized.expand(
        [
            ("no_key", (None, "some-id"), 'You must pass a "key".'),
            ("empty_key", ("", "some-id"), 'You must pass a "key".'),
            ("no_distinct_id", ("my-flag", None), 'You must pass a "distinctId".'),
            ("bad_default", ("my-flag", "some-id", "default-value"), '"defaultResult" must be a boolean.'),
            ("bad_groups", ("my-flag", "some-id", False, "foobar"), 'You must pass an object for "groups".'),
        ]
    )
    def test_argument_validation(self, _name, args, message):
        with mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions") as patch_get:
            with self.assertRaises(ConfigurationError) as ctx:
                self.poller.is_feature_enabled(*args)
        self.assertEqual(ctx.exception.message, message)
        patch_get.assert_not_called()

    @mock.patch("posthog_lite.feature_flags.decide")
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_simple_flag_is_evaluated_locally(self, patch_get, patch_decide):
        self.assertTrue(self.poller.is_feature_enabled("simpleFlag", "some id"))
        self.assertFalse(self.poller.is_feature_enabled("zero-flag", "some id", True))
        patch_get.assert_called_once_with(
            "my very secret key", "http://localhost:6042", timeout=3
        )
        patch_decide.assert_not_called()

    @mock.patch("posthog_lite.feature_flags.decide", return_value={"featureFlags": ["enabled-flag"]})
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_complex_flags_call_decide(self, patch_get, patch_decide):
        self.assertTrue(self.poller.is_feature_enabled("enabled-flag", "some id"))
        self.assertFalse(self.poller.is_feature_enabled("disabled-flag", "some id"))
        patch_decide.assert_called_with(
            FAKE_TEST_API_KEY,
            "http://localhost:6042",
            timeout=3,
            distinct_id="some id",
            groups={},
        )
        self.assertEqual(patch_decide.call_count, 2)
        patch_get.assert_called_once()

    @mock.patch("posthog_lite.feature_flags.decide", return_value={"featureFlags": ["simpleFlag"]})
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_groups_always_call_decide(self, patch_get, patch_decide):
        enabled = self.poller.is_feature_enabled(
            "simpleFlag", "some id", False, {"company": "id:5"}
        )
        self.assertTrue(enabled)
        patch_decide.assert_called_once_with(
            FAKE_TEST_API_KEY,
            "http://localhost:6042",
            timeout=3,
            distinct_id="some id",
            groups={"company": "id:5"},
        )

    @mock.patch("posthog_lite.feature_flags.decide")
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_unknown_flag_returns_default(self, patch_get, patch_decide):
        self.assertFalse(self.poller.is_feature_enabled("i-dont-exist", "some id"))
        self.assertTrue(self.poller.is_feature_enabled("i-dont-exist", "some id", True))
        self.assertTrue(
            self.poller.is_feature_enabled("i-dont-exist", "some id", True, {"company": "id:5"})
        )
        patch_decide.assert_not_called()

    @mock.patch("posthog_lite.feature_flags.decide")
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_inactive_flag_is_off(self, patch_get, patch_decide):
        self.assertFalse(self.poller.is_feature_enabled("inactive-flag", "some id", True))
        patch_decide.assert_not_called()

    @mock.patch("posthog_lite.feature_flags.decide", side_effect=APIError(500, "Internal Server Error"))
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_decide_failure_returns_default(self, patch_get, patch_decide):
        self.assertTrue(self.poller.is_feature_enabled("enabled-flag", "some id", True))
        self.assertFalse(self.poller.is_feature_enabled("enabled-flag", "some id"))

    @mock.patch("posthog_lite.feature_flags.decide", return_value={"featureFlags": ["enabled-flag"]})
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_no_decide_call_after_stop(self, patch_get, patch_decide):
        self.poller.load_feature_flags()
        self.poller.stop()

        self.assertTrue(self.poller.is_feature_enabled("enabled-flag", "some id", True))
        self.assertFalse(
            self.poller.is_feature_enabled("simpleFlag", "some id", groups={"company": "id:5"})
        )
        self.assertTrue(self.poller.is_feature_enabled("simpleFlag", "some id"))
        patch_decide.assert_not_called()

    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_load_only_once_unless_forced(self, patch_get):
        self.poller.load_feature_flags()
        self.poller.load_feature_flags()
        self.assertEqual(patch_get.call_count, 1)

        self.poller.load_feature_flags(force_reload=True)
        self.assertEqual(patch_get.call_count, 2)

    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_invalidated_cache_reloads(self, patch_get):
        self.poller.load_feature_flags()
        self.poller.cache.invalidate()
        self.assertIn("simpleFlag", self.poller.cache.definitions)

        self.poller.load_feature_flags()
        self.assertEqual(patch_get.call_count, 2)
        self.assertTrue(self.poller.cache.loaded)

    def test_failed_reload_keeps_previous_definitions(self):
        with mock.patch(
            "posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS
        ):
            self.poller.load_feature_flags()
        before = self.poller.cache.snapshot()

        error = APIError(502, "Bad Gateway")
        with mock.patch(
            "posthog_lite.feature_flags.get_feature_flag_definitions", side_effect=error
        ):
            self.poller.load_feature_flags(True)

        self.assertIs(self.poller.cache.definitions, before.definitions)
        self.assertEqual(self.poller.cache.last_loaded_at, before.last_loaded_at)
        self.assertFalse(self.poller.cache.loaded)
        self.on_error.assert_called_once()
        warning, batch = self.on_error.call_args[0]
        self.assertIsInstance(warning, StaleDataWarning)
        self.assertIs(warning.cause, error)
        self.assertIsNone(batch)

        with mock.patch(
            "posthog_lite.feature_flags.get_feature_flag_definitions", side_effect=error
        ):
            self.assertTrue(self.poller.is_feature_enabled("simpleFlag", "some id"))

    @parameterized.expand(
        [
            ("api_error", APIError(401, "Unauthorized")),
            ("network_error", ConnectionError("connection refused")),
            ("bad_payload", [{"key": "x", "active": True}, "not a flag"]),
        ]
    )
    def test_load_failure_never_raises(self, _name, outcome):
        kwargs = {"side_effect": outcome} if isinstance(outcome, Exception) else {"return_value": outcome}
        with mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", **kwargs):
            self.poller.load_feature_flags(True)

        self.assertFalse(self.poller.cache.loaded)
        self.on_error.assert_called_once()

    def test_on_error_hook_failure_is_swallowed(self):
        self.on_error.side_effect = Exception("hook failed")
        with mock.patch(
            "posthog_lite.feature_flags.get_feature_flag_definitions",
            side_effect=APIError(502, "Bad Gateway"),
        ):
            self.poller.load_feature_flags(True)
        self.assertFalse(self.poller.cache.loaded)

    @freeze_time("2026-01-01 12:00:00")
    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_last_loaded_at(self, patch_get):
        self.assertIsNone(self.poller.cache.last_loaded_at)
        self.poller.load_feature_flags()
        self.assertEqual(
            self.poller.cache.last_loaded_at, datetime(2026, 1, 1, 12, 0, 0, tzinfo=tzutc())
        )

    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_start_loads_eagerly_and_stop_cancels(self, patch_get):
        self.poller.poll_interval = 60
        self.poller.start()

        self.assertTrue(self.poller.cache.loaded)
        self.assertTrue(self.poller.poller.is_alive())

        self.poller.stop()
        self.assertFalse(self.poller.poller.is_alive())

        self.poller.load_feature_flags(force_reload=True)
        self.assertEqual(patch_get.call_count, 1)

    @mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions", return_value=MOCK_FLAGS)
    def test_poller_refreshes_on_interval(self, patch_get):
        self.poller.poll_interval = 0.01
        self.poller.start()

        for _ in range(200):
            if patch_get.call_count >= 3:
                break
            time.sleep(0.01)
        self.poller.stop()

        self.assertGreaterEqual(patch_get.call_count, 3)

    def test_start_without_personal_api_key_does_nothing(self):
        poller = FeatureFlagsPoller(FAKE_TEST_API_KEY)
        with mock.patch("posthog_lite.feature_flags.get_feature_flag_definitions") as patch_get:
            poller.start()
        patch_get.assert_not_called()
        self.assertIsNone(poller.poller)
