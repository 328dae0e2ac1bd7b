# posthog-lite example
#
# Captures a few events, checks a feature flag and shuts the client down.
#
# Setup:
#   export POSTHOG_PROJECT_API_KEY=...
#   export POSTHOG_PERSONAL_API_KEY=...   (optional, needed for feature flags)
#   export POSTHOG_HOST=http://localhost:8000

import os

import posthog_lite

project_key = os.getenv("POSTHOG_PROJECT_API_KEY", "")
personal_api_key = os.getenv("POSTHOG_PERSONAL_API_KEY") or None
host = os.getenv("POSTHOG_HOST", "http://localhost:8000")

if not project_key:
    print("Missing POSTHOG_PROJECT_API_KEY")  # noqa: T201
    exit(1)

posthog_lite.debug = True
posthog_lite.api_key = project_key
posthog_lite.personal_api_key = personal_api_key
posthog_lite.host = host


def on_error(error, batch):
    print("delivery failed:", error, batch)  # noqa: T201


posthog_lite.on_error = on_error

posthog_lite.identify("distinct_id", properties={"email": "max@example.com"})
posthog_lite.capture("movie played", distinct_id="distinct_id", properties={"movie_id": "123"})
posthog_lite.group_identify("company", "id:5", properties={"employees": 11})
posthog_lite.alias("distinct_id", "new_distinct_id")

batch = posthog_lite.flush().result(timeout=30)
if batch is not None:
    print("flushed %d events" % len(batch))  # noqa: T201

if personal_api_key:
    print(  # noqa: T201
        "beta-feature enabled:",
        posthog_lite.is_feature_enabled("beta-feature", "distinct_id"),
    )
    print(  # noqa: T201
        "group feature enabled:",
        posthog_lite.is_feature_enabled(
            "group-feature", "distinct_id", groups={"company": "id:5"}
        ),
    )

posthog_lite.shutdown()
