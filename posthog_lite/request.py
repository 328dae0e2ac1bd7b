import json
import logging
from datetime import date, datetime
from gzip import GzipFile
from io import BytesIO
from typing import Any, Optional, Union

import requests
from dateutil.tz import tzutc

from posthog_lite.utils import remove_trailing_slash
from posthog_lite.version import VERSION

_session = requests.sessions.Session()

DEFAULT_HOST = "https://app.posthog.com"
USER_AGENT = "posthog-lite/" + VERSION

FEATURE_FLAGS_PATH = "/api/feature_flag"


def post(
    path: str,
    body: dict,
    host: Optional[str] = None,
    gzip: bool = False,
    timeout: Optional[float] = None,
) -> requests.Response:
    """Post `body` as JSON to `path` on the API host"""
    log = logging.getLogger("posthog_lite")
    url = remove_trailing_slash(host or DEFAULT_HOST) + path
    data = json.dumps(body, cls=DatetimeSerializer)
    log.debug("making request: %s to url: %s", data, url)
    headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
    if gzip:
        headers["Content-Encoding"] = "gzip"
        buf = BytesIO()
        with GzipFile(fileobj=buf, mode="w") as gz:
            # 'data' was produced by json.dumps(),
            # whose default encoding is utf-8.
            gz.write(data.encode("utf-8"))
        data = buf.getvalue()

    return _session.post(url, data=data, headers=headers, timeout=timeout)


def get(
    personal_api_key: str,
    path: str,
    host: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Any:
    url = remove_trailing_slash(host or DEFAULT_HOST) + path
    res = _session.get(
        url,
        headers={
            "Authorization": "Bearer %s" % personal_api_key,
            "User-Agent": USER_AGENT,
        },
        timeout=timeout,
    )
    return _process_response(res, success_message=f"GET {url} completed successfully")


def _process_response(
    res: requests.Response, success_message: str, *, return_json: bool = True
) -> Union[requests.Response, Any]:
    log = logging.getLogger("posthog_lite")
    if 200 <= res.status_code < 300:
        log.debug(success_message)
        return res.json() if return_json else res
    try:
        log.debug("received response: %s", res.json())
    except ValueError:
        log.debug("received response: %s", res.text)
    raise APIError(res.status_code, res.reason or res.text)


def batch_post(
    api_key: str,
    host: Optional[str] = None,
    gzip: bool = False,
    timeout: Optional[float] = None,
    batch=None,
) -> requests.Response:
    """Post a batch of events to the ingestion endpoint"""
    body = {
        "api_key": api_key,
        "batch": batch or [],
        "sentAt": datetime.now(tz=tzutc()).isoformat(),
    }
    res = post("/batch/", body, host, gzip, timeout)
    return _process_response(
        res, success_message="data uploaded successfully", return_json=False
    )


def decide(
    api_key: str,
    host: Optional[str] = None,
    timeout: Optional[float] = None,
    distinct_id: str = "",
    groups: Optional[dict] = None,
) -> Any:
    """Ask the decide endpoint which flags are enabled for `distinct_id`"""
    body = {"distinct_id": distinct_id, "groups": groups or {}, "token": api_key}
    res = post("/decide/", body, host, timeout=timeout)
    return _process_response(res, success_message="Feature flags decided successfully")


def get_feature_flag_definitions(
    personal_api_key: str,
    host: Optional[str] = None,
    timeout: Optional[float] = None,
) -> list:
    response = get(personal_api_key, FEATURE_FLAGS_PATH, host, timeout)
    if isinstance(response, dict):
        return response.get("results") or []
    return response or []


class APIError(Exception):
    def __init__(self, status: Union[int, str], message: str):
        self.message = message
        self.status = status

    def __str__(self):
        msg = "[PostHog] {0} ({1})"
        return msg.format(self.message, self.status)


TransportError = APIError


class DatetimeSerializer(json.JSONEncoder):
    def default(self, obj: Any):
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()

        return json.JSONEncoder.default(self, obj)
