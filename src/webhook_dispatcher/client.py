"""Manual trigger client for the deploy webhook endpoints.

Retries failures where the request never reached the dispatcher (refused
connections, nginx 502/503 while it restarts). A deploy POST that timed out
is not resent: the first one may still be running.
"""

import json
from typing import Any

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from webhook_dispatcher.auth import github_signature
from webhook_dispatcher.dispatcher import EVENT_HEADER, SECRET_HEADER, SIGNATURE_HEADER
from webhook_dispatcher.errors import PermanentTriggerError, TransientTriggerError
from webhook_dispatcher.logging import get_logger

logger = get_logger(__name__)

# Answered by nginx while the dispatcher was down: the request never arrived
UNSENT_STATUS = frozenset({502, 503})
# 504 additionally means "no answer yet", which is only safe to retry for GETs
RETRYABLE_STATUS = UNSENT_STATUS | {504}

# Deploys run synchronously; npm install dominates
DEFAULT_TIMEOUT = 900


def push_payload(repo: str, ref: str) -> bytes:
    """Minimal push-event body the dispatcher needs."""
    return json.dumps({"ref": ref, "repository": {"full_name": repo}}).encode("utf-8")


def _decode(resp: requests.Response, *, idempotent: bool) -> dict[str, Any]:
    retryable = RETRYABLE_STATUS if idempotent else UNSENT_STATUS
    if resp.status_code in retryable:
        raise TransientTriggerError(f"gateway returned {resp.status_code}")
    if resp.status_code == 504:
        raise PermanentTriggerError(
            "gateway timed out; the deploy may still be running, check the app before retrying"
        )
    try:
        data = resp.json()
    except ValueError as e:
        raise PermanentTriggerError(
            f"non-JSON response ({resp.status_code}): {resp.text[:200]}"
        ) from e
    if not isinstance(data, dict):
        raise PermanentTriggerError(f"unexpected response body: {data!r}")
    data.setdefault("status", resp.status_code)
    return data


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TransientTriggerError),
    reraise=True,
)
def _send(method: str, url: str, *, timeout: float, **kwargs: Any) -> dict[str, Any]:
    """Send once per attempt. A POST is retried only if it never reached the dispatcher."""
    idempotent = method == "GET"
    try:
        resp = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.ConnectionError as e:
        # Includes ConnectTimeout
        logger.warning("trigger_request_failed", url=url, error=type(e).__name__)
        raise TransientTriggerError(str(e)) from e
    except requests.Timeout as e:
        logger.warning("trigger_request_failed", url=url, error=type(e).__name__)
        if idempotent:
            raise TransientTriggerError(str(e)) from e
        raise PermanentTriggerError(
            f"no answer within {timeout:.0f}s; the deploy may still be running"
        ) from e
    return _decode(resp, idempotent=idempotent)



def trigger_simple(url: str, secret: str, *, timeout: float = DEFAULT_TIMEOUT) -> dict[str, Any]:
    """POST to a simple hook with the shared secret header."""
    return _send("POST", url, timeout=timeout, headers={SECRET_HEADER: secret}, data=b"{}")


def trigger_github(
    url: str,
    secret: str,
    repo: str,
    ref: str,
    *,
    event: str = "push",
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """POST a push-style payload signed exactly as GitHub signs it."""
    body = push_payload(repo, ref)
    headers = {
        "Content-Type": "application/json",
        EVENT_HEADER: event,
        SIGNATURE_HEADER: github_signature(body, secret),
    }
    return _send("POST", url, timeout=timeout, headers=headers, data=body)


def check_health(url: str, *, timeout: float = 10) -> dict[str, Any]:
    return _send("GET", url, timeout=timeout)
