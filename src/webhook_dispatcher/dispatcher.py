"""Per-request flow: match, authenticate, deploy, render.

Transport-independent so the HTTP handler stays a thin adapter and the whole
decision table can be tested without sockets.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from webhook_dispatcher.auth import resolve_github, resolve_simple, verify_simple_secret
from webhook_dispatcher.errors import (
    DispatchError,
    MethodNotAllowed,
    NoCandidateMatched,
    NoRouteMatch,
)
from webhook_dispatcher.executor import DeployExecutor
from webhook_dispatcher.logging import get_logger
from webhook_dispatcher.matcher import match, request_host
from webhook_dispatcher.models import DeployResult, GitHubRouteEntry, RouteEntry
from webhook_dispatcher.store import ConfigStore

logger = get_logger(__name__)

HEALTH_PATH = "/_deploy/health"

SECRET_HEADER = "X-Webhook-Secret"
EVENT_HEADER = "X-GitHub-Event"
SIGNATURE_HEADER = "X-Hub-Signature-256"


@dataclass
class Response:
    status: int
    body: dict[str, Any] = field(default_factory=dict)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup for plain dicts as well as Message objects."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


def _error(exc: DispatchError) -> Response:
    return Response(exc.status_code, {"ok": False, "error": exc.message})


def _deploy_failure(result: DeployResult) -> dict[str, Any]:
    return {
        "ok": False,
        "error": "deploy timed out" if result.timed_out else "deploy failed",
        "details": result.output,
    }


class Dispatcher:
    def __init__(self, store: ConfigStore, executor: DeployExecutor) -> None:
        self.store = store
        self.executor = executor

    def handle(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes = b"",
    ) -> Response:
        """Answer one request. Never raises."""
        try:
            return self._handle(method.upper(), path, headers, body)
        except DispatchError as e:
            logger.warning(
                "request_rejected", status=e.status_code, path=path, reason=str(e)
            )
            return _error(e)
        except Exception:
            logger.exception("request_failed", path=path)
            return Response(500, {"ok": False, "error": "internal error"})

    def _handle(
        self, method: str, path: str, headers: Mapping[str, str], body: bytes
    ) -> Response:
        if method in ("GET", "HEAD") and path == HEALTH_PATH:
            return Response(200, {"ok": True, "pong": True})

        snapshot = self.store.load()
        candidates = match(snapshot, path)

        if candidates.simple:
            if method != "POST":
                raise MethodNotAllowed()
            return self._handle_simple(candidates.simple, headers)

        if candidates.github:
            if method != "POST":
                raise MethodNotAllowed()
            return self._handle_github(candidates.github, headers, body)

        raise NoRouteMatch(path)

    def _handle_simple(
        self, candidates: list[RouteEntry], headers: Mapping[str, str]
    ) -> Response:
        host = request_host(_header(headers, "Host"))
        entry = resolve_simple(candidates, host)
        verify_simple_secret(entry, _header(headers, SECRET_HEADER))

        logger.info("simple_deploy_accepted", id=entry.id, host=host)
        result = self.executor.deploy(entry.target())
        result.target_id = entry.id
        if not result.success:
            return Response(500, _deploy_failure(result))
        return Response(
            200, {"ok": True, "result": result.output, "id": entry.id, "host": host}
        )

    def _handle_github(
        self,
        candidates: list[GitHubRouteEntry],
        headers: Mapping[str, str],
        body: bytes,
    ) -> Response:
        event = _header(headers, EVENT_HEADER) or ""
        if event == "ping":
            logger.info("github_ping")
            return Response(200, {"ok": True, "pong": True})

        try:
            found = resolve_github(candidates, body, _header(headers, SIGNATURE_HEADER))
        except NoCandidateMatched as e:
            logger.info("github_event_ignored", github_event=event, reason=e.reason)
            return Response(200, {"ok": True, "ignored": e.reason})

        logger.info(
            "github_deploy_accepted",
            id=found.entry.id,
            github_event=event,
            repo=found.repo,
            ref=found.ref,
        )
        result = self.executor.deploy(found.target)
        result.target_id = found.entry.id
        result.repo = found.repo
        result.ref = found.ref
        if not result.success:
            body_out = _deploy_failure(result)
            body_out.update(repo=found.repo, ref=found.ref)
            return Response(500, body_out)
        return Response(
            200,
            {
                "ok": True,
                "result": result.output,
                "repo": found.repo,
                "ref": found.ref,
                "id": found.entry.id,
            },
        )
