"""Authentication for both trigger schemes and GitHub target resolution.

Simple hooks: shared secret in ``X-Webhook-Secret``.
GitHub hooks: ``X-Hub-Signature-256`` HMAC-SHA256 over the raw request body.

All comparisons go through hmac.compare_digest on bytes.
"""

import hashlib
import hmac
import json
from typing import Any, NamedTuple

from webhook_dispatcher.errors import NoCandidateMatched, Unauthorized
from webhook_dispatcher.logging import get_logger
from webhook_dispatcher.models import DeployTarget, GitHubRouteEntry, RouteEntry

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def _constant_time_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def resolve_simple(candidates: list[RouteEntry], host: str) -> RouteEntry:
    """Pick the entry whose host equals ``host``, else the first one.

    Args:
        candidates: Non-empty list of simple entries sharing the request path.
        host: Request hostname without port (case-sensitive comparison).
    """
    for entry in candidates:
        if entry.host and entry.host == host:
            return entry
    return candidates[0]


def verify_simple_secret(entry: RouteEntry, provided: str | None) -> None:
    """Raise Unauthorized unless ``provided`` equals the entry's secret."""
    if not provided or not entry.secret:
        raise Unauthorized("missing secret")
    if not _constant_time_equal(provided, entry.secret):
        raise Unauthorized("secret mismatch")


def github_signature(body: bytes, secret: str) -> str:
    """Signature GitHub sends for ``body``: ``sha256=<hex digest>``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_github_signature(body: bytes, secret: str, header: str | None) -> bool:
    """Check ``X-Hub-Signature-256`` against the raw body.

    The body must be the exact bytes received; a re-serialised payload will
    not verify.
    """
    if not header or not header.startswith(SIGNATURE_PREFIX) or not secret:
        return False
    return _constant_time_equal(github_signature(body, secret), header)


class GitHubMatch(NamedTuple):
    entry: GitHubRouteEntry
    target: DeployTarget
    repo: str
    ref: str


def _parse_push(body: bytes) -> tuple[Any, Any]:
    payload = json.loads(body.decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("payload is not an object")
    repository = payload.get("repository")
    full_name = repository.get("full_name") if isinstance(repository, dict) else None
    return full_name, payload.get("ref")


def resolve_github(
    candidates: list[GitHubRouteEntry], body: bytes, signature: str | None
) -> GitHubMatch:
    """Find the first entry that verifies, matches the repo and maps the ref.

    Entries are tried in order and a failure on one moves on to the next,
    since several repositories conventionally share one path. The target
    always comes from the entry whose secret verified the body.

    Raises:
        NoCandidateMatched: No entry satisfied all three conditions. The
            reason is that of the last entry that verified but was rejected.
    """
    last_reason: str | None = None
    payload: tuple[Any, Any] | None = None

    for entry in candidates:
        if not verify_github_signature(body, entry.secret, signature):
            logger.debug("github_candidate_skipped", id=entry.id, reason="signature")
            continue

        if payload is None:
            try:
                payload = _parse_push(body)
            except (UnicodeDecodeError, ValueError) as e:
                # json.JSONDecodeError is a ValueError
                last_reason = f"invalid payload: {e}"
                logger.info("github_candidate_skipped", id=entry.id, reason="payload")
                continue
        full_name, ref = payload

        if entry.repository_full_name and full_name != entry.repository_full_name:
            last_reason = f"repo mismatch {full_name}"
            logger.info(
                "github_candidate_skipped",
                id=entry.id,
                reason="repo",
                repo=full_name,
                expected=entry.repository_full_name,
            )
            continue

        target = entry.ref_to_target.get(ref) if isinstance(ref, str) else None
        if target is None:
            last_reason = f"no mapping for {ref}"
            logger.info("github_candidate_skipped", id=entry.id, reason="ref", ref=ref)
            continue

        return GitHubMatch(entry, target, full_name, ref)

    raise NoCandidateMatched(last_reason or "no candidate matched")
