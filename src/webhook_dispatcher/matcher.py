"""Request Matcher: exact-path lookup of candidate routes."""

from typing import NamedTuple

from webhook_dispatcher.models import GitHubRouteEntry, RouteEntry, Snapshot


class Candidates(NamedTuple):
    simple: list[RouteEntry]
    github: list[GitHubRouteEntry]

    def __bool__(self) -> bool:
        return bool(self.simple or self.github)


def match(snapshot: Snapshot, path: str) -> Candidates:
    """Collect every route registered on exactly ``path``.

    No trailing-slash normalisation and no wildcards: ``/_deploy/live`` and
    ``/_deploy/live/`` are different routes. List order is preserved because
    disambiguation falls back to the first entry.
    """
    simple = [h for h in snapshot.hooks if h.path == path and h.is_simple]
    github = [g for g in snapshot.github if g.path == path]
    return Candidates(simple, github)


def request_host(host_header: str | None) -> str:
    """Hostname from a Host header, port stripped, case preserved."""
    if not host_header:
        return ""
    host = host_header.strip()
    if host.startswith("["):
        # IPv6 literal, e.g. [::1]:9000
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    return host.split(":", 1)[0]
