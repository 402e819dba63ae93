import pytest

from webhook_dispatcher.matcher import match, request_host
from webhook_dispatcher.models import Snapshot

from conftest import GITHUB_APP, SIMPLE_LIVE


def _snapshot(hooks, github=()):
    return Snapshot.model_validate({"hooks": list(hooks), "github": list(github)})


def test_exact_path_only():
    snapshot = _snapshot([SIMPLE_LIVE], [GITHUB_APP])

    assert [h.id for h in match(snapshot, "/_deploy/live").simple] == ["app-live"]
    assert not match(snapshot, "/_deploy/live/")
    assert not match(snapshot, "/_deploy")
    assert not match(snapshot, "/_deploy/LIVE")


def test_github_entries_sharing_a_path_keep_order():
    other = {**GITHUB_APP, "id": "other", "repo": "acme/other"}
    snapshot = _snapshot([], [GITHUB_APP, other])

    candidates = match(snapshot, "/_github")
    assert candidates.simple == []
    assert [g.id for g in candidates.github] == ["app", "other"]


def test_non_simple_type_is_skipped():
    legacy = {**SIMPLE_LIVE, "id": "untyped"}
    del legacy["type"]
    other = {**SIMPLE_LIVE, "id": "other", "type": "github"}
    snapshot = _snapshot([other, legacy])

    assert [h.id for h in match(snapshot, "/_deploy/live").simple] == ["untyped"]


@pytest.mark.parametrize(
    "header,expected",
    [
        ("example.com", "example.com"),
        ("example.com:443", "example.com"),
        ("Example.COM", "Example.COM"),
        (" b.example.com ", "b.example.com"),
        ("[::1]:9000", "[::1]"),
        ("", ""),
        (None, ""),
    ],
)
def test_request_host(header, expected):
    assert request_host(header) == expected
