import json

import pytest

from webhook_dispatcher.auth import github_signature
from webhook_dispatcher.dispatcher import Dispatcher
from webhook_dispatcher.executor import DeployExecutor
from webhook_dispatcher.store import ConfigStore

from conftest import GITHUB_APP, SIMPLE_LIVE, FakeRunner


@pytest.fixture
def dispatcher(store, executor):
    return Dispatcher(store, executor)


def _push(repo="acme/app", ref="refs/heads/main") -> bytes:
    return json.dumps({"ref": ref, "repository": {"full_name": repo}, "pusher": {}}).encode()


def _gh_headers(body: bytes, secret="GH1", event="push") -> dict:
    return {
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": github_signature(body, secret),
        "Content-Type": "application/json",
    }


def test_health_needs_no_config(tmp_path, executor):
    dispatcher = Dispatcher(ConfigStore(tmp_path / "missing.json"), executor)
    response = dispatcher.handle("GET", "/_deploy/health", {})

    assert response.status == 200
    assert response.body == {"ok": True, "pong": True}


def test_simple_deploy_scenario(dispatcher, runner):
    response = dispatcher.handle(
        "POST",
        "/_deploy/live",
        {"Host": "example.com", "X-Webhook-Secret": "S1"},
    )

    assert response.status == 200
    assert response.body["ok"] is True
    assert response.body["id"] == "app-live"
    assert response.body["host"] == "example.com"
    assert response.body["result"].endswith("restart ok\n")
    assert ("restart", "app-live") in runner.calls


def test_simple_wrong_secret_is_401_and_never_deploys(dispatcher, runner):
    response = dispatcher.handle(
        "POST",
        "/_deploy/live",
        {"Host": "example.com", "X-Webhook-Secret": "wrong"},
    )

    assert response.status == 401
    assert response.body == {"ok": False, "error": "unauthorized"}
    assert "S1" not in json.dumps(response.body)
    assert runner.calls == []


def test_simple_missing_secret_is_401(dispatcher):
    response = dispatcher.handle("POST", "/_deploy/live", {"Host": "example.com"})
    assert response.status == 401


def test_headers_are_case_insensitive(dispatcher):
    response = dispatcher.handle(
        "POST", "/_deploy/live", {"host": "example.com:443", "x-webhook-secret": "S1"}
    )
    assert response.status == 200
    assert response.body["host"] == "example.com"


def test_simple_get_is_405(dispatcher):
    response = dispatcher.handle("GET", "/_deploy/live", {"X-Webhook-Secret": "S1"})
    assert response.status == 405
    assert response.body["error"] == "method not allowed"


def test_host_disambiguation_picks_matching_entry(hooks_file, executor, runner):
    a = {**SIMPLE_LIVE, "id": "a", "host": "a.example.com", "dir": "/srv/a", "pm2": "a", "secret": "SA"}
    b = {**SIMPLE_LIVE, "id": "b", "host": "b.example.com", "dir": "/srv/b", "pm2": "b", "secret": "SB"}
    dispatcher = Dispatcher(ConfigStore(hooks_file(hooks=[a, b])), executor)

    response = dispatcher.handle(
        "POST", "/_deploy/live", {"Host": "b.example.com", "X-Webhook-Secret": "SB"}
    )
    assert response.body["id"] == "b"
    assert runner.calls[0] == ("fetch", "/srv/b")

    # The first entry's secret does not open the second entry's host
    response = dispatcher.handle(
        "POST", "/_deploy/live", {"Host": "b.example.com", "X-Webhook-Secret": "SA"}
    )
    assert response.status == 401


def test_simple_deploy_failure_is_500_with_details(store):
    runner = FakeRunner(fail={"install": 1})
    dispatcher = Dispatcher(store, DeployExecutor(runner))

    response = dispatcher.handle(
        "POST", "/_deploy/live", {"Host": "example.com", "X-Webhook-Secret": "S1"}
    )
    assert response.status == 500
    assert response.body == {
        "ok": False,
        "error": "deploy failed",
        "details": "install exploded\n",
    }
    assert "restart" not in runner.steps


def test_unknown_path_is_404(dispatcher):
    response = dispatcher.handle("POST", "/_deploy/nope", {})
    assert response.status == 404
    assert response.body == {"ok": False, "error": "not found"}


def test_unreadable_config_is_500_not_a_crash(tmp_path, executor):
    path = tmp_path / "hooks.json"
    path.write_text("{")
    dispatcher = Dispatcher(ConfigStore(path), executor)

    response = dispatcher.handle("POST", "/_deploy/live", {})
    assert response.status == 500
    assert response.body == {"ok": False, "error": "config unreadable"}


def test_routes_change_without_restart(hooks_file, executor):
    path = hooks_file(hooks=[])
    dispatcher = Dispatcher(ConfigStore(path), executor)
    headers = {"Host": "example.com", "X-Webhook-Secret": "S1"}
    assert dispatcher.handle("POST", "/_deploy/live", headers).status == 404

    hooks_file()
    assert dispatcher.handle("POST", "/_deploy/live", headers).status == 200


def test_github_push_deploys_mapped_ref(dispatcher, runner):
    body = _push()
    response = dispatcher.handle("POST", "/_github", _gh_headers(body), body)

    assert response.status == 200
    assert response.body["repo"] == "acme/app"
    assert response.body["ref"] == "refs/heads/main"
    assert response.body["id"] == "app"
    assert runner.calls[1] == ("reset", "/var/www/app/live", "main")


def test_github_unmapped_ref_is_ignored(dispatcher, runner):
    body = _push(ref="refs/heads/dev")
    response = dispatcher.handle("POST", "/_github", _gh_headers(body), body)

    assert response.status == 200
    assert response.body == {"ok": True, "ignored": "no mapping for refs/heads/dev"}
    assert runner.calls == []


def test_github_bad_signature_is_ignored_not_rejected(dispatcher, runner):
    body = _push()
    response = dispatcher.handle("POST", "/_github", _gh_headers(body, secret="x"), body)

    assert response.status == 200
    assert response.body == {"ok": True, "ignored": "no candidate matched"}
    assert runner.calls == []


def test_github_ping_answers_even_with_bad_signature(dispatcher):
    body = b'{"zen": "Keep it logically awesome."}'
    headers = {"X-GitHub-Event": "ping", "X-Hub-Signature-256": "sha256=bogus"}

    response = dispatcher.handle("POST", "/_github", headers, body)
    assert response.status == 200
    assert response.body == {"ok": True, "pong": True}


def test_github_get_is_405(dispatcher):
    response = dispatcher.handle("GET", "/_github", {"X-GitHub-Event": "ping"})
    assert response.status == 405


def test_github_deploy_failure_includes_repo_and_ref(store):
    runner = FakeRunner(fail={"fetch": 128})
    dispatcher = Dispatcher(store, DeployExecutor(runner))
    body = _push()

    response = dispatcher.handle("POST", "/_github", _gh_headers(body), body)
    assert response.status == 500
    assert response.body["error"] == "deploy failed"
    assert response.body["repo"] == "acme/app"
    assert response.body["ref"] == "refs/heads/main"


def test_github_shared_path_picks_entry_by_signature(hooks_file, executor, runner):
    other = {
        "id": "other",
        "path": "/_github",
        "secret": "GH2",
        "repo": "acme/other",
        "map": {"refs/heads/main": {"dir": "/srv/other", "pm2": "other-live", "branch": "main"}},
    }
    dispatcher = Dispatcher(ConfigStore(hooks_file(github=[GITHUB_APP, other])), executor)
    body = _push(repo="acme/other")

    response = dispatcher.handle("POST", "/_github", _gh_headers(body, secret="GH2"), body)
    assert response.body["id"] == "other"
    assert runner.calls[-1] == ("restart", "other-live")


def test_simple_routes_shadow_github_on_same_path(hooks_file, executor):
    hook = {**SIMPLE_LIVE, "path": "/_github"}
    dispatcher = Dispatcher(ConfigStore(hooks_file(hooks=[hook])), executor)
    body = _push()

    response = dispatcher.handle("POST", "/_github", _gh_headers(body), body)
    assert response.status == 401


def test_timeout_is_reported_distinctly(store):
    executor = DeployExecutor(FakeRunner(), timeout=0.05)
    dispatcher = Dispatcher(store, executor)
    lock = executor.locks.get("/var/www/app/live")
    lock.acquire()
    try:
        response = dispatcher.handle(
            "POST", "/_deploy/live", {"Host": "example.com", "X-Webhook-Secret": "S1"}
        )
    finally:
        lock.release()

    assert response.status == 500
    assert response.body["error"] == "deploy timed out"


def test_unexpected_error_is_500(store):
    class Broken(FakeRunner):
        def fetch(self, directory, *, timeout):
            raise RuntimeError("boom")

    dispatcher = Dispatcher(store, DeployExecutor(Broken()))
    response = dispatcher.handle(
        "POST", "/_deploy/live", {"Host": "example.com", "X-Webhook-Secret": "S1"}
    )
    assert response.status == 500
    assert response.body == {"ok": False, "error": "internal error"}
