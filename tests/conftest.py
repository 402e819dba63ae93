from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

import pytest
import structlog

from webhook_dispatcher.executor import DeployExecutor
from webhook_dispatcher.models import StepResult
from webhook_dispatcher.store import ConfigStore


class FakeRunner:
    """Records pipeline calls instead of running git/npm/pm2."""

    def __init__(self, fail: dict[str, int] | None = None) -> None:
        self.fail = fail or {}
        self.calls: list[tuple] = []
        self._lock = threading.Lock()

    def _result(self, step: str, *args: str) -> StepResult:
        with self._lock:
            self.calls.append((step, *args))
        code = self.fail.get(step, 0)
        return StepResult(
            step=step,
            command=[step, *args],
            returncode=code,
            stdout=f"{step} ok\n" if code == 0 else "",
            stderr=f"{step} exploded\n" if code else "",
        )

    def fetch(self, directory, *, timeout):
        return self._result("fetch", directory)

    def reset_hard(self, directory, branch, *, timeout):
        return self._result("reset", directory, branch)

    def install_dependencies(self, directory, *, timeout):
        return self._result("install", directory)

    def restart_process(self, name, *, timeout):
        return self._result("restart", name)

    @property
    def steps(self) -> list[str]:
        return [call[0] for call in self.calls]


SIMPLE_LIVE = {
    "type": "simple",
    "id": "app-live",
    "path": "/_deploy/live",
    "host": "example.com",
    "dir": "/var/www/app/live",
    "branch": "main",
    "pm2": "app-live",
    "secret": "S1",
}

GITHUB_APP = {
    "id": "app",
    "path": "/_github",
    "secret": "GH1",
    "repo": "acme/app",
    "map": {
        "refs/heads/main": {
            "dir": "/var/www/app/live",
            "pm2": "app-live",
            "branch": "main",
        }
    },
}


@pytest.fixture
def hooks_file(tmp_path: Path):
    """Write a hooks.json and return its path; call again to rewrite it."""
    path = tmp_path / "hooks.json"

    def write(hooks=None, github=None, **extra) -> Path:
        cfg = {
            "listenHost": "127.0.0.1",
            "listenPort": 9000,
            "hooks": hooks if hooks is not None else [SIMPLE_LIVE],
            "github": github if github is not None else [GITHUB_APP],
            **extra,
        }
        path.write_text(json.dumps(cfg), encoding="utf-8")
        return path

    return write


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def executor(runner: FakeRunner) -> DeployExecutor:
    return DeployExecutor(runner, timeout=30)


@pytest.fixture
def store(hooks_file) -> ConfigStore:
    return ConfigStore(hooks_file())


@pytest.fixture(autouse=True)
def reset_logging():
    """setup_logging() may bind a stream that pytest closes after the test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers = handlers
    root.setLevel(level)
