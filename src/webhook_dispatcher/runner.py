"""ProcessRunner: the only place deploy commands are built and executed.

Commands are argument lists, never shell strings, so directory, branch and
process names from hooks.json are passed through verbatim without quoting.
"""

import os
import signal
import subprocess
import time
from typing import Protocol

from webhook_dispatcher.errors import DeployTimeout
from webhook_dispatcher.logging import get_logger
from webhook_dispatcher.models import StepResult

logger = get_logger(__name__)

# Time allowed to collect output after the process group was killed
KILL_GRACE_SECONDS = 5


class ProcessRunner(Protocol):
    """Capability the Deploy Executor needs from the host.

    ``timeout`` is the time left in the pipeline, in seconds. Implementations
    raise DeployTimeout when a command outlives it.
    """

    def fetch(self, directory: str, *, timeout: float) -> StepResult: ...

    def reset_hard(self, directory: str, branch: str, *, timeout: float) -> StepResult: ...

    def install_dependencies(self, directory: str, *, timeout: float) -> StepResult: ...

    def restart_process(self, name: str, *, timeout: float) -> StepResult: ...


class ShellProcessRunner:
    """Runs git (optionally as a dedicated user), npm and pm2 via subprocess."""

    def __init__(
        self,
        *,
        git_user: str = "gitdeploy",
        git_bin: str = "git",
        npm_bin: str = "npm",
        pm2_bin: str = "pm2",
    ) -> None:
        self.git_user = git_user
        self.git_bin = git_bin
        self.npm_bin = npm_bin
        self.pm2_bin = pm2_bin

    def _git(self, directory: str, *args: str) -> list[str]:
        cmd = [self.git_bin, "-C", directory, *args]
        if self.git_user:
            # Deploy keys belong to the git user; sudoers allows exactly this
            return ["sudo", "-u", self.git_user, *cmd]
        return cmd

    def _run(
        self, step: str, cmd: list[str], *, timeout: float, cwd: str | None = None
    ) -> StepResult:
        logger.debug("deploy_command", step=step, command=cmd)
        try:
            # Own session: on timeout the whole group (npm scripts, git helpers) is killed
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as e:
            # Missing executable or working directory: report it as a failed step
            return StepResult(step=step, command=cmd, returncode=127, stderr=str(e))

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            _kill_group(proc)
            try:
                stdout, stderr = proc.communicate(timeout=KILL_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                stdout, stderr = "", ""
            raise DeployTimeout(
                f"{step} did not finish within {timeout:.0f}s",
                output=_decode(stderr) or _decode(stdout),
            ) from e

        return StepResult(
            step=step,
            command=cmd,
            returncode=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )


    def fetch(self, directory: str, *, timeout: float) -> StepResult:
        return self._run(
            "fetch", self._git(directory, "fetch", "--all", "--prune"), timeout=timeout
        )

    def reset_hard(self, directory: str, branch: str, *, timeout: float) -> StepResult:
        return self._run(
            "reset",
            self._git(directory, "reset", "--hard", f"origin/{branch}"),
            timeout=timeout,
        )

    def install_dependencies(self, directory: str, *, timeout: float) -> StepResult:
        """``npm ci``, falling back to ``npm install`` when it fails."""
        started = time.monotonic()
        ci = self._run("install", [self.npm_bin, "ci"], timeout=timeout, cwd=directory)
        if ci.ok:
            return ci
        logger.info("npm_ci_failed_fallback", directory=directory, returncode=ci.returncode)
        remaining = timeout - (time.monotonic() - started)
        if remaining <= 0:
            raise DeployTimeout("install did not finish in time", output=ci.diagnostic)
        fallback = self._run(
            "install", [self.npm_bin, "install"], timeout=remaining, cwd=directory
        )
        if fallback.ok:
            fallback.stdout = ci.stdout + fallback.stdout
        return fallback

    def restart_process(self, name: str, *, timeout: float) -> StepResult:
        return self._run("restart", [self.pm2_bin, "restart", name], timeout=timeout)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        # sudo -u <git_user> runs as root; only sudo's own timeout handling reaches it
        logger.warning("deploy_kill_denied", pid=proc.pid)
