"""Deploy Executor: fetch, reset, install, restart against one target.

At most one pipeline runs per working directory at a time. A second request
for the same directory waits for the lock, inside the same deadline that
bounds the pipeline itself.
"""

import os
import threading
import time
from collections.abc import Callable

from webhook_dispatcher.errors import DeployError, DeployStepFailed, DeployTimeout
from webhook_dispatcher.logging import get_logger
from webhook_dispatcher.models import DeployResult, DeployTarget, StepResult
from webhook_dispatcher.runner import ProcessRunner

logger = get_logger(__name__)


class TargetLocks:
    """Lazily created lock per normalised working directory."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @staticmethod
    def key(directory: str) -> str:
        return os.path.realpath(directory)

    def get(self, directory: str) -> threading.Lock:
        key = self.key(directory)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class DeployExecutor:
    def __init__(
        self,
        runner: ProcessRunner,
        *,
        timeout: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.timeout = timeout
        self.locks = TargetLocks()
        self._clock = clock

    def deploy(self, target: DeployTarget) -> DeployResult:
        """Run the pipeline and report which step, if any, failed.

        Subprocess failures are captured in the result, never raised. Only
        shell exit status is reported; application health is not probed.
        """
        deadline = self._clock() + self.timeout
        steps: list[StepResult] = []
        log = logger.bind(
            directory=target.working_directory,
            branch=target.branch,
            process=target.process_name,
        )

        lock = self.locks.get(target.working_directory)
        if not lock.acquire(timeout=self.timeout):
            log.error("deploy_lock_timeout", timeout=self.timeout)
            return DeployResult(
                success=False,
                output="another deploy of this directory is still running",
                timed_out=True,
            )

        log.info("deploy_started")
        try:
            self._run_pipeline(target, deadline, steps)
        except DeployTimeout as e:
            log.error("deploy_timed_out", error=str(e), steps_run=len(steps))
            return DeployResult(
                success=False,
                output=e.output or str(e),
                timed_out=True,
                steps=steps,
            )
        except DeployStepFailed as e:
            log.error("deploy_step_failed", step=e.step, steps_run=len(steps))
            return DeployResult(
                success=False,
                output=e.output,
                failed_step=e.step,
                steps=steps,
            )
        except DeployError as e:
            log.error("deploy_failed", error=str(e))
            return DeployResult(success=False, output=e.output or str(e), steps=steps)
        finally:
            lock.release()

        log.info("deploy_succeeded", steps_run=len(steps))
        return DeployResult(
            success=True,
            output="".join(step.stdout for step in steps),
            steps=steps,
        )

    def _remaining(self, deadline: float, step: str) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise DeployTimeout(f"deadline reached before {step}")
        return remaining

    def _run_pipeline(
        self, target: DeployTarget, deadline: float, steps: list[StepResult]
    ) -> None:
        directory = target.working_directory
        pipeline: list[tuple[str, Callable[[float], StepResult]]] = [
            ("fetch", lambda t: self.runner.fetch(directory, timeout=t)),
            (
                "reset",
                lambda t: self.runner.reset_hard(directory, target.branch, timeout=t),
            ),
            ("install", lambda t: self.runner.install_dependencies(directory, timeout=t)),
            (
                "restart",
                lambda t: self.runner.restart_process(target.process_name, timeout=t),
            ),
        ]
        for name, run in pipeline:
            result = run(self._remaining(deadline, name))
            steps.append(result)
            if not result.ok:
                raise DeployStepFailed(name, output=result.diagnostic)
