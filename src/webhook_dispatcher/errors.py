"""Error hierarchy for the deploy webhook dispatcher.

Every failure a request can hit is a DispatchError carrying the HTTP status
and the short message rendered to the caller. The handler converts these to
JSON responses; none of them is allowed to take the process down.
"""


class DispatchError(Exception):
    """Base exception for request-level failures."""

    status_code = 500
    message = "internal error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.message)
        self.detail = detail


class ConfigUnreadable(DispatchError):
    """Routing table file is missing or not valid structured data."""

    status_code = 500
    message = "config unreadable"


class Unauthorized(DispatchError):
    """Missing or wrong shared secret."""

    status_code = 401
    message = "unauthorized"


class MethodNotAllowed(DispatchError):
    status_code = 405
    message = "method not allowed"


class NoRouteMatch(DispatchError):
    status_code = 404
    message = "not found"


class PayloadTooLarge(DispatchError):
    status_code = 413
    message = "payload too large"


class NoCandidateMatched(Exception):
    """Authenticated-looking GitHub event with no repo/ref mapping.

    Not an error for the caller: rendered as 200 with an ``ignored`` reason
    so GitHub records the delivery as successful.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class DeployError(DispatchError):
    """Base for failures of the deploy pipeline itself."""

    status_code = 500
    message = "deploy failed"

    def __init__(self, detail: str = "", output: str = "") -> None:
        super().__init__(detail)
        self.output = output


class DeployStepFailed(DeployError):
    """A pipeline step exited non-zero. Remaining steps were not run."""

    def __init__(self, step: str, output: str = "") -> None:
        super().__init__(f"step {step} failed", output)
        self.step = step


class DeployTimeout(DeployError):
    """Pipeline exceeded its deadline, including the wait for the target lock."""

    message = "deploy timed out"


class TriggerError(Exception):
    """Base exception for the manual trigger client."""


class TransientTriggerError(TriggerError):
    """Connection failure or gateway error; worth retrying."""


class PermanentTriggerError(TriggerError):
    """Request reached the dispatcher and was answered; retrying won't help."""
