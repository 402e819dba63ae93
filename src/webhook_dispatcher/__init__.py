"""Deploy webhook dispatcher.

Maps inbound webhook requests to per-branch deploy targets from hooks.json,
authenticates them (shared secret or GitHub HMAC) and runs the
fetch/reset/install/restart pipeline.
"""

from webhook_dispatcher.dispatcher import Dispatcher, Response
from webhook_dispatcher.executor import DeployExecutor
from webhook_dispatcher.models import (
    DeployResult,
    DeployTarget,
    GitHubRouteEntry,
    RouteEntry,
    Snapshot,
)
from webhook_dispatcher.store import ConfigStore

__all__ = [
    "ConfigStore",
    "DeployExecutor",
    "DeployResult",
    "DeployTarget",
    "Dispatcher",
    "GitHubRouteEntry",
    "Response",
    "RouteEntry",
    "Snapshot",
]
