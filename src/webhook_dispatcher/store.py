"""Config Store: the hooks.json routing table, read fresh on every request.

External tooling (scripts/manage_hooks.py, provisioning) rewrites the file;
the next load() sees the new routes. There is no cache and no write path.
"""

import json
from pathlib import Path

from pydantic import ValidationError

from webhook_dispatcher.errors import ConfigUnreadable
from webhook_dispatcher.logging import get_logger
from webhook_dispatcher.models import Snapshot

logger = get_logger(__name__)


class ConfigStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Snapshot:
        """Read and validate the routing table.

        Raises:
            ConfigUnreadable: If the file is missing, unreadable, not JSON, or
                does not have the expected shape.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("config_unreadable", path=str(self.path), error=str(e))
            raise ConfigUnreadable(f"cannot read {self.path}: {e.strerror}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("config_unreadable", path=str(self.path), error=str(e))
            raise ConfigUnreadable(f"invalid JSON in {self.path}: {e}") from e

        if not isinstance(data, dict):
            logger.error("config_unreadable", path=str(self.path), error="not an object")
            raise ConfigUnreadable(f"{self.path} must contain a JSON object")

        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as e:
            logger.error(
                "config_unreadable",
                path=str(self.path),
                error_count=e.error_count(),
            )
            raise ConfigUnreadable(f"invalid routing table in {self.path}") from e

        logger.debug(
            "config_loaded",
            hooks=len(snapshot.hooks),
            github=len(snapshot.github),
        )
        return snapshot
