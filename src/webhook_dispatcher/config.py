"""Dispatcher configuration loaded from environment variables.

Only service-level knobs live here. The routing table (hooks.json) is not
settings: it is re-read from disk on every request by ConfigStore.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class DispatcherSettings(BaseSettings):
    """Service configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Routing table
    hooks_config_path: str = Field(
        default="/opt/deploy-webhooks/hooks.json",
        description="Path of the hooks.json routing table",
    )

    # Listen address overrides (hooks.json listenHost/listenPort otherwise)
    listen_host: str | None = Field(
        default=None,
        description="Override listenHost from hooks.json",
    )
    listen_port: int | None = Field(
        default=None,
        description="Override listenPort from hooks.json",
    )

    # Deploy pipeline commands
    git_user: str = Field(
        default="gitdeploy",
        description="User git runs as via sudo -u; empty runs git directly",
    )
    git_bin: str = Field(default="git", description="git executable")
    npm_bin: str = Field(default="npm", description="npm executable")
    pm2_bin: str = Field(default="pm2", description="pm2 executable")
    deploy_timeout_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Upper bound for one pipeline run, lock wait included",
    )

    # Request limits
    max_body_bytes: int = Field(
        default=25 * 1024 * 1024,
        gt=0,
        description="Largest accepted request body (GitHub caps payloads at 25 MB)",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_settings: DispatcherSettings | None = None


def get_settings() -> DispatcherSettings:
    """Get the dispatcher settings singleton.

    Returns:
        DispatcherSettings: Dispatcher configuration instance
    """
    global _settings
    if _settings is None:
        _settings = DispatcherSettings()
    return _settings
