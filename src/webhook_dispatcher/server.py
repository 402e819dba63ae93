"""HTTP front door for the deploy webhook dispatcher.

Runs on a loopback port behind nginx. One thread per request; each request
re-reads hooks.json, so route changes need no restart.
"""

import argparse
import json
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from webhook_dispatcher.config import DispatcherSettings, get_settings
from webhook_dispatcher.dispatcher import Dispatcher, Response
from webhook_dispatcher.errors import ConfigUnreadable, PayloadTooLarge
from webhook_dispatcher.executor import DeployExecutor
from webhook_dispatcher.logging import get_logger, setup_logging
from webhook_dispatcher.runner import ShellProcessRunner
from webhook_dispatcher.store import ConfigStore

logger = get_logger(__name__)

DISCARD_CHUNK = 64 * 1024


class DeployWebhookServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, dispatcher: Dispatcher, max_body_bytes: int) -> None:
        super().__init__(address, DeployHandler)
        self.dispatcher = dispatcher
        self.max_body_bytes = max_body_bytes


class DeployHandler(BaseHTTPRequestHandler):
    server: DeployWebhookServer
    server_version = "deploy-webhooks"

    def _send_json(self, response: Response) -> None:
        payload = json.dumps(response.body).encode("utf-8")
        self.send_response(response.status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = -1
        if length < 0:
            self.close_connection = True
            raise ValueError("invalid Content-Length")
        if length > self.server.max_body_bytes:
            # Closing on unread data makes the kernel reset before the 413 arrives
            self._discard(length)
            self.close_connection = True
            raise PayloadTooLarge(f"{length} bytes")
        return self.rfile.read(length) if length else b""

    def _discard(self, length: int) -> None:
        while length > 0:
            chunk = self.rfile.read(min(length, DISCARD_CHUNK))
            if not chunk:
                break
            length -= len(chunk)

    def _dispatch(self) -> None:
        path = self.path.split("?", 1)[0]
        try:
            body = self._read_body()
        except PayloadTooLarge as e:
            logger.warning("request_rejected", status=e.status_code, path=path)
            self._send_json(Response(e.status_code, {"ok": False, "error": e.message}))
            return
        except ValueError:
            self._send_json(Response(400, {"ok": False, "error": "bad request"}))
            return

        response = self.server.dispatcher.handle(self.command, path, self.headers, body)
        self._send_json(response)

    do_GET = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch
    do_OPTIONS = _dispatch
    do_HEAD = _dispatch

    def log_message(self, format, *args) -> None:
        logger.info("http_access", client=self.address_string(), line=format % args)


def build_dispatcher(settings: DispatcherSettings) -> Dispatcher:
    runner = ShellProcessRunner(
        git_user=settings.git_user,
        git_bin=settings.git_bin,
        npm_bin=settings.npm_bin,
        pm2_bin=settings.pm2_bin,
    )
    executor = DeployExecutor(runner, timeout=settings.deploy_timeout_seconds)
    return Dispatcher(ConfigStore(settings.hooks_config_path), executor)


def create_server(settings: DispatcherSettings) -> DeployWebhookServer:
    """Bind the server; the listen address comes from hooks.json unless overridden.

    Raises:
        ConfigUnreadable: hooks.json cannot be loaded at startup.
    """
    dispatcher = build_dispatcher(settings)
    snapshot = dispatcher.store.load()
    host = settings.listen_host or snapshot.listen_host
    port = settings.listen_port if settings.listen_port is not None else snapshot.listen_port
    return DeployWebhookServer((host, port), dispatcher, settings.max_body_bytes)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deploy webhook dispatcher.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path of hooks.json (default: HOOKS_CONFIG_PATH or /opt/deploy-webhooks/hooks.json).",
    )
    parser.add_argument("--host", type=str, default=None, help="Override listen host.")
    parser.add_argument("--port", type=int, default=None, help="Override listen port.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    overrides = {
        key: value
        for key, value in (
            ("hooks_config_path", args.config),
            ("listen_host", args.host),
            ("listen_port", args.port),
        )
        if value is not None
    }
    settings = get_settings().model_copy(update=overrides)
    setup_logging(json_output=settings.log_json, log_level=settings.log_level)

    try:
        server = create_server(settings)
    except (ConfigUnreadable, OSError) as e:
        # OSError: address in use or not permitted
        logger.error("startup_failed", error=str(e))
        return 1

    host, port = server.server_address[:2]
    logger.info(
        "server_listening",
        host=host,
        port=port,
        config=settings.hooks_config_path,
        git_user=settings.git_user or None,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("server_stopping")
    finally:
        server.server_close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
