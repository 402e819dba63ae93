#!/usr/bin/env python3
"""Register and remove deploy routes in hooks.json.

Used by provisioning after an app or branch has been set up on the host.
The running dispatcher picks changes up on its next request.

Run with: python scripts/manage_hooks.py init
App:      python scripts/manage_hooks.py add-app shop git@github.com:acme/shop.git \\
              --live-dir /var/www/shop/live --live-domain shop.example.com
Branch:   python scripts/manage_hooks.py add-branch shop feature-x \\
              --dir /var/www/shop/feature-x --domain feature-x.shop.example.com \\
              --repo acme/shop
Remove:   python scripts/manage_hooks.py remove-branch shop feature-x --repo acme/shop
List:     python scripts/manage_hooks.py list

Exit codes:
  0 = success
  1 = error (message on stderr)
"""

import argparse
import os
import sys

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from webhook_dispatcher import registry  # noqa: E402
from webhook_dispatcher.logging import setup_logging  # noqa: E402

DEFAULT_CONFIG = os.getenv("HOOKS_CONFIG_PATH", "/opt/deploy-webhooks/hooks.json")


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for secrets."""
    print(msg, file=sys.stderr)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Maintain the deploy webhook routing table.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG,
        help=f"Path of hooks.json (default: {DEFAULT_CONFIG}).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create hooks.json if it does not exist.")
    init.add_argument("--listen-host", default="127.0.0.1")
    init.add_argument("--listen-port", type=int, default=9000)

    app = sub.add_parser("add-app", help="Register live/dev/staging deploys for an app.")
    app.add_argument("app")
    app.add_argument("repo_url")
    app.add_argument("--branch", default="main", help="Default (live) branch.")
    app.add_argument("--live-dir", required=True)
    app.add_argument("--live-domain", required=True)
    app.add_argument("--dev-dir", default="")
    app.add_argument("--dev-domain", default="")
    app.add_argument("--staging-dir", default="")
    app.add_argument("--staging-domain", default="")

    branch = sub.add_parser("add-branch", help="Register a feature-branch deploy.")
    branch.add_argument("app")
    branch.add_argument("branch")
    branch.add_argument("--dir", required=True)
    branch.add_argument("--domain", required=True)
    branch.add_argument("--pm2", default="", help="pm2 process name.")
    repo_group = branch.add_mutually_exclusive_group()
    repo_group.add_argument("--repo", default="", help="owner/name")
    repo_group.add_argument("--repo-url", default="", help="GitHub clone URL")

    remove = sub.add_parser("remove-branch", help="Remove a feature-branch deploy.")
    remove.add_argument("app")
    remove.add_argument("branch")
    remove.add_argument(
        "--repo", default="", help="Only remove the mapping from this owner/name."
    )

    sub.add_parser("list", help="Print routes without secrets.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), stream=sys.stderr)

    if args.command == "init":
        created = registry.ensure_config(args.config, args.listen_host, args.listen_port)
        _log(f"{'Created' if created else 'Exists'}: {args.config}")
        return 0

    try:
        cfg = registry.load_config(args.config)
    except (OSError, ValueError) as e:
        _log(f"ERROR: cannot load {args.config}: {e}")
        return 1

    if args.command == "list":
        for line in registry.describe_routes(cfg):
            print(line)
        return 0

    if args.command == "add-app":
        secrets = registry.add_app(
            cfg,
            args.app,
            args.repo_url,
            args.branch,
            args.live_dir,
            args.live_domain,
            dev_dir=args.dev_dir,
            dev_domain=args.dev_domain,
            staging_dir=args.staging_dir,
            staging_domain=args.staging_domain,
        )
        registry.save_config(args.config, cfg)
        for role in ("live", "dev", "staging", "github"):
            print(f"{role}: {secrets[role]}")
        return 0

    if args.command == "add-branch":
        repo_full = args.repo or registry.parse_owner_repo(args.repo_url)
        secrets = registry.add_branch(
            cfg,
            args.app,
            args.branch,
            args.dir,
            args.domain,
            pm2_name=args.pm2,
            repo_full=repo_full,
        )
        registry.save_config(args.config, cfg)
        print(f"simple: {secrets['simple']}")
        print(f"github: {secrets['github']}")
        return 0

    if args.command == "remove-branch":
        if not registry.remove_branch(cfg, args.app, args.branch, args.repo):
            _log(f"No routes found for {args.app}/{args.branch}")
        registry.save_config(args.config, cfg)
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
