#!/usr/bin/env python3
"""Trigger a deploy by hand, the way CI or GitHub would.

Run with: python scripts/trigger_deploy.py simple https://shop.example.com/_deploy/live --secret S
GitHub:   python scripts/trigger_deploy.py github https://shop.example.com/_github \\
              --secret GH_SECRET --repo acme/shop --ref refs/heads/main
Health:   python scripts/trigger_deploy.py health http://127.0.0.1:9000/_deploy/health

Secrets may also come from DEPLOY_WEBHOOK_SECRET.

Exit codes:
  0 = dispatcher answered ok: true
  1 = deploy failed, rejected, or dispatcher unreachable
"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from webhook_dispatcher import client  # noqa: E402
from webhook_dispatcher.errors import TriggerError  # noqa: E402
from webhook_dispatcher.logging import setup_logging  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Trigger a deploy through the webhook dispatcher.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    simple = sub.add_parser("simple", help="POST with X-Webhook-Secret.")
    simple.add_argument("url")
    simple.add_argument("--secret", default=os.getenv("DEPLOY_WEBHOOK_SECRET", ""))

    github = sub.add_parser("github", help="POST a signed push payload.")
    github.add_argument("url")
    github.add_argument("--secret", default=os.getenv("DEPLOY_WEBHOOK_SECRET", ""))
    github.add_argument("--repo", required=True, help="owner/name")
    github.add_argument("--ref", default="refs/heads/main")

    health = sub.add_parser("health", help="GET the health endpoint.")
    health.add_argument("url")

    parser.add_argument("--timeout", type=float, default=client.DEFAULT_TIMEOUT)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(log_level=os.getenv("LOG_LEVEL", "WARNING"), stream=sys.stderr)

    if args.command in ("simple", "github") and not args.secret:
        print("ERROR: --secret or DEPLOY_WEBHOOK_SECRET required", file=sys.stderr)
        return 1

    try:
        if args.command == "simple":
            result = client.trigger_simple(args.url, args.secret, timeout=args.timeout)
        elif args.command == "github":
            result = client.trigger_github(
                args.url, args.secret, args.repo, args.ref, timeout=args.timeout
            )
        else:
            result = client.check_health(args.url, timeout=args.timeout)
    except TriggerError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    sys.exit(main())
