#!/usr/bin/env python3
"""Deploy webhook listener.

Runs on 127.0.0.1:9000 (listenHost/listenPort from hooks.json) behind nginx,
as the pm2 process "deploy-webhooks". Manual callers POST with
X-Webhook-Secret; GitHub POSTs signed push events to /_github.

Run with: python scripts/deploy_webhook.py
Custom:   python scripts/deploy_webhook.py --config ./hooks.json --port 9100
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add src/ to path when running from a checkout without installing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from webhook_dispatcher.server import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
