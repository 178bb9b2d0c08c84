#!/usr/bin/env python3
"""
Push a .eml file through the edge email worker.

Usage:
    QEMAIL_API_ENDPOINT=http://127.0.0.1:8000/api/v1/webhook/incoming-email \
    QEMAIL_WEBHOOK_SECRET=local-secret \
    python scripts/send_test_email.py message.eml --to inbox@example.test
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from lambdas.email_worker.handler import RawInboundMessage, handle_email


def main() -> int:
    parser = argparse.ArgumentParser(description="Deliver a .eml through the edge worker")
    parser.add_argument("eml", type=Path, help="Raw RFC-2822 message file")
    parser.add_argument("--to", required=True, help="Envelope recipient")
    parser.add_argument("--from", dest="mail_from", default="sender@example.com")
    args = parser.parse_args()

    message = RawInboundMessage(
        mail_from=args.mail_from,
        rcpt_to=args.to,
        data=args.eml.read_bytes(),
    )

    payload = asyncio.run(handle_email(message))
    if payload is None:
        print("Webhook is not configured (QEMAIL_API_ENDPOINT / QEMAIL_WEBHOOK_SECRET)", file=sys.stderr)
        return 1

    print(json.dumps(payload.to_json_body(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
