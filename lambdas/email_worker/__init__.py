"""
Edge Email Worker

Receives mail from the edge email-routing gateway, extracts plaintext and
HTML from the raw MIME message and forwards it to the backend webhook.

Flow:
    Sender
    → Email routing rule (disposable address)
    → This worker
    → POST /api/v1/webhook/incoming-email
"""

from lambdas.email_worker.handler import (
    InboundMessage,
    RawInboundMessage,
    build_payload,
    handle_email,
    lambda_handler,
)
from lambdas.email_worker.mime import (
    ExtractedContent,
    decode_part,
    extract_header_value,
    extract_message,
    extract_parts,
)
from lambdas.email_worker.stream import read_stream

__all__ = [
    "ExtractedContent",
    "InboundMessage",
    "RawInboundMessage",
    "build_payload",
    "decode_part",
    "extract_header_value",
    "extract_message",
    "extract_parts",
    "handle_email",
    "lambda_handler",
    "read_stream",
]
