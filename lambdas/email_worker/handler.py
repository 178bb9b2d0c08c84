"""
Edge Email Worker Handler

Entry point for mail handed over by the edge email-routing gateway.
Reads the raw RFC-2822 message, extracts subject/text/html and POSTs
the structured payload to the backend webhook.

Trigger: email routing rule for a disposable address
Output: POST {api_endpoint} with X-Webhook-Secret

Flow:
1. Normalise transport headers (lowercased, duplicates aggregated)
2. Read the raw stream to end-of-stream
3. Split off the top-level header block
4. Extract text/html from the MIME body
5. Deliver to the webhook; a failure re-raises so the transport redelivers
"""

import asyncio
import base64
import secrets
import string
import time
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
import structlog

from lambdas.email_worker.mime import (
    aggregate_headers,
    extract_parts,
    parse_header_block,
    split_header_body,
)
from lambdas.email_worker.stream import read_stream
from lambdas.email_worker.webhook_client import deliver_payload
from qemail.config import Settings, get_settings
from qemail.exceptions import ConfigurationError
from qemail.models.webhook import WebhookPayload

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

DEFAULT_CHUNK_SIZE = 64 * 1024
_BASE36 = string.digits + string.ascii_lowercase


class InboundMessage(Protocol):
    """What the mail transport hands the worker."""

    mail_from: str
    rcpt_to: str
    headers: Iterable[tuple[str, str]]

    def raw(self) -> AsyncIterator[bytes]: ...


@dataclass(frozen=True)
class RawInboundMessage:
    """
    InboundMessage backed by an in-memory .eml byte string.

    Used by the Lambda entry point, local scripts and tests. Headers are
    taken from the message's own top-level header block.
    """

    mail_from: str
    rcpt_to: str
    data: bytes
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @property
    def headers(self) -> list[tuple[str, str]]:
        text = self.data.decode("utf-8", errors="replace")
        split = split_header_body(text)
        return parse_header_block(split[0] if split else text)

    async def raw(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self.data), self.chunk_size):
            yield self.data[start:start + self.chunk_size]


def _header_value(headers: dict[str, str | list[str]], name: str) -> str:
    """Single header value; a repeated header reads as its values joined with ", "."""
    value = headers.get(name, "")
    if isinstance(value, list):
        return ", ".join(value)
    return value


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def require_webhook_config(settings: Settings) -> None:
    """
    Raises:
        ConfigurationError: If the webhook endpoint or shared secret is unset
    """
    if not settings.api_endpoint:
        raise ConfigurationError("api_endpoint")
    if not settings.webhook_secret:
        raise ConfigurationError("webhook_secret")


def generate_message_id(domain: str) -> str:
    """Synthesise a Message-ID for mail that arrived without one."""
    return f"<{int(time.time() * 1000)}.{_to_base36(secrets.randbits(52))}@{domain}>"


async def build_payload(
    message: InboundMessage,
    settings: Settings,
    *,
    received_at: datetime | None = None,
) -> WebhookPayload:
    """
    Build the webhook payload for one inbound message.

    Args:
        message: Inbound message from the transport
        settings: Settings supplying the subject / Message-ID fallbacks
        received_at: Override for the receive timestamp

    Returns:
        WebhookPayload ready for delivery

    Raises:
        StreamReadError: If the raw stream cannot be read
    """
    headers = aggregate_headers(message.headers)

    subject = _header_value(headers, "subject").strip() or settings.default_subject
    message_id = (
        _header_value(headers, "message-id").strip()
        or generate_message_id(settings.message_id_domain)
    )

    raw = await read_stream(message.raw())

    split = split_header_body(raw)
    body = split[1] if split is not None else raw

    content = extract_parts(body, _header_value(headers, "content-type"))

    received = received_at or datetime.now(timezone.utc)

    return WebhookPayload(
        from_address=message.mail_from,
        to=message.rcpt_to,
        subject=subject,
        text=content.text,
        html=content.html,
        headers=headers,
        message_id=message_id,
        received_at=received.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )


async def handle_email(
    message: InboundMessage,
    *,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> WebhookPayload | None:
    """
    Process one inbound message end to end.

    Returns:
        The delivered payload, or None when the webhook is not configured

    Raises:
        StreamReadError: Raw stream could not be read
        WebhookDeliveryError: Receiver replied non-2xx or was unreachable
    """
    settings = settings or get_settings()

    try:
        require_webhook_config(settings)
    except ConfigurationError as e:
        # No delivery can succeed, so redelivery would not help either
        log.error("webhook_not_configured", setting=e.setting, rcpt_to=message.rcpt_to)
        return None

    log.info("email_received", mail_from=message.mail_from, rcpt_to=message.rcpt_to)

    try:
        payload = await build_payload(message, settings)
    except Exception as e:
        log.error("email_parse_failed", rcpt_to=message.rcpt_to, error=str(e))
        raise

    log.info(
        "email_parsed",
        message_id=payload.message_id,
        subject=payload.subject,
        has_text=payload.text is not None,
        has_html=payload.html is not None,
        header_count=len(payload.headers),
    )

    if client is None:
        async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as owned:
            await deliver_payload(owned, settings.api_endpoint, settings.webhook_secret, payload)
    else:
        await deliver_payload(client, settings.api_endpoint, settings.webhook_secret, payload)

    log.info("webhook_delivered", message_id=payload.message_id, rcpt_to=payload.to)
    return payload


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Synchronous entry point.

    Event format:
        {"mailFrom": str, "rcptTo": str, "raw": base64 of the .eml}

    Delivery and stream failures propagate so the invoker retries.

    Returns:
        Response dict with processing status
    """
    request_id = getattr(context, "aws_request_id", "local")
    structlog.contextvars.bind_contextvars(request_id=request_id)

    log.info("processing_inbound_email", event_keys=list(event.keys()))

    if "raw" not in event:
        log.error("unknown_event_format", event_keys=list(event.keys()))
        return {"statusCode": 400, "body": {"error": "Unknown event format"}}

    message = RawInboundMessage(
        mail_from=event.get("mailFrom", ""),
        rcpt_to=event.get("rcptTo", ""),
        data=base64.b64decode(event["raw"]),
    )

    payload = asyncio.run(handle_email(message))
    if payload is None:
        return {"statusCode": 500, "body": {"status": "not_configured"}}

    return {
        "statusCode": 200,
        "body": {
            "status": "delivered",
            "message_id": payload.message_id,
            "to": payload.to,
        },
    }
