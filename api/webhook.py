"""
Webhook Receiver Routes

Endpoints called by the edge email worker. Both require the shared
secret in X-Webhook-Secret.
"""

import secrets

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from qemail.config import Settings, get_settings
from qemail.exceptions import QEmailError
from qemail.models.inbox import StoredAttachment
from qemail.models.webhook import ForwardLookupReply, WebhookPayload, WebhookReply
from qemail.tools.dynamodb import get_forward_target, store_email
from qemail.tools.s3 import delete_attachments, store_attachment

log = structlog.get_logger()


def require_webhook_secret(
    x_webhook_secret: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject unless the header exactly matches the configured secret."""
    if not settings.webhook_secret:
        log.error("webhook_secret_not_configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized webhook")
    if x_webhook_secret is None or not secrets.compare_digest(
        x_webhook_secret.encode(), settings.webhook_secret.encode()
    ):
        log.warning("webhook_secret_mismatch", header_present=x_webhook_secret is not None)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized webhook")


router = APIRouter(
    prefix="/api/v1/webhook",
    tags=["webhook"],
    dependencies=[Depends(require_webhook_secret)],
)


@router.post("/incoming-email", response_model=WebhookReply)
def incoming_email(payload: WebhookPayload) -> WebhookReply:
    log.info(
        "incoming_email_received",
        recipient=payload.to,
        message_id=payload.message_id,
        attachment_count=len(payload.attachments or []),
    )

    stored_attachments: list[StoredAttachment] = []
    try:
        for item in payload.attachments or []:
            stored_attachments.append(store_attachment(item))
        email = store_email(payload, stored_attachments)
    except QEmailError:
        delete_attachments([att.s3_key for att in stored_attachments])
        raise

    return WebhookReply(ok=True, id=email.sort_key)


@router.get("/forward-lookup", response_model=ForwardLookupReply)
def forward_lookup(to: str = Query(..., min_length=1)) -> ForwardLookupReply:
    return ForwardLookupReply(forward_to=get_forward_target(to))
