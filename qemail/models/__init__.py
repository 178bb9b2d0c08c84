# Shared Models
"""
Pydantic models for the webhook wire format and dataclasses for inbox records.
"""

from qemail.models.inbox import InboxAccount, StoredAttachment, StoredEmail
from qemail.models.webhook import (
    AttachmentItem,
    ForwardLookupReply,
    WebhookPayload,
    WebhookReply,
)

__all__ = [
    # Wire format
    "AttachmentItem",
    "WebhookPayload",
    "WebhookReply",
    "ForwardLookupReply",
    # Inbox records
    "InboxAccount",
    "StoredAttachment",
    "StoredEmail",
]
