"""
Inbox Models

Records stored in the accounts and emails DynamoDB tables.

Accounts table:  PK email_address
Emails table:    PK account_address, SK <received_at>#<message_id>
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class InboxAccount:
    """A disposable address that can receive mail."""

    email_address: str
    forward_to: str | None = None
    expires_at: int | None = None  # Unix epoch seconds; None never expires
    created_at: int = 0

    def is_active(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > (time.time() if now is None else now)

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to DynamoDB item."""
        item: dict[str, Any] = {
            "email_address": self.email_address,
            "created_at": self.created_at,
        }
        if self.forward_to:
            item["forward_to"] = self.forward_to
        if self.expires_at is not None:
            item["expires_at"] = self.expires_at
        return item

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "InboxAccount":
        """Parse from DynamoDB item."""
        expires_at = item.get("expires_at")
        return cls(
            email_address=item["email_address"],
            forward_to=item.get("forward_to"),
            expires_at=int(expires_at) if expires_at is not None else None,
            created_at=int(item.get("created_at", 0)),
        )


@dataclass(frozen=True)
class StoredAttachment:
    """Attachment bytes persisted to S3."""

    filename: str
    s3_key: str
    mime_type: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "s3_key": self.s3_key,
            "mime_type": self.mime_type,
            "size": self.size,
        }


@dataclass(frozen=True)
class StoredEmail:
    """A received message as persisted in the emails table."""

    account_address: str
    message_id: str
    sender: str
    recipient: str
    subject: str
    received_at: str
    sender_name: str | None = None
    body_text: str | None = None
    body_html: str | None = None
    raw_headers: dict[str, Any] = field(default_factory=dict)
    attachments: list[StoredAttachment] = field(default_factory=list)
    is_read: bool = False

    @property
    def sort_key(self) -> str:
        return f"{self.received_at}#{self.message_id}"

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to DynamoDB item. Empty optional fields are left out."""
        item: dict[str, Any] = {
            "account_address": self.account_address,
            "sort_key": self.sort_key,
            "message_id": self.message_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "subject": self.subject,
            "received_at": self.received_at,
            "raw_headers": json.dumps(self.raw_headers),
            "attachments": [att.to_dict() for att in self.attachments],
            "is_read": self.is_read,
        }
        if self.sender_name:
            item["sender_name"] = self.sender_name
        if self.body_text is not None:
            item["body_text"] = self.body_text
        if self.body_html is not None:
            item["body_html"] = self.body_html
        return item

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "StoredEmail":
        """Parse from DynamoDB item."""
        return cls(
            account_address=item["account_address"],
            message_id=item["message_id"],
            sender=item.get("sender", ""),
            recipient=item.get("recipient", ""),
            subject=item.get("subject", ""),
            received_at=item.get("received_at", ""),
            sender_name=item.get("sender_name"),
            body_text=item.get("body_text"),
            body_html=item.get("body_html"),
            raw_headers=json.loads(item.get("raw_headers") or "{}"),
            attachments=[
                StoredAttachment(
                    filename=att["filename"],
                    s3_key=att["s3_key"],
                    mime_type=att["mime_type"],
                    size=int(att["size"]),
                )
                for att in item.get("attachments", [])
            ],
            is_read=bool(item.get("is_read", False)),
        )
