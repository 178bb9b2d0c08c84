"""
Webhook Models

Pydantic models for the JSON body the edge worker POSTs to the
incoming-email webhook, and for the receiver's replies.

Wire names are camelCase (messageId, receivedAt, mimeType) and the sender
travels as "from"; Python attributes use snake_case via aliases.
"""

from pydantic import BaseModel, ConfigDict, Field


class AttachmentItem(BaseModel):
    """Attachment reference carried in a webhook payload."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    filename: str = Field(..., description="Original filename")
    path: str = Field(..., description="data URI, HTTPS URL, or raw base64")
    mime_type: str = Field(..., alias="mimeType", description="MIME type")
    size: int = Field(..., ge=0, description="Size in bytes")


class WebhookPayload(BaseModel):
    """
    Structured inbound message.

    Produced by the edge worker, consumed by the webhook receiver.
    `headers` keys are lowercased; repeated headers become lists.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_address: str = Field(..., alias="from", description="Envelope sender")
    to: str = Field(..., description="Envelope recipient")
    subject: str = Field(..., description="Subject, '(No Subject)' when absent")
    text: str | None = Field(default=None, description="Concatenated plaintext parts")
    html: str | None = Field(default=None, description="Concatenated HTML parts")
    headers: dict[str, str | list[str]] = Field(default_factory=dict)
    message_id: str = Field(..., alias="messageId", description="RFC Message-ID")
    received_at: str = Field(..., alias="receivedAt", description="ISO-8601 timestamp")
    attachments: list[AttachmentItem] | None = Field(default=None)

    def to_json_body(self) -> dict:
        """Serialise with wire aliases, omitting absent optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WebhookReply(BaseModel):
    """Reply to a successful POST /incoming-email."""

    ok: bool
    id: str | None = None


class ForwardLookupReply(BaseModel):
    """Reply to GET /forward-lookup."""

    forward_to: str | None
