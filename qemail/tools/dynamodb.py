"""
DynamoDB Tools

Persistence for disposable accounts and the messages they receive.
"""

import re
import time
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
import structlog

from qemail.config import get_settings
from qemail.exceptions import DynamoDBError, InboxNotFoundError
from qemail.models.inbox import InboxAccount, StoredAttachment, StoredEmail
from qemail.models.webhook import WebhookPayload

log = structlog.get_logger()

SENDER_PATTERN = re.compile(r"^(.+?)\s*<(.+?)>$")


def _get_table(table_name: str):
    """Get DynamoDB table resource."""
    settings = get_settings()
    dynamodb = boto3.resource("dynamodb", **settings.dynamodb_config)
    return dynamodb.Table(table_name)


def parse_sender(sender: str) -> tuple[str, str | None]:
    """
    Split a sender into (address, display name).

    "Jane <jane@example.com>" -> ("jane@example.com", "Jane")
    "jane@example.com"        -> ("jane@example.com", None)
    """
    match = SENDER_PATTERN.match(sender)
    if not match:
        return sender, None
    return match.group(2).strip(), match.group(1).strip() or None


def create_account(
    email_address: str,
    *,
    forward_to: str | None = None,
    expires_at: int | None = None,
) -> InboxAccount:
    """
    Create (or overwrite) a disposable account.

    Raises:
        DynamoDBError: On DynamoDB operation failure
    """
    settings = get_settings()
    table = _get_table(settings.dynamodb_accounts_table)
    account = InboxAccount(
        email_address=email_address.lower(),
        forward_to=forward_to,
        expires_at=expires_at,
        created_at=int(time.time()),
    )

    try:
        table.put_item(Item=account.to_dynamodb())
    except ClientError as e:
        log.error("dynamodb_put_failed", email_address=email_address, error=str(e))
        raise DynamoDBError(
            operation="put",
            table_name=settings.dynamodb_accounts_table,
            error_message=str(e),
        ) from e

    log.info("account_created", email_address=account.email_address, expires_at=expires_at)
    return account


def load_active_account(email_address: str) -> InboxAccount | None:
    """
    Load an account that has not expired.

    Returns:
        InboxAccount if found and active, None otherwise

    Raises:
        DynamoDBError: On DynamoDB operation failure
    """
    settings = get_settings()
    table = _get_table(settings.dynamodb_accounts_table)

    try:
        response = table.get_item(Key={"email_address": email_address.lower()})
    except ClientError as e:
        log.error("dynamodb_get_failed", email_address=email_address, error=str(e))
        raise DynamoDBError(
            operation="get",
            table_name=settings.dynamodb_accounts_table,
            error_message=str(e),
        ) from e

    item = response.get("Item")
    if not item:
        return None

    account = InboxAccount.from_dynamodb(item)
    if not account.is_active():
        log.debug("account_expired", email_address=email_address, expires_at=account.expires_at)
        return None
    return account


def get_forward_target(email_address: str) -> str | None:
    """Forward-to address of an active account, if any."""
    account = load_active_account(email_address)
    return account.forward_to if account else None


def store_email(
    payload: WebhookPayload,
    attachments: list[StoredAttachment] | None = None,
) -> StoredEmail:
    """
    Persist a received message in the recipient's inbox.

    Raises:
        InboxNotFoundError: If the recipient has no active account
        DynamoDBError: On DynamoDB operation failure
    """
    settings = get_settings()

    account = load_active_account(payload.to)
    if account is None:
        log.warning("inbox_not_found", recipient=payload.to, message_id=payload.message_id)
        raise InboxNotFoundError(payload.to)

    sender_email, sender_name = parse_sender(payload.from_address)

    email = StoredEmail(
        account_address=account.email_address,
        message_id=payload.message_id,
        sender=sender_email,
        sender_name=sender_name,
        recipient=payload.to,
        subject=payload.subject or settings.default_subject,
        received_at=payload.received_at,
        body_text=payload.text,
        body_html=payload.html,
        raw_headers=dict(payload.headers),
        attachments=list(attachments or []),
    )

    table = _get_table(settings.dynamodb_emails_table)
    try:
        table.put_item(Item=email.to_dynamodb())
    except ClientError as e:
        log.error(
            "dynamodb_put_failed",
            recipient=payload.to,
            message_id=payload.message_id,
            error=str(e),
        )
        raise DynamoDBError(
            operation="put",
            table_name=settings.dynamodb_emails_table,
            error_message=str(e),
        ) from e

    log.info(
        "email_stored",
        account_address=email.account_address,
        message_id=email.message_id,
        sort_key=email.sort_key,
        attachment_count=len(email.attachments),
    )
    return email


def list_emails(email_address: str, *, limit: int = 50) -> list[StoredEmail]:
    """
    List an inbox, newest first.

    Raises:
        DynamoDBError: On DynamoDB operation failure
    """
    settings = get_settings()
    table = _get_table(settings.dynamodb_emails_table)

    query_kwargs: dict[str, Any] = {
        "KeyConditionExpression": Key("account_address").eq(email_address.lower()),
        "ScanIndexForward": False,
        "Limit": limit,
    }

    try:
        response = table.query(**query_kwargs)
    except ClientError as e:
        log.error("dynamodb_query_failed", email_address=email_address, error=str(e))
        raise DynamoDBError(
            operation="query",
            table_name=settings.dynamodb_emails_table,
            error_message=str(e),
        ) from e

    return [StoredEmail.from_dynamodb(item) for item in response.get("Items", [])]
