# Shared Tools
"""
Persistence tools for the webhook receiver.

- DynamoDB: disposable accounts and received messages
- S3: attachment bytes
"""

from qemail.tools.dynamodb import (
    create_account,
    get_forward_target,
    list_emails,
    load_active_account,
    parse_sender,
    store_email,
)
from qemail.tools.s3 import delete_attachments, store_attachment

__all__ = [
    "create_account",
    "delete_attachments",
    "get_forward_target",
    "list_emails",
    "load_active_account",
    "parse_sender",
    "store_attachment",
    "store_email",
]
