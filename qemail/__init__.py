# Shared Infrastructure for the QEmail inbound pipeline
"""
Shared infrastructure used by the edge worker and the webhook receiver.

This package provides:
- Configuration management
- Custom exceptions
- Webhook payload and inbox record models
- DynamoDB and S3 tools
"""

from qemail.config import Settings, get_settings
from qemail.exceptions import (
    ConfigurationError,
    DynamoDBError,
    InboxNotFoundError,
    QEmailError,
    S3Error,
    StreamReadError,
    WebhookDeliveryError,
)

__all__ = [
    # Exceptions
    "QEmailError",
    "ConfigurationError",
    "StreamReadError",
    "WebhookDeliveryError",
    "InboxNotFoundError",
    "DynamoDBError",
    "S3Error",
    # Config
    "Settings",
    "get_settings",
]
