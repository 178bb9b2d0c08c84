"""
Custom Exceptions for the QEmail inbound pipeline

All exceptions follow the pattern of specific, actionable errors
with context needed for debugging and logging.

Malformed MIME input never raises; these cover configuration,
transport and persistence failures only.
"""

from dataclasses import dataclass
from typing import Any


class QEmailError(Exception):
    """Base exception for the QEmail inbound pipeline."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


@dataclass
class ConfigurationError(QEmailError):
    """Required upstream configuration is missing."""

    setting: str

    def __init__(self, setting: str) -> None:
        self.setting = setting
        super().__init__(
            f"Required setting '{setting}' is not configured",
            setting=setting,
        )


@dataclass
class StreamReadError(QEmailError):
    """Reading the raw message stream from the transport failed."""

    bytes_read: int

    def __init__(self, bytes_read: int, error_message: str | None = None) -> None:
        self.bytes_read = bytes_read
        super().__init__(
            f"Raw message stream failed after {bytes_read} bytes: "
            f"{error_message or 'Unknown error'}",
            bytes_read=bytes_read,
        )


@dataclass
class WebhookDeliveryError(QEmailError):
    """Webhook receiver rejected the payload or could not be reached."""

    endpoint: str
    status_code: int | None = None
    response_body: str | None = None

    def __init__(
        self,
        endpoint: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.response_body = response_body
        reason = f"status {status_code}" if status_code is not None else "transport error"
        super().__init__(
            f"Webhook delivery to '{endpoint}' failed: {reason}",
            status_code=status_code,
            response_body=response_body,
        )


@dataclass
class InboxNotFoundError(QEmailError):
    """No active disposable account exists for the recipient address."""

    address: str

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(
            f"No active account for {address}",
            address=address,
        )


@dataclass
class DynamoDBError(QEmailError):
    """DynamoDB operation failed."""

    operation: str  # "get", "put", "query"
    table_name: str

    def __init__(
        self,
        operation: str,
        table_name: str,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.table_name = table_name
        super().__init__(
            f"DynamoDB {operation} failed on table '{table_name}': {error_message or 'Unknown error'}",
            operation=operation,
            table_name=table_name,
            error_message=error_message,
        )


@dataclass
class S3Error(QEmailError):
    """S3 operation (or fetching the bytes to store) failed."""

    operation: str  # "upload", "delete", "fetch"
    bucket: str
    key: str | None = None

    def __init__(
        self,
        operation: str,
        bucket: str,
        key: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.bucket = bucket
        self.key = key
        super().__init__(
            f"S3 {operation} failed for s3://{bucket}/{key or '*'}: "
            f"{error_message or 'Unknown error'}",
            operation=operation,
            bucket=bucket,
            key=key,
            error_message=error_message,
        )
