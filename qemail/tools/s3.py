"""
S3 Tools

Attachment byte storage. Webhook payloads reference attachment content as
a data URI, an HTTP(S) URL or bare base64; the bytes are resolved and
stored under a random key.
"""

import base64
import binascii
import re
import secrets
from pathlib import PurePosixPath

import boto3
from botocore.exceptions import ClientError
import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from qemail.config import get_settings
from qemail.exceptions import S3Error
from qemail.models.inbox import StoredAttachment
from qemail.models.webhook import AttachmentItem

log = structlog.get_logger()

MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "image/bmp": ".bmp",
    "image/tiff": ".tif",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
    "text/html": ".html",
    "text/csv": ".csv",
    "application/zip": ".zip",
    "application/gzip": ".gz",
    "application/json": ".json",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-powerpoint": ".ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
}


_WHITESPACE = re.compile(r"\s+")
_URL_SAFE = str.maketrans("-_", "+/")


def decode_attachment_base64(value: str) -> bytes:
    """
    Decode attachment base64 leniently.

    Whitespace is ignored, the URL-safe alphabet is accepted and missing
    padding is restored.

    Raises:
        binascii.Error: If the content is not decodable base64
    """
    clean = _WHITESPACE.sub("", value).translate(_URL_SAFE).rstrip("=")
    if len(clean) % 4 == 1:
        raise binascii.Error(f"Invalid base64 length: {len(clean)}")
    return base64.b64decode(clean + "=" * (-len(clean) % 4), validate=True)


def _get_client():
    """Get S3 client."""
    settings = get_settings()
    return boto3.client("s3", **settings.s3_config)


def resolve_extension(filename: str, mime_type: str) -> str:
    """Extension from the filename, else from the MIME type, else ""."""
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    if suffix:
        return suffix
    return MIME_TO_EXT.get(mime_type.lower(), "")


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
def _fetch(client: httpx.Client, url: str) -> httpx.Response:
    """GET an attachment URL, retrying connection-level failures."""
    log.debug("attachment_fetch", url=url)
    return client.get(url)


def load_attachment_bytes(path: str, http_client: httpx.Client | None = None) -> bytes:
    """
    Resolve an attachment reference to bytes.

    Raises:
        S3Error: operation "fetch" when a URL cannot be downloaded
        binascii.Error: When base64 content is malformed
    """
    if path.startswith("data:"):
        _, _, encoded = path.partition(",")
        return decode_attachment_base64(encoded or path)

    if path.startswith(("http://", "https://")):
        settings = get_settings()
        client = http_client or httpx.Client(timeout=settings.webhook_timeout_seconds)
        try:
            response = _fetch(client, path)
        except httpx.HTTPError as e:
            raise S3Error(
                operation="fetch",
                bucket=settings.s3_bucket_name,
                error_message=f"{path}: {e}",
            ) from e
        finally:
            if http_client is None:
                client.close()
        if not response.is_success:
            raise S3Error(
                operation="fetch",
                bucket=settings.s3_bucket_name,
                error_message=f"Failed to fetch attachment ({response.status_code}): {path}",
            )
        return response.content

    return decode_attachment_base64(path)


def store_attachment(
    item: AttachmentItem,
    *,
    http_client: httpx.Client | None = None,
) -> StoredAttachment:
    """
    Store one attachment in S3.

    Key format: {prefix}{32 hex chars}{ext}

    Raises:
        S3Error: If the content cannot be fetched, decoded or uploaded
    """
    settings = get_settings()
    key = (
        f"{settings.s3_attachments_prefix}"
        f"{secrets.token_hex(16)}{resolve_extension(item.filename, item.mime_type)}"
    )

    try:
        content = load_attachment_bytes(item.path, http_client)
    except (binascii.Error, ValueError) as e:
        raise S3Error(
            operation="upload",
            bucket=settings.s3_bucket_name,
            key=key,
            error_message=f"Invalid base64 content for {item.filename}: {e}",
        ) from e

    try:
        _get_client().put_object(
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=content,
            ContentType=item.mime_type,
            Metadata={"original-filename": item.filename.encode("ascii", "replace").decode()},
        )
    except ClientError as e:
        log.error("s3_upload_failed", key=key, filename=item.filename, error=str(e))
        raise S3Error(
            operation="upload",
            bucket=settings.s3_bucket_name,
            key=key,
            error_message=str(e),
        ) from e

    log.info(
        "attachment_stored",
        filename=item.filename,
        key=key,
        size_bytes=len(content),
    )

    return StoredAttachment(
        filename=item.filename,
        s3_key=key,
        mime_type=item.mime_type,
        size=len(content),
    )


def delete_attachments(keys: list[str]) -> None:
    """
    Best-effort removal of stored attachments (used to roll back a failed store).
    """
    settings = get_settings()
    client = _get_client()
    for key in keys:
        try:
            client.delete_object(Bucket=settings.s3_bucket_name, Key=key)
        except ClientError as e:
            log.warning("s3_delete_failed", key=key, error=str(e))
