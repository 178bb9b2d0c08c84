"""
Pytest Configuration and Shared Fixtures

Provides moto AWS mocking, raw message builders, and test utilities.
"""

import os
from collections.abc import Generator
from typing import Any

import boto3
import pytest
from moto import mock_aws

# Set test environment before importing application modules
os.environ["QEMAIL_WEBHOOK_SECRET"] = "test-secret"
os.environ["QEMAIL_API_ENDPOINT"] = "https://api.example.test/api/v1/webhook/incoming-email"
os.environ["QEMAIL_DYNAMODB_ACCOUNTS_TABLE"] = "TestQEmailAccounts"
os.environ["QEMAIL_DYNAMODB_EMAILS_TABLE"] = "TestQEmailMessages"
os.environ["QEMAIL_S3_BUCKET_NAME"] = "test-qemail-attachments"
os.environ["QEMAIL_AWS_REGION"] = "us-west-2"
os.environ["AWS_DEFAULT_REGION"] = "us-west-2"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from qemail.config import get_settings
from tests.utils.message_generator import crlf


@pytest.fixture(autouse=True)
def fresh_settings() -> Generator[None, None, None]:
    """Reload settings from the environment for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# --- AWS Mocking Fixtures ---


@pytest.fixture
def aws_credentials() -> dict[str, str]:
    """Mock AWS credentials for moto."""
    return {
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "region_name": "us-west-2",
    }


def _create_tables(dynamodb) -> None:
    dynamodb.create_table(
        TableName="TestQEmailAccounts",
        KeySchema=[{"AttributeName": "email_address", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "email_address", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb.create_table(
        TableName="TestQEmailMessages",
        KeySchema=[
            {"AttributeName": "account_address", "KeyType": "HASH"},
            {"AttributeName": "sort_key", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "account_address", "AttributeType": "S"},
            {"AttributeName": "sort_key", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_aws_all(aws_credentials) -> Generator[dict[str, Any], None, None]:
    """
    Mock all AWS services used by the webhook receiver.

    Creates the accounts/emails tables and the attachments bucket.
    """
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", **aws_credentials)
        _create_tables(dynamodb)

        s3 = boto3.client("s3", **aws_credentials)
        s3.create_bucket(
            Bucket="test-qemail-attachments",
            CreateBucketConfiguration={"LocationConstraint": "us-west-2"},
        )

        yield {"dynamodb": dynamodb, "s3": s3}


# --- Message Fixtures ---


@pytest.fixture
def recipient() -> str:
    """Sample disposable address."""
    return "k7x2q9@inbox.example.test"


@pytest.fixture
def alternative_email() -> bytes:
    """multipart/alternative message with a plain and an HTML part."""
    return crlf(
        "From: Jane Doe <jane@example.com>",
        "To: k7x2q9@inbox.example.test",
        "Subject: Weekly",
        "\treport",
        "Message-ID: <weekly-001@example.com>",
        "Received: from mx1.example.com",
        "Received: from mx2.example.com",
        "MIME-Version: 1.0",
        'Content-Type: multipart/alternative; boundary="alt-1"',
        "",
        "--alt-1",
        "Content-Type: text/plain; charset=utf-8",
        "",
        "Report attached below",
        "--alt-1",
        "Content-Type: text/html; charset=utf-8",
        "",
        "<p>Report attached below</p>",
        "--alt-1--",
        "",
    ).encode("utf-8")


@pytest.fixture
def webhook_body(recipient: str) -> dict[str, Any]:
    """JSON body as posted by the edge worker."""
    return {
        "from": "Jane Doe <jane@example.com>",
        "to": recipient,
        "subject": "Weekly report",
        "text": "Report attached below",
        "html": "<p>Report attached below</p>",
        "headers": {
            "subject": "Weekly report",
            "received": ["from mx1.example.com", "from mx2.example.com"],
        },
        "messageId": "<weekly-001@example.com>",
        "receivedAt": "2026-10-19T08:30:00.000Z",
    }
