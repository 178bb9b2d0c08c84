"""
Local Webhook Receiver

Runs the webhook receiver against moto-mocked DynamoDB and S3 so the edge
worker can be exercised end to end without AWS.

Usage:
    python scripts/local_api_server.py --seed inbox@example.test
"""

import argparse
import os
import sys
from pathlib import Path

# Set environment for local mode BEFORE any other imports
os.environ.setdefault("QEMAIL_DYNAMODB_ENDPOINT_URL", "mock")
os.environ.setdefault("QEMAIL_S3_ENDPOINT_URL", "mock")
os.environ.setdefault("QEMAIL_ENVIRONMENT", "development")
os.environ.setdefault("QEMAIL_WEBHOOK_SECRET", "local-secret")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from moto import mock_aws

mock = mock_aws()
mock.start()

import boto3
import structlog

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

from api.app import create_app
from qemail.config import get_settings
from qemail.tools.dynamodb import create_account

get_settings.cache_clear()


def setup_local_dynamodb() -> None:
    """Create the accounts and emails tables."""
    settings = get_settings()
    dynamodb = boto3.resource("dynamodb", region_name=settings.aws_region)

    dynamodb.create_table(
        TableName=settings.dynamodb_accounts_table,
        KeySchema=[{"AttributeName": "email_address", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "email_address", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb.create_table(
        TableName=settings.dynamodb_emails_table,
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
    log.info(
        "dynamodb_tables_created",
        accounts=settings.dynamodb_accounts_table,
        emails=settings.dynamodb_emails_table,
    )


def setup_local_s3() -> None:
    """Create the attachments bucket."""
    settings = get_settings()
    s3 = boto3.client("s3", region_name=settings.aws_region)
    s3.create_bucket(
        Bucket=settings.s3_bucket_name,
        CreateBucketConfiguration={"LocationConstraint": settings.aws_region},
    )
    log.info("s3_bucket_created", bucket_name=settings.s3_bucket_name)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--seed",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="Disposable address to create (repeatable)",
    )
    args = parser.parse_args()

    setup_local_dynamodb()
    setup_local_s3()
    for address in args.seed:
        create_account(address)

    import uvicorn

    log.info("starting_local_api_server", host=args.host, port=args.port)
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
