"""
Configuration Management

Pydantic-settings based configuration for the QEmail inbound pipeline.
All settings can be overridden via environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with QEMAIL_ and are case-insensitive.
    Example: QEMAIL_WEBHOOK_SECRET=s3cret
    """

    model_config = SettingsConfigDict(
        env_prefix="QEMAIL_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Edge worker -> webhook
    api_endpoint: str = Field(
        default="",
        description="Full webhook URL the edge worker posts to",
    )
    webhook_secret: str = Field(
        default="",
        description="Shared secret sent as X-Webhook-Secret",
    )
    webhook_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for the webhook POST",
    )
    message_id_domain: str = Field(
        default="qemail.worker",
        description="Domain used when synthesising a missing Message-ID",
    )
    default_subject: str = Field(
        default="(No Subject)",
        description="Subject used when the message has none",
    )

    # DynamoDB Configuration
    dynamodb_accounts_table: str = Field(
        default="QEmailAccounts",
        description="DynamoDB table holding disposable addresses",
    )
    dynamodb_emails_table: str = Field(
        default="QEmailMessages",
        description="DynamoDB table holding received messages",
    )
    dynamodb_endpoint_url: str | None = Field(
        default=None,
        description="DynamoDB endpoint URL (for local development)",
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="qemail-attachments",
        description="S3 bucket for attachment bytes",
    )
    s3_attachments_prefix: str = Field(
        default="attachments/",
        description="Prefix for stored attachments",
    )
    s3_endpoint_url: str | None = Field(
        default=None,
        description="S3 endpoint URL (for local development)",
    )

    # AWS Configuration
    aws_region: str = Field(
        default="us-west-2",
        description="AWS region",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def dynamodb_config(self) -> dict:
        """DynamoDB client configuration."""
        config = {"region_name": self.aws_region}
        if self.dynamodb_endpoint_url and self.dynamodb_endpoint_url != "mock":
            config["endpoint_url"] = self.dynamodb_endpoint_url
        return config

    @property
    def s3_config(self) -> dict:
        """S3 client configuration."""
        config = {"region_name": self.aws_region}
        if self.s3_endpoint_url and self.s3_endpoint_url != "mock":
            config["endpoint_url"] = self.s3_endpoint_url
        return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call get_settings.cache_clear() in tests after changing the environment.
    """
    return Settings()
