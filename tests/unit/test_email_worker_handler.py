"""
Unit tests for the edge email worker handler.

Tests cover:
- Payload building: subject/Message-ID fallbacks, header aggregation
- Delivery: shared secret header, non-2xx and transport failures
- Missing configuration
- lambda_handler event handling
"""

import asyncio
import base64
import json
import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from lambdas.email_worker.handler import (
    RawInboundMessage,
    build_payload,
    generate_message_id,
    handle_email,
    lambda_handler,
    require_webhook_config,
)
from qemail.config import Settings
from qemail.exceptions import ConfigurationError, StreamReadError, WebhookDeliveryError
from qemail.models.webhook import WebhookPayload
from tests.utils.message_generator import MessageGenerator

ENDPOINT = "https://api.example.test/api/v1/webhook/incoming-email"
_REAL_ASYNC_CLIENT = httpx.AsyncClient


@pytest.fixture
def settings() -> Settings:
    return Settings(api_endpoint=ENDPOINT, webhook_secret="worker-secret")


@pytest.fixture
def message(alternative_email, recipient) -> RawInboundMessage:
    return RawInboundMessage(
        mail_from="jane@example.com",
        rcpt_to=recipient,
        data=alternative_email,
        chunk_size=7,
    )


def _recording_client(status_code: int = 200):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 300, "id": "x"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


# ============================================================================
# Payload building
# ============================================================================


class TestBuildPayload:
    """Tests for build_payload."""

    def test_alternative_message(self, message, settings, recipient):
        received = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

        payload = asyncio.run(build_payload(message, settings, received_at=received))

        assert payload.from_address == "jane@example.com"
        assert payload.to == recipient
        assert payload.subject == "Weekly report"
        assert payload.text == "Report attached below"
        assert payload.html == "<p>Report attached below</p>"
        assert payload.message_id == "<weekly-001@example.com>"
        assert payload.received_at == "2026-10-19T12:00:00.000Z"

    def test_headers_lowercased_and_aggregated(self, message, settings):
        payload = asyncio.run(build_payload(message, settings))

        assert payload.headers["received"] == ["from mx1.example.com", "from mx2.example.com"]
        assert payload.headers["message-id"] == "<weekly-001@example.com>"
        assert "Subject" not in payload.headers

    def test_subject_and_message_id_fallbacks(self, settings):
        raw = b"Content-Type: text/plain\r\nSubject:   \r\n\r\nNo subject here"
        message = RawInboundMessage(mail_from="a@example.com", rcpt_to="b@example.com", data=raw)

        payload = asyncio.run(build_payload(message, settings))

        assert payload.subject == "(No Subject)"
        assert re.fullmatch(r"<\d+\.[0-9a-z]+@qemail\.worker>", payload.message_id)
        assert payload.text == "No subject here"
        assert payload.html is None

    def test_repeated_subject_values_are_joined(self, settings):
        raw = b"Subject: Part one\r\nSubject: part two\r\nContent-Type: text/plain\r\n\r\nbody"
        message = RawInboundMessage(mail_from="a@example.com", rcpt_to="b@example.com", data=raw)

        payload = asyncio.run(build_payload(message, settings))

        assert payload.subject == "Part one, part two"
        assert payload.headers["subject"] == ["Part one", "part two"]

    def test_message_without_separator_uses_whole_raw(self, settings):
        message = RawInboundMessage(mail_from="a@example.com", rcpt_to="b@example.com", data=b"just text")

        payload = asyncio.run(build_payload(message, settings))

        assert payload.text == "just text"

    def test_absent_parts_are_omitted_from_json(self, settings):
        raw = b"Content-Type: text/html\r\n\r\n<p>only html</p>"
        message = RawInboundMessage(mail_from="a@example.com", rcpt_to="b@example.com", data=raw)

        body = asyncio.run(build_payload(message, settings)).to_json_body()

        assert body["html"] == "<p>only html</p>"
        assert "text" not in body
        assert {"from", "to", "subject", "headers", "messageId", "receivedAt"} <= set(body)


def test_generate_message_id_format():
    assert re.fullmatch(r"<\d+\.[0-9a-z]+@example\.test>", generate_message_id("example.test"))


# ============================================================================
# Delivery
# ============================================================================


class TestHandleEmail:
    """Tests for handle_email."""

    def test_delivers_with_secret_header(self, message, settings, recipient):
        client, requests = _recording_client()

        payload = asyncio.run(handle_email(message, settings=settings, client=client))

        assert payload is not None
        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == ENDPOINT
        assert request.method == "POST"
        assert request.headers["x-webhook-secret"] == "worker-secret"
        sent = json.loads(request.content)
        assert sent["to"] == recipient
        assert sent["messageId"] == "<weekly-001@example.com>"
        assert sent["text"] == "Report attached below"

    def test_non_2xx_raises_for_redelivery(self, message, settings):
        client, _ = _recording_client(status_code=500)

        with pytest.raises(WebhookDeliveryError) as exc_info:
            asyncio.run(handle_email(message, settings=settings, client=client))

        assert exc_info.value.status_code == 500

    def test_unauthorized_raises(self, message, settings):
        client, _ = _recording_client(status_code=401)

        with pytest.raises(WebhookDeliveryError) as exc_info:
            asyncio.run(handle_email(message, settings=settings, client=client))

        assert exc_info.value.status_code == 401

    def test_transport_error_raises(self, message, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        with pytest.raises(WebhookDeliveryError) as exc_info:
            asyncio.run(handle_email(message, settings=settings, client=client))

        assert exc_info.value.status_code is None

    @pytest.mark.parametrize(
        "overrides",
        [{"api_endpoint": ""}, {"webhook_secret": ""}],
    )
    def test_missing_configuration_skips_delivery(self, message, overrides):
        settings = Settings(**{"api_endpoint": ENDPOINT, "webhook_secret": "s", **overrides})
        client, requests = _recording_client()

        result = asyncio.run(handle_email(message, settings=settings, client=client))

        assert result is None
        assert requests == []

    def test_require_webhook_config_names_setting(self):
        with pytest.raises(ConfigurationError) as exc_info:
            require_webhook_config(Settings(api_endpoint=ENDPOINT, webhook_secret=""))

        assert exc_info.value.setting == "webhook_secret"


# ============================================================================
# Lambda entry point
# ============================================================================


class TestLambdaHandler:
    """Tests for lambda_handler."""

    def test_unknown_event_format(self):
        response = lambda_handler({"Records": []}, None)

        assert response["statusCode"] == 400

    def test_delivered(self, alternative_email, recipient):
        payload = WebhookPayload(
            from_address="jane@example.com",
            to=recipient,
            subject="Weekly report",
            message_id="<weekly-001@example.com>",
            received_at="2026-10-19T12:00:00.000Z",
        )
        event = {
            "mailFrom": "jane@example.com",
            "rcptTo": recipient,
            "raw": base64.b64encode(alternative_email).decode(),
        }

        with patch(
            "lambdas.email_worker.handler.handle_email",
            new=AsyncMock(return_value=payload),
        ) as mock_handle:
            response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert response["body"]["message_id"] == "<weekly-001@example.com>"
        sent_message = mock_handle.call_args.args[0]
        assert sent_message.data == alternative_email
        assert sent_message.rcpt_to == recipient

    def test_rejected_delivery_propagates(self, alternative_email, recipient):
        """A failed POST escapes lambda_handler so the invoker retries."""

        def reject(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        event = {"rcptTo": recipient, "raw": base64.b64encode(alternative_email).decode()}

        with patch.object(
            httpx,
            "AsyncClient",
            side_effect=lambda **kwargs: _REAL_ASYNC_CLIENT(transport=httpx.MockTransport(reject), **kwargs),
        ):
            with pytest.raises(WebhookDeliveryError) as exc_info:
                lambda_handler(event, None)

        assert exc_info.value.status_code == 503
        assert exc_info.value.response_body == "maintenance"

    def test_stream_failure_propagates(self, alternative_email):
        event = {"raw": base64.b64encode(alternative_email).decode()}

        with patch(
            "lambdas.email_worker.handler.read_stream",
            new=AsyncMock(side_effect=StreamReadError(bytes_read=12, error_message="reset")),
        ):
            with pytest.raises(StreamReadError):
                lambda_handler(event, None)

    def test_not_configured(self, alternative_email):
        event = {"raw": base64.b64encode(alternative_email).decode()}

        with patch(
            "lambdas.email_worker.handler.handle_email",
            new=AsyncMock(return_value=None),
        ):
            response = lambda_handler(event, None)

        assert response["statusCode"] == 500
        assert response["body"]["status"] == "not_configured"


class TestGeneratedMessages:
    """Extraction over Faker-generated messages."""

    @pytest.mark.parametrize("seed", [1, 2, 3])
    @pytest.mark.parametrize(
        "kind,text_encoding,html_encoding",
        [
            ("alternative", "quoted-printable", "base64"),
            ("alternative", "base64", "7bit"),
            ("plain", "base64", "7bit"),
            ("html", "7bit", "quoted-printable"),
        ],
    )
    def test_extracts_what_was_generated(self, settings, recipient, seed, kind, text_encoding, html_encoding):
        generated = MessageGenerator(seed=seed).generate(
            recipient,
            kind=kind,
            text_encoding=text_encoding,
            html_encoding=html_encoding,
        )
        message = RawInboundMessage(
            mail_from=generated.mail_from,
            rcpt_to=generated.rcpt_to,
            data=generated.raw,
            chunk_size=64,
        )

        payload = asyncio.run(build_payload(message, settings))

        assert payload.subject == generated.subject
        assert payload.message_id == generated.message_id
        assert payload.text == generated.text
        assert payload.html == generated.html
        assert payload.headers["received"] == generated.received
