"""
Webhook Client

POSTs a WebhookPayload to the backend's incoming-email endpoint,
authenticated with the shared secret header.
"""

import httpx
import structlog

from qemail.exceptions import WebhookDeliveryError
from qemail.models.webhook import WebhookPayload

log = structlog.get_logger()

WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"


async def deliver_payload(
    client: httpx.AsyncClient,
    endpoint: str,
    secret: str,
    payload: WebhookPayload,
) -> httpx.Response:
    """
    Deliver a payload to the webhook receiver.

    Not retried here: a raised error makes the mail transport redeliver.

    Raises:
        WebhookDeliveryError: On a non-2xx reply or transport failure
    """
    try:
        response = await client.post(
            endpoint,
            json=payload.to_json_body(),
            headers={WEBHOOK_SECRET_HEADER: secret},
        )
    except httpx.HTTPError as e:
        log.error("webhook_transport_failed", endpoint=endpoint, error=str(e))
        raise WebhookDeliveryError(endpoint=endpoint, response_body=str(e)) from e

    if not response.is_success:
        body = response.text or "(unreadable)"
        log.error(
            "webhook_rejected",
            endpoint=endpoint,
            status_code=response.status_code,
            response_body=body[:500],
        )
        raise WebhookDeliveryError(
            endpoint=endpoint,
            status_code=response.status_code,
            response_body=body,
        )

    return response
