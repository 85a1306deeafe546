"""Resend email delivery.

Sends rendered outbox emails through the Resend HTTP API with idempotency
keys and retry/backoff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from app.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


async def send_email_direct(
    api_key: str,
    to_email: str,
    subject: str,
    html: str,
    from_email: str,
    text: str | None = None,
    idempotency_key: str | None = None,
) -> SendResult:
    """
    Send one email via Resend.

    A 409 idempotency conflict means Resend already accepted this key and is
    reported as success.
    """
    payload: dict[str, object] = {
        "from": from_email,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    try:
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

            async def request_fn() -> httpx.Response:
                return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

            response = await request_with_retries(
                request_fn,
                max_attempts=RESEND_MAX_ATTEMPTS,
                base_delay=RESEND_RETRY_BASE_DELAY,
                max_delay=RESEND_RETRY_MAX_DELAY,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
    except httpx.TimeoutException:
        return SendResult(success=False, error="Connection timeout")
    except httpx.RequestError as e:
        logger.warning("Resend connection error: %s", e.__class__.__name__)
        return SendResult(success=False, error=f"Connection error: {e.__class__.__name__}")

    if 200 <= response.status_code < 300:
        data = response.json()
        return SendResult(success=True, message_id=data.get("id"))

    if response.status_code == 409:
        return SendResult(success=True)

    error_detail = None
    try:
        data = response.json()
        if isinstance(data, dict):
            error_detail = data.get("message") or data.get("name")
    except ValueError:
        error_detail = None
    return SendResult(
        success=False,
        error=f"Resend API error {response.status_code}: {error_detail or response.text[:200]}",
    )
