"""Outbox dispatcher - render, send and mark queued emails."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.structured_logging import mask_email
from app.services import email_outbox_service, resend_email_service
from app.services.email_templates import UnknownTemplateError, render_template

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0


@dataclass(frozen=True)
class DeliveryConfig:
    api_key: str
    from_email: str
    dry_run: bool
    max_attempts: int = email_outbox_service.DEFAULT_MAX_ATTEMPTS


async def dispatch_pending_emails(
    db: Session, config: DeliveryConfig, limit: int = 25
) -> DispatchResult:
    """
    Claim up to `limit` due outbox rows and attempt delivery of each.

    Every row is settled independently: sent rows are marked sent, failures
    are rescheduled with backoff (or failed after max attempts).
    """
    result = DispatchResult()
    entries = email_outbox_service.claim_pending_emails(db, limit=limit)

    for entry in entries:
        result.processed += 1
        try:
            rendered = render_template(entry.template, entry.payload)
        except UnknownTemplateError as exc:
            email_outbox_service.mark_email_failed(db, entry, str(exc), config.max_attempts)
            result.failed += 1
            continue

        if not config.api_key or not config.from_email:
            if config.dry_run:
                logger.info(
                    "Email dry-run: template=%s to=%s", entry.template, mask_email(entry.to_email)
                )
                email_outbox_service.mark_email_sent(db, entry)
                result.sent += 1
            else:
                email_outbox_service.mark_email_failed(
                    db, entry, "Email delivery not configured", config.max_attempts
                )
                result.failed += 1
            continue

        send = await resend_email_service.send_email_direct(
            api_key=config.api_key,
            to_email=entry.to_email,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            from_email=config.from_email,
            idempotency_key=entry.idempotency_key,
        )
        if send.success:
            email_outbox_service.mark_email_sent(db, entry)
            result.sent += 1
        else:
            logger.warning(
                "Email send failed: outbox=%s attempt=%s", entry.id, (entry.attempt_count or 0) + 1
            )
            email_outbox_service.mark_email_failed(
                db, entry, send.error or "Send failed", config.max_attempts
            )
            result.failed += 1

    return result
