"""Monthly scheduler - opens one auto session per enabled template on the 1st.

Each template is processed independently; any failure is logged and counted
as skipped so the rest of the batch still runs. Idempotency comes from the
open-session guard and the per-month outbox key, not from locks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import PortalError
from app.db.enums import OutboxTemplate, SentVia
from app.db.models import Client, RequestTemplate
from app.services import email_outbox_service, request_template_service, submission_session_service
from app.utils.due_dates import add_months, next_due_date, period_key
from app.utils.timestamps import as_utc

logger = logging.getLogger(__name__)


@dataclass
class MonthlyRunResult:
    created: int = 0
    enqueued: int = 0
    skipped: int = 0
    ran: bool = True


def _first_eligible_month(template: RequestTemplate) -> tuple[int, int]:
    created = as_utc(template.created_at)
    year, month = created.year, created.month
    if template.start_next_month:
        year, month = add_months(year, month, 1)
    return year, month


def is_template_eligible_for(template: RequestTemplate, today: date) -> bool:
    """A template never fires for a month before it existed (or before its first month)."""
    return (today.year, today.month) >= _first_eligible_month(template)


def _process_template(
    db: Session, template: RequestTemplate, today: date, base_url: str, result: MonthlyRunResult
) -> None:
    if not is_template_eligible_for(template, today):
        result.skipped += 1
        return

    client = db.scalar(
        select(Client).where(
            Client.id == template.client_id,
            Client.organization_id == template.organization_id,
        )
    )
    if client is None or not client.active or not client.portal_enabled:
        result.skipped += 1
        return

    if submission_session_service.has_open_template_session(
        db, template.organization_id, client.id, template.id
    ):
        result.skipped += 1
        return

    doc_ids = request_template_service.get_template_document_ids(db, template)
    if not doc_ids:
        result.skipped += 1
        return

    due_day = submission_session_service.resolve_due_day(None, template, client)
    session = submission_session_service.create_session(
        db,
        client=client,
        document_request_ids=doc_ids,
        sent_via=SentVia.AUTO,
        template=template,
        due_on=next_due_date(due_day, today),
        expire_on_link_failure=True,
        commit=False,
    )
    result.created += 1

    email = (client.email or "").strip()
    if email:
        enqueue = email_outbox_service.enqueue_email(
            db,
            org_id=template.organization_id,
            to_email=email,
            template=OutboxTemplate.MANUAL_REQUEST_LINK,
            payload={
                "clientName": client.name,
                "link": submission_session_service.portal_link(base_url, session.public_token),
                "templateName": template.name,
                "sentVia": SentVia.AUTO.value,
                "dueOn": session.due_on.isoformat(),
            },
            idempotency_key=f"auto_request_link:{template.id}:{period_key(today)}",
            client_id=client.id,
            session_id=session.id,
        )
        if not enqueue.duplicate:
            session.request_sent_at = session.opened_at
            result.enqueued += 1
    db.commit()


def run_monthly_sessions(
    db: Session,
    *,
    today: date,
    base_url: str,
    limit: int = 500,
) -> MonthlyRunResult:
    """
    Open this month's auto sessions. Does nothing unless `today` is the 1st.

    `today` is the calendar date in the scheduler's timezone (or an explicit
    override); due dates are computed against it.
    """
    if today.day != 1:
        return MonthlyRunResult(ran=False)

    result = MonthlyRunResult()
    templates = db.scalars(
        select(RequestTemplate)
        .where(RequestTemplate.enabled.is_(True))
        .order_by(RequestTemplate.created_at)
        .limit(max(1, limit))
    ).all()

    for template in templates:
        try:
            _process_template(db, template, today, base_url, result)
        except PortalError as exc:
            db.rollback()
            logger.warning("Monthly run skipped template %s: %s", template.id, exc.message)
            result.skipped += 1
        except Exception:
            db.rollback()
            logger.exception("Monthly run failed for template %s", template.id)
            result.skipped += 1

    logger.info(
        "Monthly run %s: created=%d enqueued=%d skipped=%d",
        today.isoformat(),
        result.created,
        result.enqueued,
        result.skipped,
    )
    return result
