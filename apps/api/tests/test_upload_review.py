"""Tests for upload review, session finalization and the accepted confirmation."""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.core.errors import NotFoundError, StateError, ValidationError
from app.db.enums import ReviewDecision, SessionStatus, UploadStatus
from app.db.models import AuditEvent, EmailOutboxEntry
from app.services import upload_review_service
from app.utils.timestamps import utcnow
from factories import make_session, make_upload


def _outbox_keys(db, session_id) -> set[str]:
    return set(
        db.scalars(
            select(EmailOutboxEntry.idempotency_key).where(
                EmailOutboxEntry.submission_session_id == session_id
            )
        ).all()
    )


# =============================================================================
# Review
# =============================================================================

def test_accept_sets_short_retention(db, test_client_record, test_documents, test_user):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])

    outcome = upload_review_service.review_upload(
        db,
        session.organization_id,
        upload.id,
        ReviewDecision.ACCEPTED,
        reviewer_id=test_user.id,
        retention=upload_review_service.RetentionPolicy(accepted_days=7),
    )

    assert outcome.upload.status == UploadStatus.ACCEPTED.value
    assert outcome.upload.denial_reason is None
    assert outcome.upload.reviewed_by_user_id == test_user.id
    delta = outcome.upload.delete_after_at - outcome.upload.reviewed_at
    assert delta == timedelta(days=7)


def test_deny_requires_reason(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])

    with pytest.raises(ValidationError):
        upload_review_service.review_upload(
            db, session.organization_id, upload.id, ReviewDecision.DENIED, denial_reason="   "
        )
    db.refresh(upload)
    assert upload.status == UploadStatus.PENDING.value


def test_deny_stores_trimmed_reason(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])

    outcome = upload_review_service.review_upload(
        db,
        session.organization_id,
        upload.id,
        "DENIED",
        denial_reason="  Page 2 missing ",
    )
    assert outcome.upload.status == UploadStatus.DENIED.value
    assert outcome.upload.denial_reason == "Page 2 missing"
    assert outcome.session_finalized is False


def test_invalid_decision_rejected(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])
    with pytest.raises(ValidationError):
        upload_review_service.review_upload(db, session.organization_id, upload.id, "MAYBE")


def test_review_is_one_way(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])
    upload_review_service.review_upload(
        db, session.organization_id, upload.id, ReviewDecision.ACCEPTED
    )

    with pytest.raises(StateError):
        upload_review_service.review_upload(
            db, session.organization_id, upload.id, ReviewDecision.DENIED, denial_reason="Wrong"
        )
    with pytest.raises(StateError):
        upload_review_service.review_upload(
            db, session.organization_id, upload.id, ReviewDecision.ACCEPTED
        )


def test_review_deleted_or_foreign_upload_not_found(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0], deleted_at=utcnow())

    with pytest.raises(NotFoundError):
        upload_review_service.review_upload(
            db, session.organization_id, upload.id, ReviewDecision.ACCEPTED
        )
    live = make_upload(db, session, test_documents[1])
    with pytest.raises(NotFoundError):
        upload_review_service.review_upload(db, uuid.uuid4(), live.id, ReviewDecision.ACCEPTED)


def test_review_is_audited(db, test_client_record, test_documents, test_user):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])
    upload_review_service.review_upload(
        db,
        session.organization_id,
        upload.id,
        ReviewDecision.DENIED,
        denial_reason="Blurry",
        reviewer_id=test_user.id,
    )
    event = db.scalar(select(AuditEvent).where(AuditEvent.target_id == upload.id))
    assert event.event_type == "upload_denied"
    assert event.actor_user_id == test_user.id


# =============================================================================
# Finalization
# =============================================================================

def test_session_finalizes_when_every_document_submitted(db, test_client_record, test_documents, test_user):
    statement, payslip = test_documents
    session = make_session(db, test_client_record, test_documents, created_by_user_id=test_user.id)

    first = make_upload(db, session, statement, uploaded=False)
    _, finalized = upload_review_service.complete_upload_submission(db, first, "https://portal.test")
    assert finalized is False

    second = make_upload(db, session, payslip, uploaded=False)
    _, finalized = upload_review_service.complete_upload_submission(db, second, "https://portal.test")
    assert finalized is True

    db.refresh(session)
    assert session.status == SessionStatus.FINALIZED.value
    assert session.finalized_at is not None

    notice = db.scalar(
        select(EmailOutboxEntry).where(
            EmailOutboxEntry.idempotency_key == f"session_finalized_notify:{session.id}"
        )
    )
    assert notice.to_email == test_user.email
    assert notice.payload["link"] == f"https://portal.test/inbox/{session.id}"


def test_completion_is_retry_safe(db, test_client_record, test_documents, test_user):
    session = make_session(db, test_client_record, [test_documents[0]])
    upload = make_upload(db, session, test_documents[0], uploaded=False)

    upload, first = upload_review_service.complete_upload_submission(db, upload)
    stamped = upload.uploaded_at
    upload, second = upload_review_service.complete_upload_submission(db, upload)

    assert first is True
    assert second is False
    assert upload.uploaded_at == stamped
    keys = _outbox_keys(db, session.id)
    assert keys == {f"session_finalized_notify:{session.id}"}


def test_denied_upload_does_not_count_toward_completion(db, test_client_record, test_documents):
    statement, payslip = test_documents
    session = make_session(db, test_client_record, test_documents)
    make_upload(db, session, statement, UploadStatus.DENIED)
    make_upload(db, session, payslip)

    assert upload_review_service.session_is_complete(db, session) is False
    assert upload_review_service.finalize_if_complete(db, session) is False


def test_unsubmitted_upload_does_not_count(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, [test_documents[0]])
    make_upload(db, session, test_documents[0], uploaded=False)
    assert upload_review_service.session_is_complete(db, session) is False


# =============================================================================
# All-accepted confirmation
# =============================================================================

def test_confirmation_sent_once_when_all_accepted(db, test_client_record, test_documents):
    statement, payslip = test_documents
    session = make_session(db, test_client_record, test_documents)
    first = make_upload(db, session, statement)
    second = make_upload(db, session, payslip)
    upload_review_service.finalize_if_complete(db, session)
    db.commit()

    outcome = upload_review_service.review_upload(
        db, session.organization_id, first.id, ReviewDecision.ACCEPTED
    )
    assert outcome.confirmation_enqueued is False

    outcome = upload_review_service.review_upload(
        db, session.organization_id, second.id, ReviewDecision.ACCEPTED
    )
    assert outcome.confirmation_enqueued is True

    db.refresh(session)
    assert session.accepted_confirmation_sent_at is not None
    assert f"all_docs_accepted:{session.id}" in _outbox_keys(db, session.id)

    # A later stray accept in the same session never sends a second confirmation.
    extra = make_upload(db, session, statement)
    outcome = upload_review_service.review_upload(
        db, session.organization_id, extra.id, ReviewDecision.ACCEPTED
    )
    assert outcome.confirmation_enqueued is False
    confirmations = [k for k in _outbox_keys(db, session.id) if k.startswith("all_docs_accepted")]
    assert len(confirmations) == 1


def test_confirmation_blocked_by_denied_upload(db, test_client_record, test_documents):
    statement, payslip = test_documents
    session = make_session(db, test_client_record, test_documents)
    make_upload(db, session, statement, UploadStatus.DENIED)
    accepted = make_upload(db, session, statement)
    other = make_upload(db, session, payslip)

    upload_review_service.review_upload(db, session.organization_id, accepted.id, ReviewDecision.ACCEPTED)
    outcome = upload_review_service.review_upload(
        db, session.organization_id, other.id, ReviewDecision.ACCEPTED
    )
    assert outcome.confirmation_enqueued is False
    db.refresh(session)
    assert session.accepted_confirmation_sent_at is None
