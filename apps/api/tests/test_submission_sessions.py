"""Tests for submission sessions: creation, due dates, expiry and replacement links."""
import uuid
from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.core.errors import ConflictError, NotFoundError, StateError, ValidationError
from app.db.enums import EmailStatus, SentVia, SessionStatus, UploadStatus
from app.db.models import EmailOutboxEntry, Organization, SubmissionSession
from app.services import submission_session_service
from factories import make_client, make_document, make_session, make_template, make_upload


# =============================================================================
# Creation & due dates
# =============================================================================

def test_due_day_override_wins(db, test_client_record, test_documents):
    session = submission_session_service.create_session(
        db,
        client=test_client_record,
        document_request_ids=[test_documents[0].id],
        sent_via=SentVia.MANUAL,
        due_day=10,
        today=date(2024, 3, 15),
    )
    assert session.due_on == date(2024, 4, 10)
    assert session.status == SessionStatus.OPEN.value
    assert len(session.public_token) >= 32


def test_template_due_day_beats_client_default(db, test_client_record, test_documents):
    template = make_template(db, test_client_record, test_documents, due_day_of_month=5)
    session = submission_session_service.create_session(
        db,
        client=test_client_record,
        document_request_ids=[d.id for d in test_documents],
        sent_via=SentVia.AUTO,
        template=template,
        today=date(2024, 3, 1),
    )
    assert session.due_on == date(2024, 3, 5)
    assert session.request_template_id == template.id


def test_client_default_due_day(db, test_client_record, test_documents):
    session = submission_session_service.create_session(
        db,
        client=test_client_record,
        document_request_ids=[test_documents[0].id],
        sent_via=SentVia.MANUAL,
        today=date(2024, 3, 1),
    )
    assert session.due_on == date(2024, 3, 25)


def test_requested_documents_keep_order_and_dedupe(db, test_client_record, test_documents):
    first, second = test_documents
    session = make_session(db, test_client_record, [second, first, second])
    assert submission_session_service.requested_document_ids(db, session) == [second.id, first.id]


def test_invalid_document_ids_are_listed(db, test_org, test_client_record, test_documents):
    other_client = make_client(db, test_org, name="Other", email=None)
    foreign = make_document(db, other_client, "Foreign doc")
    inactive = make_document(db, test_client_record, "Old doc", active=False)
    missing = uuid.uuid4()

    with pytest.raises(ValidationError) as exc:
        make_session(db, test_client_record, [test_documents[0], foreign, inactive])
    assert set(exc.value.invalid_ids) == {str(foreign.id), str(inactive.id)}

    with pytest.raises(ValidationError) as exc:
        submission_session_service.create_session(
            db,
            client=test_client_record,
            document_request_ids=[missing, "not-a-uuid"],
            sent_via=SentVia.MANUAL,
        )
    assert set(exc.value.invalid_ids) == {str(missing), "not-a-uuid"}
    assert db.scalar(select(SubmissionSession.id)) is None


def test_empty_document_selection_rejected(db, test_client_record):
    with pytest.raises(ValidationError, match="at least one"):
        submission_session_service.create_session(
            db, client=test_client_record, document_request_ids=[], sent_via=SentVia.MANUAL
        )


def test_one_open_session_per_template(db, test_client_record, test_documents):
    template = make_template(db, test_client_record, test_documents)
    make_session(db, test_client_record, test_documents, template=template, sent_via=SentVia.AUTO)

    with pytest.raises(ConflictError):
        make_session(db, test_client_record, test_documents, template=template)

    open_count = len(
        submission_session_service.list_sessions_for_client(
            db, test_client_record.organization_id, test_client_record.id, SessionStatus.OPEN
        )
    )
    assert open_count == 1


def test_concurrent_template_session_hits_unique_index(
    db, monkeypatch, test_client_record, test_documents
):
    template = make_template(db, test_client_record, test_documents)
    make_session(db, test_client_record, test_documents, template=template, sent_via=SentVia.AUTO)

    # Both writers passed the pre-check; only the index stops the second.
    monkeypatch.setattr(
        submission_session_service, "has_open_template_session", lambda *args, **kwargs: False
    )

    with pytest.raises(ConflictError, match="already exists"):
        make_session(db, test_client_record, test_documents, template=template)

    sessions = db.scalars(
        select(SubmissionSession).where(SubmissionSession.request_template_id == template.id)
    ).all()
    assert [s.status for s in sessions] == [SessionStatus.OPEN.value]


def test_manual_session_leaves_other_sessions_open(db, test_client_record, test_documents):
    template = make_template(db, test_client_record, test_documents)
    auto = make_session(db, test_client_record, test_documents, template=template)
    first = make_session(db, test_client_record, [test_documents[0]])
    second = make_session(db, test_client_record, [test_documents[1]])

    for session in (auto, first, second):
        db.refresh(session)
        assert session.status == SessionStatus.OPEN.value


def test_new_template_session_allowed_after_expiry(db, test_client_record, test_documents):
    template = make_template(db, test_client_record, test_documents)
    old = make_session(db, test_client_record, test_documents, template=template)
    submission_session_service.expire_session(db, old.organization_id, old.id)

    fresh = make_session(db, test_client_record, test_documents, template=template)
    assert fresh.status == SessionStatus.OPEN.value


# =============================================================================
# Token lookup & expiry
# =============================================================================

def test_token_lookup_only_resolves_open_sessions(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    assert submission_session_service.get_session_by_token(db, session.public_token).id == session.id

    with pytest.raises(NotFoundError):
        submission_session_service.get_session_by_token(db, "nope")
    with pytest.raises(NotFoundError):
        submission_session_service.get_session_by_token(db, "")

    session.status = SessionStatus.FINALIZED.value
    db.commit()
    with pytest.raises(NotFoundError):
        submission_session_service.get_session_by_token(db, session.public_token)
    found = submission_session_service.get_session_by_token(
        db, session.public_token, allow_finalized=True
    )
    assert found.id == session.id


def test_expire_cancels_pending_emails(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    assert submission_session_service.send_request_link(
        db, session, test_client_record, "https://portal.test"
    )

    expired = submission_session_service.expire_session(db, session.organization_id, session.id)
    assert expired.status == SessionStatus.EXPIRED.value
    assert expired.expires_at is not None

    entry = db.scalar(
        select(EmailOutboxEntry).where(EmailOutboxEntry.submission_session_id == session.id)
    )
    assert entry.status == EmailStatus.FAILED.value
    assert entry.last_error == "Session expired"

    with pytest.raises(NotFoundError):
        submission_session_service.get_session_by_token(db, session.public_token)
    with pytest.raises(StateError):
        submission_session_service.expire_session(db, session.organization_id, session.id)


def test_send_request_link_is_idempotent(db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    assert submission_session_service.send_request_link(
        db, session, test_client_record, "https://portal.test/"
    )
    assert not submission_session_service.send_request_link(
        db, session, test_client_record, "https://portal.test/"
    )

    entries = db.scalars(
        select(EmailOutboxEntry).where(EmailOutboxEntry.submission_session_id == session.id)
    ).all()
    assert len(entries) == 1
    assert entries[0].idempotency_key == f"manual_request_link:{session.id}"
    assert entries[0].payload["link"] == f"https://portal.test/portal/{session.public_token}"
    assert entries[0].payload["dueOn"] == "2024-03-25"


def test_send_request_link_requires_client_email(db, test_org, test_documents):
    no_email = make_client(db, test_org, name="Silent", email=None)
    doc = make_document(db, no_email)
    session = make_session(db, no_email, [doc])
    with pytest.raises(ValidationError):
        submission_session_service.send_request_link(db, session, no_email, "https://portal.test")


# =============================================================================
# Replacement sessions
# =============================================================================

def test_replacement_requests_only_denied_documents(db, test_client_record, test_documents):
    statement, payslip = test_documents
    original = make_session(db, test_client_record, test_documents)
    make_upload(db, original, statement, UploadStatus.DENIED)
    make_upload(db, original, payslip, UploadStatus.ACCEPTED)

    replacement, enqueued = submission_session_service.create_replacement_session(
        db,
        original.organization_id,
        original.id,
        base_url="https://portal.test",
        today=date(2024, 3, 20),
    )

    assert enqueued is True
    assert replacement.replaces_session_id == original.id
    assert replacement.sent_via == SentVia.MANUAL.value
    assert replacement.due_on == date(2024, 3, 25)
    assert submission_session_service.requested_document_ids(db, replacement) == [statement.id]

    entry = db.scalar(
        select(EmailOutboxEntry).where(EmailOutboxEntry.submission_session_id == replacement.id)
    )
    assert entry.idempotency_key == f"replacement_link:{replacement.id}"
    assert entry.template == "replacement_link"


def test_replacement_skips_documents_later_accepted(db, test_client_record, test_documents):
    statement, _ = test_documents
    original = make_session(db, test_client_record, [statement])
    make_upload(db, original, statement, UploadStatus.DENIED)
    make_upload(db, original, statement, UploadStatus.ACCEPTED)

    with pytest.raises(ValidationError):
        submission_session_service.create_replacement_session(
            db, original.organization_id, original.id, base_url="https://portal.test"
        )


def test_replacement_requires_denied_documents(db, test_client_record, test_documents):
    original = make_session(db, test_client_record, test_documents)
    with pytest.raises(ValidationError):
        submission_session_service.create_replacement_session(
            db, original.organization_id, original.id, base_url="https://portal.test"
        )


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_create_request_link_endpoint(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    response = await authed_client.post(
        f"/clients/{test_client_record.id}/sessions",
        json={
            "document_request_ids": [str(d.id) for d in test_documents],
            "due_on": "2024-05-31",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["email_enqueued"] is True
    assert data["link"] == f"https://portal.test/portal/{data['public_token']}"
    assert data["session"]["due_on"] == "2024-05-31"
    assert data["session"]["sent_via"] == "manual"
    assert data["session"]["document_request_ids"] == [str(d.id) for d in test_documents]


@pytest.mark.asyncio
async def test_create_request_link_rejects_unknown_documents(
    authed_client: AsyncClient, test_client_record
):
    response = await authed_client.post(
        f"/clients/{test_client_record.id}/sessions",
        json={"document_request_ids": [str(uuid.uuid4())]},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_request_link_requires_csrf(
    authed_client: AsyncClient, test_client_record, test_documents
):
    response = await authed_client.post(
        f"/clients/{test_client_record.id}/sessions",
        json={"document_request_ids": [str(test_documents[0].id)]},
        headers={"X-Requested-With": ""},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_expire_endpoint_twice(authed_client: AsyncClient, db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)

    first = await authed_client.post(f"/sessions/{session.id}/expire")
    assert first.status_code == 200
    assert first.json()["status"] == "EXPIRED"

    second = await authed_client.post(f"/sessions/{session.id}/expire")
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_sessions_are_tenant_scoped(authed_client: AsyncClient, db):
    other_org = Organization(name="Elsewhere", slug=f"other-{uuid.uuid4().hex[:6]}")
    db.add(other_org)
    db.commit()
    other_client = make_client(db, other_org)
    doc = make_document(db, other_client)
    session = make_session(db, other_client, [doc])

    assert (await authed_client.get(f"/clients/{other_client.id}/sessions")).status_code == 404
    assert (await authed_client.post(f"/sessions/{session.id}/expire")).status_code == 404
