"""Tests for the public client portal (token links and uploads)."""
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.db.enums import SessionStatus, UploadStatus
from app.db.models import Upload
from app.routers.portal import ACCESS_ERROR
from app.services import submission_session_service
from factories import make_document, make_session, make_upload


async def _create_upload(client: AsyncClient, token: str, doc_id, **overrides):
    body = {
        "document_request_id": str(doc_id),
        "filename": "March statement.pdf",
        "mime_type": "application/pdf",
        "size_bytes": 2048,
    }
    body.update(overrides)
    return await client.post(f"/portal/{token}/uploads", json=body)


@pytest.mark.asyncio
async def test_portal_info_lists_requested_documents(
    client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, list(reversed(test_documents)))
    make_upload(db, session, test_documents[0], UploadStatus.DENIED)

    response = await client.get(f"/portal/{session.public_token}/info")
    assert response.status_code == 200
    data = response.json()
    assert data["client_name"] == "Acme Ltd"
    assert data["status"] == "OPEN"
    assert data["due_on"] == "2024-03-25"
    assert [d["title"] for d in data["documents"]] == ["Payslip", "Bank statement"]
    statement = data["documents"][1]
    assert statement["uploads"][0]["status"] == "DENIED"
    assert statement["uploads"][0]["denial_reason"] == "Blurry"


@pytest.mark.asyncio
async def test_unknown_and_closed_links_look_the_same(
    client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, test_documents)
    submission_session_service.expire_session(db, session.organization_id, session.id)

    unknown = await client.get("/portal/not-a-real-token/info")
    expired = await client.get(f"/portal/{session.public_token}/info")
    assert unknown.status_code == expired.status_code == 404
    assert unknown.json() == expired.json() == {"detail": ACCESS_ERROR}

    closed_upload = await _create_upload(client, session.public_token, test_documents[0].id)
    assert closed_upload.status_code == 404
    assert closed_upload.json() == {"detail": ACCESS_ERROR}


@pytest.mark.asyncio
async def test_disabled_portal_hides_link(client: AsyncClient, db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    test_client_record.portal_enabled = False
    db.commit()

    response = await client.get(f"/portal/{session.public_token}/info")
    assert response.status_code == 404
    assert response.json()["detail"] == ACCESS_ERROR


@pytest.mark.asyncio
async def test_create_upload_returns_signed_url(
    client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, test_documents)

    response = await _create_upload(client, session.public_token, test_documents[0].id)
    assert response.status_code == 200
    data = response.json()
    upload_id = data["upload"]["id"]
    assert data["upload"]["status"] == "PENDING"
    assert data["upload"]["uploaded_at"] is None
    assert data["signed_url"].endswith(f"/{upload_id}/March_statement.pdf")

    upload = db.get(Upload, uuid.UUID(upload_id))
    assert upload.storage_key == f"clients/{test_client_record.id}/{upload_id}/March_statement.pdf"
    assert upload.delete_after_at is not None


@pytest.mark.asyncio
async def test_create_upload_rejects_document_outside_session(
    client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, [test_documents[0]])
    response = await _create_upload(client, session.public_token, test_documents[1].id)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_upload_enforces_mime_and_size(
    client: AsyncClient, db, test_client_record
):
    doc = make_document(
        db, test_client_record, "ID scan", allowed_mime_types=["application/pdf", "image/*"]
    )
    session = make_session(db, test_client_record, [doc])

    ok = await _create_upload(client, session.public_token, doc.id, mime_type="image/png")
    assert ok.status_code == 200

    bad_type = await _create_upload(client, session.public_token, doc.id, mime_type="text/plain")
    assert bad_type.status_code == 422

    too_big = await _create_upload(
        client, session.public_token, doc.id, size_bytes=500 * 1024 * 1024
    )
    assert too_big.status_code == 422


@pytest.mark.asyncio
async def test_create_upload_enforces_max_files(client: AsyncClient, db, test_client_record):
    doc = make_document(db, test_client_record, "Invoice", max_files=1)
    session = make_session(db, test_client_record, [doc])

    first = await _create_upload(client, session.public_token, doc.id)
    assert first.status_code == 200
    second = await _create_upload(client, session.public_token, doc.id)
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_complete_upload_finalizes_and_is_retryable(
    client: AsyncClient, db, test_client_record, test_documents, test_user
):
    session = make_session(db, test_client_record, [test_documents[0]])
    created = await _create_upload(client, session.public_token, test_documents[0].id)
    upload_id = created.json()["upload"]["id"]

    complete_url = f"/portal/{session.public_token}/uploads/{upload_id}/complete"
    first = await client.post(complete_url)
    assert first.status_code == 200
    assert first.json()["session"]["finalized"] is True
    assert first.json()["upload"]["uploaded_at"] is not None

    db.refresh(session)
    assert session.status == SessionStatus.FINALIZED.value

    retry = await client.post(complete_url)
    assert retry.status_code == 200
    assert retry.json()["upload"]["uploaded_at"] == first.json()["upload"]["uploaded_at"]

    # Finalized sessions no longer accept new uploads.
    late = await _create_upload(client, session.public_token, test_documents[0].id)
    assert late.status_code == 404
    assert late.json() == {"detail": ACCESS_ERROR}


@pytest.mark.asyncio
async def test_complete_unknown_upload(client: AsyncClient, db, test_client_record, test_documents):
    session = make_session(db, test_client_record, test_documents)
    response = await client.post(
        f"/portal/{session.public_token}/uploads/{uuid.uuid4()}/complete"
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_upload_cannot_be_completed_through_another_session(
    client: AsyncClient, db, test_client_record, test_documents
):
    mine = make_session(db, test_client_record, test_documents)
    other = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, other, test_documents[0], uploaded=False)

    response = await client.post(f"/portal/{mine.public_token}/uploads/{upload.id}/complete")
    assert response.status_code == 404
    db.refresh(upload)
    assert upload.uploaded_at is None
    assert db.scalar(select(Upload.uploaded_at).where(Upload.id == upload.id)) is None
