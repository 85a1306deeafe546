"""Tests for the staff review inbox."""
import pytest
from httpx import AsyncClient

from app.db.enums import UploadStatus
from factories import make_session, make_upload


@pytest.mark.asyncio
async def test_inbox_requires_session(client: AsyncClient):
    response = await client.get("/inbox")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_inbox_lists_sessions_with_pending_uploads(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    waiting = make_session(db, test_client_record, test_documents)
    make_upload(db, waiting, test_documents[0])
    make_upload(db, waiting, test_documents[1])
    reviewed = make_session(db, test_client_record, test_documents)
    make_upload(db, reviewed, test_documents[0], UploadStatus.ACCEPTED)
    unsubmitted = make_session(db, test_client_record, test_documents)
    make_upload(db, unsubmitted, test_documents[0], uploaded=False)

    response = await authed_client.get("/inbox")
    assert response.status_code == 200
    items = response.json()
    assert [item["session_id"] for item in items] == [str(waiting.id)]
    assert items[0]["pending_count"] == 2
    assert items[0]["new_count"] == 2
    assert items[0]["client_name"] == "Acme Ltd"


@pytest.mark.asyncio
async def test_view_url_marks_upload_viewed(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[0])

    response = await authed_client.get(f"/inbox/uploads/{upload.id}/view-url")
    assert response.status_code == 200
    assert response.json()["url"].endswith(upload.storage_key)

    db.refresh(upload)
    assert upload.viewed_at is not None

    items = (await authed_client.get("/inbox")).json()
    assert items[0]["new_count"] == 0


@pytest.mark.asyncio
async def test_session_uploads_listing(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, test_documents)
    pending = make_upload(db, session, test_documents[0])
    make_upload(db, session, test_documents[1], UploadStatus.ACCEPTED)

    only_pending = await authed_client.get(f"/inbox/sessions/{session.id}")
    assert [u["id"] for u in only_pending.json()] == [str(pending.id)]

    everything = await authed_client.get(
        f"/inbox/sessions/{session.id}", params={"pending_only": "false"}
    )
    assert len(everything.json()) == 2


@pytest.mark.asyncio
async def test_accept_and_deny_endpoints(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, test_documents)
    first = make_upload(db, session, test_documents[0])
    second = make_upload(db, session, test_documents[1])

    missing_reason = await authed_client.post(f"/inbox/uploads/{second.id}/deny", json={})
    assert missing_reason.status_code == 422

    denied = await authed_client.post(
        f"/inbox/uploads/{second.id}/deny", json={"denial_reason": "Wrong month"}
    )
    assert denied.status_code == 200
    assert denied.json()["upload"]["status"] == "DENIED"
    assert denied.json()["upload"]["denial_reason"] == "Wrong month"

    accepted = await authed_client.post(f"/inbox/uploads/{first.id}/accept")
    assert accepted.status_code == 200
    body = accepted.json()
    assert body["upload"]["status"] == "ACCEPTED"
    assert body["confirmation_enqueued"] is False

    again = await authed_client.post(f"/inbox/uploads/{first.id}/accept")
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_replacement_endpoint_after_denial(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    session = make_session(db, test_client_record, test_documents)
    upload = make_upload(db, session, test_documents[1])
    await authed_client.post(f"/inbox/uploads/{upload.id}/deny", json={"denial_reason": "Cropped"})

    response = await authed_client.post(f"/sessions/{session.id}/replacement")
    assert response.status_code == 201
    data = response.json()
    assert data["session"]["replaces_session_id"] == str(session.id)
    assert data["session"]["document_request_ids"] == [str(test_documents[1].id)]
    assert data["email_enqueued"] is True
