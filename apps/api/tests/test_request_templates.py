"""Tests for recurring request templates."""
import pytest
from httpx import AsyncClient

from app.db.enums import SessionStatus
from app.db.models import SubmissionSession
from app.services import submission_session_service
from factories import make_document, make_session, make_template


@pytest.mark.asyncio
async def test_create_template(authed_client: AsyncClient, test_client_record, test_documents):
    ids = [str(test_documents[1].id), str(test_documents[0].id)]
    response = await authed_client.post(
        f"/clients/{test_client_record.id}/templates",
        json={
            "name": "Monthly bookkeeping",
            "due_day_of_month": 7,
            "start_next_month": True,
            "document_request_ids": ids,
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["frequency"] == "monthly"
    assert data["enabled"] is True
    assert data["start_next_month"] is True
    assert data["due_day_of_month"] == 7
    assert data["document_request_ids"] == ids

    listed = await authed_client.get(f"/clients/{test_client_record.id}/templates")
    assert [t["id"] for t in listed.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_template_needs_documents(authed_client: AsyncClient, test_client_record):
    response = await authed_client.post(
        f"/clients/{test_client_record.id}/templates",
        json={"name": "Empty", "document_request_ids": []},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_save_replaces_document_set_without_touching_open_session(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    statement, payslip = test_documents
    template = make_template(db, test_client_record, [statement])
    session = make_session(db, test_client_record, [statement], template=template)
    invoice = make_document(db, test_client_record, "Invoice")

    response = await authed_client.put(
        f"/templates/{template.id}",
        json={
            "name": "Renamed",
            "enabled": True,
            "document_request_ids": [str(payslip.id), str(invoice.id)],
        },
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Renamed"
    assert response.json()["document_request_ids"] == [str(payslip.id), str(invoice.id)]

    assert submission_session_service.requested_document_ids(db, session) == [statement.id]


@pytest.mark.asyncio
async def test_save_rejects_inactive_document(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    template = make_template(db, test_client_record, test_documents)
    retired = make_document(db, test_client_record, "Retired", active=False)

    response = await authed_client.put(
        f"/templates/{template.id}",
        json={"name": "x", "document_request_ids": [str(retired.id)]},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_toggle_enabled(authed_client: AsyncClient, db, test_client_record, test_documents):
    template = make_template(db, test_client_record, test_documents)
    response = await authed_client.post(f"/templates/{template.id}/enabled", json={"enabled": False})
    assert response.status_code == 200
    assert response.json()["enabled"] is False


@pytest.mark.asyncio
async def test_delete_template_keeps_sessions(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    template = make_template(db, test_client_record, test_documents)
    session = make_session(db, test_client_record, test_documents, template=template)

    response = await authed_client.delete(f"/templates/{template.id}")
    assert response.status_code == 204

    db.expire_all()
    kept = db.get(SubmissionSession, session.id)
    assert kept.request_template_id is None
    assert kept.status == SessionStatus.OPEN.value
    listed = await authed_client.get(f"/clients/{test_client_record.id}/templates")
    assert listed.json() == []


@pytest.mark.asyncio
async def test_send_now_opens_one_session(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    template = make_template(db, test_client_record, test_documents)

    response = await authed_client.post(f"/templates/{template.id}/send-now")
    assert response.status_code == 201
    data = response.json()
    assert data["session"]["request_template_id"] == str(template.id)
    assert data["session"]["sent_via"] == "manual"
    assert data["email_enqueued"] is True
    assert data["session"]["document_request_ids"] == [str(d.id) for d in test_documents]

    duplicate = await authed_client.post(f"/templates/{template.id}/send-now")
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_send_now_disabled_template(
    authed_client: AsyncClient, db, test_client_record, test_documents
):
    template = make_template(db, test_client_record, test_documents, enabled=False)
    response = await authed_client.post(f"/templates/{template.id}/send-now")
    assert response.status_code == 409
