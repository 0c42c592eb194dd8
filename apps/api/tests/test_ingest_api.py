"""Tests for the machine-facing ingest endpoint."""

import uuid

import pytest
from httpx import AsyncClient

from helpdesk.db.models import Customer, Message, Ticket


def _payload(**overrides) -> dict:
    payload = {
        "channel": "sms",
        "customer_identifier": "+15551234567",
        "message_content": "my camera won't turn on",
        "external_id": "SM123",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_ingest_requires_bearer_token(client: AsyncClient):
    response = await client.post("/ingest", json=_payload())
    assert response.status_code == 401

    response = await client.post("/ingest", json=_payload(), headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_ingest_creates_ticket_and_is_idempotent(authed_client: AsyncClient, db):
    first = await authed_client.post("/ingest", json=_payload())
    second = await authed_client.post("/ingest", json=_payload())

    assert first.status_code == 200
    body = first.json()
    assert body["is_new_ticket"] is True
    assert body["ai_response"] == {"sent": False, "content": None}

    assert second.status_code == 200
    assert second.json()["message_id"] == body["message_id"]
    assert second.json()["ticket_id"] == body["ticket_id"]
    assert db.query(Message).count() == 1
    assert db.query(Ticket).count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"channel": "fax"},
        {"customer_identifier": "  "},
        {"message_content": ""},
        {"ticket_id": "not-a-uuid"},
    ],
)
async def test_ingest_validation_errors_are_400(authed_client: AsyncClient, db, overrides):
    response = await authed_client.post("/ingest", json=_payload(**overrides))

    assert response.status_code == 400
    assert db.query(Customer).count() == 0


@pytest.mark.asyncio
async def test_ingest_pipeline_failure_is_500(authed_client: AsyncClient, db):
    response = await authed_client.post("/ingest", json=_payload(ticket_id=str(uuid.uuid4())))

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to process message"
