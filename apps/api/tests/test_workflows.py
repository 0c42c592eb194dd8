"""
Tests for the workflow rules API.

CRUD, validation, dry-run and execution history over HTTP.
"""

import uuid

import pytest
from httpx import AsyncClient

from helpdesk.db.enums import WorkflowTriggerType
from helpdesk.db.models import WorkflowExecution
from helpdesk.services.workflow_engine import engine


def _rule_body(**overrides) -> dict:
    body = {
        "name": "Tag urgent SMS",
        "trigger_event": "ticket_created",
        "conditions": [{"field": "source_channel", "operator": "equals", "value": "sms"}],
        "actions": [{"type": "add_tag", "value": "sms"}],
        "priority": 5,
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_workflow_routes_require_api_key(client: AsyncClient):
    response = await client.get("/workflows")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_workflow_crud(authed_client: AsyncClient):
    created = await authed_client.post("/workflows", json=_rule_body())
    assert created.status_code == 201
    rule = created.json()
    assert rule["run_count"] == 0
    assert rule["actions"] == [{"type": "add_tag", "value": "sms"}]

    listed = await authed_client.get("/workflows", params={"trigger_event": "ticket_created"})
    assert [r["id"] for r in listed.json()] == [rule["id"]]
    assert (await authed_client.get("/workflows", params={"trigger_event": "sla_breach"})).json() == []

    patched = await authed_client.patch(f"/workflows/{rule['id']}", json={"is_active": False, "priority": 9})
    assert patched.status_code == 200
    assert patched.json()["is_active"] is False
    assert patched.json()["priority"] == 9
    assert patched.json()["name"] == "Tag urgent SMS"
    assert (await authed_client.get("/workflows", params={"active_only": True})).json() == []

    deleted = await authed_client.delete(f"/workflows/{rule['id']}")
    assert deleted.status_code == 204
    assert (await authed_client.get(f"/workflows/{rule['id']}")).status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"trigger_event": "ticket_deleted"},
        {"actions": []},
        {"actions": [{"type": "launch_rocket"}]},
        {"actions": [{"type": "change_status", "value": "archived"}]},
        {"actions": [{"type": "assign_agent"}]},
        {"conditions": [{"field": "password", "operator": "equals", "value": "x"}]},
        {"conditions": [{"field": "status", "operator": "contains"}]},
    ],
)
async def test_invalid_rules_are_rejected(authed_client: AsyncClient, overrides):
    response = await authed_client.post("/workflows", json=_rule_body(**overrides))

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_dry_run_endpoint(authed_client: AsyncClient, make_ticket):
    ticket = make_ticket()
    rule = (await authed_client.post("/workflows", json=_rule_body())).json()

    saved = await authed_client.post("/workflows/test", json={"rule_id": rule["id"], "ticket_id": str(ticket.id)})
    inline = await authed_client.post(
        "/workflows/test",
        json={
            "rule": {"conditions": _rule_body()["conditions"], "actions": _rule_body()["actions"]},
            "test_ticket_data": {"source_channel": "sms"},
        },
    )

    assert saved.status_code == 200
    assert saved.json()["conditions_matched"] is False
    assert saved.json()["condition_results"][0]["actual_value"] == "email"
    assert saved.json()["actions_to_execute"] == []
    assert inline.json()["would_execute"] is True
    assert inline.json()["actions_to_execute"] == [{"type": "add_tag", "value": "sms"}]


@pytest.mark.asyncio
async def test_dry_run_errors(authed_client: AsyncClient):
    missing = await authed_client.post("/workflows/test", json={"rule_id": str(uuid.uuid4())})
    both = await authed_client.post(
        "/workflows/test",
        json={"rule_id": str(uuid.uuid4()), "rule": {"actions": []}},
    )

    assert missing.status_code == 404
    assert both.status_code == 422


@pytest.mark.asyncio
async def test_execution_history(authed_client: AsyncClient, db, make_ticket):
    rule = (await authed_client.post("/workflows", json=_rule_body(conditions=[]))).json()
    ticket = make_ticket()
    engine.run(db, WorkflowTriggerType.TICKET_CREATED, ticket, {})
    engine.run(db, WorkflowTriggerType.TICKET_CREATED, ticket, {})

    response = await authed_client.get(f"/workflows/{rule['id']}/executions", params={"limit": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert len(data["items"]) == 1
    assert data["items"][0]["status"] == "success"
    assert db.query(WorkflowExecution).count() == 2
    fetched = (await authed_client.get(f"/workflows/{rule['id']}")).json()
    assert fetched["run_count"] == 2
