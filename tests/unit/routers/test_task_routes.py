"""End-to-end task lifecycle over HTTP."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import ADMIN, CLIENT, SPECIALIST, as_user, create_task


async def _submit_evaluation(client, task_id: str, specialist: str = SPECIALIST) -> dict:
    response = await client.post(
        f"/tasks/{task_id}/evaluations",
        json={"estimated_hours": 10, "hourly_rate": "10.00", "notes": "Two days"},
        headers=as_user(specialist),
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.unit
async def test_create_and_get_task(client):
    task = await create_task(client, priority="high", deadline="2026-12-01")

    assert task["status"] == "created"
    assert task["client_id"] == CLIENT
    assert task["specialist_id"] is None
    assert task["total_cost"] is None

    response = await client.get(f"/tasks/{task['task_id']}", headers=as_user(CLIENT))
    assert response.status_code == 200
    assert response.json()["priority"] == "high"


@pytest.mark.unit
async def test_create_task_requires_fields(client):
    response = await client.post("/tasks", json={"title": "No body"}, headers=as_user(CLIENT))
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PAYLOAD"


@pytest.mark.unit
async def test_specialists_cannot_create_tasks(client):
    response = await client.post(
        "/tasks",
        json={"title": "t", "description": "d", "category": "c"},
        headers=as_user(SPECIALIST),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


@pytest.mark.unit
async def test_listings(client):
    task = await create_task(client)

    own = await client.get("/tasks", headers=as_user(CLIENT))
    assert [t["task_id"] for t in own.json()["tasks"]] == [task["task_id"]]

    pending = await client.get("/tasks/pending?limit=10", headers=as_user(SPECIALIST))
    assert pending.status_code == 200
    assert [t["task_id"] for t in pending.json()["tasks"]] == [task["task_id"]]

    bad = await client.get("/tasks/pending?limit=zero", headers=as_user(SPECIALIST))
    assert bad.status_code == 400

    clients_view = await client.get("/tasks/pending", headers=as_user(CLIENT))
    assert clients_view.status_code == 403


@pytest.mark.unit
async def test_full_lifecycle(client):
    task = await create_task(client)
    task_id = task["task_id"]

    evaluation = await _submit_evaluation(client, task_id)
    assert evaluation["total_cost"] == "100.00"

    topup = await client.post(
        "/accounts/me/topup", json={"amount": "250.00"}, headers=as_user(CLIENT)
    )
    assert topup.status_code == 200
    assert topup.json()["balance_after"] == "250.00"

    accepted = await client.post(
        f"/tasks/{task_id}/evaluations/{evaluation['evaluation_id']}/accept",
        headers=as_user(CLIENT),
    )
    assert accepted.status_code == 200, accepted.text
    body = accepted.json()
    assert body["payment"]["status"] == "completed"
    assert body["payment"]["amount"] == "200.00"
    assert body["task"]["status"] == "paid"

    for status in ("in_progress", "completed"):
        response = await client.post(
            f"/tasks/{task_id}/status", json={"status": status}, headers=as_user(SPECIALIST)
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == status

    payout = await client.post(f"/tasks/{task_id}/payout", headers=as_user(ADMIN))
    assert payout.status_code == 200, payout.text
    assert payout.json()["payout_amount"] == "50.00"

    again = await client.post(f"/tasks/{task_id}/payout", headers=as_user(ADMIN))
    assert again.status_code == 409
    assert again.json()["error"] == "PAYOUT_PRECONDITION"

    balance = await client.get("/accounts/me/balance", headers=as_user(SPECIALIST))
    assert balance.json()["balance"] == "50.00"

    history = await client.get("/accounts/me/transactions", headers=as_user(CLIENT))
    assert [t["type"] for t in history.json()["transactions"]] == ["payment", "topup"]

    final = await client.get(f"/tasks/{task_id}", headers=as_user(CLIENT))
    assert final.json()["status"] == "paid_out"


@pytest.mark.unit
async def test_accept_without_funds_leaves_payment_pending(client):
    task_id = (await create_task(client))["task_id"]
    evaluation = await _submit_evaluation(client, task_id)

    accepted = await client.post(
        f"/tasks/{task_id}/evaluations/{evaluation['evaluation_id']}/accept",
        headers=as_user(CLIENT),
    )
    assert accepted.status_code == 200
    assert accepted.json()["payment"]["status"] == "pending"
    assert accepted.json()["task"]["status"] == "evaluated"

    short = await client.post(f"/tasks/{task_id}/payment", headers=as_user(CLIENT))
    assert short.status_code == 402
    assert short.json()["error"] == "INSUFFICIENT_BALANCE"

    await client.post("/accounts/me/topup", json={"amount": "200.00"}, headers=as_user(CLIENT))
    paid = await client.post(
        f"/tasks/{task_id}/payment", json={"amount": "100.00"}, headers=as_user(CLIENT)
    )
    assert paid.status_code == 200, paid.text
    assert paid.json()["total_amount"] == "200.00"

    payments = await client.get(f"/tasks/{task_id}/payments", headers=as_user(CLIENT))
    assert [p["status"] for p in payments.json()["payments"]] == ["completed"]


@pytest.mark.unit
async def test_invalid_transition_is_conflict(client):
    task_id = (await create_task(client))["task_id"]
    response = await client.post(
        f"/tasks/{task_id}/status", json={"status": "completed"}, headers=as_user(SPECIALIST)
    )
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_TRANSITION"


@pytest.mark.unit
async def test_task_updates(client):
    task_id = (await create_task(client))["task_id"]
    posted = await client.post(
        f"/tasks/{task_id}/updates", json={"content": "Any progress?"}, headers=as_user(CLIENT)
    )
    assert posted.status_code == 201
    assert posted.json()["type"] == "comment"

    updates = await client.get(f"/tasks/{task_id}/updates", headers=as_user(CLIENT))
    assert [u["content"] for u in updates.json()["updates"]] == ["Any progress?"]


@pytest.mark.unit
async def test_admin_routes(client):
    task_id = (await create_task(client))["task_id"]

    assignment = await client.post(
        f"/admin/tasks/{task_id}/assignments",
        json={"specialist_id": SPECIALIST},
        headers=as_user(ADMIN),
    )
    assert assignment.status_code == 201, assignment.text
    assert assignment.json()["status"] == "active"

    credit = await client.post(
        f"/admin/users/{CLIENT}/adjustments",
        json={"amount": "30.00", "reason": "Refund", "type": "credit"},
        headers=as_user(ADMIN),
    )
    assert credit.status_code == 201
    assert credit.json()["new_balance"] == "30.00"

    forbidden = await client.post(
        f"/admin/users/{CLIENT}/adjustments",
        json={"amount": "30.00", "reason": "Refund", "type": "credit"},
        headers=as_user(CLIENT),
    )
    assert forbidden.status_code == 403

    setting = await client.put(
        "/admin/settings/markup_percentage", json={"value": "20"}, headers=as_user(ADMIN)
    )
    assert setting.status_code == 200
    assert setting.json()["value"] == "20"

    invoice = await client.post(
        "/admin/invoices",
        json={"user_id": CLIENT, "amount": "10.00", "tax": "2.00"},
        headers=as_user(ADMIN),
    )
    assert invoice.status_code == 201
    invoice_id = invoice.json()["invoice_id"]
    assert (
        await client.post(f"/admin/invoices/{invoice_id}/paid", headers=as_user(ADMIN))
    ).json()["status"] == "paid"

    invoices = await client.get("/accounts/me/invoices", headers=as_user(CLIENT))
    assert invoices.json()["invoices"][0]["total"] == "12.00"

    blocked = await client.put(
        f"/admin/users/{CLIENT}/role", json={"role": "blocked"}, headers=as_user(ADMIN)
    )
    assert blocked.json()["role"] == "blocked"
    locked_out = await client.get("/tasks", headers=as_user(CLIENT))
    assert locked_out.status_code == 403


@pytest.mark.unit
async def test_reconciliation_route(client):
    await client.post("/accounts/me/topup", json={"amount": "5.00"}, headers=as_user(CLIENT))
    response = await client.get(f"/accounts/{CLIENT}/reconciliation", headers=as_user(ADMIN))
    assert response.status_code == 200
    assert response.json() == {
        "user_id": CLIENT,
        "balance": "5.00",
        "transaction_total": "5.00",
        "consistent": True,
    }

    other = await client.get(f"/accounts/{ADMIN}", headers=as_user(CLIENT))
    assert other.status_code == 403
