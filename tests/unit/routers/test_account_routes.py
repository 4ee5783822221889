"""Identity, account, and top-up routes."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from tests.unit.routers.conftest import (
    ADMIN,
    CLIENT,
    SPECIALIST,
    as_user,
    create_task,
    running_app,
)


@pytest.mark.unit
async def test_first_request_creates_client_by_default(client):
    response = await client.get("/accounts/me", headers=as_user("u-newcomer"))
    assert response.status_code == 200
    assert response.json()["role"] == "client"
    assert response.json()["balance"] == "0.00"


@pytest.mark.unit
async def test_gateway_role_applies_on_first_sight(client):
    task_id = (await create_task(client))["task_id"]
    response = await client.post(
        f"/tasks/{task_id}/evaluations",
        json={"estimated_hours": 4, "hourly_rate": "25.00"},
        headers=as_user("u-fresh-specialist", "specialist"),
    )
    assert response.status_code == 201, response.text
    assert response.json()["specialist_id"] == "u-fresh-specialist"

    account = await client.get("/accounts/me", headers=as_user("u-fresh-specialist"))
    assert account.json()["role"] == "specialist"


@pytest.mark.unit
async def test_gateway_role_does_not_change_existing_user(client):
    await client.get("/accounts/me", headers=as_user(CLIENT))

    response = await client.get("/admin/users", headers=as_user(CLIENT, "admin"))
    assert response.status_code == 403
    account = await client.get("/accounts/me", headers=as_user(CLIENT, "admin"))
    assert account.json()["role"] == "client"


@pytest.mark.unit
async def test_unknown_gateway_role_is_rejected(client):
    response = await client.get("/tasks", headers=as_user("u-odd", "superuser"))
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PAYLOAD"

    users = await client.get("/admin/users", headers=as_user(ADMIN))
    assert "u-odd" not in {u["user_id"] for u in users.json()["users"]}


@pytest.mark.unit
async def test_top_up_credits_balance(client):
    response = await client.post(
        "/accounts/me/topup", json={"amount": "25.50"}, headers=as_user(CLIENT)
    )
    assert response.status_code == 200, response.text
    balance = await client.get("/accounts/me/balance", headers=as_user(CLIENT))
    assert balance.json()["balance"] == "25.50"


@pytest.mark.unit
@pytest.mark.parametrize("amount", ["1e30", "99999999999999999999.00", "1000000000.01"])
async def test_oversized_top_up_is_bad_request(client, amount):
    response = await client.post(
        "/accounts/me/topup", json={"amount": amount}, headers=as_user(CLIENT)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_AMOUNT"


@pytest.mark.unit
async def test_oversized_evaluation_is_bad_request(client):
    task_id = (await create_task(client))["task_id"]
    response = await client.post(
        f"/tasks/{task_id}/evaluations",
        json={"estimated_hours": 100_000, "hourly_rate": "1000000000.00"},
        headers=as_user(SPECIALIST),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_AMOUNT"


@pytest.mark.unit
async def test_top_up_disabled_by_config(tmp_path):
    async with running_app(tmp_path, self_service_topup=False) as test_app:
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post(
                "/accounts/me/topup", json={"amount": "10.00"}, headers=as_user(CLIENT)
            )
            assert response.status_code == 403
            assert response.json()["error"] == "TOPUP_DISABLED"

            balance = await c.get("/accounts/me/balance", headers=as_user(CLIENT))
            assert balance.json()["balance"] == "0.00"

            credit = await c.post(
                f"/admin/users/{CLIENT}/adjustments",
                json={"amount": "10.00", "reason": "Wire transfer", "type": "credit"},
                headers=as_user(ADMIN),
            )
            assert credit.status_code == 201
            assert credit.json()["new_balance"] == "10.00"
