"""Health endpoint tests."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import create_task


@pytest.mark.unit
async def test_health_returns_ok(client):
    """GET /health returns 200 with correct schema."""
    response = await client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert isinstance(data["uptime_seconds"], (int, float))
    assert isinstance(data["started_at"], str)
    assert data["total_tasks"] == 0


@pytest.mark.unit
async def test_health_counts_tasks_by_status(client):
    await create_task(client)
    await create_task(client)

    data = (await client.get("/health")).json()
    assert data["total_tasks"] == 2
    assert data["tasks_by_status"]["created"] == 2


@pytest.mark.unit
async def test_health_post_not_allowed(client):
    """POST /health returns 405."""
    response = await client.post("/health")
    assert response.status_code == 405
    assert response.json()["error"] == "METHOD_NOT_ALLOWED"
