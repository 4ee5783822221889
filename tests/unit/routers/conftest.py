"""Router test fixtures: the real app over a temporary database."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient

from marketplace_service.app import create_app
from marketplace_service.config import clear_settings_cache
from marketplace_service.core.lifespan import lifespan
from marketplace_service.core.state import get_app_state, reset_app_state

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from fastapi import FastAPI

CLIENT = "u-client"
SPECIALIST = "u-specialist"
ADMIN = "u-admin"


def as_user(user_id: str, role: str | None = None) -> dict[str, str]:
    """Headers identifying the caller, optionally with the gateway-supplied role."""
    headers = {"X-User-Id": user_id}
    if role is not None:
        headers["X-User-Role"] = role
    return headers


def write_config(tmp_path: Path, *, self_service_topup: bool = True) -> None:
    """Write a complete config file under tmp_path and point CONFIG_PATH at it."""
    db_path = tmp_path / "test.db"
    config_content = f"""
service:
  name: "marketplace"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: null
database:
  path: "{db_path}"
payments:
  default_markup_percentage: "100"
  transaction_history_limit: 50
  self_service_topup: {"true" if self_service_topup else "false"}
request:
  max_body_size: 1024
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    os.environ["CONFIG_PATH"] = str(config_path)


@asynccontextmanager
async def running_app(tmp_path: Path, *, self_service_topup: bool = True) -> AsyncIterator[FastAPI]:
    """Start the app through its lifespan with staff accounts seeded."""
    write_config(tmp_path, self_service_topup=self_service_topup)
    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    try:
        async with lifespan(test_app):
            accounts = get_app_state().account_service
            assert accounts is not None
            accounts.ensure_user(CLIENT, "client")
            accounts.ensure_user(SPECIALIST, "specialist")
            accounts.ensure_user(ADMIN, "admin")
            yield test_app
    finally:
        reset_app_state()
        clear_settings_cache()
        os.environ.pop("CONFIG_PATH", None)


@pytest.fixture
async def app(tmp_path):
    """Create a test app with a temporary database and seeded staff accounts."""
    async with running_app(tmp_path) as test_app:
        yield test_app


@pytest.fixture
async def client(app):
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def create_task(client: AsyncClient, **overrides: Any) -> dict[str, Any]:
    body = {
        "title": "Fix checkout bug",
        "description": "Orders over 100 items fail at checkout",
        "category": "backend",
        **overrides,
    }
    response = await client.post("/tasks", json=body, headers=as_user(CLIENT))
    assert response.status_code == 201, response.text
    return response.json()
