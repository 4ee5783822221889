"""Shared router helper functions."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from service_commons.exceptions import ServiceError
from starlette.concurrency import run_in_threadpool

from marketplace_service.core.state import get_app_state
from marketplace_service.services.state_machine import Role

if TYPE_CHECKING:
    from fastapi import Request

    from marketplace_service.core.state import AppState

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"
ME = "me"


def parse_json_body(body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


async def read_optional_json(request: Request) -> dict[str, Any]:
    """Parse the body as a JSON object; an empty body counts as ``{}``."""
    body = await request.body()
    return {} if body == b"" else parse_json_body(body)


def require_field(data: dict[str, Any], field_name: str) -> Any:
    """Return a required body field, raising INVALID_PAYLOAD when absent or null."""
    value = data.get(field_name)
    if value is None:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            400,
            {},
        )
    return value


def parse_query_int(request: Request, name: str, minimum: int) -> int | None:
    """Read an optional integer query parameter with a lower bound."""
    raw = request.query_params.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be an integer", 400, {}) from exc
    if value < minimum:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be >= {minimum}", 400, {})
    return value


def get_services() -> AppState:
    """App state with every engine component wired, or RuntimeError."""
    state = get_app_state()
    if state.account_service is None or state.task_manager is None:
        msg = "Marketplace services not initialized"
        raise RuntimeError(msg)
    return state


async def current_user_id(request: Request) -> str:
    """
    Identity of the caller, as set by the upstream authentication gateway.

    The user is created on first sight with the role the gateway supplies
    in X-User-Role, or as a client when it sends none. Later requests never
    change a stored role; that goes through the admin role endpoint.
    """
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id is None or user_id.strip() == "":
        raise ServiceError(
            "UNAUTHENTICATED",
            f"Missing {USER_ID_HEADER} header",
            401,
            {},
        )
    user_id = user_id.strip()
    state = get_services()
    account_service = state.account_service
    if account_service is None:
        msg = "AccountService not initialized"
        raise RuntimeError(msg)
    role = (request.headers.get(USER_ROLE_HEADER) or "").strip() or Role.CLIENT.value
    await run_in_threadpool(account_service.ensure_user, user_id, role)
    return user_id


def resolve_user_path(user_id: str, caller_id: str) -> str:
    """Map the ``me`` path alias onto the caller."""
    return caller_id if user_id == ME else user_id
