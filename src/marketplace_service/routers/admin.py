"""Administrator endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from service_commons.exceptions import ServiceError
from starlette.concurrency import run_in_threadpool

from marketplace_service.routers.helpers import (
    current_user_id,
    get_services,
    parse_json_body,
    parse_query_int,
    require_field,
)

if TYPE_CHECKING:
    from marketplace_service.services.admin_tools import AdminTools

router = APIRouter()


def _admin_tools() -> AdminTools:
    tools = get_services().admin_tools
    if tools is None:
        msg = "AdminTools not initialized"
        raise RuntimeError(msg)
    return tools


# === Balance adjustments ===


@router.post("/admin/users/{user_id}/adjustments", status_code=201)
async def adjust_user_balance(user_id: str, request: Request) -> JSONResponse:
    """Credit or debit a user's balance with an audit record."""
    admin_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    result = await run_in_threadpool(
        _admin_tools().adjust_user_balance,
        admin_id,
        user_id,
        require_field(data, "amount"),
        require_field(data, "reason"),
        require_field(data, "type"),
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/admin/users/{user_id}/adjustments")
async def list_adjustments(user_id: str, request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    adjustments = await run_in_threadpool(_admin_tools().list_adjustments, admin_id, user_id)
    return {"adjustments": adjustments}


@router.get("/admin/adjustments")
async def list_all_adjustments(request: Request) -> dict[str, Any]:
    """Balance adjustments across every user, newest first."""
    admin_id = await current_user_id(request)
    limit = parse_query_int(request, "limit", 1)
    adjustments = await run_in_threadpool(_admin_tools().list_all_adjustments, admin_id, limit)
    return {"adjustments": adjustments}


# === Users ===


@router.get("/admin/users")
async def list_users(request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    role = request.query_params.get("role")
    users = await run_in_threadpool(_admin_tools().list_users, admin_id, role)
    return {"users": users}


@router.post("/admin/users", status_code=201)
async def create_user(request: Request) -> JSONResponse:
    """Register a user with a role before their first request."""
    admin_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    result = await run_in_threadpool(
        _admin_tools().create_user,
        admin_id,
        require_field(data, "user_id"),
        require_field(data, "role"),
    )
    return JSONResponse(status_code=201, content=result)


@router.put("/admin/users/{user_id}/role")
async def update_user_role(user_id: str, request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    return await run_in_threadpool(
        _admin_tools().update_user_role, admin_id, user_id, require_field(data, "role")
    )


# === Task assignment ===


@router.post("/admin/tasks/{task_id}/assignments", status_code=201)
async def assign_task(task_id: str, request: Request) -> JSONResponse:
    """Assign a task to a specialist directly."""
    admin_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    specialist_id = require_field(data, "specialist_id")
    if not isinstance(specialist_id, str):
        raise ServiceError("INVALID_PAYLOAD", "specialist_id must be a string", 400, {})
    result = await run_in_threadpool(
        _admin_tools().assign_task_to_specialist,
        admin_id,
        task_id,
        specialist_id,
        data.get("notes"),
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/admin/tasks/{task_id}/assignments")
async def list_assignments(task_id: str, request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    assignments = await run_in_threadpool(_admin_tools().list_assignments, admin_id, task_id)
    return {"assignments": assignments}


# === Platform settings ===


@router.get("/admin/settings")
async def list_platform_settings(request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    settings = await run_in_threadpool(_admin_tools().list_platform_settings, admin_id)
    return {"settings": settings}


@router.put("/admin/settings/{key}")
async def set_platform_setting(key: str, request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    return await run_in_threadpool(
        _admin_tools().set_platform_setting,
        admin_id,
        key,
        require_field(data, "value"),
        data.get("description"),
    )


# === Invoices ===


@router.post("/admin/invoices", status_code=201)
async def create_invoice(request: Request) -> JSONResponse:
    admin_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    result = await run_in_threadpool(
        _admin_tools().create_invoice,
        admin_id,
        require_field(data, "user_id"),
        require_field(data, "amount"),
        data.get("tax", "0.00"),
        data.get("due_date"),
        data.get("notes"),
    )
    return JSONResponse(status_code=201, content=result)


@router.post("/admin/invoices/{invoice_id}/paid")
async def mark_invoice_paid(invoice_id: str, request: Request) -> dict[str, Any]:
    admin_id = await current_user_id(request)
    return await run_in_threadpool(_admin_tools().mark_invoice_paid, admin_id, invoice_id)
