"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from marketplace_service.routers.helpers import (
    current_user_id,
    get_services,
    parse_json_body,
    parse_query_int,
    read_optional_json,
    require_field,
)

if TYPE_CHECKING:
    from marketplace_service.services.task_manager import TaskManager

router = APIRouter()


def _task_manager() -> TaskManager:
    manager = get_services().task_manager
    if manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return manager


# ---------------------------------------------------------------------------
# POST /tasks: create task (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create a new task owned by the calling client."""
    user_id = await current_user_id(request)
    data = parse_json_body(await request.body())

    result = await run_in_threadpool(
        _task_manager().create_task,
        user_id,
        require_field(data, "title"),
        require_field(data, "description"),
        require_field(data, "category"),
        data.get("priority", "medium"),
        data.get("deadline"),
    )
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# Task listings (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_client_tasks(request: Request) -> dict[str, Any]:
    """Tasks owned by a client (the caller unless client_id is given)."""
    user_id = await current_user_id(request)
    client_id = request.query_params.get("client_id")
    tasks = await run_in_threadpool(_task_manager().list_tasks_by_client, user_id, client_id)
    return {"tasks": tasks}


@router.get("/tasks/pending")
async def list_pending_tasks(request: Request) -> dict[str, Any]:
    """Tasks open for evaluation, newest first."""
    user_id = await current_user_id(request)
    limit = parse_query_int(request, "limit", 1)
    offset = parse_query_int(request, "offset", 0)
    tasks = await run_in_threadpool(_task_manager().list_pending_tasks, user_id, limit, offset)
    return {"tasks": tasks}


@router.get("/tasks/assigned")
async def list_assigned_tasks(request: Request) -> dict[str, Any]:
    """Tasks assigned to a specialist (the caller unless specialist_id is given)."""
    user_id = await current_user_id(request)
    specialist_id = request.query_params.get("specialist_id")
    tasks = await run_in_threadpool(
        _task_manager().list_tasks_by_specialist, user_id, specialist_id
    )
    return {"tasks": tasks}


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, request: Request) -> dict[str, Any]:
    """Get a single task."""
    user_id = await current_user_id(request)
    return await run_in_threadpool(_task_manager().get_task, task_id, user_id)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/status")
async def update_task_status(task_id: str, request: Request) -> dict[str, Any]:
    """Move a task along a status-update edge."""
    user_id = await current_user_id(request)
    data = parse_json_body(await request.body())
    status = require_field(data, "status")
    return await run_in_threadpool(_task_manager().update_task_status, task_id, status, user_id)


# ---------------------------------------------------------------------------
# Task updates (comments and progress notes)
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/updates")
async def list_task_updates(task_id: str, request: Request) -> dict[str, Any]:
    user_id = await current_user_id(request)
    updates = await run_in_threadpool(_task_manager().list_task_updates, task_id, user_id)
    return {"updates": updates}


@router.post("/tasks/{task_id}/updates", status_code=201)
async def add_task_update(task_id: str, request: Request) -> JSONResponse:
    user_id = await current_user_id(request)
    data = await read_optional_json(request)
    result = await run_in_threadpool(
        _task_manager().add_task_update,
        task_id,
        user_id,
        require_field(data, "content"),
        data.get("type", "comment"),
    )
    return JSONResponse(status_code=201, content=result)
