"""Evaluation endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from marketplace_service.routers.helpers import (
    current_user_id,
    get_services,
    parse_json_body,
    require_field,
)

if TYPE_CHECKING:
    from marketplace_service.services.evaluation_workflow import EvaluationWorkflow

router = APIRouter()


def _workflow() -> EvaluationWorkflow:
    workflow = get_services().evaluation_workflow
    if workflow is None:
        msg = "EvaluationWorkflow not initialized"
        raise RuntimeError(msg)
    return workflow


@router.post("/tasks/{task_id}/evaluations", status_code=201)
async def submit_evaluation(task_id: str, request: Request) -> JSONResponse:
    """Submit a specialist's cost estimate for a task."""
    user_id = await current_user_id(request)
    data = parse_json_body(await request.body())

    result = await run_in_threadpool(
        _workflow().submit_evaluation,
        task_id,
        user_id,
        require_field(data, "estimated_hours"),
        require_field(data, "hourly_rate"),
        data.get("total_cost"),
        data.get("notes"),
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}/evaluations")
async def list_evaluations(task_id: str, request: Request) -> dict[str, Any]:
    """Evaluations of a task, newest first."""
    user_id = await current_user_id(request)
    evaluations = await run_in_threadpool(_workflow().list_evaluations, task_id, user_id)
    return {"evaluations": evaluations}


@router.post("/tasks/{task_id}/evaluations/{evaluation_id}/accept")
async def accept_evaluation(task_id: str, evaluation_id: str, request: Request) -> dict[str, Any]:
    """Accept an evaluation; charges the client when the balance allows."""
    user_id = await current_user_id(request)
    return await run_in_threadpool(
        _workflow().accept_evaluation, task_id, evaluation_id, user_id
    )
