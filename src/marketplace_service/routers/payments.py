"""Payment and payout endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from marketplace_service.routers.helpers import current_user_id, get_services, read_optional_json

router = APIRouter()


@router.post("/tasks/{task_id}/payment")
async def process_task_payment(task_id: str, request: Request) -> dict[str, Any]:
    """Escrow the client's funds for an evaluated task."""
    user_id = await current_user_id(request)
    data = await read_optional_json(request)

    processor = get_services().payment_processor
    if processor is None:
        msg = "PaymentProcessor not initialized"
        raise RuntimeError(msg)

    return await run_in_threadpool(
        processor.process_task_payment, task_id, user_id, data.get("amount")
    )


@router.get("/tasks/{task_id}/payments")
async def list_task_payments(task_id: str, request: Request) -> dict[str, Any]:
    user_id = await current_user_id(request)
    manager = get_services().task_manager
    if manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    payments = await run_in_threadpool(manager.list_task_payments, task_id, user_id)
    return {"payments": payments}


@router.post("/tasks/{task_id}/payout")
async def process_specialist_payout(task_id: str, request: Request) -> dict[str, Any]:
    """Credit the specialist's commission for a completed task."""
    user_id = await current_user_id(request)

    engine = get_services().payout_engine
    if engine is None:
        msg = "PayoutEngine not initialized"
        raise RuntimeError(msg)

    return await run_in_threadpool(engine.process_specialist_payout, task_id, user_id)
