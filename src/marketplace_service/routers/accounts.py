"""Account endpoints: balances, history, invoices, and top-ups."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from service_commons.exceptions import ServiceError
from starlette.concurrency import run_in_threadpool

from marketplace_service.config import get_settings
from marketplace_service.routers.helpers import (
    current_user_id,
    get_services,
    parse_json_body,
    parse_query_int,
    require_field,
    resolve_user_path,
)

if TYPE_CHECKING:
    from marketplace_service.services.account_service import AccountService

router = APIRouter()


def _accounts() -> AccountService:
    service = get_services().account_service
    if service is None:
        msg = "AccountService not initialized"
        raise RuntimeError(msg)
    return service


@router.get("/accounts/{user_id}")
async def get_account(user_id: str, request: Request) -> dict[str, Any]:
    """Account details; ``me`` resolves to the caller."""
    caller = await current_user_id(request)
    target = resolve_user_path(user_id, caller)
    return await run_in_threadpool(_accounts().get_user, caller, target)


@router.get("/accounts/{user_id}/balance")
async def get_balance(user_id: str, request: Request) -> dict[str, Any]:
    caller = await current_user_id(request)
    target = resolve_user_path(user_id, caller)
    return await run_in_threadpool(_accounts().get_user_balance, caller, target)


@router.get("/accounts/{user_id}/transactions")
async def get_transactions(user_id: str, request: Request) -> dict[str, Any]:
    """Transaction history, newest first."""
    caller = await current_user_id(request)
    target = resolve_user_path(user_id, caller)
    limit = parse_query_int(request, "limit", 1)
    transactions = await run_in_threadpool(
        _accounts().get_transaction_history, caller, target, limit
    )
    return {"transactions": transactions}


@router.get("/accounts/{user_id}/invoices")
async def get_invoices(user_id: str, request: Request) -> dict[str, Any]:
    caller = await current_user_id(request)
    target = resolve_user_path(user_id, caller)
    invoices = await run_in_threadpool(_accounts().get_user_invoices, caller, target)
    return {"invoices": invoices}


@router.get("/accounts/{user_id}/reconciliation")
async def reconcile(user_id: str, request: Request) -> dict[str, Any]:
    """Balance versus the sum of the user's transactions."""
    caller = await current_user_id(request)
    target = resolve_user_path(user_id, caller)
    return await run_in_threadpool(_accounts().reconcile, caller, target)


@router.post("/accounts/me/topup")
async def top_up(request: Request) -> dict[str, Any]:
    """Credit the caller's own balance."""
    caller = await current_user_id(request)
    if not get_settings().payments.self_service_topup:
        raise ServiceError(
            "TOPUP_DISABLED",
            "Self-service top-ups are disabled on this deployment",
            403,
            {},
        )
    data = parse_json_body(await request.body())
    return await run_in_threadpool(_accounts().top_up, caller, require_field(data, "amount"))
