"""Conversion of stored rows (integer cents) into response dicts (decimal strings)."""

from __future__ import annotations

from typing import Any

from marketplace_service.services.money import format_cents


def _money(cents: int | None) -> str | None:
    return None if cents is None else format_cents(cents)


def user_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "user_id": row["user_id"],
        "role": row["role"],
        "balance": format_cents(row["balance"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def task_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "task_id": row["task_id"],
        "client_id": row["client_id"],
        "specialist_id": row["specialist_id"],
        "title": row["title"],
        "description": row["description"],
        "category": row["category"],
        "priority": row["priority"],
        "status": row["status"],
        "estimated_hours": row["estimated_hours"],
        "hourly_rate": _money(row["hourly_rate"]),
        "total_cost": _money(row["total_cost"]),
        "deadline": row["deadline"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "completed_at": row["completed_at"],
    }


def evaluation_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "evaluation_id": row["evaluation_id"],
        "task_id": row["task_id"],
        "specialist_id": row["specialist_id"],
        "estimated_hours": row["estimated_hours"],
        "hourly_rate": format_cents(row["hourly_rate"]),
        "total_cost": format_cents(row["total_cost"]),
        "notes": row["notes"],
        "status": row["status"],
        "accepted_by_client": row["status"] == "accepted",
        "created_at": row["created_at"],
    }


def payment_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "payment_id": row["payment_id"],
        "task_id": row["task_id"],
        "amount": format_cents(row["amount"]),
        "markup_amount": format_cents(row["markup_amount"]),
        "specialist_amount": format_cents(row["specialist_amount"]),
        "markup_percentage": row["markup_percentage"],
        "status": row["status"],
        "from_user_id": row["from_user_id"],
        "to_user_id": row["to_user_id"],
        "created_at": row["created_at"],
        "paid_at": row["paid_at"],
    }


def transaction_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "tx_id": row["tx_id"],
        "user_id": row["user_id"],
        "task_id": row["task_id"],
        "type": row["type"],
        "status": row["status"],
        "amount": format_cents(row["amount"]),
        "balance_after": format_cents(row["balance_after"]),
        "description": row["description"],
        "reference": row["reference"],
        "year": row["year"],
        "month": row["month"],
        "day": row["day"],
        "created_at": row["created_at"],
    }


def adjustment_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "adjustment_id": row["adjustment_id"],
        "user_id": row["user_id"],
        "admin_id": row["admin_id"],
        "amount": format_cents(row["amount"]),
        "previous_balance": format_cents(row["previous_balance"]),
        "new_balance": format_cents(row["new_balance"]),
        "reason": row["reason"],
        "type": row["type"],
        "tx_id": row["tx_id"],
        "created_at": row["created_at"],
    }


def invoice_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "invoice_id": row["invoice_id"],
        "invoice_number": row["invoice_number"],
        "user_id": row["user_id"],
        "amount": format_cents(row["amount"]),
        "tax": format_cents(row["tax"]),
        "total": format_cents(row["total"]),
        "status": row["status"],
        "due_date": row["due_date"],
        "paid_date": row["paid_date"],
        "notes": row["notes"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }
