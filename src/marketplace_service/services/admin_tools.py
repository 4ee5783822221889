"""Administrator tools: balance corrections, task assignment, and platform upkeep."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from marketplace_service.logging import get_logger
from marketplace_service.services.access import require_role, resolve_actor
from marketplace_service.services.database import new_id, now_iso
from marketplace_service.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    invalid_payload,
    require_text,
)
from marketplace_service.services.money import (
    format_amount,
    parse_amount,
    parse_percentage,
    to_cents,
)
from marketplace_service.services.payment_processor import MARKUP_SETTING_KEY
from marketplace_service.services.records import (
    adjustment_to_response,
    invoice_to_response,
    user_to_response,
)
from marketplace_service.services.state_machine import (
    TERMINAL_STATUSES,
    Role,
    TaskStatus,
    parse_role,
)
from service_commons.exceptions import ServiceError

if TYPE_CHECKING:
    from marketplace_service.services.database import Database
    from marketplace_service.services.ledger_store import LedgerStore
    from marketplace_service.services.task_store import TaskStore

ADJUSTMENT_TYPES = ("credit", "debit")

_ADMIN_ONLY = "Only administrators can perform this operation"
_NOT_REASSIGNABLE = frozenset({TaskStatus.COMPLETED}) | TERMINAL_STATUSES


def _invoice_number() -> str:
    today = datetime.now(UTC).strftime("%Y%m%d")
    return f"INV-{today}-{uuid.uuid4().hex[:8].upper()}"


class AdminTools:
    """
    Out-of-band ledger and task operations reserved for administrators.

    Every balance correction produces a BalanceAdjustment and a matching
    transaction in the same database transaction as the balance update.
    """

    def __init__(
        self,
        database: Database,
        task_store: TaskStore,
        ledger_store: LedgerStore,
    ) -> None:
        self._db = database
        self._task_store = task_store
        self._ledger_store = ledger_store
        self._logger = get_logger(__name__)

    def _require_admin(self, admin_id: str) -> None:
        _, role = resolve_actor(self._ledger_store, admin_id)
        require_role(role, {Role.ADMIN}, _ADMIN_ONLY)

    def adjust_user_balance(
        self,
        admin_id: str,
        user_id: str,
        amount: object,
        reason: object,
        adjustment_type: object,
    ) -> dict[str, Any]:
        """
        Credit or debit a user's balance directly.

        Raises:
            ForbiddenError: caller is not an admin.
            NotFoundError: user unknown.
            InsufficientBalanceError: a debit would leave a negative balance.
            ServiceError: INVALID_AMOUNT / INVALID_PAYLOAD.
        """
        self._require_admin(admin_id)

        value = parse_amount(amount, "amount")
        reason_text = require_text(reason, "reason")
        if adjustment_type not in ADJUSTMENT_TYPES:
            raise invalid_payload("type must be one of: credit, debit")

        cents = to_cents(value)
        delta = cents if adjustment_type == "credit" else -cents
        adjustment_id = new_id("adj")

        with self._db.transaction():
            user = self._ledger_store.get_user(user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            previous = user["balance"]

            tx = self._ledger_store.apply_balance_change(
                user_id,
                delta,
                tx_type="topup" if adjustment_type == "credit" else "debit",
                description=f"Balance {adjustment_type} by administrator: {reason_text}",
                reference=adjustment_id,
                task_id=None,
            )
            adjustment = {
                "adjustment_id": adjustment_id,
                "user_id": user_id,
                "admin_id": admin_id,
                "amount": cents,
                "previous_balance": previous,
                "new_balance": tx["balance_after"],
                "reason": reason_text,
                "type": adjustment_type,
                "tx_id": tx["tx_id"],
                "created_at": tx["created_at"],
            }
            self._ledger_store.insert_adjustment(adjustment)

        self._logger.info(
            "Balance adjusted",
            extra={
                "adjustment_id": adjustment_id,
                "user_id": user_id,
                "admin_id": admin_id,
                "type": adjustment_type,
                "amount": format_amount(value),
            },
        )
        return adjustment_to_response(adjustment)

    def list_adjustments(self, admin_id: str, user_id: str) -> list[dict[str, Any]]:
        """Balance adjustments of a user, newest first."""
        self._require_admin(admin_id)
        if self._ledger_store.get_user(user_id) is None:
            raise NotFoundError("user", user_id)
        return [adjustment_to_response(row) for row in self._ledger_store.list_adjustments(user_id)]

    def list_all_adjustments(self, admin_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        """Balance adjustments across every user, newest first."""
        self._require_admin(admin_id)
        return [
            adjustment_to_response(row) for row in self._ledger_store.list_all_adjustments(limit)
        ]

    def assign_task_to_specialist(
        self,
        admin_id: str,
        task_id: str,
        specialist_id: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """
        Set the task's specialist directly, bypassing evaluations.

        Any active assignment is marked reassigned; the new one becomes
        active. The task status is left unchanged.
        """
        self._require_admin(admin_id)
        if notes is not None and not isinstance(notes, str):
            raise invalid_payload("notes must be a string")

        specialist = self._ledger_store.get_user(specialist_id)
        if specialist is None:
            raise NotFoundError("user", specialist_id)
        if specialist["role"] != Role.SPECIALIST.value:
            raise ServiceError(
                "USER_NOT_SPECIALIST",
                "Tasks can only be assigned to specialists",
                400,
                {"user_id": specialist_id, "role": specialist["role"]},
            )

        now = now_iso()
        assignment = {
            "assignment_id": new_id("asg"),
            "task_id": task_id,
            "specialist_id": specialist_id,
            "assigned_by": admin_id,
            "assigned_at": now,
            "status": "active",
            "notes": notes,
        }

        with self._db.transaction():
            task = self._task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            if TaskStatus(task["status"]) in _NOT_REASSIGNABLE:
                raise InvalidTransitionError(
                    task["status"], task["status"], "the task can no longer be reassigned"
                )
            superseded = self._task_store.replace_active_assignment(assignment)
            changed = self._task_store.update_task(
                task_id,
                {"specialist_id": specialist_id, "updated_at": now},
                expected_status=task["status"],
            )
            if changed != 1:
                raise InvalidTransitionError(
                    task["status"], task["status"], "the task status changed concurrently"
                )
            self._task_store.insert_update(
                {
                    "update_id": new_id("upd"),
                    "task_id": task_id,
                    "user_id": admin_id,
                    "content": f"Assigned to specialist {specialist_id} by administrator",
                    "type": "update",
                    "created_at": now,
                }
            )

        self._logger.info(
            "Task assigned",
            extra={
                "task_id": task_id,
                "specialist_id": specialist_id,
                "admin_id": admin_id,
                "superseded": superseded,
            },
        )
        return {**assignment, "superseded_assignments": superseded}

    def list_assignments(self, admin_id: str, task_id: str) -> list[dict[str, Any]]:
        """Assignment history of a task, oldest first."""
        self._require_admin(admin_id)
        if self._task_store.get_task(task_id) is None:
            raise NotFoundError("task", task_id)
        return self._task_store.list_assignments(task_id)

    def create_user(self, admin_id: str, user_id: object, role: object) -> dict[str, Any]:
        """Register a user ahead of their first request, with the given role."""
        self._require_admin(admin_id)
        new_user_id = require_text(user_id, "user_id", max_length=100)
        new_role = parse_role(role)
        with self._db.transaction():
            if self._ledger_store.get_user(new_user_id) is not None:
                raise ServiceError(
                    "USER_EXISTS",
                    "A user with this id already exists",
                    409,
                    {"user_id": new_user_id},
                )
            user = self._ledger_store.ensure_user(new_user_id, new_role.value)
        self._logger.info(
            "User created",
            extra={"user_id": new_user_id, "role": new_role.value, "admin_id": admin_id},
        )
        return user_to_response(user)

    def list_users(self, admin_id: str, role: object | None = None) -> list[dict[str, Any]]:
        """All users, newest first, optionally filtered by role."""
        self._require_admin(admin_id)
        role_filter = None if role is None else parse_role(role).value
        return [user_to_response(row) for row in self._ledger_store.list_users(role_filter)]

    def update_user_role(self, admin_id: str, user_id: str, role: object) -> dict[str, Any]:
        """Change a user's role; ``blocked`` locks them out of every operation."""
        self._require_admin(admin_id)
        new_role = parse_role(role)
        if self._ledger_store.set_role(user_id, new_role.value) != 1:
            raise NotFoundError("user", user_id)
        user = self._ledger_store.get_user(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        self._logger.info(
            "User role updated",
            extra={"user_id": user_id, "role": new_role.value, "admin_id": admin_id},
        )
        return user_to_response(user)

    def set_platform_setting(
        self,
        admin_id: str,
        key: object,
        value: object,
        description: object = None,
    ) -> dict[str, Any]:
        """Create or replace a platform setting; the markup must be a valid percentage."""
        self._require_admin(admin_id)
        if description is not None and not isinstance(description, str):
            raise invalid_payload("description must be a string")
        setting_key = require_text(key, "key", max_length=100)
        setting_value = require_text(value, "value")
        if setting_key == MARKUP_SETTING_KEY:
            setting_value = str(parse_percentage(setting_value, MARKUP_SETTING_KEY))
        self._ledger_store.set_setting(setting_key, setting_value, description, admin_id)
        self._logger.info(
            "Platform setting updated",
            extra={"key": setting_key, "value": setting_value, "admin_id": admin_id},
        )
        return {"key": setting_key, "value": setting_value}

    def list_platform_settings(self, admin_id: str) -> list[dict[str, Any]]:
        self._require_admin(admin_id)
        return self._ledger_store.list_settings()

    def create_invoice(
        self,
        admin_id: str,
        user_id: object,
        amount: object,
        tax: object = "0.00",
        due_date: object = None,
        notes: object = None,
    ) -> dict[str, Any]:
        """Bill a user; total = amount + tax."""
        self._require_admin(admin_id)
        billed_user = require_text(user_id, "user_id")
        if self._ledger_store.get_user(billed_user) is None:
            raise NotFoundError("user", billed_user)

        value = parse_amount(amount, "amount")
        tax_value = parse_amount(tax, "tax", allow_zero=True)
        if notes is not None and not isinstance(notes, str):
            raise invalid_payload("notes must be a string")
        if due_date is not None:
            if not isinstance(due_date, str):
                raise invalid_payload("due_date must be an ISO 8601 date")
            try:
                datetime.fromisoformat(due_date)
            except ValueError as exc:
                raise invalid_payload("due_date must be an ISO 8601 date") from exc

        now = now_iso()
        invoice = {
            "invoice_id": new_id("inv"),
            "invoice_number": _invoice_number(),
            "user_id": billed_user,
            "amount": to_cents(value),
            "tax": to_cents(tax_value),
            "total": to_cents(value + tax_value),
            "status": "pending",
            "due_date": due_date,
            "paid_date": None,
            "notes": notes,
            "created_at": now,
            "updated_at": now,
        }
        self._ledger_store.insert_invoice(invoice)
        self._logger.info(
            "Invoice created",
            extra={
                "invoice_id": invoice["invoice_id"],
                "user_id": billed_user,
                "total": format_amount(value + tax_value),
            },
        )
        return invoice_to_response(invoice)

    def mark_invoice_paid(self, admin_id: str, invoice_id: str) -> dict[str, Any]:
        """Mark a pending invoice as paid."""
        self._require_admin(admin_id)
        invoice = self._ledger_store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        if self._ledger_store.mark_invoice_paid(invoice_id) != 1:
            raise ServiceError(
                "INVOICE_ALREADY_PAID",
                "Invoice has already been paid",
                409,
                {"invoice_id": invoice_id},
            )
        updated = self._ledger_store.get_invoice(invoice_id)
        if updated is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice_to_response(updated)
