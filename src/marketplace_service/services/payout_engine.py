"""Specialist payout on completed tasks."""

from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from marketplace_service.logging import get_logger
from marketplace_service.services.access import resolve_actor
from marketplace_service.services.errors import (
    ForbiddenError,
    NotFoundError,
    PayoutPreconditionError,
)
from marketplace_service.services.lifecycle import persist_transition
from marketplace_service.services.money import (
    format_amount,
    from_cents,
    percentage_of,
    to_cents,
)
from marketplace_service.services.state_machine import Role, TaskStateMachine, TaskStatus, Trigger

if TYPE_CHECKING:
    from marketplace_service.services.database import Database
    from marketplace_service.services.ledger_store import LedgerStore
    from marketplace_service.services.task_store import TaskStore

SPECIALIST_COMMISSION_PCT = Decimal("50")

_ALREADY_PAID_OUT = "Payout already processed for this task"


class PayoutEngine:
    """Credits the specialist's commission once a paid task is completed."""

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

    def process_specialist_payout(self, task_id: str, acting_user_id: str) -> dict[str, Any]:
        """
        Pay the assigned specialist their commission on the task's payment.

        The commission is SPECIALIST_COMMISSION_PCT of the payment's
        specialist_amount. Crediting the specialist, writing the payout
        transaction and moving the task to paid_out happen together.

        Raises:
            NotFoundError: task or user unknown.
            ForbiddenError: caller is neither an admin nor the assigned specialist.
            PayoutPreconditionError: task not completed, no completed
                payment, or the payout already happened.
        """
        _, role = resolve_actor(self._ledger_store, acting_user_id)

        try:
            with self._db.transaction():
                task = self._task_store.get_task(task_id)
                if task is None:
                    raise NotFoundError("task", task_id)

                is_assigned = task["specialist_id"] == acting_user_id
                if role is not Role.ADMIN and not (role is Role.SPECIALIST and is_assigned):
                    raise ForbiddenError(
                        "Only an administrator or the assigned specialist can request a payout"
                    )

                if (
                    task["status"] == TaskStatus.PAID_OUT.value
                    or self._ledger_store.get_payout_transaction(task_id) is not None
                ):
                    raise PayoutPreconditionError(_ALREADY_PAID_OUT, task_id)
                if task["status"] != TaskStatus.COMPLETED.value:
                    raise PayoutPreconditionError(
                        f"Task must be completed before payout (status is {task['status']})",
                        task_id,
                    )
                specialist_id = task["specialist_id"]
                if specialist_id is None:
                    raise PayoutPreconditionError("Task has no assigned specialist", task_id)

                payment = self._ledger_store.get_task_payment(task_id, "completed")
                if payment is None:
                    raise PayoutPreconditionError(
                        "No completed payment exists for this task", task_id
                    )

                edge = TaskStateMachine.authorize(
                    task, TaskStatus.PAID_OUT, acting_user_id, role, Trigger.PAYOUT
                )

                commission = percentage_of(
                    from_cents(payment["specialist_amount"]), SPECIALIST_COMMISSION_PCT
                )
                tx = self._ledger_store.apply_balance_change(
                    specialist_id,
                    to_cents(commission),
                    tx_type="payout",
                    description=f"Payout for task: {task['title']}",
                    reference=payment["payment_id"],
                    task_id=task_id,
                )
                persist_transition(
                    self._task_store, task, TaskStatus.PAID_OUT, edge, acting_user_id
                )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise PayoutPreconditionError(_ALREADY_PAID_OUT, task_id) from exc
            raise

        self._logger.info(
            "Specialist payout processed",
            extra={
                "task_id": task_id,
                "specialist_id": specialist_id,
                "payout_amount": format_amount(commission),
                "tx_id": tx["tx_id"],
            },
        )
        return {
            "task_id": task_id,
            "specialist_id": specialist_id,
            "payment_id": payment["payment_id"],
            "transaction_id": tx["tx_id"],
            "specialist_amount": format_amount(from_cents(payment["specialist_amount"])),
            "commission_percentage": str(SPECIALIST_COMMISSION_PCT),
            "payout_amount": format_amount(commission),
            "balance_after": format_amount(from_cents(tx["balance_after"])),
            "status": TaskStatus.PAID_OUT.value,
        }
