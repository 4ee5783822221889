"""Payment processing: escrowing client funds with the platform markup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from marketplace_service.logging import get_logger
from marketplace_service.services.access import resolve_actor
from marketplace_service.services.database import new_id, now_iso
from marketplace_service.services.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    invalid_amount,
)
from marketplace_service.services.lifecycle import persist_transition
from marketplace_service.services.money import (
    format_amount,
    from_cents,
    parse_amount,
    parse_percentage,
    percentage_of,
    to_cents,
)
from marketplace_service.services.records import payment_to_response
from marketplace_service.services.state_machine import Role, TaskStateMachine, TaskStatus, Trigger

if TYPE_CHECKING:
    from decimal import Decimal

    from marketplace_service.services.database import Database
    from marketplace_service.services.ledger_store import LedgerStore
    from marketplace_service.services.task_store import TaskStore

MARKUP_SETTING_KEY = "markup_percentage"


class SettingsLookup(Protocol):
    """Read-only key/value access to platform settings."""

    def get_setting(self, key: str) -> str | None: ...


@dataclass(frozen=True)
class PaymentQuote:
    """What a client pays for a task of a given pre-markup value."""

    specialist_amount: Decimal
    markup_amount: Decimal
    total_amount: Decimal
    markup_percentage: Decimal


class PaymentProcessor:
    """
    Charges clients for accepted tasks.

    A payment debits the client by the task value plus the platform
    markup, records a completed Payment and a ``payment`` transaction,
    and moves the task to ``paid``, all in one database transaction.
    """

    def __init__(
        self,
        database: Database,
        task_store: TaskStore,
        ledger_store: LedgerStore,
        settings_lookup: SettingsLookup,
        default_markup_percentage: Decimal,
    ) -> None:
        self._db = database
        self._task_store = task_store
        self._ledger_store = ledger_store
        self._settings_lookup = settings_lookup
        self._default_markup_percentage = default_markup_percentage
        self._logger = get_logger(__name__)

    def markup_percentage(self) -> Decimal:
        """Current markup rate; the configured default applies when unset."""
        raw = self._settings_lookup.get_setting(MARKUP_SETTING_KEY)
        if raw is None:
            return self._default_markup_percentage
        return parse_percentage(raw, MARKUP_SETTING_KEY)

    def quote(self, amount: Decimal) -> PaymentQuote:
        """Price a task: markup = amount * m / 100, total = amount + markup."""
        pct = self.markup_percentage()
        markup = percentage_of(amount, pct)
        return PaymentQuote(
            specialist_amount=amount,
            markup_amount=markup,
            total_amount=amount + markup,
            markup_percentage=pct,
        )

    def process_task_payment(
        self,
        task_id: str,
        client_id: str,
        amount: object | None = None,
    ) -> dict[str, Any]:
        """
        Escrow the client's funds for an evaluated task.

        Args:
            task_id: Task to pay for.
            client_id: Acting user; must own the task.
            amount: Pre-markup task value. Defaults to the accepted cost
                and must equal it when given.

        Raises:
            NotFoundError, ForbiddenError, InvalidTransitionError,
            InsufficientBalanceError, ServiceError(INVALID_AMOUNT).
        """
        _, role = resolve_actor(self._ledger_store, client_id)

        with self._db.transaction():
            task = self._task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            if task["client_id"] != client_id:
                raise ForbiddenError("Only the task client can pay for it")
            result = self._settle(task, client_id, role, amount)

        self._logger.info(
            "Task payment processed",
            extra={
                "task_id": task_id,
                "client_id": client_id,
                "payment_id": result["payment_id"],
                "total_amount": result["total_amount"],
            },
        )
        return result

    def charge_on_acceptance(
        self,
        task: dict[str, Any],
        client_id: str,
        role: Role,
    ) -> dict[str, Any]:
        """
        Create the payment that follows an accepted evaluation.

        Must run inside the caller's open database transaction. When the
        client can cover the total the payment completes immediately;
        otherwise a pending payment is recorded and the task stays
        ``evaluated`` until process_task_payment succeeds.
        """
        quote = self.quote(from_cents(task["total_cost"]))
        client = self._ledger_store.get_user(client_id)
        if client is None:
            raise NotFoundError("user", client_id)

        if client["balance"] >= to_cents(quote.total_amount):
            result = self._settle(task, client_id, role, None)
            payment = self._ledger_store.get_task_payment(task["task_id"], "completed")
            if payment is None:
                msg = "Completed payment missing after settlement"
                raise RuntimeError(msg)
            return {**payment_to_response(payment), "transaction_id": result["transaction_id"]}

        existing = self._ledger_store.get_task_payment(task["task_id"], "pending")
        if existing is not None:
            return {**payment_to_response(existing), "transaction_id": None}

        payment = {
            "payment_id": new_id("pay"),
            "task_id": task["task_id"],
            "amount": to_cents(quote.total_amount),
            "markup_amount": to_cents(quote.markup_amount),
            "specialist_amount": to_cents(quote.specialist_amount),
            "markup_percentage": str(quote.markup_percentage),
            "status": "pending",
            "from_user_id": client_id,
            "to_user_id": task["specialist_id"],
            "created_at": now_iso(),
            "paid_at": None,
        }
        self._ledger_store.insert_payment(payment)
        self._logger.info(
            "Payment pending until client balance covers it",
            extra={"task_id": task["task_id"], "payment_id": payment["payment_id"]},
        )
        return {**payment_to_response(payment), "transaction_id": None}

    def _settle(
        self,
        task: dict[str, Any],
        client_id: str,
        role: Role,
        amount_raw: object | None,
    ) -> dict[str, Any]:
        """Debit, record, and transition. Runs inside an open transaction."""
        edge = TaskStateMachine.authorize(task, TaskStatus.PAID, client_id, role, Trigger.PAYMENT)
        if task["total_cost"] is None:
            raise InvalidTransitionError(
                task["status"], TaskStatus.PAID.value, "no evaluation has been accepted"
            )

        agreed = from_cents(task["total_cost"])
        amount = agreed if amount_raw is None else parse_amount(amount_raw, "amount")
        if amount != agreed:
            raise invalid_amount(
                f"amount must equal the accepted task cost of {format_amount(agreed)}"
            )

        quote = self.quote(amount)
        pending = self._ledger_store.get_task_payment(task["task_id"], "pending")
        payment_id = pending["payment_id"] if pending is not None else new_id("pay")

        tx = self._ledger_store.apply_balance_change(
            client_id,
            -to_cents(quote.total_amount),
            tx_type="payment",
            description=f"Payment for task: {task['title']}",
            reference=payment_id,
            task_id=task["task_id"],
        )

        now = now_iso()
        fields: dict[str, Any] = {
            "amount": to_cents(quote.total_amount),
            "markup_amount": to_cents(quote.markup_amount),
            "specialist_amount": to_cents(quote.specialist_amount),
            "markup_percentage": str(quote.markup_percentage),
            "status": "completed",
            "to_user_id": task["specialist_id"],
            "paid_at": now,
        }
        if pending is not None:
            if self._ledger_store.update_pending_payment(payment_id, fields) != 1:
                msg = "Pending payment changed during settlement"
                raise RuntimeError(msg)
        else:
            self._ledger_store.insert_payment(
                {
                    "payment_id": payment_id,
                    "task_id": task["task_id"],
                    "from_user_id": client_id,
                    "created_at": now,
                    **fields,
                }
            )

        persist_transition(self._task_store, task, TaskStatus.PAID, edge, client_id)

        return {
            "payment_id": payment_id,
            "transaction_id": tx["tx_id"],
            "task_id": task["task_id"],
            "status": "completed",
            "amount": format_amount(quote.specialist_amount),
            "markup_amount": format_amount(quote.markup_amount),
            "total_amount": format_amount(quote.total_amount),
            "markup_percentage": str(quote.markup_percentage),
            "balance_after": format_amount(from_cents(tx["balance_after"])),
        }
