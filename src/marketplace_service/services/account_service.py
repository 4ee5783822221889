"""User accounts: balances, transaction history, invoices, and reconciliation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from marketplace_service.logging import get_logger
from marketplace_service.services.access import require_self_or_admin, resolve_actor
from marketplace_service.services.database import new_id
from marketplace_service.services.errors import NotFoundError, invalid_payload
from marketplace_service.services.money import format_amount, format_cents, parse_amount, to_cents
from marketplace_service.services.records import (
    invoice_to_response,
    transaction_to_response,
    user_to_response,
)
from marketplace_service.services.state_machine import Role, parse_role

if TYPE_CHECKING:
    from marketplace_service.services.ledger_store import LedgerStore


class AccountService:
    """Read access to a user's ledger plus self-service top-ups."""

    def __init__(self, ledger_store: LedgerStore, transaction_history_limit: int) -> None:
        self._ledger_store = ledger_store
        self._history_limit = transaction_history_limit
        self._logger = get_logger(__name__)

    def ensure_user(self, user_id: str, role: object = Role.CLIENT.value) -> dict[str, Any]:
        """Create the user on first authentication; existing users are returned as-is."""
        if not isinstance(user_id, str) or user_id.strip() == "":
            raise invalid_payload("user_id must be a non-empty string")
        user = self._ledger_store.ensure_user(user_id, parse_role(role).value)
        return user_to_response(user)

    def get_user(self, acting_user_id: str, user_id: str) -> dict[str, Any]:
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        require_self_or_admin(acting_user_id, role, user_id)
        user = self._ledger_store.get_user(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user_to_response(user)

    def get_user_balance(self, acting_user_id: str, user_id: str) -> dict[str, Any]:
        user = self.get_user(acting_user_id, user_id)
        return {"user_id": user["user_id"], "balance": user["balance"]}

    def get_transaction_history(
        self,
        acting_user_id: str,
        user_id: str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Newest-first transactions; limit defaults to the configured history size."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        require_self_or_admin(acting_user_id, role, user_id)
        if limit is not None and (isinstance(limit, bool) or limit <= 0):
            raise invalid_payload("limit must be a positive integer")
        if self._ledger_store.get_user(user_id) is None:
            raise NotFoundError("user", user_id)
        rows = self._ledger_store.list_transactions(user_id, limit or self._history_limit)
        return [transaction_to_response(row) for row in rows]

    def get_user_invoices(self, acting_user_id: str, user_id: str) -> list[dict[str, Any]]:
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        require_self_or_admin(acting_user_id, role, user_id)
        return [invoice_to_response(row) for row in self._ledger_store.list_invoices(user_id)]

    def top_up(self, user_id: str, amount: object) -> dict[str, Any]:
        """Credit the caller's own balance, recorded as a ``topup`` transaction."""
        resolve_actor(self._ledger_store, user_id)
        value = parse_amount(amount, "amount")
        # TODO: capture the card payment here once a gateway is integrated; until
        # then the HTTP route is gated by payments.self_service_topup.
        tx = self._ledger_store.apply_balance_change(
            user_id,
            to_cents(value),
            tx_type="topup",
            description="Balance top-up",
            reference=new_id("topup"),
            task_id=None,
        )
        self._logger.info(
            "Balance topped up",
            extra={"user_id": user_id, "amount": format_amount(value), "tx_id": tx["tx_id"]},
        )
        return transaction_to_response(tx)

    def reconcile(self, acting_user_id: str, user_id: str) -> dict[str, Any]:
        """Compare a user's balance against the sum of their transactions."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        require_self_or_admin(acting_user_id, role, user_id)
        user = self._ledger_store.get_user(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        total = self._ledger_store.sum_transactions(user_id)
        consistent = total == user["balance"]
        if not consistent:
            self._logger.error(
                "Ledger out of balance",
                extra={"user_id": user_id, "balance": user["balance"], "transaction_total": total},
            )
        return {
            "user_id": user_id,
            "balance": format_cents(user["balance"]),
            "transaction_total": format_cents(total),
            "consistent": consistent,
        }
