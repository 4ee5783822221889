"""SQLite-backed ledger storage: users, balances, and the audit trail.

Balances are integer cents. Every balance change goes through
``apply_balance_change``, which writes the matching transaction row in
the same database transaction, so the sum of a user's transactions
always equals their balance.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from marketplace_service.services.database import new_id, now_iso
from marketplace_service.services.errors import (
    InsufficientBalanceError,
    NotFoundError,
    invalid_amount,
)
from marketplace_service.services.money import MAX_BALANCE_CENTS, format_cents

if TYPE_CHECKING:
    import sqlite3

    from marketplace_service.services.database import Database


class LedgerStore:
    """Storage for users, balances, payments, and ledger audit records."""

    _USER_COLUMNS: tuple[str, ...] = ("user_id", "role", "balance", "created_at", "updated_at")
    _PAYMENT_COLUMNS: tuple[str, ...] = (
        "payment_id",
        "task_id",
        "amount",
        "markup_amount",
        "specialist_amount",
        "markup_percentage",
        "status",
        "from_user_id",
        "to_user_id",
        "created_at",
        "paid_at",
    )
    _TRANSACTION_COLUMNS: tuple[str, ...] = (
        "tx_id",
        "user_id",
        "task_id",
        "type",
        "status",
        "amount",
        "balance_after",
        "description",
        "reference",
        "year",
        "month",
        "day",
        "created_at",
    )
    _ADJUSTMENT_COLUMNS: tuple[str, ...] = (
        "adjustment_id",
        "user_id",
        "admin_id",
        "amount",
        "previous_balance",
        "new_balance",
        "reason",
        "type",
        "tx_id",
        "created_at",
    )
    _INVOICE_COLUMNS: tuple[str, ...] = (
        "invoice_id",
        "invoice_number",
        "user_id",
        "amount",
        "tax",
        "total",
        "status",
        "due_date",
        "paid_date",
        "notes",
        "created_at",
        "updated_at",
    )

    def __init__(self, database: Database) -> None:
        self._db = database

    @staticmethod
    def _row(row: sqlite3.Row, columns: tuple[str, ...]) -> dict[str, Any]:
        return {column: row[column] for column in columns}

    @staticmethod
    def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
        return (
            f"INSERT INTO {table} ({', '.join(columns)}) "  # nosec B608
            f"VALUES ({', '.join('?' for _ in columns)})"
        )

    # ------------------------------------------------------------------
    # Users and balances
    # ------------------------------------------------------------------

    def ensure_user(self, user_id: str, role: str) -> dict[str, Any]:
        """Create the user with a zero balance unless it already exists."""
        now = now_iso()
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (user_id, role, balance, created_at, updated_at) "
                "VALUES (?, ?, 0, ?, ?)",
                (user_id, role, now, now),
            )
        user = self.get_user(user_id)
        if user is None:
            msg = "User not found after insert"
            raise RuntimeError(msg)
        return user

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Look up a user by ID. Returns None if not found."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT user_id, role, balance, created_at, updated_at FROM users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._USER_COLUMNS)

    def list_users(self, role: str | None) -> list[dict[str, Any]]:
        """All users, newest first, optionally filtered by role."""
        query = "SELECT user_id, role, balance, created_at, updated_at FROM users"
        params: list[object] = []
        if role is not None:
            query += " WHERE role = ?"
            params.append(role)
        query += " ORDER BY created_at DESC, rowid DESC"
        with self._db.reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row(row, self._USER_COLUMNS) for row in rows]

    def set_role(self, user_id: str, role: str) -> int:
        """Change a user's role."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE users SET role = ?, updated_at = ? WHERE user_id = ?",
                (role, now_iso(), user_id),
            )
        return int(cursor.rowcount)

    def apply_balance_change(
        self,
        user_id: str,
        delta: int,
        *,
        tx_type: str,
        description: str,
        reference: str,
        task_id: str | None,
    ) -> dict[str, Any]:
        """
        Change a balance by delta cents and append the matching transaction.

        The update is conditional, so a concurrent debit cannot push the
        balance below zero and a credit cannot lift it above MAX_BALANCE_CENTS.

        Returns:
            The transaction record.

        Raises:
            NotFoundError: the user does not exist.
            InsufficientBalanceError: the debit would go negative.
            ServiceError: INVALID_AMOUNT when a credit would exceed the ceiling.
        """
        if delta == 0:
            msg = "Balance change must be non-zero"
            raise ValueError(msg)

        created = datetime.now(UTC)
        now = created.isoformat(timespec="microseconds").replace("+00:00", "Z")
        tx_id = new_id("tx")

        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE users SET balance = balance + ?, updated_at = ? "
                "WHERE user_id = ? AND balance + ? BETWEEN 0 AND ?",
                (delta, now, user_id, delta, MAX_BALANCE_CENTS),
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT balance FROM users WHERE user_id = ?", (user_id,)
                ).fetchone()
                if row is None:
                    raise NotFoundError("user", user_id)
                if delta > 0:
                    raise invalid_amount(
                        f"Balance would exceed the maximum of {format_cents(MAX_BALANCE_CENTS)}"
                    )
                raise InsufficientBalanceError(
                    user_id, format_cents(int(row[0])), format_cents(-delta)
                )

            row = conn.execute("SELECT balance FROM users WHERE user_id = ?", (user_id,)).fetchone()
            if row is None:
                msg = "User not found after balance update"
                raise RuntimeError(msg)
            balance_after = cast("int", row[0])

            record = {
                "tx_id": tx_id,
                "user_id": user_id,
                "task_id": task_id,
                "type": tx_type,
                "status": "completed",
                "amount": delta,
                "balance_after": balance_after,
                "description": description,
                "reference": reference,
                "year": created.year,
                "month": created.month,
                "day": created.day,
                "created_at": now,
            }
            conn.execute(
                self._insert_sql("transactions", self._TRANSACTION_COLUMNS),
                tuple(record[column] for column in self._TRANSACTION_COLUMNS),
            )
        return record

    def list_transactions(self, user_id: str, limit: int | None) -> list[dict[str, Any]]:
        """Transaction history for a user, newest first."""
        query = (
            "SELECT " + ", ".join(self._TRANSACTION_COLUMNS) + " FROM transactions "  # nosec B608
            "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC"
        )
        params: list[object] = [user_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._db.reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row(row, self._TRANSACTION_COLUMNS) for row in rows]

    def sum_transactions(self, user_id: str) -> int:
        """Sum of all signed transaction amounts for a user."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(amount), 0) FROM transactions WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row[0]) if row is not None else 0

    def get_payout_transaction(self, task_id: str) -> dict[str, Any] | None:
        """The payout transaction recorded for a task, if any."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT " + ", ".join(self._TRANSACTION_COLUMNS) + " FROM transactions "  # nosec B608
                "WHERE task_id = ? AND type = 'payout'",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._TRANSACTION_COLUMNS)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def insert_payment(self, payment_data: dict[str, Any]) -> None:
        """Insert a payment row."""
        with self._db.transaction() as conn:
            conn.execute(
                self._insert_sql("payments", self._PAYMENT_COLUMNS),
                tuple(payment_data[column] for column in self._PAYMENT_COLUMNS),
            )

    def update_pending_payment(self, payment_id: str, updates: dict[str, Any]) -> int:
        """Update a payment that is still pending; returns affected rows."""
        if any(column not in self._PAYMENT_COLUMNS for column in updates):
            msg = "Attempted to update unknown payment column"
            raise ValueError(msg)
        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = [*updates.values(), payment_id]
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE payments SET " + set_clause  # nosec B608
                + " WHERE payment_id = ? AND status = 'pending'",
                params,
            )
        return int(cursor.rowcount)

    def cancel_pending_payment(self, task_id: str) -> int:
        """Cancel the task's pending payment, if any; returns affected rows."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE payments SET status = 'cancelled' "
                "WHERE task_id = ? AND status = 'pending'",
                (task_id,),
            )
        return int(cursor.rowcount)

    def get_task_payment(self, task_id: str, status: str) -> dict[str, Any] | None:
        """The task's payment in the given status (at most one exists)."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT " + ", ".join(self._PAYMENT_COLUMNS) + " FROM payments "  # nosec B608
                "WHERE task_id = ? AND status = ?",
                (task_id, status),
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._PAYMENT_COLUMNS)

    def list_payments(self, task_id: str) -> list[dict[str, Any]]:
        """All payments of a task, newest first."""
        with self._db.reading() as conn:
            rows = conn.execute(
                "SELECT " + ", ".join(self._PAYMENT_COLUMNS) + " FROM payments "  # nosec B608
                "WHERE task_id = ? ORDER BY created_at DESC, rowid DESC",
                (task_id,),
            ).fetchall()
        return [self._row(row, self._PAYMENT_COLUMNS) for row in rows]

    # ------------------------------------------------------------------
    # Balance adjustments
    # ------------------------------------------------------------------

    def insert_adjustment(self, adjustment_data: dict[str, Any]) -> None:
        """Insert an immutable balance-adjustment audit record."""
        with self._db.transaction() as conn:
            conn.execute(
                self._insert_sql("balance_adjustments", self._ADJUSTMENT_COLUMNS),
                tuple(adjustment_data[column] for column in self._ADJUSTMENT_COLUMNS),
            )

    def list_adjustments(self, user_id: str) -> list[dict[str, Any]]:
        """Balance adjustments for a user, newest first."""
        with self._db.reading() as conn:
            rows = conn.execute(
                "SELECT " + ", ".join(self._ADJUSTMENT_COLUMNS) + " FROM balance_adjustments "  # nosec B608
                "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [self._row(row, self._ADJUSTMENT_COLUMNS) for row in rows]

    def list_all_adjustments(self, limit: int | None) -> list[dict[str, Any]]:
        """Balance adjustments across all users, newest first."""
        query = (
            "SELECT " + ", ".join(self._ADJUSTMENT_COLUMNS) + " FROM balance_adjustments "  # nosec B608
            "ORDER BY created_at DESC, rowid DESC"
        )
        params: list[object] = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._db.reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row(row, self._ADJUSTMENT_COLUMNS) for row in rows]

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def insert_invoice(self, invoice_data: dict[str, Any]) -> None:
        """Insert an invoice row."""
        with self._db.transaction() as conn:
            conn.execute(
                self._insert_sql("invoices", self._INVOICE_COLUMNS),
                tuple(invoice_data[column] for column in self._INVOICE_COLUMNS),
            )

    def get_invoice(self, invoice_id: str) -> dict[str, Any] | None:
        """Fetch an invoice by ID."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT " + ", ".join(self._INVOICE_COLUMNS) + " FROM invoices "  # nosec B608
                "WHERE invoice_id = ?",
                (invoice_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._INVOICE_COLUMNS)

    def list_invoices(self, user_id: str) -> list[dict[str, Any]]:
        """Invoices billed to a user, newest first."""
        with self._db.reading() as conn:
            rows = conn.execute(
                "SELECT " + ", ".join(self._INVOICE_COLUMNS) + " FROM invoices "  # nosec B608
                "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [self._row(row, self._INVOICE_COLUMNS) for row in rows]

    def mark_invoice_paid(self, invoice_id: str) -> int:
        """Flip a pending invoice to paid; returns affected rows."""
        now = now_iso()
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE invoices SET status = 'paid', paid_date = ?, updated_at = ? "
                "WHERE invoice_id = ? AND status = 'pending'",
                (now, now, invoice_id),
            )
        return int(cursor.rowcount)

    # ------------------------------------------------------------------
    # Platform settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        """Read a platform setting value."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT value FROM platform_settings WHERE key = ?", (key,)
            ).fetchone()
        return None if row is None else str(row[0])

    def list_settings(self) -> list[dict[str, Any]]:
        """All platform settings ordered by key."""
        with self._db.reading() as conn:
            rows = conn.execute(
                "SELECT key, value, description, updated_by, updated_at "
                "FROM platform_settings ORDER BY key"
            ).fetchall()
        return [
            self._row(row, ("key", "value", "description", "updated_by", "updated_at"))
            for row in rows
        ]

    def set_setting(self, key: str, value: str, description: str | None, updated_by: str) -> None:
        """Create or replace a platform setting."""
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO platform_settings (key, value, description, updated_by, updated_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "description = COALESCE(excluded.description, platform_settings.description), "
                "updated_by = excluded.updated_by, updated_at = excluded.updated_at",
                (key, value, description, updated_by, now_iso()),
            )
