"""SQLite connection shared by the task and ledger stores."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    role TEXT NOT NULL DEFAULT 'client',
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    task_id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL REFERENCES users(user_id),
    specialist_id TEXT REFERENCES users(user_id),
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    priority TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'created',
    estimated_hours INTEGER,
    hourly_rate INTEGER,
    total_cost INTEGER,
    deadline TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS evaluations (
    evaluation_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    specialist_id TEXT NOT NULL REFERENCES users(user_id),
    estimated_hours INTEGER NOT NULL CHECK (estimated_hours > 0),
    hourly_rate INTEGER NOT NULL CHECK (hourly_rate >= 0),
    total_cost INTEGER NOT NULL CHECK (total_cost >= 0),
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS task_assignments (
    assignment_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    specialist_id TEXT NOT NULL REFERENCES users(user_id),
    assigned_by TEXT NOT NULL REFERENCES users(user_id),
    assigned_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    notes TEXT
);

CREATE TABLE IF NOT EXISTS task_updates (
    update_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    user_id TEXT NOT NULL,
    content TEXT NOT NULL,
    type TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS payments (
    payment_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    amount INTEGER NOT NULL CHECK (amount >= 0),
    markup_amount INTEGER NOT NULL CHECK (markup_amount >= 0),
    specialist_amount INTEGER NOT NULL CHECK (specialist_amount >= 0),
    markup_percentage TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    from_user_id TEXT NOT NULL REFERENCES users(user_id),
    to_user_id TEXT REFERENCES users(user_id),
    created_at TEXT NOT NULL,
    paid_at TEXT,
    CHECK (amount = specialist_amount + markup_amount)
);

CREATE TABLE IF NOT EXISTS transactions (
    tx_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id),
    task_id TEXT REFERENCES tasks(task_id),
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'completed',
    amount INTEGER NOT NULL CHECK (amount <> 0),
    balance_after INTEGER NOT NULL,
    description TEXT NOT NULL,
    reference TEXT NOT NULL,
    year INTEGER NOT NULL,
    month INTEGER NOT NULL,
    day INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS balance_adjustments (
    adjustment_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id),
    admin_id TEXT NOT NULL REFERENCES users(user_id),
    amount INTEGER NOT NULL CHECK (amount > 0),
    previous_balance INTEGER NOT NULL,
    new_balance INTEGER NOT NULL CHECK (new_balance >= 0),
    reason TEXT NOT NULL,
    type TEXT NOT NULL,
    tx_id TEXT NOT NULL REFERENCES transactions(tx_id),
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS invoices (
    invoice_id TEXT PRIMARY KEY,
    invoice_number TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES users(user_id),
    amount INTEGER NOT NULL CHECK (amount >= 0),
    tax INTEGER NOT NULL CHECK (tax >= 0),
    total INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    due_date TEXT,
    paid_date TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (total = amount + tax)
);

CREATE TABLE IF NOT EXISTS platform_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    description TEXT,
    updated_by TEXT,
    updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_completed_payment_task
    ON payments(task_id)
    WHERE status = 'completed';

CREATE UNIQUE INDEX IF NOT EXISTS ux_pending_payment_task
    ON payments(task_id)
    WHERE status = 'pending';

CREATE UNIQUE INDEX IF NOT EXISTS ux_payout_task
    ON transactions(task_id)
    WHERE type = 'payout';

CREATE UNIQUE INDEX IF NOT EXISTS ux_accepted_evaluation_task
    ON evaluations(task_id)
    WHERE status = 'accepted';

CREATE UNIQUE INDEX IF NOT EXISTS ux_active_assignment_task
    ON task_assignments(task_id)
    WHERE status = 'active';

CREATE INDEX IF NOT EXISTS ix_transactions_user_created
    ON transactions(user_id, created_at, tx_id);

CREATE INDEX IF NOT EXISTS ix_tasks_status_created
    ON tasks(status, created_at);
"""


def now_iso() -> str:
    """Current UTC timestamp in ISO 8601 format with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_id(prefix: str) -> str:
    """Generate a prefixed record ID."""
    return f"{prefix}-{uuid.uuid4()}"


class Database:
    """
    One SQLite connection plus the transaction discipline around it.

    Every multi-write operation runs inside ``transaction()``, which takes
    SQLite's writer lock with BEGIN IMMEDIATE. That serialises
    read-modify-write sequences across worker processes sharing the file;
    the RLock does the same for threads sharing this connection. Nested
    ``transaction()`` calls join the outer one.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        self._depth = 0
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(_SCHEMA)
            self._db.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block atomically; roll back on any exception."""
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self._db
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self._db
            except BaseException:
                self._db.rollback()
                raise
            else:
                self._db.commit()
            finally:
                self._depth = 0

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        """Hold the connection lock for a read."""
        with self._lock:
            yield self._db

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
