"""Shared fixtures: a fully wired marketplace engine over a temporary SQLite file."""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Any

import pytest

from marketplace_service.config import clear_settings_cache
from marketplace_service.core.state import reset_app_state
from marketplace_service.services.account_service import AccountService
from marketplace_service.services.admin_tools import AdminTools
from marketplace_service.services.database import Database
from marketplace_service.services.evaluation_workflow import EvaluationWorkflow
from marketplace_service.services.ledger_store import LedgerStore
from marketplace_service.services.money import format_cents
from marketplace_service.services.payment_processor import PaymentProcessor
from marketplace_service.services.payout_engine import PayoutEngine
from marketplace_service.services.task_manager import TaskManager
from marketplace_service.services.task_store import TaskStore


class Marketplace:
    """Engine components sharing one Database, plus scenario helpers."""

    CLIENT = "u-client"
    OTHER_CLIENT = "u-client-2"
    SPECIALIST = "u-specialist"
    OTHER_SPECIALIST = "u-specialist-2"
    ADMIN = "u-admin"

    def __init__(self, db_path: str) -> None:
        self.database = Database(db_path)
        self.task_store = TaskStore(self.database)
        self.ledger_store = LedgerStore(self.database)
        self.payments = PaymentProcessor(
            database=self.database,
            task_store=self.task_store,
            ledger_store=self.ledger_store,
            settings_lookup=self.ledger_store,
            default_markup_percentage=Decimal("100"),
        )
        self.evaluations = EvaluationWorkflow(
            self.database, self.task_store, self.ledger_store, self.payments
        )
        self.payouts = PayoutEngine(self.database, self.task_store, self.ledger_store)
        self.admin = AdminTools(self.database, self.task_store, self.ledger_store)
        self.tasks = TaskManager(self.database, self.task_store, self.ledger_store)
        self.accounts = AccountService(self.ledger_store, transaction_history_limit=50)

    def seed_users(self) -> None:
        self.accounts.ensure_user(self.CLIENT, "client")
        self.accounts.ensure_user(self.OTHER_CLIENT, "client")
        self.accounts.ensure_user(self.SPECIALIST, "specialist")
        self.accounts.ensure_user(self.OTHER_SPECIALIST, "specialist")
        self.accounts.ensure_user(self.ADMIN, "admin")

    def close(self) -> None:
        self.database.close()

    # --- scenario helpers -------------------------------------------------

    def fund(self, user_id: str, amount: str) -> None:
        self.accounts.top_up(user_id, amount)

    def balance(self, user_id: str) -> str:
        user = self.ledger_store.get_user(user_id)
        assert user is not None
        return format_cents(user["balance"])

    def task(self, task_id: str) -> dict[str, Any]:
        row = self.task_store.get_task(task_id)
        assert row is not None
        return row

    def create_task(self, client_id: str | None = None) -> str:
        task = self.tasks.create_task(
            client_id or self.CLIENT,
            "Landing page",
            "Build a responsive landing page",
            "frontend",
            "high",
        )
        return str(task["task_id"])

    def evaluated_task(
        self,
        hours: int = 10,
        rate: str = "10.00",
        specialist_id: str | None = None,
    ) -> tuple[str, str]:
        task_id = self.create_task()
        evaluation = self.evaluations.submit_evaluation(
            task_id, specialist_id or self.SPECIALIST, hours, rate
        )
        return task_id, str(evaluation["evaluation_id"])

    def paid_task(self, hours: int = 10, rate: str = "10.00") -> str:
        task_id, evaluation_id = self.evaluated_task(hours, rate)
        result = self.evaluations.accept_evaluation(task_id, evaluation_id, self.CLIENT)
        assert result["payment"]["status"] == "completed"
        return task_id

    def completed_task(self, hours: int = 10, rate: str = "10.00") -> str:
        task_id = self.paid_task(hours, rate)
        self.tasks.update_task_status(task_id, "in_progress", self.SPECIALIST)
        self.tasks.update_task_status(task_id, "completed", self.SPECIALIST)
        return task_id


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Clear cached settings and app state around every test."""
    clear_settings_cache()
    reset_app_state()
    yield
    reset_app_state()
    clear_settings_cache()
    os.environ.pop("CONFIG_PATH", None)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "marketplace.db")


@pytest.fixture
def market(db_path):
    """Wired engine with the standard cast of users and no money yet."""
    marketplace = Marketplace(db_path)
    marketplace.seed_users()
    try:
        yield marketplace
    finally:
        marketplace.close()


@pytest.fixture
def funded_market(market):
    """Marketplace whose client holds 500.00."""
    market.fund(Marketplace.CLIENT, "500.00")
    return market


@pytest.fixture
def second_market(db_path, market):
    """Independent engine on the same database file, for concurrent writers."""
    marketplace = Marketplace(db_path)
    try:
        yield marketplace
    finally:
        marketplace.close()
