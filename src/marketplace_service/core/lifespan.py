"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from marketplace_service.config import get_settings
from marketplace_service.core.state import init_app_state
from marketplace_service.logging import get_logger, setup_logging
from marketplace_service.services.account_service import AccountService
from marketplace_service.services.admin_tools import AdminTools
from marketplace_service.services.database import Database
from marketplace_service.services.evaluation_workflow import EvaluationWorkflow
from marketplace_service.services.ledger_store import LedgerStore
from marketplace_service.services.money import parse_percentage
from marketplace_service.services.payment_processor import PaymentProcessor
from marketplace_service.services.payout_engine import PayoutEngine
from marketplace_service.services.task_manager import TaskManager
from marketplace_service.services.task_store import TaskStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    # One connection shared by both stores so a transaction can span them
    database = Database(db_path=settings.database.path)
    task_store = TaskStore(database)
    ledger_store = LedgerStore(database)
    state.database = database

    payment_processor = PaymentProcessor(
        database=database,
        task_store=task_store,
        ledger_store=ledger_store,
        settings_lookup=ledger_store,
        default_markup_percentage=parse_percentage(
            settings.payments.default_markup_percentage, "default_markup_percentage"
        ),
    )
    state.payment_processor = payment_processor
    state.evaluation_workflow = EvaluationWorkflow(
        database=database,
        task_store=task_store,
        ledger_store=ledger_store,
        payment_processor=payment_processor,
    )
    state.payout_engine = PayoutEngine(
        database=database, task_store=task_store, ledger_store=ledger_store
    )
    state.admin_tools = AdminTools(
        database=database, task_store=task_store, ledger_store=ledger_store
    )
    state.task_manager = TaskManager(
        database=database, task_store=task_store, ledger_store=ledger_store
    )
    state.account_service = AccountService(
        ledger_store=ledger_store,
        transaction_history_limit=settings.payments.transaction_history_limit,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "default_markup_percentage": settings.payments.default_markup_percentage,
            "self_service_topup": settings.payments.self_service_topup,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})
    database.close()
