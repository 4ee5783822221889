"""Service layer components."""

from marketplace_service.services.account_service import AccountService
from marketplace_service.services.admin_tools import AdminTools
from marketplace_service.services.database import Database
from marketplace_service.services.evaluation_workflow import EvaluationWorkflow
from marketplace_service.services.ledger_store import LedgerStore
from marketplace_service.services.payment_processor import PaymentProcessor
from marketplace_service.services.payout_engine import PayoutEngine
from marketplace_service.services.task_manager import TaskManager
from marketplace_service.services.task_store import TaskStore

__all__ = [
    "AccountService",
    "AdminTools",
    "Database",
    "EvaluationWorkflow",
    "LedgerStore",
    "PaymentProcessor",
    "PayoutEngine",
    "TaskManager",
    "TaskStore",
]
