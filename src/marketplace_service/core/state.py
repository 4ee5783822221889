"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from marketplace_service.services.account_service import AccountService
    from marketplace_service.services.admin_tools import AdminTools
    from marketplace_service.services.database import Database
    from marketplace_service.services.evaluation_workflow import EvaluationWorkflow
    from marketplace_service.services.payment_processor import PaymentProcessor
    from marketplace_service.services.payout_engine import PayoutEngine
    from marketplace_service.services.task_manager import TaskManager


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    database: Database | None = None
    task_manager: TaskManager | None = None
    evaluation_workflow: EvaluationWorkflow | None = None
    payment_processor: PaymentProcessor | None = None
    payout_engine: PayoutEngine | None = None
    admin_tools: AdminTools | None = None
    account_service: AccountService | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
