"""Task lifecycle operations for clients, specialists, and administrators."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from marketplace_service.logging import get_logger
from marketplace_service.services.access import require_role, require_self_or_admin, resolve_actor
from marketplace_service.services.database import new_id, now_iso
from marketplace_service.services.errors import (
    ForbiddenError,
    NotFoundError,
    invalid_payload,
    require_text,
)
from marketplace_service.services.lifecycle import persist_transition
from marketplace_service.services.records import payment_to_response, task_to_response
from marketplace_service.services.state_machine import (
    PENDING_STATUSES,
    Role,
    TaskStateMachine,
    TaskStatus,
    Trigger,
    parse_status,
)

if TYPE_CHECKING:
    from marketplace_service.services.database import Database
    from marketplace_service.services.ledger_store import LedgerStore
    from marketplace_service.services.task_store import TaskStore

PRIORITIES = ("low", "medium", "high")
TITLE_MAX_LENGTH = 255
CATEGORY_MAX_LENGTH = 100


def _is_participant(task: dict[str, Any], user_id: str, role: Role) -> bool:
    return (
        role is Role.ADMIN
        or task["client_id"] == user_id
        or (role is Role.SPECIALIST and task["specialist_id"] == user_id)
    )


class TaskManager:
    """Creates tasks, serves task views, and drives status-update transitions."""

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

    def create_task(
        self,
        client_id: str,
        title: object,
        description: object,
        category: object,
        priority: object = "medium",
        deadline: object | None = None,
    ) -> dict[str, Any]:
        """Create a task in ``created`` owned by the calling client."""
        _, role = resolve_actor(self._ledger_store, client_id)
        require_role(role, {Role.CLIENT}, "Only clients can create tasks")

        if priority not in PRIORITIES:
            raise invalid_payload("priority must be one of: low, medium, high")
        if deadline is not None:
            if not isinstance(deadline, str):
                raise invalid_payload("deadline must be an ISO 8601 string")
            try:
                datetime.fromisoformat(deadline.replace("Z", "+00:00"))
            except ValueError as exc:
                raise invalid_payload("deadline must be an ISO 8601 string") from exc

        now = now_iso()
        task = {
            "task_id": new_id("task"),
            "client_id": client_id,
            "specialist_id": None,
            "title": require_text(title, "title", TITLE_MAX_LENGTH),
            "description": require_text(description, "description"),
            "category": require_text(category, "category", CATEGORY_MAX_LENGTH),
            "priority": priority,
            "status": TaskStatus.CREATED.value,
            "estimated_hours": None,
            "hourly_rate": None,
            "total_cost": None,
            "deadline": deadline,
            "created_at": now,
            "updated_at": now,
            "completed_at": None,
        }
        self._task_store.insert_task(task)
        self._logger.info(
            "Task created", extra={"task_id": task["task_id"], "client_id": client_id}
        )
        return task_to_response(task)

    def get_task(self, task_id: str, acting_user_id: str) -> dict[str, Any]:
        """A single task, visible to participants and, while pending, to any specialist."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        open_to_specialists = (
            role is Role.SPECIALIST and TaskStatus(task["status"]) in PENDING_STATUSES
        )
        if not (open_to_specialists or _is_participant(task, acting_user_id, role)):
            raise ForbiddenError("You do not have access to this task")
        return task_to_response(task)

    def list_tasks_by_client(
        self, acting_user_id: str, client_id: str | None = None
    ) -> list[dict[str, Any]]:
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        target = client_id or acting_user_id
        require_self_or_admin(acting_user_id, role, target)
        rows = self._task_store.list_tasks(None, target, None, None, None)
        return [task_to_response(row) for row in rows]

    def list_tasks_by_specialist(
        self, acting_user_id: str, specialist_id: str | None = None
    ) -> list[dict[str, Any]]:
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        target = specialist_id or acting_user_id
        require_self_or_admin(acting_user_id, role, target)
        rows = self._task_store.list_tasks(None, None, target, None, None)
        return [task_to_response(row) for row in rows]

    def list_pending_tasks(
        self,
        acting_user_id: str,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Tasks open for evaluation (created or evaluating), newest first."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        require_role(
            role, {Role.SPECIALIST, Role.ADMIN}, "Only specialists can browse pending tasks"
        )
        statuses = tuple(sorted(status.value for status in PENDING_STATUSES))
        rows = self._task_store.list_tasks(statuses, None, None, limit, offset)
        return [task_to_response(row) for row in rows]

    def update_task_status(
        self,
        task_id: str,
        target_status: object,
        acting_user_id: str,
    ) -> dict[str, Any]:
        """
        Apply a status-update edge from the transition table.

        Payment and payout edges are not reachable here; they go through
        the PaymentProcessor and PayoutEngine. Cancelling or rejecting a
        task also cancels a payment still pending from acceptance.

        Raises:
            NotFoundError: task or user unknown.
            InvalidTransitionError: edge missing, wrong trigger, or wrong actor.
        """
        target = parse_status(target_status)
        _, role = resolve_actor(self._ledger_store, acting_user_id)

        with self._db.transaction():
            task = self._task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            edge = TaskStateMachine.authorize(
                task, target, acting_user_id, role, Trigger.STATUS_UPDATE
            )
            updated = persist_transition(self._task_store, task, target, edge, acting_user_id)
            if target is TaskStatus.COMPLETED:
                self._task_store.complete_active_assignment(task_id)
            cancelled_payments = 0
            if target in (TaskStatus.CANCELLED, TaskStatus.REJECTED):
                cancelled_payments = self._ledger_store.cancel_pending_payment(task_id)

        self._logger.info(
            "Task status updated",
            extra={
                "task_id": task_id,
                "from_status": task["status"],
                "to_status": target.value,
                "user_id": acting_user_id,
                "cancelled_payments": cancelled_payments,
            },
        )
        return task_to_response(updated)

    def add_task_update(
        self,
        task_id: str,
        acting_user_id: str,
        content: object,
        update_type: object = "comment",
    ) -> dict[str, Any]:
        """Append a comment or progress note to a task."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        if update_type not in ("comment", "update"):
            raise invalid_payload("type must be one of: comment, update")
        text = require_text(content, "content")

        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if not _is_participant(task, acting_user_id, role):
            raise ForbiddenError("Only the task client, its specialist, or an admin can post")

        update = {
            "update_id": new_id("upd"),
            "task_id": task_id,
            "user_id": acting_user_id,
            "content": text,
            "type": update_type,
            "created_at": now_iso(),
        }
        self._task_store.insert_update(update)
        return update

    def list_task_updates(self, task_id: str, acting_user_id: str) -> list[dict[str, Any]]:
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if not _is_participant(task, acting_user_id, role):
            raise ForbiddenError("You do not have access to this task")
        return self._task_store.list_updates(task_id)

    def list_task_payments(self, task_id: str, acting_user_id: str) -> list[dict[str, Any]]:
        """Payments recorded for a task, newest first."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if not _is_participant(task, acting_user_id, role):
            raise ForbiddenError("You do not have access to this task")
        return [payment_to_response(row) for row in self._ledger_store.list_payments(task_id)]

    def get_stats(self) -> dict[str, Any]:
        """Task counts for the health endpoint."""
        counts = self._task_store.count_tasks_by_status()
        return {"total_tasks": sum(counts.values()), "tasks_by_status": counts}
