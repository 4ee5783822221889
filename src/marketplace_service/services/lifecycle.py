"""Persisting authorised task transitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from marketplace_service.services.database import new_id, now_iso
from marketplace_service.services.errors import InvalidTransitionError

if TYPE_CHECKING:
    from marketplace_service.services.state_machine import Edge, TaskStatus
    from marketplace_service.services.task_store import TaskStore


def follow_assignment(
    task_store: TaskStore,
    task_id: str,
    specialist_id: str,
    actor_id: str,
    reason: str,
) -> int:
    """
    Keep the assignment history in step with a new task specialist.

    When an administrator's assignment is active for someone else, it is
    marked reassigned and an active one for specialist_id takes its place.
    Tasks without an active assignment are left alone.

    Returns:
        The number of assignments superseded (0 or 1).
    """
    active = task_store.get_active_assignment(task_id)
    if active is None or active["specialist_id"] == specialist_id:
        return 0
    return task_store.replace_active_assignment(
        {
            "assignment_id": new_id("asg"),
            "task_id": task_id,
            "specialist_id": specialist_id,
            "assigned_by": actor_id,
            "assigned_at": now_iso(),
            "status": "active",
            "notes": reason,
        }
    )


def persist_transition(
    task_store: TaskStore,
    task: dict[str, Any],
    target: TaskStatus,
    edge: Edge,
    actor_id: str,
) -> dict[str, Any]:
    """
    Write an already-authorised transition and its status_change note.

    The update is conditional on the status the caller read, so a task
    that moved in the meantime is left alone and the caller gets
    InvalidTransitionError. Callers wrap this in Database.transaction()
    together with any ledger writes that belong to the same step.

    Returns:
        The task row with the update applied.
    """
    now = now_iso()
    updates: dict[str, Any] = {"status": target.value, "updated_at": now}
    if edge.assigns_actor:
        updates["specialist_id"] = actor_id
    if edge.stamps_completion:
        updates["completed_at"] = now

    changed = task_store.update_task(task["task_id"], updates, expected_status=task["status"])
    if changed != 1:
        raise InvalidTransitionError(
            task["status"], target.value, "the task status changed concurrently"
        )

    if edge.assigns_actor:
        follow_assignment(
            task_store,
            task["task_id"],
            actor_id,
            actor_id,
            f"Recorded on move to {target.value}",
        )

    task_store.insert_update(
        {
            "update_id": new_id("upd"),
            "task_id": task["task_id"],
            "user_id": actor_id,
            "content": f"Status changed from {task['status']} to {target.value}",
            "type": "status_change",
            "created_at": now,
        }
    )
    return {**task, **updates}
