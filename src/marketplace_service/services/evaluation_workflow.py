"""Specialist evaluations and their acceptance by the client."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from marketplace_service.logging import get_logger
from marketplace_service.services.access import require_role, resolve_actor
from marketplace_service.services.database import new_id, now_iso
from marketplace_service.services.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    invalid_amount,
    invalid_payload,
)
from marketplace_service.services.lifecycle import follow_assignment, persist_transition
from marketplace_service.services.money import (
    CENT,
    MAX_AMOUNT,
    format_amount,
    parse_amount,
    to_cents,
)
from marketplace_service.services.records import evaluation_to_response, task_to_response
from marketplace_service.services.state_machine import (
    PENDING_STATUSES,
    EvaluationStatus,
    Role,
    TaskStateMachine,
    TaskStatus,
    Trigger,
)
from marketplace_service.services.task_store import EvaluationAlreadyAcceptedError
from service_commons.exceptions import ServiceError

if TYPE_CHECKING:
    from marketplace_service.services.database import Database
    from marketplace_service.services.ledger_store import LedgerStore
    from marketplace_service.services.payment_processor import PaymentProcessor
    from marketplace_service.services.task_store import TaskStore


MAX_ESTIMATED_HOURS = 100_000


def _already_accepted(task_id: str) -> ServiceError:
    return ServiceError(
        "EVALUATION_ALREADY_ACCEPTED",
        "An evaluation has already been accepted for this task",
        409,
        {"task_id": task_id},
    )


def _parse_hours(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise invalid_payload("estimated_hours must be an integer")
    if value <= 0:
        raise invalid_payload("estimated_hours must be greater than zero")
    if value > MAX_ESTIMATED_HOURS:
        raise invalid_payload(f"estimated_hours must not exceed {MAX_ESTIMATED_HOURS}")
    return value


class EvaluationWorkflow:
    """
    Collects cost estimates from specialists and lets the client accept one.

    Acceptance fixes the task's terms and hands off to the PaymentProcessor
    inside the same database transaction.
    """

    def __init__(
        self,
        database: Database,
        task_store: TaskStore,
        ledger_store: LedgerStore,
        payment_processor: PaymentProcessor,
    ) -> None:
        self._db = database
        self._task_store = task_store
        self._ledger_store = ledger_store
        self._payment_processor = payment_processor
        self._logger = get_logger(__name__)

    def submit_evaluation(
        self,
        task_id: str,
        specialist_id: str,
        estimated_hours: object,
        hourly_rate: object,
        total_cost: object | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """
        Record a pending evaluation and move the task to ``evaluated``.

        total_cost defaults to estimated_hours * hourly_rate.
        """
        _, role = resolve_actor(self._ledger_store, specialist_id)
        require_role(role, {Role.SPECIALIST}, "Only specialists can evaluate tasks")

        hours = _parse_hours(estimated_hours)
        rate = parse_amount(hourly_rate, "hourly_rate")
        if total_cost is None:
            cost = (rate * Decimal(hours)).quantize(CENT)
            if cost > MAX_AMOUNT:
                raise invalid_amount(f"total_cost must not exceed {format_amount(MAX_AMOUNT)}")
        else:
            cost = parse_amount(total_cost, "total_cost")
        if notes is not None and not isinstance(notes, str):
            raise invalid_payload("notes must be a string")

        evaluation = {
            "evaluation_id": new_id("eval"),
            "task_id": task_id,
            "specialist_id": specialist_id,
            "estimated_hours": hours,
            "hourly_rate": to_cents(rate),
            "total_cost": to_cents(cost),
            "notes": notes,
            "status": EvaluationStatus.PENDING.value,
            "created_at": now_iso(),
        }

        with self._db.transaction():
            task = self._task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            status = TaskStatus(task["status"])
            if status is TaskStatus.EVALUATED:
                # Competing estimate: stored alongside the others, status unchanged.
                if self._task_store.get_accepted_evaluation(task_id) is not None:
                    raise InvalidTransitionError(
                        status.value, status.value, "an evaluation has already been accepted"
                    )
                self._task_store.insert_evaluation(evaluation)
            elif status in PENDING_STATUSES:
                edge = TaskStateMachine.authorize(
                    task, TaskStatus.EVALUATED, specialist_id, role, Trigger.EVALUATION
                )
                self._task_store.insert_evaluation(evaluation)
                persist_transition(
                    self._task_store, task, TaskStatus.EVALUATED, edge, specialist_id
                )
            else:
                raise InvalidTransitionError(
                    status.value,
                    TaskStatus.EVALUATED.value,
                    "evaluations are only taken before one has been accepted",
                )

        self._logger.info(
            "Evaluation submitted",
            extra={
                "task_id": task_id,
                "evaluation_id": evaluation["evaluation_id"],
                "specialist_id": specialist_id,
                "total_cost": format_amount(cost),
            },
        )
        return evaluation_to_response(evaluation)

    def list_evaluations(self, task_id: str, acting_user_id: str) -> list[dict[str, Any]]:
        """Evaluations of a task, newest first."""
        _, role = resolve_actor(self._ledger_store, acting_user_id)
        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if role is Role.CLIENT and task["client_id"] != acting_user_id:
            raise ForbiddenError("You can only view evaluations of your own tasks")
        return [evaluation_to_response(row) for row in self._task_store.list_evaluations(task_id)]

    def accept_evaluation(
        self,
        task_id: str,
        evaluation_id: str,
        acting_user_id: str,
    ) -> dict[str, Any]:
        """
        Accept one evaluation, fix the task terms and charge the client.

        The first accepted evaluation wins; any later attempt raises
        EVALUATION_ALREADY_ACCEPTED and creates no payment. Pending
        siblings are rejected. When the client's balance cannot cover the
        total, the payment is left pending and the task stays evaluated.
        """
        _, role = resolve_actor(self._ledger_store, acting_user_id)

        with self._db.transaction():
            task = self._task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            if task["client_id"] != acting_user_id:
                raise ForbiddenError("Only the task client can accept evaluations")

            evaluation = self._task_store.get_evaluation(evaluation_id)
            if evaluation is None or evaluation["task_id"] != task_id:
                raise NotFoundError("evaluation", evaluation_id)
            if self._task_store.get_accepted_evaluation(task_id) is not None:
                raise _already_accepted(task_id)
            if task["status"] != TaskStatus.EVALUATED.value:
                raise InvalidTransitionError(
                    task["status"],
                    TaskStatus.PAID.value,
                    "evaluations can only be accepted while the task is evaluated",
                )
            if evaluation["status"] != EvaluationStatus.PENDING.value:
                raise ServiceError(
                    "EVALUATION_NOT_PENDING",
                    f"Evaluation is {evaluation['status']}",
                    409,
                    {"evaluation_id": evaluation_id},
                )

            try:
                rejected = self._task_store.accept_evaluation(task_id, evaluation_id)
            except EvaluationAlreadyAcceptedError as exc:
                raise _already_accepted(task_id) from exc

            now = now_iso()
            terms = {
                "specialist_id": evaluation["specialist_id"],
                "estimated_hours": evaluation["estimated_hours"],
                "hourly_rate": evaluation["hourly_rate"],
                "total_cost": evaluation["total_cost"],
                "updated_at": now,
            }
            if (
                self._task_store.update_task(
                    task_id, terms, expected_status=TaskStatus.EVALUATED.value
                )
                != 1
            ):
                raise InvalidTransitionError(
                    task["status"], TaskStatus.PAID.value, "the task status changed concurrently"
                )
            follow_assignment(
                self._task_store,
                task_id,
                evaluation["specialist_id"],
                acting_user_id,
                f"Accepted evaluation {evaluation_id}",
            )
            self._task_store.insert_update(
                {
                    "update_id": new_id("upd"),
                    "task_id": task_id,
                    "user_id": acting_user_id,
                    "content": f"Accepted evaluation {evaluation_id}",
                    "type": "update",
                    "created_at": now,
                }
            )
            task = {**task, **terms}
            if task["total_cost"] <= 0:
                raise invalid_amount("Accepted evaluation has no cost to charge")

            payment = self._payment_processor.charge_on_acceptance(task, acting_user_id, role)

        accepted = self._task_store.get_evaluation(evaluation_id)
        current = self._task_store.get_task(task_id)
        if accepted is None or current is None:
            msg = "Task or evaluation missing after acceptance"
            raise RuntimeError(msg)

        self._logger.info(
            "Evaluation accepted",
            extra={
                "task_id": task_id,
                "evaluation_id": evaluation_id,
                "rejected_evaluations": rejected,
                "payment_status": payment["status"],
            },
        )
        return {
            "task": task_to_response(current),
            "evaluation": evaluation_to_response(accepted),
            "rejected_evaluations": rejected,
            "payment": payment,
        }
