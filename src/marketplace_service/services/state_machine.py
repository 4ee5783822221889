"""Task state machine: the single source of legal status transitions.

Task lifecycle:
    created → evaluating → evaluated → paid → in_progress → completed → paid_out
    created / evaluating / evaluated → cancelled
    created / evaluating → rejected

Each edge names the trigger that may fire it and the actors allowed to
fire it. Everything not in the table is an InvalidTransition. The
machine is pure: persistence and conditional updates live in the
services that call it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from marketplace_service.services.errors import InvalidTransitionError, invalid_payload


class TaskStatus(str, enum.Enum):
    CREATED = "created"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAID_OUT = "paid_out"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class Role(str, enum.Enum):
    CLIENT = "client"
    SPECIALIST = "specialist"
    ADMIN = "admin"
    BLOCKED = "blocked"


class EvaluationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Trigger(str, enum.Enum):
    """What is asking for the transition."""

    STATUS_UPDATE = "status_update"
    EVALUATION = "evaluation"
    PAYMENT = "payment"
    PAYOUT = "payout"


class Actor(str, enum.Enum):
    """Who may fire an edge, relative to the task."""

    ANY_SPECIALIST = "any_specialist"
    ASSIGNED_SPECIALIST = "assigned_specialist"
    OWNER_CLIENT = "owner_client"
    ADMIN = "admin"


@dataclass(frozen=True)
class Edge:
    trigger: Trigger
    actors: frozenset[Actor]
    assigns_actor: bool = False
    stamps_completion: bool = False


_S = TaskStatus

# {(from, to): edge}
_TRANSITIONS: dict[tuple[TaskStatus, TaskStatus], Edge] = {
    (_S.CREATED, _S.EVALUATING): Edge(
        Trigger.STATUS_UPDATE, frozenset({Actor.ANY_SPECIALIST}), assigns_actor=True
    ),
    (_S.CREATED, _S.EVALUATED): Edge(
        Trigger.EVALUATION, frozenset({Actor.ANY_SPECIALIST}), assigns_actor=True
    ),
    (_S.EVALUATING, _S.EVALUATED): Edge(
        Trigger.EVALUATION, frozenset({Actor.ANY_SPECIALIST}), assigns_actor=True
    ),
    (_S.EVALUATED, _S.PAID): Edge(Trigger.PAYMENT, frozenset({Actor.OWNER_CLIENT})),
    (_S.PAID, _S.IN_PROGRESS): Edge(
        Trigger.STATUS_UPDATE, frozenset({Actor.ASSIGNED_SPECIALIST})
    ),
    (_S.IN_PROGRESS, _S.COMPLETED): Edge(
        Trigger.STATUS_UPDATE,
        frozenset({Actor.ASSIGNED_SPECIALIST}),
        stamps_completion=True,
    ),
    (_S.COMPLETED, _S.PAID_OUT): Edge(
        Trigger.PAYOUT, frozenset({Actor.ADMIN, Actor.ASSIGNED_SPECIALIST})
    ),
    (_S.CREATED, _S.CANCELLED): Edge(
        Trigger.STATUS_UPDATE, frozenset({Actor.OWNER_CLIENT, Actor.ADMIN})
    ),
    (_S.EVALUATING, _S.CANCELLED): Edge(
        Trigger.STATUS_UPDATE, frozenset({Actor.OWNER_CLIENT, Actor.ADMIN})
    ),
    (_S.EVALUATED, _S.CANCELLED): Edge(
        Trigger.STATUS_UPDATE, frozenset({Actor.OWNER_CLIENT, Actor.ADMIN})
    ),
    (_S.CREATED, _S.REJECTED): Edge(Trigger.STATUS_UPDATE, frozenset({Actor.ADMIN})),
    (_S.EVALUATING, _S.REJECTED): Edge(Trigger.STATUS_UPDATE, frozenset({Actor.ADMIN})),
}

PENDING_STATUSES: frozenset[TaskStatus] = frozenset({_S.CREATED, _S.EVALUATING})
TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {_S.PAID_OUT, _S.CANCELLED, _S.REJECTED}
)


def parse_status(value: object) -> TaskStatus:
    """Parse a raw status string, raising INVALID_PAYLOAD for unknown values."""
    try:
        return TaskStatus(value)
    except ValueError as exc:
        raise invalid_payload(f"Unknown task status: {value}") from exc


def parse_role(value: object) -> Role:
    """Parse a raw role string, raising INVALID_PAYLOAD for unknown values."""
    try:
        return Role(value)
    except ValueError as exc:
        raise invalid_payload(f"Unknown role: {value}") from exc


def _actor_kinds(task: dict[str, Any], actor_id: str, actor_role: Role) -> set[Actor]:
    kinds: set[Actor] = set()
    if actor_role is Role.ADMIN:
        kinds.add(Actor.ADMIN)
    if actor_role is Role.SPECIALIST:
        kinds.add(Actor.ANY_SPECIALIST)
        if task.get("specialist_id") == actor_id:
            kinds.add(Actor.ASSIGNED_SPECIALIST)
    if actor_role is Role.CLIENT and task.get("client_id") == actor_id:
        kinds.add(Actor.OWNER_CLIENT)
    return kinds


class TaskStateMachine:
    """Validates task transitions against the central table."""

    @staticmethod
    def authorize(
        task: dict[str, Any],
        target: TaskStatus,
        actor_id: str,
        actor_role: Role,
        trigger: Trigger,
    ) -> Edge:
        """
        Check that actor may move task to target via trigger.

        Returns:
            The matching Edge, so callers know about side effects
            (assignment, completion stamp).

        Raises:
            InvalidTransitionError: when the edge, trigger, or actor does not match.
        """
        current = TaskStatus(task["status"])
        edge = _TRANSITIONS.get((current, target))
        if edge is None:
            allowed = ", ".join(sorted(s.value for s in TaskStateMachine.valid_targets(current)))
            raise InvalidTransitionError(
                current.value, target.value, f"allowed targets are [{allowed}]"
            )
        if edge.trigger is not trigger:
            raise InvalidTransitionError(
                current.value, target.value, f"this transition happens through {edge.trigger.value}"
            )
        if actor_role is Role.BLOCKED or not edge.actors & _actor_kinds(task, actor_id, actor_role):
            raise InvalidTransitionError(
                current.value, target.value, "caller is not allowed to perform it"
            )
        return edge

    @staticmethod
    def valid_targets(state: TaskStatus) -> set[TaskStatus]:
        """Return the set of statuses reachable in one step from state."""
        return {to for (frm, to) in _TRANSITIONS if frm is state}

    @staticmethod
    def is_terminal(state: TaskStatus) -> bool:
        return state in TERMINAL_STATUSES
