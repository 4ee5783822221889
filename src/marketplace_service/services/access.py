"""Caller resolution and role checks shared by the engine services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from marketplace_service.services.errors import ForbiddenError, NotFoundError
from marketplace_service.services.state_machine import Role

if TYPE_CHECKING:
    from marketplace_service.services.ledger_store import LedgerStore


def resolve_actor(ledger_store: LedgerStore, user_id: str) -> tuple[dict[str, Any], Role]:
    """
    Load the acting user and their role from the store.

    Raises:
        NotFoundError: unknown user.
        ForbiddenError: the user is blocked.
    """
    user = ledger_store.get_user(user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    role = Role(user["role"])
    if role is Role.BLOCKED:
        raise ForbiddenError("Blocked users cannot perform this operation")
    return user, role


def require_role(role: Role, allowed: set[Role], message: str) -> None:
    """Raise FORBIDDEN unless role is one of allowed."""
    if role not in allowed:
        raise ForbiddenError(message, {"role": role.value})


def require_self_or_admin(actor_id: str, role: Role, user_id: str) -> None:
    """Users may read their own ledger data; admins may read anyone's."""
    if actor_id != user_id and role is not Role.ADMIN:
        raise ForbiddenError("You can only access your own account")
