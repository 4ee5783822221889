"""Error kinds raised by the lifecycle and ledger engine."""

from __future__ import annotations

from typing import Any

from service_commons.exceptions import ServiceError


class NotFoundError(ServiceError):
    """A task, evaluation, payment, invoice or user does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity.upper()}_NOT_FOUND",
            f"{entity.capitalize()} not found",
            404,
            {f"{entity}_id": entity_id},
        )


class ForbiddenError(ServiceError):
    """The caller's role or ownership does not permit the operation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("FORBIDDEN", message, 403, details)


class InvalidTransitionError(ServiceError):
    """The requested status edge does not exist for this task, trigger, or actor."""

    def __init__(self, current: str, target: str, reason: str) -> None:
        super().__init__(
            "INVALID_TRANSITION",
            f"Cannot move task from {current} to {target}: {reason}",
            409,
            {"current_status": current, "target_status": target},
        )


class InsufficientBalanceError(ServiceError):
    """A debit would take a balance below zero."""

    def __init__(self, user_id: str, balance: str, required: str) -> None:
        super().__init__(
            "INSUFFICIENT_BALANCE",
            "Insufficient balance for this operation",
            402,
            {"user_id": user_id, "balance": balance, "required": required},
        )


class PayoutPreconditionError(ServiceError):
    """A payout was attempted before completion, without a payment, or twice."""

    def __init__(self, message: str, task_id: str) -> None:
        super().__init__("PAYOUT_PRECONDITION", message, 409, {"task_id": task_id})


def invalid_amount(message: str) -> ServiceError:
    """Build the validation error used for malformed or out-of-range money values."""
    return ServiceError("INVALID_AMOUNT", message, 400, {})


def invalid_payload(message: str) -> ServiceError:
    """Build the validation error used for malformed request fields."""
    return ServiceError("INVALID_PAYLOAD", message, 400, {})


def require_text(value: object, field: str, max_length: int | None = None) -> str:
    """Return value stripped, raising INVALID_PAYLOAD unless it is a non-empty string."""
    if not isinstance(value, str) or value.strip() == "":
        raise invalid_payload(f"{field} must be a non-empty string")
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise invalid_payload(f"{field} must be at most {max_length} characters")
    return text
