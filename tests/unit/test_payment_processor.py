"""Payment processing: markup arithmetic, authorisation, and atomicity."""

from __future__ import annotations

from decimal import Decimal

import pytest
from service_commons.exceptions import ServiceError

from marketplace_service.services.errors import (
    ForbiddenError,
    InsufficientBalanceError,
    InvalidTransitionError,
)

pytestmark = pytest.mark.unit


def _accept_pending(market, hours=10, rate="10.00"):
    """Accept an evaluation while the client cannot pay, leaving the task payable."""
    task_id, evaluation_id = market.evaluated_task(hours, rate)
    result = market.evaluations.accept_evaluation(task_id, evaluation_id, market.CLIENT)
    assert result["payment"]["status"] == "pending"
    return task_id


def test_default_markup_doubles_the_charge(market):
    task_id = _accept_pending(market)
    market.fund(market.CLIENT, "500.00")

    result = market.payments.process_task_payment(task_id, market.CLIENT)

    assert result["amount"] == "100.00"
    assert result["markup_amount"] == "100.00"
    assert result["total_amount"] == "200.00"
    assert result["markup_percentage"] == "100"
    assert result["balance_after"] == "300.00"
    assert market.balance(market.CLIENT) == "300.00"

    payment = market.ledger_store.get_task_payment(task_id, "completed")
    assert payment["specialist_amount"] == 10000
    assert payment["markup_amount"] == 10000
    assert payment["amount"] == 20000
    assert payment["paid_at"] is not None


def test_payment_writes_signed_transaction(market):
    task_id = _accept_pending(market)
    market.fund(market.CLIENT, "500.00")
    result = market.payments.process_task_payment(task_id, market.CLIENT)

    history = market.accounts.get_transaction_history(market.CLIENT, market.CLIENT)
    latest = history[0]
    assert latest["tx_id"] == result["transaction_id"]
    assert latest["type"] == "payment"
    assert latest["amount"] == "-200.00"
    assert latest["balance_after"] == "300.00"
    assert latest["task_id"] == task_id
    assert latest["reference"] == result["payment_id"]


def test_platform_setting_overrides_markup(market):
    market.admin.set_platform_setting(market.ADMIN, "markup_percentage", "25")
    quote = market.payments.quote(Decimal("100.00"))
    assert quote.markup_amount == Decimal("25.00")
    assert quote.total_amount == Decimal("125.00")

    task_id = _accept_pending(market)
    market.fund(market.CLIENT, "125.00")
    result = market.payments.process_task_payment(task_id, market.CLIENT)
    assert result["total_amount"] == "125.00"
    assert market.balance(market.CLIENT) == "0.00"


def test_amount_must_match_accepted_cost(market):
    task_id = _accept_pending(market)
    market.fund(market.CLIENT, "500.00")

    with pytest.raises(ServiceError) as exc_info:
        market.payments.process_task_payment(task_id, market.CLIENT, "90.00")
    assert exc_info.value.error == "INVALID_AMOUNT"

    result = market.payments.process_task_payment(task_id, market.CLIENT, "100.00")
    assert result["status"] == "completed"


def test_only_the_task_client_pays(market):
    task_id = _accept_pending(market)
    market.fund(market.OTHER_CLIENT, "500.00")
    with pytest.raises(ForbiddenError):
        market.payments.process_task_payment(task_id, market.OTHER_CLIENT)
    assert market.balance(market.OTHER_CLIENT) == "500.00"


def test_payment_requires_accepted_evaluation(market):
    task_id, _ = market.evaluated_task()
    market.fund(market.CLIENT, "500.00")
    with pytest.raises(InvalidTransitionError):
        market.payments.process_task_payment(task_id, market.CLIENT)
    assert market.balance(market.CLIENT) == "500.00"


def test_payment_requires_evaluated_status(market):
    task_id = market.create_task()
    market.fund(market.CLIENT, "500.00")
    with pytest.raises(InvalidTransitionError):
        market.payments.process_task_payment(task_id, market.CLIENT, "100.00")


def test_insufficient_balance_changes_nothing(market):
    market.fund(market.CLIENT, "500.00")
    task_id = _accept_pending(market, hours=30, rate="10.00")

    with pytest.raises(InsufficientBalanceError) as exc_info:
        market.payments.process_task_payment(task_id, market.CLIENT)

    assert exc_info.value.details == {
        "user_id": market.CLIENT,
        "balance": "500.00",
        "required": "600.00",
    }
    assert market.balance(market.CLIENT) == "500.00"
    assert market.task(task_id)["status"] == "evaluated"
    assert market.ledger_store.get_task_payment(task_id, "completed") is None
    assert len(market.accounts.get_transaction_history(market.CLIENT, market.CLIENT)) == 1


def test_repeat_payment_cannot_charge_twice(market):
    task_id = _accept_pending(market)
    market.fund(market.CLIENT, "1000.00")
    market.payments.process_task_payment(task_id, market.CLIENT)

    with pytest.raises(InvalidTransitionError):
        market.payments.process_task_payment(task_id, market.CLIENT)
    assert market.balance(market.CLIENT) == "800.00"
