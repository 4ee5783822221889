"""Specialist payout: commission split and double-payout guard."""

from __future__ import annotations

import pytest

from marketplace_service.services.errors import ForbiddenError, PayoutPreconditionError

pytestmark = pytest.mark.unit


def test_payout_is_half_of_specialist_amount(funded_market):
    market = funded_market
    task_id = market.completed_task()

    result = market.payouts.process_specialist_payout(task_id, market.ADMIN)

    assert result["specialist_amount"] == "100.00"
    assert result["payout_amount"] == "50.00"
    assert result["commission_percentage"] == "50"
    assert result["status"] == "paid_out"
    assert market.balance(market.SPECIALIST) == "50.00"
    assert market.task(task_id)["status"] == "paid_out"

    history = market.accounts.get_transaction_history(market.SPECIALIST, market.SPECIALIST)
    assert [(t["type"], t["amount"]) for t in history] == [("payout", "50.00")]


def test_assigned_specialist_can_request_payout(funded_market):
    market = funded_market
    task_id = market.completed_task()
    market.payouts.process_specialist_payout(task_id, market.SPECIALIST)
    assert market.balance(market.SPECIALIST) == "50.00"


def test_others_cannot_request_payout(funded_market):
    market = funded_market
    task_id = market.completed_task()
    for user_id in (market.OTHER_SPECIALIST, market.CLIENT):
        with pytest.raises(ForbiddenError):
            market.payouts.process_specialist_payout(task_id, user_id)
    assert market.task(task_id)["status"] == "completed"


def test_payout_before_completion_fails(funded_market):
    market = funded_market
    task_id = market.paid_task()
    with pytest.raises(PayoutPreconditionError) as exc_info:
        market.payouts.process_specialist_payout(task_id, market.ADMIN)
    assert exc_info.value.error == "PAYOUT_PRECONDITION"
    assert exc_info.value.status_code == 409
    assert market.balance(market.SPECIALIST) == "0.00"


def test_payout_without_completed_payment_fails(market):
    task_id = market.create_task()
    market.admin.assign_task_to_specialist(market.ADMIN, task_id, market.SPECIALIST)
    market.task_store.update_task(task_id, {"status": "completed"}, expected_status=None)

    with pytest.raises(PayoutPreconditionError) as exc_info:
        market.payouts.process_specialist_payout(task_id, market.ADMIN)
    assert "payment" in exc_info.value.message
    assert market.balance(market.SPECIALIST) == "0.00"


def test_second_payout_is_rejected(funded_market):
    market = funded_market
    task_id = market.completed_task()
    market.payouts.process_specialist_payout(task_id, market.ADMIN)

    with pytest.raises(PayoutPreconditionError):
        market.payouts.process_specialist_payout(task_id, market.ADMIN)
    assert market.balance(market.SPECIALIST) == "50.00"


def test_recorded_payout_blocks_duplicate_even_if_status_lags(funded_market):
    market = funded_market
    task_id = market.completed_task()
    market.payouts.process_specialist_payout(task_id, market.ADMIN)
    # Force the status back so only the ledger guard remains
    market.task_store.update_task(task_id, {"status": "completed"}, expected_status="paid_out")

    with pytest.raises(PayoutPreconditionError):
        market.payouts.process_specialist_payout(task_id, market.ADMIN)
    assert market.balance(market.SPECIALIST) == "50.00"
