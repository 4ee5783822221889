"""Decimal money helper tests."""

from __future__ import annotations

from decimal import Decimal

import pytest
from service_commons.exceptions import ServiceError

from marketplace_service.services.money import (
    MAX_AMOUNT,
    MAX_PERCENTAGE,
    format_cents,
    from_cents,
    parse_amount,
    parse_percentage,
    percentage_of,
    to_cents,
)

pytestmark = pytest.mark.unit


def test_parse_amount_accepts_strings_ints_and_decimals():
    assert parse_amount("12.5", "amount") == Decimal("12.50")
    assert parse_amount(7, "amount") == Decimal("7.00")
    assert parse_amount(Decimal("0.01"), "amount") == Decimal("0.01")


@pytest.mark.parametrize("value", [10.0, True, "abc", "1.001", "-5.00", "0", None, "NaN"])
def test_parse_amount_rejects_invalid_values(value):
    with pytest.raises(ServiceError) as exc_info:
        parse_amount(value, "amount")
    assert exc_info.value.error == "INVALID_AMOUNT"
    assert exc_info.value.status_code == 400


def test_parse_amount_allows_zero_when_asked():
    assert parse_amount("0", "tax", allow_zero=True) == Decimal("0.00")


def test_percentage_of_rounds_half_up():
    assert percentage_of(Decimal("100.00"), Decimal("100")) == Decimal("100.00")
    assert percentage_of(Decimal("0.05"), Decimal("50")) == Decimal("0.03")
    assert percentage_of(Decimal("33.33"), Decimal("12.5")) == Decimal("4.17")


def test_parse_percentage_rejects_negative():
    assert parse_percentage("12.5", "markup") == Decimal("12.5")
    with pytest.raises(ServiceError):
        parse_percentage("-1", "markup")


def test_cent_conversions():
    assert to_cents(Decimal("123.45")) == 12345
    assert from_cents(12345) == Decimal("123.45")
    assert format_cents(5) == "0.05"
    assert format_cents(-20000) == "-200.00"


@pytest.mark.parametrize(
    "value",
    ["1e30", "99999999999999999999.00", "1000000000.01", 10**20],
)
def test_parse_amount_rejects_values_above_ceiling(value):
    with pytest.raises(ServiceError) as exc_info:
        parse_amount(value, "amount")
    assert exc_info.value.error == "INVALID_AMOUNT"


def test_parse_amount_accepts_ceiling():
    assert parse_amount(MAX_AMOUNT, "amount") == Decimal("1000000000.00")
    assert parse_amount("1E+3", "amount") == Decimal("1000.00")


def test_parse_percentage_rejects_values_above_ceiling():
    assert parse_percentage("1000", "markup") == MAX_PERCENTAGE
    for value in ("1000.01", "1e30"):
        with pytest.raises(ServiceError) as exc_info:
            parse_percentage(value, "markup")
        assert exc_info.value.error == "INVALID_AMOUNT"
