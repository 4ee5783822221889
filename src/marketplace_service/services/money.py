"""Fixed-point money helpers.

Amounts travel as decimal strings with two fraction digits and are
stored as integer cents. Floats are never accepted as money.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from marketplace_service.services.errors import invalid_amount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

# Ceilings keep every stored value, and sums of them, inside SQLite's 64-bit INTEGER
MAX_AMOUNT = Decimal("1000000000.00")
MAX_PERCENTAGE = Decimal("1000")
MAX_BALANCE_CENTS = 10**15


def parse_amount(value: object, field: str, *, allow_zero: bool = False) -> Decimal:
    """
    Parse a money value into a Decimal with exactly two fraction digits.

    Accepts decimal strings, ints and Decimals. Rejects floats, bools,
    negative values, values above MAX_AMOUNT, more than two fraction
    digits, and zero unless allow_zero is set.

    Raises:
        ServiceError: INVALID_AMOUNT.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise invalid_amount(f"{field} must be a decimal string")
    if not isinstance(value, (str, int, Decimal)):
        raise invalid_amount(f"{field} must be a decimal string")

    try:
        amount = Decimal(value.strip() if isinstance(value, str) else value)
    except InvalidOperation as exc:
        raise invalid_amount(f"{field} is not a valid decimal amount") from exc

    if not amount.is_finite():
        raise invalid_amount(f"{field} is not a valid decimal amount")
    if amount < 0:
        raise invalid_amount(f"{field} must be non-negative")
    if amount > MAX_AMOUNT:
        raise invalid_amount(f"{field} must not exceed {format_amount(MAX_AMOUNT)}")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation as exc:
        raise invalid_amount(f"{field} is not a valid decimal amount") from exc
    if amount != quantized:
        raise invalid_amount(f"{field} must have at most two fraction digits")
    if amount == 0 and not allow_zero:
        raise invalid_amount(f"{field} must be greater than zero")
    return quantized


def parse_percentage(value: object, field: str) -> Decimal:
    """Parse a percentage between 0 and MAX_PERCENTAGE such as "100" or "12.5"."""
    if isinstance(value, bool) or isinstance(value, float):
        raise invalid_amount(f"{field} must be a decimal string")
    try:
        pct = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise invalid_amount(f"{field} is not a valid percentage") from exc
    if not pct.is_finite() or pct < 0:
        raise invalid_amount(f"{field} must be a non-negative percentage")
    if pct > MAX_PERCENTAGE:
        raise invalid_amount(f"{field} must not exceed {MAX_PERCENTAGE}")
    return pct


def percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """Return amount * percentage / 100 rounded half-up to cents."""
    return (amount * percentage / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    """Convert a two-digit Decimal into integer cents."""
    return int((amount * 100).to_integral_exact())


def from_cents(cents: int) -> Decimal:
    """Convert integer cents into a two-digit Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    """Render a Decimal as a plain two-digit string."""
    return format(amount.quantize(CENT), "f")


def format_cents(cents: int) -> str:
    """Render integer cents as a plain two-digit string."""
    return format_amount(from_cents(cents))
