"""
Monetary and quantity helpers (``payroll_kernel.domain.values``).

Every final monetary result is rounded exactly once, ROUND_HALF_UP to two
decimal places, by ``round_money``.  Intermediate factors (hourly rate,
daily rate, annualized income) stay unrounded.  Day counts use
``round_days`` at four places so fractional accruals such as 1.25 survive
the storage round trip.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
CENT = Decimal("0.01")
DAY_QUANTUM = Decimal("0.0001")


def to_decimal(value: Decimal | int | str | None, field: str = "amount") -> Decimal:
    """Coerce ``value`` to Decimal, rejecting floats.

    Raises:
        ValueError: If value is a float or not parseable.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError(f"{field} must not be a float: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field} is not a decimal number: {value!r}") from exc


def round_money(amount: Decimal) -> Decimal:
    """Round a final monetary amount to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_days(days: Decimal) -> Decimal:
    """Normalize a stored day count."""
    return days.quantize(DAY_QUANTUM, rounding=ROUND_HALF_UP)
