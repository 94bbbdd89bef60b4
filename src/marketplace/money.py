"""Fixed-point amount helpers.

Amounts are whole units of the settlement currency (XOF has no minor unit).
Rates are applied with ``Decimal`` and rounded half-up back to whole units.
"""

from decimal import ROUND_HALF_UP, Decimal

WHOLE_UNIT = Decimal("1")


def to_amount(value) -> int:
    """Quantize a number or numeric string to a whole currency unit."""
    return int(Decimal(str(value)).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP))


def apply_rate(amount: int, rate: Decimal | str) -> int:
    return to_amount(Decimal(amount) * Decimal(str(rate)))


def line_total(unit_price: int, quantity: int) -> int:
    return int(unit_price) * int(quantity)
