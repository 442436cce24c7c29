"""Position sizing — pure math, no I/O.

Converts available balance, risk percentage and entry price into an order
quantity using ``Decimal`` arithmetic.
"""

from decimal import ROUND_DOWN, Decimal

SIZE_QUANTUM = Decimal("0.00001")
MIN_ORDER_SIZE = Decimal("0.00001")
ZERO = Decimal("0")


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def calculate_position_size(available_balance, risk_pct, price) -> Decimal:
    """Calculate the order quantity for one trade.

    Formula::

        risk_amount = available_balance × (risk_pct / 100)
        size        = risk_amount / price   (rounded down to 5 dp)

    Args:
        available_balance: Free quote balance (e.g. ``Decimal("1000")``).
        risk_pct: Percentage of the balance to commit (e.g. 1.0 for 1 %).
            Validating the 0–100 range is the caller's job.
        price: Signal price.

    Returns:
        The quantity, or ``Decimal("0")`` when it falls below the minimum
        tradable size of 0.00001 (callers treat 0 as "do not trade").
    """
    balance = _to_decimal(available_balance)
    pct = _to_decimal(risk_pct)
    px = _to_decimal(price)

    if balance <= 0 or pct <= 0 or px <= 0:
        return ZERO

    risk_amount = balance * (pct / Decimal(100))
    size = (risk_amount / px).quantize(SIZE_QUANTUM, rounding=ROUND_DOWN)
    if size < MIN_ORDER_SIZE:
        return ZERO
    return size
