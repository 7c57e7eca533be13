"""Fixed-point unit of account.

Every amount, share count, price and percentage in the engine is a
``decimal.Decimal`` evaluated in a dedicated context. Token amounts and
shares are truncated to 18 decimal places, and every division rounds toward
zero, so the mint/burn math can never hand a holder more than they own.

Percentages live in ``[0, 100]``; ``PERCENTAGE_100`` is the whole.

Guarded operations and public views run under :func:`exact`, which widens
precision for the duration of the call only.
"""

from collections.abc import Callable
from decimal import (
    ROUND_DOWN,
    ROUND_UP,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    localcontext,
)
from functools import wraps
from typing import ParamSpec, TypeVar

DECIMAL_PLACES = 18
QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)

ZERO = Decimal(0)
ONE = Decimal(1)
PERCENTAGE_100 = Decimal(100)

# 78 digits covers a uint256 worth of magnitude with room for 18 fractional places.
ENGINE_CONTEXT = Context(
    prec=78,
    rounding=ROUND_DOWN,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)

P = ParamSpec("P")
T = TypeVar("T")


def exact(func: Callable[P, T]) -> Callable[P, T]:
    """Run ``func`` in the engine context so plain arithmetic on amounts stays exact.

    The host thread's decimal context is left alone; only the wrapped call
    sees the wider precision.
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        with localcontext(ENGINE_CONTEXT):
            return func(*args, **kwargs)

    return wrapper


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Convert a user-supplied quantity to a Decimal.

    Floats are rejected: their binary representation would leak rounding
    noise into the ledger.

    Raises:
        TypeError: If ``value`` is a float or another unsupported type
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        with localcontext(ENGINE_CONTEXT):
            return Decimal(value)
    msg = f"Unsupported quantity type: {type(value).__name__}"
    raise TypeError(msg)


def floor_amount(value: Decimal) -> Decimal:
    """Truncate to the ledger's 18 decimal places (toward zero)."""
    with localcontext(ENGINE_CONTEXT):
        return value.quantize(QUANTUM, rounding=ROUND_DOWN)


def ratio(value: Decimal, numerator: Decimal, denominator: Decimal) -> Decimal:
    """Return ``value * numerator / denominator`` truncated to 18 places.

    Example:
        >>> ratio(Decimal("10"), Decimal("1"), Decimal("3"))
        Decimal('3.333333333333333333')
    """
    with localcontext(ENGINE_CONTEXT):
        return floor_amount(value * numerator / denominator)


def ratio_up(value: Decimal, numerator: Decimal, denominator: Decimal) -> Decimal:
    """Like :func:`ratio` but rounds away from zero.

    For quantities taken from a holder, so truncation never works in their favour.
    """
    with localcontext(ENGINE_CONTEXT):
        return (value * numerator / denominator).quantize(QUANTUM, rounding=ROUND_UP)


def exact_ratio(value: Decimal, numerator: Decimal, denominator: Decimal) -> Decimal:
    """Like :func:`ratio` but keeps the full context precision."""
    with localcontext(ENGINE_CONTEXT):
        return value * numerator / denominator


def percentage(value: Decimal, pct: Decimal) -> Decimal:
    """Return ``pct`` percent of ``value`` truncated to 18 places."""
    return ratio(value, pct, PERCENTAGE_100)


def percentage_of(part: Decimal, whole: Decimal) -> Decimal:
    """Express ``part`` as a percentage of ``whole`` (100 when whole is zero)."""
    if whole == ZERO:
        return PERCENTAGE_100
    return exact_ratio(part, PERCENTAGE_100, whole)


def is_percentage(pct: Decimal) -> bool:
    return ZERO <= pct <= PERCENTAGE_100


def clamp_positive(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO
