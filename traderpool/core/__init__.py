"""Engine primitives: fixed point, errors, events, transaction guard."""

from traderpool.core.errors import (
    AuthorizationError,
    EconomicLimitError,
    InsufficientBalanceError,
    InvestmentDelayError,
    LeverageExceededError,
    LifecycleError,
    OverinvestedError,
    PoolError,
    ProposalClosedError,
    ReentrancyError,
    SlippageError,
    ValidationError,
)
from traderpool.core.events import Event, EventLog
from traderpool.core.fixed import PERCENTAGE_100, ZERO, floor_amount, ratio, to_decimal
from traderpool.core.guard import Snapshottable, TransactionGuard, TransactionScope, atomic

__all__ = [
    # Errors
    "AuthorizationError",
    "EconomicLimitError",
    "InsufficientBalanceError",
    "InvestmentDelayError",
    "LeverageExceededError",
    "LifecycleError",
    "OverinvestedError",
    "PoolError",
    "ProposalClosedError",
    "ReentrancyError",
    "SlippageError",
    "ValidationError",
    # Events
    "Event",
    "EventLog",
    # Fixed point
    "PERCENTAGE_100",
    "ZERO",
    "floor_amount",
    "ratio",
    "to_decimal",
    # Guard
    "Snapshottable",
    "TransactionGuard",
    "TransactionScope",
    "atomic",
]
