"""Error taxonomy for pool and sub-proposal operations.

Every failure surfaces synchronously as a subclass of :class:`PoolError`
carrying a short ``reason``. The engine never retries and never swallows:
the transaction guard rolls state back and re-raises.
"""


class PoolError(Exception):
    """Base class for every engine failure.

    Attributes:
        reason: Short machine-readable reason (also the message)
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AuthorizationError(PoolError):
    """Caller lacks the required role (trader, admin, parent pool)."""


class ValidationError(PoolError):
    """Malformed or out-of-range argument."""


class EconomicLimitError(PoolError):
    """An economic bound would be violated."""


class LeverageExceededError(EconomicLimitError):
    """Admitting the capital would exceed the trader's leverage ceiling."""


class OverinvestedError(EconomicLimitError):
    """A sub-proposal investment ceiling would be exceeded."""


class InsufficientBalanceError(EconomicLimitError):
    """Withdrawal, divest or transfer exceeds the available balance."""


class SlippageError(EconomicLimitError):
    """Realized output fell below the caller-supplied minimum."""


class LifecycleError(PoolError):
    """Action attempted in the wrong lifecycle state."""


class ProposalClosedError(LifecycleError):
    """Sub-proposal is expired or unwound."""


class InvestmentDelayError(LifecycleError):
    """The post-exchange investment cooldown has not elapsed."""


class ReentrancyError(PoolError):
    """Nested mutating call into a pool that is already mid-transaction."""
