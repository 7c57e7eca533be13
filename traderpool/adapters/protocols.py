"""Boundary protocols for the engine's external collaborators.

The pool ledger and proposal pools hold typed handles to these, injected at
construction. Any implementation (on-chain bindings, DEX routers, the
simulated ones in :mod:`traderpool.adapters.simulated`) can be swapped in.
"""

from decimal import Decimal
from typing import Protocol

from traderpool.core.types import Address, Timestamp, Token


class ValuationAdapter(Protocol):
    """Converts a token balance into unit-of-account value.

    Must be monotonic in ``amount`` and deterministic within a transaction.
    """

    def value_of(self, token: Token, amount: Decimal) -> Decimal:
        """Return the unit-of-account value of ``amount`` of ``token``.

        Raises:
            ValidationError: If the token has no price
        """
        ...

    def supports(self, token: Token) -> bool:
        """Return True if the adapter can value ``token``."""
        ...


class ExchangeGateway(Protocol):
    """Executes swaps on behalf of an account.

    The gateway is an untrusted external call: it may transfer tokens whose
    hooks call back into the engine.
    """

    def swap(self, account: Address, from_token: Token, to_token: Token, amount: Decimal) -> Decimal:
        """Swap ``amount`` of ``from_token`` held by ``account`` into ``to_token``.

        The output is paid back to ``account``. The caller enforces its own
        minimum-output bound on the returned amount.

        Returns:
            Realized output amount
        """
        ...


class TokenRegistry(Protocol):
    """Read-only whitelist/blacklist of investable tokens."""

    def is_whitelisted(self, token: Token) -> bool: ...

    def is_blacklisted(self, token: Token) -> bool: ...


class Clock(Protocol):
    """Source of transaction timestamps (seconds)."""

    def now(self) -> Timestamp: ...
