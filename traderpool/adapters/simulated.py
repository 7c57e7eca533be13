"""Simulated collaborators for tests, local runs and the CLI.

``StaticPriceOracle`` values tokens from a price table, ``SimulatedExchange``
fills swaps at oracle prices minus simulated slippage, settling against its
own reserves in the shared :class:`AssetLedger`.
"""

import time
from collections.abc import Iterable, Mapping
from decimal import Decimal

import structlog

from traderpool.adapters.assets import AssetLedger
from traderpool.core.errors import ValidationError
from traderpool.core.fixed import ZERO, exact, floor_amount, ratio
from traderpool.core.types import Address, Timestamp, Token

log = structlog.get_logger()


class StaticPriceOracle:
    """Valuation adapter backed by a mutable price table.

    Prices are unit-of-account value per whole token.
    """

    def __init__(self, prices: Mapping[Token, Decimal] | None = None) -> None:
        self.prices: dict[Token, Decimal] = dict(prices or {})

    def update_prices(self, prices: Mapping[Token, Decimal]) -> None:
        self.prices.update(prices)
        log.debug("oracle.prices_updated", tokens=len(prices))

    def supports(self, token: Token) -> bool:
        return token in self.prices

    def price_of(self, token: Token) -> Decimal:
        price = self.prices.get(token)
        if price is None:
            msg = f"no price for {token}"
            raise ValidationError(msg)
        return price

    @exact
    def value_of(self, token: Token, amount: Decimal) -> Decimal:
        return floor_amount(self.price_of(token) * amount)


class SimulatedExchange:
    """Exchange gateway filling at oracle prices with slippage.

    Attributes:
        address: Account holding the exchange's reserves
        slippage_bps: Output haircut in basis points
    """

    BPS_DENOMINATOR = Decimal("10000")

    def __init__(
        self,
        assets: AssetLedger,
        oracle: StaticPriceOracle,
        address: Address = "exchange",
        slippage_bps: Decimal = ZERO,
    ) -> None:
        self.assets = assets
        self.oracle = oracle
        self.address = address
        self.slippage_bps = slippage_bps

    @exact
    def quote(self, from_token: Token, to_token: Token, amount: Decimal) -> Decimal:
        """Output for ``amount`` of ``from_token`` before touching balances."""
        value = self.oracle.value_of(from_token, amount)
        out = ratio(value, Decimal(1), self.oracle.price_of(to_token))
        haircut = ratio(out, self.slippage_bps, self.BPS_DENOMINATOR)
        return out - haircut

    def swap(self, account: Address, from_token: Token, to_token: Token, amount: Decimal) -> Decimal:
        if from_token == to_token:
            raise ValidationError("same token swap")

        amount_out = self.quote(from_token, to_token, amount)

        self.assets.transfer(from_token, account, self.address, amount)
        self.assets.transfer(to_token, self.address, account, amount_out)

        log.debug(
            "exchange.swapped",
            account=account,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount,
            amount_out=amount_out,
        )
        return amount_out


class StaticTokenRegistry:
    """Mutable whitelist and blacklist."""

    def __init__(self, whitelist: Iterable[Token] = (), blacklist: Iterable[Token] = ()) -> None:
        self.whitelist: set[Token] = set(whitelist)
        self.blacklist: set[Token] = set(blacklist)

    def is_whitelisted(self, token: Token) -> bool:
        return token in self.whitelist

    def is_blacklisted(self, token: Token) -> bool:
        return token in self.blacklist


class ManualClock:
    """Clock advanced explicitly by tests and simulations."""

    def __init__(self, timestamp: Timestamp = 0) -> None:
        self.timestamp = timestamp

    def now(self) -> Timestamp:
        return self.timestamp

    def advance(self, seconds: int) -> Timestamp:
        self.timestamp += seconds
        return self.timestamp

    def set(self, timestamp: Timestamp) -> None:
        self.timestamp = timestamp


class SystemClock:
    """Wall-clock seconds."""

    def now(self) -> Timestamp:
        return int(time.time())
