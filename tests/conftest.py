"""Shared fixtures: a simulated world with funded wallets and exchange reserves."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import pytest

from traderpool.adapters import AssetLedger, ManualClock, SimulatedExchange, StaticPriceOracle, StaticTokenRegistry
from traderpool.config import CommissionPeriod, CoreProperties
from traderpool.core.events import EventLog
from traderpool.pool import BasicTraderPool, InvestTraderPool, PoolParameters

BASE = "WETH"
TOKEN = "MANA"
STABLE = "USDT"
REWARD = "DEXE"

TRADER = "trader"
ALICE = "alice"
BOB = "bob"

WALLET_FUNDS = Decimal(100_000)
EXCHANGE_RESERVES = Decimal(1_000_000_000)


@dataclass
class World:
    assets: AssetLedger
    oracle: StaticPriceOracle
    exchange: SimulatedExchange
    registry: StaticTokenRegistry
    clock: ManualClock
    properties: CoreProperties
    events: EventLog

    def fund(self, account: str, amount: Decimal | int, token: str = BASE) -> None:
        self.assets.mint(token, account, Decimal(amount))

    def wallet(self, account: str, token: str = BASE) -> Decimal:
        return self.assets.balance_of(token, account)

    def params(self, **overrides: Any) -> PoolParameters:
        defaults: dict[str, Any] = {
            "trader": TRADER,
            "base_token": BASE,
            "commission_percentage": Decimal(30),
            "commission_period": CommissionPeriod.PERIOD_1,
        }
        defaults.update(overrides)
        return PoolParameters(**defaults)

    @staticmethod
    def make_properties(**overrides: Any) -> CoreProperties:
        return CoreProperties(_env_file=None, **overrides)

    def _build(self, cls: type, address: str, properties: CoreProperties | None, overrides: dict[str, Any]) -> Any:
        return cls(
            address,
            self.params(**overrides),
            assets=self.assets,
            valuation=self.oracle,
            gateway=self.exchange,
            registry=self.registry,
            clock=self.clock,
            properties=properties or self.properties,
            events=self.events,
        )

    def basic_pool(
        self, address: str = "pool", properties: CoreProperties | None = None, **overrides: Any
    ) -> BasicTraderPool:
        return self._build(BasicTraderPool, address, properties, overrides)

    def invest_pool(
        self, address: str = "invest-pool", properties: CoreProperties | None = None, **overrides: Any
    ) -> InvestTraderPool:
        return self._build(InvestTraderPool, address, properties, overrides)


@pytest.fixture
def world() -> World:
    assets = AssetLedger()
    oracle = StaticPriceOracle({BASE: Decimal(1), TOKEN: Decimal(1), STABLE: Decimal(1), REWARD: Decimal(1)})
    exchange = SimulatedExchange(assets, oracle)

    for token in (BASE, TOKEN, STABLE, REWARD):
        assets.mint(token, exchange.address, EXCHANGE_RESERVES)
    for account in (TRADER, ALICE, BOB):
        assets.mint(BASE, account, WALLET_FUNDS)

    return World(
        assets=assets,
        oracle=oracle,
        exchange=exchange,
        registry=StaticTokenRegistry(whitelist={TOKEN, STABLE}),
        clock=ManualClock(1),
        properties=World.make_properties(),
        events=EventLog(),
    )


@pytest.fixture
def pool(world: World) -> BasicTraderPool:
    return world.basic_pool()


@pytest.fixture
def open_pool(pool: BasicTraderPool) -> BasicTraderPool:
    """Basic pool after the trader's opening 1000 base investment."""
    pool.invest(TRADER, {BASE: Decimal(1000)})
    return pool
