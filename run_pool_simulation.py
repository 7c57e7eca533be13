"""Replay a pool lifecycle against simulated collaborators.

Steps:
1. Trader opens a basic pool and invests
2. Trader buys a whitelisted token; its price moves
3. An investor joins, the epoch ends and commission is taken
4. Trader opens a risky proposal, the investor joins it
5. Pool info and the full event log are printed as JSON
"""

import argparse
import sys
from decimal import Decimal

import msgspec
import structlog

from traderpool.adapters import AssetLedger, ManualClock, SimulatedExchange, StaticPriceOracle, StaticTokenRegistry
from traderpool.config import DAY, CommissionPeriod, CoreProperties
from traderpool.core.errors import PoolError
from traderpool.pool import BasicTraderPool, PoolParameters
from traderpool.utils.log import bind_pool_context, configure_logging

log = structlog.get_logger()

BASE = "WETH"
POSITION = "MANA"
TRADER = "trader"
INVESTOR = "investor"


def build_pool(commission: Decimal, slippage_bps: Decimal) -> tuple[BasicTraderPool, StaticPriceOracle, ManualClock]:
    assets = AssetLedger()
    oracle = StaticPriceOracle({BASE: Decimal(1), POSITION: Decimal(1)})
    exchange = SimulatedExchange(assets, oracle, slippage_bps=slippage_bps)
    registry = StaticTokenRegistry(whitelist={POSITION})
    clock = ManualClock(1)

    assets.mint(BASE, TRADER, Decimal(10_000))
    assets.mint(BASE, INVESTOR, Decimal(10_000))
    assets.mint(BASE, exchange.address, Decimal(1_000_000))
    assets.mint(POSITION, exchange.address, Decimal(1_000_000))

    params = PoolParameters(
        trader=TRADER,
        base_token=BASE,
        commission_percentage=commission,
        commission_period=CommissionPeriod.PERIOD_1,
    )
    pool = BasicTraderPool(
        "pool-1",
        params,
        assets=assets,
        valuation=oracle,
        gateway=exchange,
        registry=registry,
        clock=clock,
        properties=CoreProperties(),
    )
    return pool, oracle, clock


def run(commission: Decimal, price_move: Decimal, slippage_bps: Decimal) -> BasicTraderPool:
    pool, oracle, clock = build_pool(commission, slippage_bps)
    bind_pool_context(pool.address)

    pool.invest(TRADER, {BASE: Decimal(1000)})
    pool.exchange(TRADER, BASE, POSITION, Decimal(1000))
    oracle.update_prices({POSITION: price_move})

    pool.invest(INVESTOR, {BASE: Decimal(500)})

    clock.advance(31 * DAY)
    close = pool.reinvest_commission(TRADER)
    log.info("simulation.commission", value=close.commission_value, shares=close.minted_shares)

    pid = pool.create_proposal(
        TRADER,
        POSITION,
        Decimal(100),
        invest_lp_limit=Decimal(10_000),
        max_token_price_limit=Decimal(2),
    )
    limit = pool.proposal_pool.get_user_investments_limits(INVESTOR, [pid])[0]
    if limit:
        pool.invest_proposal(INVESTOR, pid, limit)

    return pool


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate a trader pool lifecycle")
    parser.add_argument("--commission", type=Decimal, default=Decimal(30), help="Trader commission percentage")
    parser.add_argument("--price-move", type=Decimal, default=Decimal("1.5"), help="New position token price")
    parser.add_argument("--slippage-bps", type=Decimal, default=Decimal(0), help="Simulated swap slippage")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--console", action="store_true", help="Human-readable logs instead of JSON")
    args = parser.parse_args()

    configure_logging(json_output=not args.console, level=args.log_level)

    try:
        pool = run(args.commission, args.price_move, args.slippage_bps)
    except PoolError as e:
        log.error("simulation.failed", error=type(e).__name__, reason=e.reason)
        return 1

    print(msgspec.json.format(msgspec.json.encode(pool.get_pool_info()).decode()))
    print(msgspec.json.format(pool.events.to_json().decode()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
