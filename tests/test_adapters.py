"""Tests for the asset ledger and simulated collaborators."""

from decimal import Decimal

import pytest

from traderpool.adapters import AssetLedger, ManualClock, SimulatedExchange, StaticPriceOracle, StaticTokenRegistry
from traderpool.core.errors import InsufficientBalanceError, ValidationError


class TestAssetLedger:
    def test_mint_and_transfer(self) -> None:
        assets = AssetLedger()
        assets.mint("USDC", "alice", Decimal(100))
        assets.transfer("USDC", "alice", "bob", Decimal(40))

        assert assets.balance_of("USDC", "alice") == Decimal(60)
        assert assets.balance_of("USDC", "bob") == Decimal(40)
        assert assets.total_supply("USDC") == Decimal(100)

    def test_transfer_over_balance(self) -> None:
        """Test that overdrawing raises and moves nothing."""
        assets = AssetLedger()
        assets.mint("USDC", "alice", Decimal(10))

        with pytest.raises(InsufficientBalanceError, match="exceeds balance"):
            assets.transfer("USDC", "alice", "bob", Decimal(11))
        assert assets.balance_of("USDC", "alice") == Decimal(10)

    def test_unknown_token_balance_is_zero(self) -> None:
        assert AssetLedger().balance_of("NOPE", "alice") == Decimal(0)

    def test_negative_mint_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AssetLedger().mint("USDC", "alice", Decimal(-1))

    def test_large_balances_stay_exact(self) -> None:
        """Test that balances far above the host precision keep every unit."""
        assets = AssetLedger()
        assets.mint("WETH", "whale", Decimal(10**30))
        assets.mint("WETH", "whale", Decimal("0.000000000000000001"))

        assert assets.balance_of("WETH", "whale") == Decimal("1000000000000000000000000000000.000000000000000001")

    def test_transfer_hook_runs_after_move(self) -> None:
        """Test that the hook sees balances already updated."""
        assets = AssetLedger()
        assets.mint("HOOK", "alice", Decimal(5))
        seen: list[Decimal] = []

        def record(token: str, sender: str, recipient: str, amount: Decimal) -> None:
            seen.append(assets.balance_of(token, recipient))

        assets.set_transfer_hook("HOOK", record)

        assets.transfer("HOOK", "alice", "bob", Decimal(2))
        assets.set_transfer_hook("HOOK", None)
        assets.transfer("HOOK", "alice", "bob", Decimal(1))

        assert seen == [Decimal(2)]

    def test_snapshot_restore(self) -> None:
        assets = AssetLedger()
        assets.mint("USDC", "alice", Decimal(10))
        state = assets.snapshot()

        assets.transfer("USDC", "alice", "bob", Decimal(10))
        assets.restore(state)

        assert assets.balance_of("USDC", "alice") == Decimal(10)
        assert assets.balance_of("USDC", "bob") == Decimal(0)


class TestSimulatedExchange:
    def _setup(self, slippage_bps: Decimal = Decimal(0)) -> tuple[AssetLedger, SimulatedExchange]:
        assets = AssetLedger()
        oracle = StaticPriceOracle({"WETH": Decimal(2000), "USDC": Decimal(1)})
        exchange = SimulatedExchange(assets, oracle, slippage_bps=slippage_bps)
        assets.mint("USDC", exchange.address, Decimal(1_000_000))
        assets.mint("WETH", "pool", Decimal(2))
        return assets, exchange

    def test_swap_at_oracle_price(self) -> None:
        assets, exchange = self._setup()

        out = exchange.swap("pool", "WETH", "USDC", Decimal(1))

        assert out == Decimal(2000)
        assert assets.balance_of("USDC", "pool") == Decimal(2000)
        assert assets.balance_of("WETH", "pool") == Decimal(1)

    def test_slippage_haircut(self) -> None:
        """Test that 50 bps of slippage trims the output."""
        _, exchange = self._setup(slippage_bps=Decimal(50))
        assert exchange.quote("WETH", "USDC", Decimal(1)) == Decimal(1990)

    def test_same_token_rejected(self) -> None:
        _, exchange = self._setup()
        with pytest.raises(ValidationError, match="same token"):
            exchange.swap("pool", "WETH", "WETH", Decimal(1))

    def test_unpriced_token(self) -> None:
        _, exchange = self._setup()
        with pytest.raises(ValidationError, match="no price"):
            exchange.quote("WETH", "XYZ", Decimal(1))


class TestOracleAndRegistry:
    def test_value_of_floors(self) -> None:
        oracle = StaticPriceOracle({"A": Decimal("0.3")})
        assert oracle.value_of("A", Decimal("0.000000000000000001")) == Decimal(0)
        assert oracle.supports("A")
        assert not oracle.supports("B")

    def test_update_prices(self) -> None:
        oracle = StaticPriceOracle({"A": Decimal(1)})
        oracle.update_prices({"A": Decimal(3)})
        assert oracle.value_of("A", Decimal(2)) == Decimal(6)

    def test_registry(self) -> None:
        registry = StaticTokenRegistry(whitelist={"A"}, blacklist={"B"})
        assert registry.is_whitelisted("A")
        assert not registry.is_whitelisted("B")
        assert registry.is_blacklisted("B")


def test_manual_clock() -> None:
    clock = ManualClock(10)
    assert clock.advance(5) == 15
    clock.set(100)
    assert clock.now() == 100
