"""Tests for invest pools and their investment rounds."""

from decimal import Decimal

import pytest

from traderpool.config import DAY
from traderpool.core.errors import (
    AuthorizationError,
    InsufficientBalanceError,
    InvestmentDelayError,
    OverinvestedError,
    ProposalClosedError,
    ValidationError,
)
from traderpool.core.events import (
    ProposalClaimed,
    ProposalConvertedToDividends,
    ProposalSupplied,
    ProposalWithdrawn,
)

BASE = "WETH"
TOKEN = "MANA"
REWARD = "DEXE"
TRADER = "trader"
ALICE = "alice"
BOB = "bob"


@pytest.fixture
def invest_pool(world):
    """Invest pool past its entry cooldown: trader and Alice hold 1000 shares each."""
    pool = world.invest_pool()
    pool.invest(TRADER, {BASE: Decimal(1000)})
    pool.exchange(TRADER, BASE, TOKEN, Decimal(100))
    world.clock.advance(21 * DAY)
    pool.invest(ALICE, {BASE: Decimal(1000)})
    return pool


@pytest.fixture
def round_id(invest_pool) -> int:
    """Round opened with 500 of the trader's shares and joined by Alice with 500."""
    pid = invest_pool.create_proposal(TRADER, Decimal(500))
    invest_pool.invest_proposal(ALICE, pid, Decimal(500))
    return pid


class TestInvestmentDelay:
    def test_no_outside_capital_before_first_exchange(self, world) -> None:
        pool = world.invest_pool()
        pool.invest(TRADER, {BASE: Decimal(1000)})

        with pytest.raises(InvestmentDelayError, match="investment delay"):
            pool.invest(ALICE, {BASE: Decimal(100)})
        assert pool.investment_open_at() is None

    def test_cooldown_after_exchange(self, world) -> None:
        """Test that outsiders wait out the delay after the latest exchange."""
        pool = world.invest_pool()
        pool.invest(TRADER, {BASE: Decimal(1000)})
        pool.exchange(TRADER, BASE, TOKEN, Decimal(100))

        world.clock.advance(20 * DAY - 1)
        with pytest.raises(InvestmentDelayError):
            pool.invest(ALICE, {BASE: Decimal(100)})

        world.clock.advance(1)
        assert pool.invest(ALICE, {BASE: Decimal(100)}) == Decimal(100)

    def test_admins_skip_delay(self, world) -> None:
        pool = world.invest_pool()
        pool.invest(TRADER, {BASE: Decimal(1000)})
        pool.exchange(TRADER, BASE, TOKEN, Decimal(100))

        assert pool.invest(TRADER, {BASE: Decimal(100)}) == Decimal(100)

    def test_zero_delay_disables_cooldown(self, world) -> None:
        pool = world.invest_pool(properties=world.make_properties(investment_delay=0))
        pool.invest(TRADER, {BASE: Decimal(1000)})

        assert pool.invest(ALICE, {BASE: Decimal(100)}) == Decimal(100)

    def test_new_exchange_restarts_delay(self, invest_pool, round_id) -> None:
        invest_pool.exchange(TRADER, BASE, TOKEN, Decimal(10))

        with pytest.raises(InvestmentDelayError):
            invest_pool.invest_proposal(ALICE, round_id, Decimal(10))
        with pytest.raises(InvestmentDelayError):
            invest_pool.invest(ALICE, {BASE: Decimal(10)})


class TestExchangeTargets:
    def test_any_supported_token(self, invest_pool) -> None:
        """Test that invest pools trade tokens outside the whitelist."""
        assert invest_pool.exchange(TRADER, BASE, REWARD, Decimal(10)) == Decimal(10)

    def test_unsupported_token(self, invest_pool) -> None:
        with pytest.raises(ValidationError, match="token is not supported"):
            invest_pool.exchange(TRADER, BASE, "XYZ", Decimal(10))


class TestRound:
    def test_create_and_join(self, world, invest_pool, round_id) -> None:
        proposals = invest_pool.proposal_pool
        record = proposals.get_proposal(round_id)

        assert record.invested_base == Decimal(1000)
        assert record.new_invested_base == Decimal(1000)
        assert proposals.balance_of(ALICE, round_id) == Decimal(500)
        assert proposals.balance_of(TRADER, round_id) == Decimal(500)
        assert world.wallet(proposals.address) == Decimal(1000)
        assert invest_pool.balance_of(ALICE) == Decimal(500)

    def test_lp_limit(self, invest_pool) -> None:
        pid = invest_pool.create_proposal(TRADER, Decimal(500), invest_lp_limit=Decimal(600))
        with pytest.raises(OverinvestedError, match="proposal is overinvested"):
            invest_pool.invest_proposal(ALICE, pid, Decimal(500))

    def test_expired_round(self, world, invest_pool) -> None:
        pid = invest_pool.create_proposal(TRADER, Decimal(500), timestamp_limit=world.clock.now() + 100)
        world.clock.advance(200)

        with pytest.raises(ProposalClosedError):
            invest_pool.invest_proposal(ALICE, pid, Decimal(100))
        assert invest_pool.proposal_pool.get_proposal_infos()[0].closed

    def test_only_trader_creates(self, invest_pool) -> None:
        with pytest.raises(AuthorizationError):
            invest_pool.create_proposal(ALICE, Decimal(100))

    def test_leverage_counts_round_base(self, invest_pool, round_id) -> None:
        info = invest_pool.get_leverage_info()
        assert info.total_value == Decimal(2000)


class TestWithdraw:
    def test_withdraw_to_trader_wallet(self, world, invest_pool, round_id) -> None:
        before = world.wallet(TRADER)

        invest_pool.proposal_pool.withdraw(TRADER, round_id, Decimal(400))

        assert world.wallet(TRADER) == before + Decimal(400)
        assert invest_pool.proposal_pool.get_proposal(round_id).new_invested_base == Decimal(600)
        assert world.events.of_type(ProposalWithdrawn)[0].amount == Decimal(400)

    def test_withdraw_over_balance(self, invest_pool, round_id) -> None:
        with pytest.raises(InsufficientBalanceError, match="withdrawing more than balance"):
            invest_pool.proposal_pool.withdraw(TRADER, round_id, Decimal(1001))

    def test_only_admins(self, invest_pool, round_id) -> None:
        with pytest.raises(AuthorizationError, match="not a trader admin"):
            invest_pool.proposal_pool.withdraw(ALICE, round_id, Decimal(1))


class TestRewards:
    def test_supply_splits_by_lp2(self, world, invest_pool, round_id) -> None:
        world.fund(TRADER, 50, REWARD)
        proposals = invest_pool.proposal_pool

        proposals.supply(TRADER, round_id, [Decimal(100), Decimal(50)], [BASE, REWARD])

        rewards = proposals.get_rewards([round_id], ALICE)[0]
        assert rewards.amounts == {BASE: Decimal(50), REWARD: Decimal(25)}
        assert rewards.base_amount == Decimal(50)
        assert world.events.of_type(ProposalSupplied)[0].amounts[REWARD] == Decimal(50)

    def test_claim_reinvests_base(self, world, invest_pool, round_id) -> None:
        """Test that base rewards become pool shares and others go to the wallet."""
        world.fund(TRADER, 50, REWARD)
        invest_pool.proposal_pool.supply(TRADER, round_id, [Decimal(100), Decimal(50)], [BASE, REWARD])

        claimed = invest_pool.reinvest_proposal(ALICE, round_id)

        assert claimed == {BASE: Decimal(50), REWARD: Decimal(25)}
        assert invest_pool.balance_of(ALICE) == Decimal(550)
        assert world.wallet(ALICE, REWARD) == Decimal(25)
        assert world.events.of_type(ProposalClaimed)[0].shares_minted == Decimal(50)

    def test_nothing_to_claim(self, invest_pool, round_id) -> None:
        with pytest.raises(InsufficientBalanceError, match="nothing to divest"):
            invest_pool.reinvest_proposal(ALICE, round_id)

    def test_claim_twice(self, world, invest_pool, round_id) -> None:
        invest_pool.proposal_pool.supply(TRADER, round_id, [Decimal(100)], [BASE])
        invest_pool.reinvest_proposal(ALICE, round_id)

        with pytest.raises(InsufficientBalanceError):
            invest_pool.reinvest_proposal(ALICE, round_id)

    def test_transfer_moves_only_future_rewards(self, invest_pool, round_id) -> None:
        """Test that rewards accrued before an LP2 transfer stay with the sender."""
        proposals = invest_pool.proposal_pool
        proposals.supply(TRADER, round_id, [Decimal(100)], [BASE])

        proposals.transfer(ALICE, BOB, round_id, Decimal(500))
        proposals.supply(TRADER, round_id, [Decimal(100)], [BASE])

        assert proposals.get_rewards([round_id], ALICE)[0].base_amount == Decimal(50)
        assert proposals.get_rewards([round_id], BOB)[0].base_amount == Decimal(50)

        invest_pool.reinvest_proposal(BOB, round_id)
        assert invest_pool.balance_of(BOB) > Decimal(0)

    def test_late_joiner_misses_earlier_rewards(self, world, invest_pool) -> None:
        pid = invest_pool.create_proposal(TRADER, Decimal(500))
        invest_pool.proposal_pool.supply(TRADER, pid, [Decimal(100)], [BASE])

        invest_pool.invest_proposal(ALICE, pid, Decimal(500))

        assert invest_pool.proposal_pool.get_rewards([pid], ALICE)[0].amounts == {BASE: Decimal(0)}
        assert invest_pool.proposal_pool.get_rewards([pid], TRADER)[0].base_amount == Decimal(100)

    def test_supply_errors(self, invest_pool, round_id) -> None:
        proposals = invest_pool.proposal_pool
        with pytest.raises(ValidationError, match="length mismatch"):
            proposals.supply(TRADER, round_id, [Decimal(1)], [BASE, REWARD])
        with pytest.raises(ValidationError, match="amount is 0"):
            proposals.supply(TRADER, round_id, [Decimal(0)], [BASE])
        with pytest.raises(AuthorizationError):
            proposals.supply(ALICE, round_id, [Decimal(1)], [BASE])

    def test_convert_to_dividends(self, world, invest_pool, round_id) -> None:
        proposals = invest_pool.proposal_pool
        proposals.withdraw(TRADER, round_id, Decimal(400))

        amount = proposals.convert_invested_base_to_dividends(TRADER, round_id)

        assert amount == Decimal(600)
        assert proposals.get_rewards([round_id], ALICE)[0].base_amount == Decimal(300)
        assert proposals.get_proposal(round_id).new_invested_base == Decimal(0)
        assert world.events.of_type(ProposalConvertedToDividends)[0].amount == Decimal(600)

        with pytest.raises(ValidationError, match="zero amount"):
            proposals.convert_invested_base_to_dividends(TRADER, round_id)
