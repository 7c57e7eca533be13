"""Pool ledger: share supply, held assets and per-investor bookkeeping.

A pool is opened by its trader, accepts outside capital through
:meth:`TraderPool.invest`, pays out pro-rata baskets through
:meth:`TraderPool.divest`, and lets its admins route holdings through the
exchange gateway. NAV is measured in base-token units; the leverage limiter
works in the valuation adapter's unit of account.

Every public mutating method runs inside the pool's transaction guard, so
it either commits in full or leaves no trace.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar

import structlog

from traderpool.adapters.assets import AssetLedger
from traderpool.adapters.protocols import Clock, ExchangeGateway, TokenRegistry, ValuationAdapter
from traderpool.config import CoreProperties
from traderpool.core.errors import (
    AuthorizationError,
    EconomicLimitError,
    InsufficientBalanceError,
    LifecycleError,
    SlippageError,
    ValidationError,
)
from traderpool.core.events import (
    AdminsModified,
    CommissionClosed,
    CommissionRealized,
    Divested,
    EventLog,
    Exchanged,
    Invested,
    PoolParametersChanged,
    PrivateInvestorsModified,
    SharesTransferred,
)
from traderpool.core.fixed import ONE, ZERO, exact, floor_amount, ratio, ratio_up, to_decimal
from traderpool.core.guard import Snapshottable, TransactionGuard, atomic
from traderpool.core.types import Address, Timestamp, Token
from traderpool.pool.commission import CommissionClose, CommissionEngine
from traderpool.pool.leverage import LeverageLimiter
from traderpool.pool.params import (
    CommissionPreview,
    DivestPreview,
    InvestorPosition,
    LeverageInfo,
    PoolInfo,
    PoolKind,
    PoolParameters,
    PositionBalance,
    UserInfo,
)

if TYPE_CHECKING:
    from traderpool.proposals.base import ProposalPool

log = structlog.get_logger()


class TraderPool(Snapshottable):
    """Pooled fund managed by a single trader.

    Args:
        address: Pool account in the asset ledger
        params: Trader-chosen parameters
        assets: Shared token balances
        valuation: Prices tokens in the unit of account
        gateway: Executes swaps for the pool
        registry: Token whitelist/blacklist
        clock: Transaction timestamps
        properties: Protocol-wide limits (defaults loaded from env)
        events: Event sink (a fresh log if omitted)

    Raises:
        ValidationError: If the base token or commission is not acceptable
    """

    kind: ClassVar[PoolKind] = PoolKind.BASIC

    _snapshot_exclude = frozenset(
        {
            "assets",
            "valuation",
            "gateway",
            "registry",
            "clock",
            "properties",
            "events",
            "guard",
            "leverage",
            "proposal_pool",
        }
    )

    def __init__(
        self,
        address: Address,
        params: PoolParameters,
        *,
        assets: AssetLedger,
        valuation: ValuationAdapter,
        gateway: ExchangeGateway,
        registry: TokenRegistry,
        clock: Clock,
        properties: CoreProperties | None = None,
        events: EventLog | None = None,
    ) -> None:
        self.address = address
        self.params = params
        self.assets = assets
        self.valuation = valuation
        self.gateway = gateway
        self.registry = registry
        self.clock = clock
        self.properties = properties or CoreProperties()
        self.events = events if events is not None else EventLog()
        self.guard = TransactionGuard(address, scope=assets.transactions)

        self._validate_parameters()

        self.leverage = LeverageLimiter(self.properties.leverage_threshold, self.properties.leverage_slope)
        self.commission = CommissionEngine(
            percentage=params.commission_percentage,
            dao_percentage=self.properties.dao_commission_percentage,
            init_timestamp=self.properties.commission_init_timestamp,
            duration=self.properties.commission_duration(params.commission_period),
            started_at=clock.now(),
        )

        self.total_supply = ZERO
        self._balances: dict[Address, Decimal] = {}
        self.investors: dict[Address, InvestorPosition] = {}
        self.admins: set[Address] = {params.trader}
        self.private_investors: set[Address] = set()
        self.positions: list[Token] = []
        self.first_exchange_at: Timestamp | None = None
        self.last_exchange_at: Timestamp | None = None

        self.proposal_pool: ProposalPool | None = self._create_proposal_pool()

        self.guard.register(self.assets, self.events, self)
        if self.proposal_pool is not None:
            self.guard.register(self.proposal_pool)

        log.info(
            "pool.created",
            pool=address,
            kind=self.kind.value,
            trader=params.trader,
            base_token=params.base_token,
            commission_percentage=params.commission_percentage,
        )

    def _create_proposal_pool(self) -> ProposalPool | None:
        return None

    def _validate_parameters(self) -> None:
        params = self.params
        base = params.base_token

        if not self.valuation.supports(base):
            raise ValidationError("base token is not supported")
        if self.registry.is_blacklisted(base):
            raise ValidationError("token is blacklisted")

        max_commission = self.properties.max_trader_commission(params.commission_period)
        if not self.properties.min_trader_commission <= params.commission_percentage <= max_commission:
            raise ValidationError("incorrect commission percentage")
        if params.minimal_investment < ZERO or params.total_lp_emission < ZERO:
            raise ValidationError("negative pool parameter")

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @property
    def trader(self) -> Address:
        return self.params.trader

    @property
    def base_token(self) -> Token:
        return self.params.base_token

    @property
    def treasury(self) -> Address:
        return self.properties.treasury_address

    def is_admin(self, account: Address) -> bool:
        return account in self.admins

    def _only_trader(self, sender: Address) -> None:
        if sender != self.trader:
            raise AuthorizationError("not a trader")

    def _only_admin(self, sender: Address) -> None:
        if not self.is_admin(sender):
            raise AuthorizationError("not a trader admin")

    def _check_entry(self, sender: Address) -> None:
        """Gate new capital from ``sender`` (private list, delays)."""
        if self.params.private_pool and not (self.is_admin(sender) or sender in self.private_investors):
            raise AuthorizationError("private pool")
        if not self.is_admin(sender):
            self._check_investment_delay()

    def _check_investment_delay(self) -> None:
        """Basic pools have no post-exchange cooldown."""

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def _now(self) -> Timestamp:
        return self.clock.now()

    def _base_unit_price(self) -> Decimal:
        price = self.valuation.value_of(self.base_token, ONE)
        if price <= ZERO:
            raise ValidationError("base token has no price")
        return price

    def to_base(self, token: Token, amount: Decimal) -> Decimal:
        """Value ``amount`` of ``token`` in base-token units."""
        if token == self.base_token:
            return amount
        return ratio(self.valuation.value_of(token, amount), ONE, self._base_unit_price())

    def open_positions(self) -> list[Token]:
        """Held non-base tokens, never reporting a blacklisted one."""
        return [token for token in self.positions if not self.registry.is_blacklisted(token)]

    def holdings(self) -> dict[Token, Decimal]:
        """Base balance followed by every open position balance."""
        held = {self.base_token: self.assets.balance_of(self.base_token, self.address)}
        for token in self.open_positions():
            held[token] = self.assets.balance_of(token, self.address)
        return held

    @exact
    def nav(self) -> Decimal:
        """Net asset value in base-token units."""
        return sum((self.to_base(token, amount) for token, amount in self.holdings().items()), ZERO)

    @exact
    def nav_in_unit(self) -> Decimal:
        """Net asset value in the valuation adapter's unit of account."""
        return sum(
            (self.valuation.value_of(token, amount) for token, amount in self.holdings().items()),
            ZERO,
        )

    # ------------------------------------------------------------------
    # Share bookkeeping
    # ------------------------------------------------------------------

    def balance_of(self, account: Address) -> Decimal:
        return self._balances.get(account, ZERO)

    def share_balances(self) -> dict[Address, Decimal]:
        """Non-zero share balances by holder."""
        return {account: balance for account, balance in self._balances.items() if balance > ZERO}

    def locked_lp_of(self, account: Address) -> Decimal:
        if self.proposal_pool is None:
            return ZERO
        return self.proposal_pool.total_lp_balance(account)

    def _investor_accounts(self) -> set[Address]:
        accounts = {account for account, balance in self._balances.items() if balance > ZERO}
        if self.proposal_pool is not None:
            accounts |= self.proposal_pool.active_accounts()
        accounts.discard(self.trader)
        accounts.discard(self.treasury)
        return accounts

    @property
    def total_investors(self) -> int:
        return len(self._investor_accounts())

    def _ensure_investor(self, account: Address) -> InvestorPosition:
        position = self.investors.get(account)
        if position is not None:
            return position

        if account not in (self.trader, self.treasury) and account not in self._investor_accounts():
            if self.total_investors >= self.properties.max_pool_investors:
                raise EconomicLimitError("max investors")

        position = InvestorPosition(investor=account, opened_at=self._now())
        self.investors[account] = position
        return position

    def _refresh_investor(self, account: Address) -> None:
        if self.balance_of(account) == ZERO and self.locked_lp_of(account) == ZERO:
            self.investors.pop(account, None)

    def _mint(self, account: Address, shares: Decimal, *, capped: bool = True) -> None:
        if shares <= ZERO:
            return
        emission = self.params.total_lp_emission
        if capped and emission > ZERO and self.total_supply + shares > emission:
            raise EconomicLimitError("minting more than emission")

        self._ensure_investor(account)
        self._balances[account] = self.balance_of(account) + shares
        self.total_supply += shares

    def _burn(self, account: Address, shares: Decimal) -> None:
        if self.balance_of(account) < shares:
            raise InsufficientBalanceError("burn amount exceeds balance")
        self._balances[account] = self.balance_of(account) - shares
        self.total_supply -= shares

    def _move_shares(self, sender: Address, recipient: Address, shares: Decimal) -> None:
        if shares <= ZERO or sender == recipient:
            return
        if self.balance_of(sender) < shares:
            raise InsufficientBalanceError("transfer amount exceeds balance")
        self._ensure_investor(recipient)
        self._balances[sender] = self.balance_of(sender) - shares
        self._balances[recipient] = self.balance_of(recipient) + shares

    def _sync_positions(self, *candidates: Token) -> None:
        for token in candidates:
            if token != self.base_token and token not in self.positions:
                self.positions.append(token)
        self.positions = [
            token for token in self.positions if self.assets.balance_of(token, self.address) > ZERO
        ]

    # ------------------------------------------------------------------
    # Commission
    # ------------------------------------------------------------------

    def _close_commission_if_due(self) -> CommissionClose | None:
        now = self._now()
        if not self.commission.is_due(now):
            return None

        result = self.commission.close(self.nav(), self.total_supply, now)
        # Commission is owed regardless of the emission cap.
        self._mint(self.trader, result.trader_shares, capped=False)
        self._mint(self.treasury, result.dao_shares, capped=False)

        self.events.emit(
            CommissionClosed(
                pool=self.address,
                actor=self.trader,
                timestamp=now,
                epoch=result.epoch,
                nav=result.nav,
                gains=result.gains,
                commission_value=result.commission_value,
                trader_shares=result.trader_shares,
                dao_shares=result.dao_shares,
                treasury=self.treasury,
            )
        )
        return result

    def _shares_for_value(self, value: Decimal, nav: Decimal) -> Decimal:
        """Shares worth ``value`` base units at the commission-equalized price."""
        if self.total_supply == ZERO:
            return floor_amount(value)

        net_value = nav - self.commission.accrued(nav)
        if net_value <= ZERO:
            raise EconomicLimitError("pool has no value")
        return ratio(value, self.total_supply, net_value)

    def _divest_commission(self, shares: Decimal, nav: Decimal) -> tuple[Decimal, Decimal]:
        """Commission (value, shares) owed by a divesting slice of ``shares``.

        The shares are taken from the holder, so they round up.
        """
        if nav <= ZERO or self.total_supply == ZERO:
            return ZERO, ZERO
        accrued = self.commission.accrued(nav)
        value = ratio(accrued, shares, self.total_supply)
        return value, ratio_up(shares, accrued, nav)

    def _realize_divest(self, investor: Address, shares: Decimal) -> tuple[dict[Token, Decimal], Decimal]:
        """Burn ``shares`` net of commission.

        Returns:
            The basket (still held by the pool) and the commission shares taken
        """
        now = self._now()
        nav = self.nav()
        supply = self.total_supply
        held = self.holdings()

        commission_value, commission_shares = self._divest_commission(shares, nav)
        burned = shares - commission_shares
        basket = {token: ratio(amount, burned, supply) for token, amount in held.items()}

        trader_shares, dao_shares = self.commission.split(commission_shares)
        self.commission.record_divest(shares, supply, commission_value, trader_shares, dao_shares)

        position = self._ensure_investor(investor)
        position.invested_base -= ratio(position.invested_base, shares, self.balance_of(investor))

        self._move_shares(investor, self.trader, trader_shares)
        self._move_shares(investor, self.treasury, dao_shares)
        self._burn(investor, burned)

        if commission_shares > ZERO:
            self.events.emit(
                CommissionRealized(
                    pool=self.address,
                    actor=investor,
                    timestamp=now,
                    investor=investor,
                    commission_value=commission_value,
                    trader_shares=trader_shares,
                    dao_shares=dao_shares,
                    treasury=self.treasury,
                )
            )
        return basket, commission_shares

    # ------------------------------------------------------------------
    # Invest / divest / exchange
    # ------------------------------------------------------------------

    def _check_investable(self, token: Token) -> None:
        if self.registry.is_blacklisted(token):
            raise ValidationError("token is blacklisted")
        if token != self.base_token and not self.registry.is_whitelisted(token):
            raise ValidationError("not in whitelist")

    def _leverage_values(self) -> tuple[Decimal, Decimal]:
        """(total managed value, trader's own value) in the unit of account."""
        total_value = self.nav_in_unit()
        all_lp = self.total_supply
        trader_lp = self.balance_of(self.trader)

        if self.proposal_pool is not None:
            total_value += self.proposal_pool.locked_value_in_unit()
            all_lp += self.proposal_pool.total_locked_lp
            trader_lp += self.proposal_pool.total_lp_balance(self.trader)

        trader_value = ratio(total_value, trader_lp, all_lp) if all_lp > ZERO else ZERO
        return total_value, trader_value

    @atomic
    def invest(
        self,
        sender: Address,
        amounts: Mapping[Token, Decimal],
        min_shares_out: Decimal = ZERO,
    ) -> Decimal:
        """Contribute one or more assets and receive pool shares.

        Args:
            sender: Investor paying the assets
            amounts: Token to amount contributed
            min_shares_out: Slippage bound on minted shares

        Returns:
            Shares minted

        Raises:
            ValidationError: Zero amount, non-whitelisted or blacklisted token,
                below the minimal investment
            AuthorizationError: Private pool and sender not allowed
            LifecycleError: Empty pool and sender is not the trader
            LeverageExceededError: Capital would exceed the leverage ceiling
            SlippageError: Fewer than ``min_shares_out`` shares
        """
        contributed = {token: to_decimal(amount) for token, amount in amounts.items()}
        if not contributed:
            raise ValidationError("zero investment")
        for token, amount in contributed.items():
            if amount <= ZERO:
                raise ValidationError("zero amount")
            self._check_investable(token)

        if self.total_supply == ZERO and sender != self.trader:
            raise LifecycleError("pool is not open")
        self._check_entry(sender)

        self._close_commission_if_due()

        value = sum((self.to_base(token, amount) for token, amount in contributed.items()), ZERO)
        needs_minimum = not self.is_admin(sender) or self.total_supply == ZERO
        if needs_minimum and value < self.params.minimal_investment:
            raise ValidationError("investment below minimum")

        if not self.is_admin(sender):
            total_value, trader_value = self._leverage_values()
            added_value = sum(
                (self.valuation.value_of(token, amount) for token, amount in contributed.items()),
                ZERO,
            )
            self.leverage.check(total_value, trader_value, added_value)

        shares = self._shares_for_value(value, self.nav())
        if shares <= ZERO:
            raise ValidationError("zero shares")
        if shares < min_shares_out:
            raise SlippageError("slippage")

        for token, amount in contributed.items():
            self.assets.transfer(token, sender, self.address, amount)

        self._mint(sender, shares)
        self.investors[sender].invested_base += value
        self.commission.record_invest(value)

        self._sync_positions(*contributed)
        if len(self.positions) > self.properties.max_open_positions:
            raise EconomicLimitError("max positions")

        self.events.emit(
            Invested(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                amounts=contributed,
                value=value,
                shares=shares,
            )
        )
        log.info("pool.invested", pool=self.address, investor=sender, value=value, shares=shares)
        return shares

    @atomic
    def divest(
        self,
        sender: Address,
        shares: Decimal,
        min_outputs: Mapping[Token, Decimal] | None = None,
    ) -> dict[Token, Decimal]:
        """Burn shares for a pro-rata slice of every held asset.

        The slice's accrued commission is paid to trader and treasury as
        shares before the rest is burned.

        Returns:
            Token to amount paid out

        Raises:
            InsufficientBalanceError: More shares than held
            SlippageError: An output below its minimum
        """
        shares = to_decimal(shares)
        if shares <= ZERO:
            raise ValidationError("zero amount")
        if self.balance_of(sender) < shares:
            raise InsufficientBalanceError("divesting more than balance")

        self._close_commission_if_due()

        basket, commission_shares = self._realize_divest(sender, shares)

        for token, minimum in (min_outputs or {}).items():
            if basket.get(token, ZERO) < minimum:
                raise SlippageError("slippage")

        for token, amount in basket.items():
            if amount > ZERO:
                self.assets.transfer(token, self.address, sender, amount)

        self._sync_positions()
        self._refresh_investor(sender)

        self.events.emit(
            Divested(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                shares=shares,
                amounts=basket,
                commission_shares=commission_shares,
            )
        )
        log.info("pool.divested", pool=self.address, investor=sender, shares=shares)
        return basket

    def _check_exchange_target(self, token: Token) -> None:
        if token == self.base_token:
            return
        if self.registry.is_blacklisted(token):
            raise ValidationError("token is blacklisted")
        if not self.registry.is_whitelisted(token):
            raise ValidationError("not in whitelist")

    @atomic
    def exchange(
        self,
        sender: Address,
        from_token: Token,
        to_token: Token,
        amount: Decimal,
        min_amount_out: Decimal = ZERO,
    ) -> Decimal:
        """Swap pool holdings through the exchange gateway.

        The gateway call runs with the pool locked; a callback into any
        guarded method fails with ``ReentrancyError``.

        Returns:
            Realized output amount

        Raises:
            AuthorizationError: Sender is not a trader admin
            ValidationError: Token not held, not approved or blacklisted
            SlippageError: Output below ``min_amount_out``
        """
        self._only_admin(sender)
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError("zero amount")
        if from_token == to_token:
            raise ValidationError("ambiguous exchange")
        if from_token != self.base_token and from_token not in self.positions:
            raise ValidationError("invalid exchange")
        self._check_exchange_target(to_token)
        if self.assets.balance_of(from_token, self.address) < amount:
            raise InsufficientBalanceError("insufficient balance")

        amount_out = self.gateway.swap(self.address, from_token, to_token, amount)
        if amount_out < min_amount_out:
            raise SlippageError("slippage")

        self._sync_positions(to_token)
        if len(self.positions) > self.properties.max_open_positions:
            raise EconomicLimitError("max positions")

        now = self._now()
        if self.first_exchange_at is None:
            self.first_exchange_at = now
        self.last_exchange_at = now

        self.events.emit(
            Exchanged(
                pool=self.address,
                actor=sender,
                timestamp=now,
                from_token=from_token,
                to_token=to_token,
                amount_in=amount,
                amount_out=amount_out,
            )
        )
        log.info(
            "pool.exchanged",
            pool=self.address,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount,
            amount_out=amount_out,
        )
        return amount_out

    @atomic
    def transfer(self, sender: Address, recipient: Address, shares: Decimal) -> None:
        """Move pool shares, carrying the proportional cost basis."""
        shares = to_decimal(shares)
        if shares <= ZERO:
            raise ValidationError("zero amount")
        if sender == recipient:
            raise ValidationError("self transfer")
        if self.balance_of(sender) < shares:
            raise InsufficientBalanceError("transfer amount exceeds balance")
        if self.params.private_pool and not (
            self.is_admin(recipient) or recipient in self.private_investors
        ):
            raise AuthorizationError("private pool")

        sender_position = self._ensure_investor(sender)
        moved_basis = ratio(sender_position.invested_base, shares, self.balance_of(sender))
        sender_position.invested_base -= moved_basis

        self._move_shares(sender, recipient, shares)
        self.investors[recipient].invested_base += moved_basis
        self._refresh_investor(sender)

        self.events.emit(
            SharesTransferred(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                recipient=recipient,
                shares=shares,
            )
        )

    @atomic
    def reinvest_commission(self, sender: Address) -> CommissionClose:
        """Close the commission epoch explicitly.

        Raises:
            LifecycleError: The epoch end has not passed yet
        """
        self._only_admin(sender)
        result = self._close_commission_if_due()
        if result is None:
            raise LifecycleError("commission epoch not over")
        return result

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @atomic
    def modify_admins(self, sender: Address, accounts: Iterable[Address], add: bool) -> None:
        self._only_trader(sender)
        accounts = list(accounts)
        if add:
            self.admins.update(accounts)
        else:
            if self.trader in accounts:
                raise ValidationError("can't remove trader")
            self.admins.difference_update(accounts)

        self.events.emit(
            AdminsModified(
                pool=self.address, actor=sender, timestamp=self._now(), accounts=accounts, added=add
            )
        )

    @atomic
    def modify_private_investors(self, sender: Address, accounts: Iterable[Address], add: bool) -> None:
        self._only_admin(sender)
        accounts = list(accounts)
        if add:
            self.private_investors.update(accounts)
        else:
            for account in accounts:
                if self.balance_of(account) > ZERO or self.locked_lp_of(account) > ZERO:
                    raise ValidationError("can't remove investor")
            self.private_investors.difference_update(accounts)

        self.events.emit(
            PrivateInvestorsModified(
                pool=self.address, actor=sender, timestamp=self._now(), accounts=accounts, added=add
            )
        )

    @atomic
    def change_pool_parameters(
        self,
        sender: Address,
        *,
        description: str | None = None,
        private_pool: bool | None = None,
        minimal_investment: Decimal | None = None,
        total_lp_emission: Decimal | None = None,
    ) -> None:
        self._only_admin(sender)
        params = self.params

        if total_lp_emission is not None:
            if total_lp_emission < ZERO or ZERO < total_lp_emission < self.total_supply:
                raise ValidationError("wrong emission parameters")
            params.total_lp_emission = total_lp_emission
        if minimal_investment is not None:
            if minimal_investment < ZERO:
                raise ValidationError("negative pool parameter")
            params.minimal_investment = minimal_investment
        if description is not None:
            params.description = description
        if private_pool is not None:
            params.private_pool = private_pool

        self.events.emit(
            PoolParametersChanged(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                description=params.description,
                private_pool=params.private_pool,
                minimal_investment=params.minimal_investment,
                total_lp_emission=params.total_lp_emission,
            )
        )

    # ------------------------------------------------------------------
    # Sub-proposal plumbing (parent side)
    # ------------------------------------------------------------------

    def _convert_to_base(self, basket: Mapping[Token, Decimal]) -> Decimal:
        """Swap every non-base token in ``basket`` (held by the pool) to base."""
        total = basket.get(self.base_token, ZERO)
        for token, amount in basket.items():
            if token != self.base_token and amount > ZERO:
                total += self.gateway.swap(self.address, token, self.base_token, amount)
        return total

    def _divest_to_proposal(self, investor: Address, lp_amount: Decimal, min_base_out: Decimal) -> Decimal:
        """Turn ``lp_amount`` of the investor's shares into base handed to the proposal pool."""
        if self.proposal_pool is None:
            raise LifecycleError("pool has no proposals")
        lp_amount = to_decimal(lp_amount)
        if lp_amount <= ZERO:
            raise ValidationError("zero investment")
        if self.balance_of(investor) < lp_amount:
            raise InsufficientBalanceError("not enough LPs")

        self._close_commission_if_due()

        basket, _ = self._realize_divest(investor, lp_amount)
        base_amount = self._convert_to_base(basket)
        if base_amount < min_base_out:
            raise SlippageError("slippage")

        self.assets.transfer(self.base_token, self.address, self.proposal_pool.address, base_amount)
        self._sync_positions()
        return base_amount

    def _mint_for_returned_base(
        self,
        investor: Address,
        base_amount: Decimal,
        nav_before: Decimal,
        min_shares_out: Decimal,
    ) -> Decimal:
        """Mint shares for base that already arrived from the proposal pool."""
        if base_amount <= ZERO:
            return ZERO

        shares = self._shares_for_value(base_amount, nav_before)
        if shares < min_shares_out:
            raise SlippageError("slippage")

        self._mint(investor, shares)
        self.investors[investor].invested_base += base_amount
        self.commission.record_invest(base_amount)
        return shares

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @exact
    def get_pool_info(self) -> PoolInfo:
        params = self.params
        positions = [
            PositionBalance(
                token=token,
                amount=self.assets.balance_of(token, self.address),
                value=self.to_base(token, self.assets.balance_of(token, self.address)),
            )
            for token in self.open_positions()
        ]
        return PoolInfo(
            address=self.address,
            kind=self.kind,
            trader=params.trader,
            base_token=params.base_token,
            description=params.description,
            private_pool=params.private_pool,
            minimal_investment=params.minimal_investment,
            total_lp_emission=params.total_lp_emission,
            commission_period=params.commission_period,
            commission_percentage=params.commission_percentage,
            total_supply=self.total_supply,
            nav=self.nav(),
            nav_in_unit=self.nav_in_unit(),
            base_balance=self.assets.balance_of(self.base_token, self.address),
            positions=positions,
            open_positions=len(positions),
            total_investors=self.total_investors,
            commission_epoch=self.commission.epoch.index,
            commission_epoch_end=self.commission.epoch_end(),
            trader_commission_shares=self.commission.trader_shares_issued,
            dao_commission_shares=self.commission.dao_shares_issued,
        )

    def _user_info(self, account: Address, nav: Decimal) -> UserInfo:
        shares = self.balance_of(account)
        position = self.investors.get(account)
        return UserInfo(
            investor=account,
            shares=shares,
            invested_base=position.invested_base if position else ZERO,
            pool_value=ratio(nav, shares, self.total_supply) if self.total_supply > ZERO else ZERO,
            locked_lp=self.locked_lp_of(account),
        )

    @exact
    def get_users_info(self, offset: int = 0, limit: int = 100) -> list[UserInfo]:
        """Trader first, then investors in order of entry."""
        nav = self.nav()
        accounts = [self.trader] + [
            account for account in self.investors if account not in (self.trader, self.treasury)
        ]
        return [self._user_info(account, nav) for account in accounts[offset : offset + limit]]

    @exact
    def get_divest_amounts_and_commissions(self, user: Address, shares: Decimal) -> DivestPreview:
        """Basket and commission a divest of ``shares`` would produce now."""
        shares = to_decimal(shares)
        if shares > self.balance_of(user):
            raise InsufficientBalanceError("divesting more than balance")

        nav = self.nav()
        commission_value, commission_shares = self._divest_commission(shares, nav)
        burned = shares - commission_shares
        supply = self.total_supply
        amounts = (
            {token: ratio(amount, burned, supply) for token, amount in self.holdings().items()}
            if supply > ZERO
            else {}
        )
        trader_shares, dao_shares = self.commission.split(commission_shares)
        return DivestPreview(
            shares=shares,
            amounts=amounts,
            commission_value=commission_value,
            commission_shares=commission_shares,
            trader_shares=trader_shares,
            dao_shares=dao_shares,
        )

    @exact
    def get_reinvest_commissions(self) -> CommissionPreview:
        now = self._now()
        result = self.commission.preview(self.nav(), self.total_supply, now)
        return CommissionPreview(
            due=self.commission.is_due(now),
            epoch=self.commission.epoch.index,
            epoch_end=self.commission.epoch_end(),
            nav=result.nav,
            baseline=result.baseline,
            gains=result.gains,
            commission_value=result.commission_value,
            trader_shares=result.trader_shares,
            dao_shares=result.dao_shares,
        )

    @exact
    def get_leverage_info(self) -> LeverageInfo:
        total_value, trader_value = self._leverage_values()
        return LeverageInfo(
            total_value=total_value,
            trader_value=trader_value,
            max_total_value=self.leverage.max_total_value(trader_value),
            available=self.leverage.available(total_value, trader_value),
        )
