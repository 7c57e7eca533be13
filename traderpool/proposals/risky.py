"""Risky proposals: ring-fenced single-token bets.

The trader locks part of their own pool stake into a proposal tied to one
position token and trades between base and that token. Investors may join
while the proposal is open, but never with a larger share of their capital
than the trader committed. Exits are only possible while the proposal is
fully back in base, so nobody crystallizes a mid-trade price the trader did
not choose.
"""

from dataclasses import dataclass
from decimal import Decimal

import msgspec
import structlog

from traderpool.core.errors import (
    EconomicLimitError,
    InsufficientBalanceError,
    LifecycleError,
    OverinvestedError,
    ProposalClosedError,
    SlippageError,
    ValidationError,
)
from traderpool.core.events import ProposalCreated, ProposalExchanged, ProposalInvested
from traderpool.core.fixed import ONE, PERCENTAGE_100, ZERO, exact, exact_ratio, percentage, ratio, to_decimal
from traderpool.core.guard import atomic
from traderpool.core.types import Address, ProposalId, Token
from traderpool.proposals.base import ProposalLimits, ProposalPool, ProposalRecord

log = structlog.get_logger()


class RiskyProposalLimits(ProposalLimits, frozen=True, kw_only=True):
    """Risky limits; ``max_token_price_limit`` is the highest position price (in base) at which investors may join."""

    max_token_price_limit: Decimal = ZERO


@dataclass
class RiskyProposal(ProposalRecord):
    token: Token = ""
    base_balance: Decimal = ZERO
    position_balance: Decimal = ZERO
    unwound: bool = False


class RiskyProposalInfo(msgspec.Struct, frozen=True, kw_only=True):
    proposal_id: ProposalId
    token: Token
    limits: RiskyProposalLimits
    lp_locked: Decimal
    lp2_supply: Decimal
    base_balance: Decimal
    position_balance: Decimal
    token_price: Decimal
    total_investors: int
    closed: bool


class RiskyProposalPool(ProposalPool[RiskyProposal]):
    """Risky proposals of a basic pool."""

    variant = "risky-proposals"

    def is_closed(self, record: RiskyProposal) -> bool:
        return record.unwound or self._is_expired(record)

    def token_price(self, token: Token) -> Decimal:
        """Price of one ``token`` in base-token units."""
        return self.parent.to_base(token, ONE)

    @exact
    def proposal_value(self, record: RiskyProposal) -> Decimal:
        """Base-token value of the proposal's holdings."""
        return record.base_balance + self.parent.to_base(record.token, record.position_balance)

    # ------------------------------------------------------------------
    # Exposure ceiling
    # ------------------------------------------------------------------

    def _capital(self, user: Address) -> Decimal:
        """LP the user controls: locked in any proposal plus held in the parent."""
        return self.total_lp_balance(user) + self.parent.balance_of(user)

    def _exceeds_trader_exposure(self, pid: ProposalId, user: Address, lp_to_lock: Decimal, capital: Decimal) -> bool:
        """True if ``user``'s share of capital in ``pid`` would beat the trader's.

        Compares (user lock / user capital) against (trader lock / trader
        capital) by cross-multiplication, without rounding.
        """
        trader_capital = self._capital(self.trader)
        trader_locked = self.lp_balance(self.trader, pid)
        user_locked = self.lp_balance(user, pid) + lp_to_lock

        if capital == ZERO:
            return True
        if trader_capital == ZERO:
            return user_locked > ZERO
        return user_locked * trader_capital > trader_locked * capital

    def _check_exposure(self, proposal_id: ProposalId, user: Address, lp_to_lock: Decimal) -> None:
        """Raise if locking ``lp_to_lock`` more would leave ``user`` more exposed than the trader.

        The LP is not yet on the user's books, so it is added back to their capital.
        """
        if user == self.trader:
            return
        capital = self._capital(user) + lp_to_lock
        if self._exceeds_trader_exposure(proposal_id, user, lp_to_lock, capital):
            log.warning(
                "proposal.exposure_exceeded",
                proposal_id=proposal_id,
                investor=user,
                lp_investment=lp_to_lock,
            )
            raise OverinvestedError("investing more than trader")

    def _check_lp2_recipient(self, record: RiskyProposal, recipient: Address, lp: Decimal) -> None:
        # Received LP2 is a lock like any other.
        self._check_exposure(record.proposal_id, recipient, lp)

    @exact
    def get_user_investments_limits(self, user: Address, proposal_ids: list[ProposalId]) -> list[Decimal | None]:
        """LP ``user`` may still lock per proposal (None means unbounded, for the trader)."""
        limits: list[Decimal | None] = []
        for pid in proposal_ids:
            if user == self.trader:
                limits.append(None)
                continue

            trader_capital = self._capital(self.trader)
            if trader_capital == ZERO or pid not in self.proposals:
                limits.append(ZERO)
                continue

            ceiling = ratio(self._capital(user), self.lp_balance(self.trader, pid), trader_capital)
            limits.append(max(ceiling - self.lp_balance(user, pid), ZERO))
        return limits

    # ------------------------------------------------------------------
    # Parent-driven entry points
    # ------------------------------------------------------------------

    def create(
        self,
        caller: Address,
        token: Token,
        limits: RiskyProposalLimits,
        lp_investment: Decimal,
        base_investment: Decimal,
        instant_trade_percentage: Decimal,
        min_position_out: Decimal,
    ) -> ProposalId:
        """Open a proposal with the trader's base, already held by this pool.

        Raises:
            ValidationError: Bad token, limits, amounts or percentage
            SlippageError: Instant trade below ``min_position_out``
        """
        self._only_parent(caller)

        if not self.valuation.supports(token):
            raise ValidationError("token is not supported")
        if token == self.base_token:
            raise ValidationError("wrong proposal token")
        if self.registry.is_blacklisted(token):
            raise ValidationError("token is blacklisted")
        self._validate_limits(limits, lp_investment)
        if lp_investment <= ZERO or base_investment <= ZERO:
            raise ValidationError("zero investment")
        if not ZERO <= instant_trade_percentage <= PERCENTAGE_100:
            raise ValidationError("percentage is bigger than 100")

        pid = self._next_id()
        record = RiskyProposal(proposal_id=pid, limits=limits, created_at=self._now(), token=token)
        self.proposals[pid] = record

        record.base_balance = base_investment
        self._add_position(record, self.trader, lp_investment, base_investment, base_investment)

        to_trade = percentage(base_investment, instant_trade_percentage)
        if to_trade > ZERO:
            self._swap_into_position(record, to_trade, min_position_out)

        self.events.emit(
            ProposalCreated(
                pool=self.address,
                actor=self.trader,
                timestamp=self._now(),
                proposal_id=pid,
                token=token,
                lp_investment=lp_investment,
                base_investment=base_investment,
                timestamp_limit=limits.timestamp_limit,
                invest_lp_limit=limits.invest_lp_limit,
            )
        )
        log.info("proposal.created", variant=self.variant, proposal_id=pid, token=token, base=base_investment)
        return pid

    def invest(
        self,
        caller: Address,
        proposal_id: ProposalId,
        user: Address,
        lp_investment: Decimal,
        base_investment: Decimal,
        min_position_out: Decimal,
    ) -> Decimal:
        """Add ``user``'s base (already held by this pool) to a proposal.

        The parent has burned ``lp_investment`` before calling, so the user's
        capital is counted with it added back.

        Returns:
            LP2 minted

        Raises:
            ProposalClosedError: Expired or unwound
            OverinvestedError: Over the LP limit or more exposed than the trader
            EconomicLimitError: Position price above the limit
        """
        self._only_parent(caller)
        record = self.get_proposal(proposal_id)
        self._check_open(record)

        limits: RiskyProposalLimits = record.limits
        if limits.invest_lp_limit != ZERO and record.lp_locked + lp_investment > limits.invest_lp_limit:
            raise OverinvestedError("proposal is overinvested")
        if limits.max_token_price_limit != ZERO and self.token_price(record.token) > limits.max_token_price_limit:
            raise EconomicLimitError("token price too high")

        self._check_exposure(proposal_id, user, lp_investment)

        value_before = self.proposal_value(record)
        if record.lp2_supply == ZERO or value_before == ZERO:
            lp2 = base_investment
        else:
            lp2 = ratio(base_investment, record.lp2_supply, value_before)
        if lp2 <= ZERO:
            raise ValidationError("zero investment")

        position_part = ZERO
        if record.position_balance > ZERO and value_before > ZERO:
            position_value = value_before - record.base_balance
            position_part = ratio(base_investment, position_value, value_before)

        record.base_balance += base_investment
        if position_part > ZERO:
            self._swap_into_position(record, position_part, min_position_out)

        self._add_position(record, user, lp_investment, base_investment, lp2)

        self.events.emit(
            ProposalInvested(
                pool=self.address,
                actor=user,
                timestamp=self._now(),
                proposal_id=proposal_id,
                investor=user,
                lp_investment=lp_investment,
                base_investment=base_investment,
                lp2=lp2,
            )
        )
        log.info("proposal.invested", variant=self.variant, proposal_id=proposal_id, investor=user, lp2=lp2)
        return lp2

    def divest(
        self,
        caller: Address,
        proposal_id: ProposalId,
        user: Address,
        lp2: Decimal,
        min_base_out: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """Burn LP2 and send its base slice back to the parent pool.

        Returns:
            (base sent to the parent, parent LP released)

        Raises:
            LifecycleError: The proposal still holds a position
            InsufficientBalanceError: More LP2 than held
            SlippageError: Base out below ``min_base_out``
        """
        self._only_parent(caller)
        record = self.get_proposal(proposal_id)
        lp2 = to_decimal(lp2)
        if lp2 <= ZERO:
            raise ValidationError("zero amount")
        if lp2 > self.balance_of(user, proposal_id):
            raise InsufficientBalanceError("divesting more than balance")
        if record.position_balance > ZERO:
            raise LifecycleError("divesting with open position")

        base_out = ratio(record.base_balance, lp2, record.lp2_supply)
        if base_out < min_base_out:
            raise SlippageError("slippage")

        lp_released, _ = self._remove_position(record, user, lp2)
        record.base_balance -= base_out
        self.assets.transfer(self.base_token, self.address, self.parent.address, base_out)

        log.info("proposal.divested", variant=self.variant, proposal_id=proposal_id, investor=user, base_out=base_out)
        return base_out, lp_released

    # ------------------------------------------------------------------
    # Trader actions
    # ------------------------------------------------------------------

    def _swap_into_position(self, record: RiskyProposal, amount: Decimal, min_position_out: Decimal) -> Decimal:
        if self.registry.is_blacklisted(record.token):
            raise ValidationError("token is blacklisted")

        amount_out = self.gateway.swap(self.address, self.base_token, record.token, amount)
        if amount_out < min_position_out:
            raise SlippageError("slippage")

        record.base_balance -= amount
        record.position_balance += amount_out
        return amount_out

    @atomic
    def exchange(
        self,
        sender: Address,
        proposal_id: ProposalId,
        from_token: Token,
        amount: Decimal,
        min_amount_out: Decimal = ZERO,
    ) -> Decimal:
        """Trade a proposal between base and its position token.

        Unwinding the whole position closes the proposal for good.

        Raises:
            AuthorizationError: Sender is not a trader admin
            ValidationError: ``from_token`` is neither base nor the position
            InsufficientBalanceError: Amount above the proposal's balance
            ProposalClosedError: Opening a position on a closed proposal
        """
        self._only_trader_admin(sender)
        record = self.get_proposal(proposal_id)
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError("zero amount")

        if from_token == self.base_token:
            if self.is_closed(record):
                raise ProposalClosedError("proposal is closed")
            if amount > record.base_balance:
                raise InsufficientBalanceError("wrong base amount")
            to_token = record.token
            amount_out = self._swap_into_position(record, amount, min_amount_out)
        elif from_token == record.token:
            if amount > record.position_balance:
                raise InsufficientBalanceError("wrong position amount")
            to_token = self.base_token
            amount_out = self.gateway.swap(self.address, record.token, self.base_token, amount)
            if amount_out < min_amount_out:
                raise SlippageError("slippage")
            record.position_balance -= amount
            record.base_balance += amount_out
            if record.position_balance == ZERO:
                record.unwound = True
        else:
            raise ValidationError("invalid from token")

        self.events.emit(
            ProposalExchanged(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                proposal_id=proposal_id,
                from_token=from_token,
                to_token=to_token,
                amount_in=amount,
                amount_out=amount_out,
            )
        )
        log.info(
            "proposal.exchanged",
            proposal_id=proposal_id,
            from_token=from_token,
            amount_in=amount,
            amount_out=amount_out,
            unwound=record.unwound,
        )
        return amount_out

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @exact
    def locked_value_in_unit(self) -> Decimal:
        total = ZERO
        for record in self.proposals.values():
            total += self.valuation.value_of(self.base_token, record.base_balance)
            total += self.valuation.value_of(record.token, record.position_balance)
        return total

    @exact
    def get_proposal_infos(self, offset: int = 0, limit: int = 100) -> list[RiskyProposalInfo]:
        infos = []
        for record in list(self.proposals.values())[offset : offset + limit]:
            infos.append(
                RiskyProposalInfo(
                    proposal_id=record.proposal_id,
                    token=record.token,
                    limits=record.limits,
                    lp_locked=record.lp_locked,
                    lp2_supply=record.lp2_supply,
                    base_balance=record.base_balance,
                    position_balance=record.position_balance,
                    token_price=self.token_price(record.token),
                    total_investors=sum(1 for balance in record.lp2_balances.values() if balance > ZERO),
                    closed=self.is_closed(record),
                )
            )
        return infos

    @exact
    def get_divest_amounts(self, proposal_ids: list[ProposalId], lp2_amounts: list[Decimal]) -> list[Decimal]:
        """Base each LP2 amount would return now (zero while a position is open)."""
        if len(proposal_ids) != len(lp2_amounts):
            raise ValidationError("length mismatch")

        amounts = []
        for pid, lp2 in zip(proposal_ids, lp2_amounts, strict=True):
            record = self.get_proposal(pid)
            if record.position_balance > ZERO or record.lp2_supply == ZERO:
                amounts.append(ZERO)
            else:
                amounts.append(ratio(record.base_balance, lp2, record.lp2_supply))
        return amounts

    @exact
    def exposure(self, user: Address, proposal_id: ProposalId) -> Decimal:
        """Percentage of ``user``'s capital locked in ``proposal_id``."""
        capital = self._capital(user)
        if capital == ZERO:
            return ZERO
        return exact_ratio(self.lp_balance(user, proposal_id), PERCENTAGE_100, capital)
