"""Invest proposals: fixed investment rounds paying dividends.

The trader raises base for a round, withdraws it to deploy elsewhere and
later supplies reward tokens back. Rewards accrue per LP2 unit through a
cumulative sum, so every holder's entitlement is checkpointed before any
LP2 balance changes hands.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

import msgspec
import structlog

from traderpool.core.errors import InsufficientBalanceError, OverinvestedError, ValidationError
from traderpool.core.events import (
    ProposalConvertedToDividends,
    ProposalCreated,
    ProposalInvested,
    ProposalSupplied,
    ProposalWithdrawn,
)
from traderpool.core.fixed import ZERO, exact, exact_ratio, floor_amount, to_decimal
from traderpool.core.guard import atomic
from traderpool.core.types import Address, ProposalId, Token
from traderpool.proposals.base import ProposalLimits, ProposalPool, ProposalRecord

log = structlog.get_logger()


@dataclass
class UserRewards:
    """Per-holder reward checkpoint.

    Attributes:
        stored: Rewards accrued but not claimed, per token
        cumulative_sums: Cumulative reward per LP2 at the last checkpoint
    """

    stored: dict[Token, Decimal] = field(default_factory=dict)
    cumulative_sums: dict[Token, Decimal] = field(default_factory=dict)


@dataclass
class RewardBasket:
    """Dividends supplied to one proposal, claimable pro rata by LP2 holders."""

    cumulative_sums: dict[Token, Decimal] = field(default_factory=dict)
    users: dict[Address, UserRewards] = field(default_factory=dict)

    def tokens(self) -> list[Token]:
        return list(self.cumulative_sums)

    def distribute(self, token: Token, amount: Decimal, lp2_supply: Decimal) -> None:
        self.cumulative_sums[token] = self.cumulative_sums.get(token, ZERO) + exact_ratio(
            amount, Decimal(1), lp2_supply
        )

    def checkpoint(self, user: Address, lp2_balance: Decimal) -> UserRewards:
        rewards = self.users.setdefault(user, UserRewards())
        for token, cumulative in self.cumulative_sums.items():
            earned = exact_ratio(lp2_balance, cumulative - rewards.cumulative_sums.get(token, ZERO), Decimal(1))
            rewards.stored[token] = rewards.stored.get(token, ZERO) + earned
            rewards.cumulative_sums[token] = cumulative
        return rewards

    def pending(self, user: Address, lp2_balance: Decimal) -> dict[Token, Decimal]:
        rewards = self.users.get(user, UserRewards())
        return {
            token: floor_amount(
                rewards.stored.get(token, ZERO)
                + exact_ratio(lp2_balance, cumulative - rewards.cumulative_sums.get(token, ZERO), Decimal(1))
            )
            for token, cumulative in self.cumulative_sums.items()
        }


@dataclass
class InvestProposal(ProposalRecord):
    invested_base: Decimal = ZERO
    new_invested_base: Decimal = ZERO
    rewards: RewardBasket = field(default_factory=RewardBasket)


class InvestProposalInfo(msgspec.Struct, frozen=True, kw_only=True):
    proposal_id: ProposalId
    limits: ProposalLimits
    lp_locked: Decimal
    lp2_supply: Decimal
    invested_base: Decimal
    new_invested_base: Decimal
    reward_tokens: list[Token]
    total_investors: int
    closed: bool


class Rewards(msgspec.Struct, frozen=True, kw_only=True):
    proposal_id: ProposalId
    amounts: dict[Token, Decimal]
    base_amount: Decimal


class InvestProposalPool(ProposalPool[InvestProposal]):
    """Invest proposals of an invest pool."""

    variant = "invest-proposals"

    def _before_lp2_transfer(self, record: InvestProposal, sender: Address, recipient: Address) -> None:
        record.rewards.checkpoint(sender, record.lp2_balances.get(sender, ZERO))
        record.rewards.checkpoint(recipient, record.lp2_balances.get(recipient, ZERO))

    # ------------------------------------------------------------------
    # Parent-driven entry points
    # ------------------------------------------------------------------

    def create(
        self,
        caller: Address,
        limits: ProposalLimits,
        lp_investment: Decimal,
        base_investment: Decimal,
    ) -> ProposalId:
        """Open a round with the trader's base, already held by this pool."""
        self._only_parent(caller)
        self._validate_limits(limits, lp_investment)
        if lp_investment <= ZERO or base_investment <= ZERO:
            raise ValidationError("zero investment")

        pid = self._next_id()
        record = InvestProposal(proposal_id=pid, limits=limits, created_at=self._now())
        self.proposals[pid] = record

        self._add_position(record, self.trader, lp_investment, base_investment, base_investment)
        record.invested_base += base_investment
        record.new_invested_base += base_investment

        self.events.emit(
            ProposalCreated(
                pool=self.address,
                actor=self.trader,
                timestamp=self._now(),
                proposal_id=pid,
                token=None,
                lp_investment=lp_investment,
                base_investment=base_investment,
                timestamp_limit=limits.timestamp_limit,
                invest_lp_limit=limits.invest_lp_limit,
            )
        )
        log.info("proposal.created", variant=self.variant, proposal_id=pid, base=base_investment)
        return pid

    def invest(
        self,
        caller: Address,
        proposal_id: ProposalId,
        user: Address,
        lp_investment: Decimal,
        base_investment: Decimal,
    ) -> Decimal:
        """Add ``user``'s base to a round; LP2 is minted 1:1 with base.

        Raises:
            ProposalClosedError: Round expired
            OverinvestedError: Over the LP limit
        """
        self._only_parent(caller)
        record = self.get_proposal(proposal_id)
        self._check_open(record)

        limit = record.limits.invest_lp_limit
        if limit != ZERO and record.lp_locked + lp_investment > limit:
            raise OverinvestedError("proposal is overinvested")

        record.rewards.checkpoint(user, record.lp2_balances.get(user, ZERO))
        self._add_position(record, user, lp_investment, base_investment, base_investment)
        record.invested_base += base_investment
        record.new_invested_base += base_investment

        self.events.emit(
            ProposalInvested(
                pool=self.address,
                actor=user,
                timestamp=self._now(),
                proposal_id=proposal_id,
                investor=user,
                lp_investment=lp_investment,
                base_investment=base_investment,
                lp2=base_investment,
            )
        )
        log.info("proposal.invested", variant=self.variant, proposal_id=proposal_id, investor=user)
        return base_investment

    def claim(self, caller: Address, proposal_id: ProposalId, user: Address) -> dict[Token, Decimal]:
        """Pay out ``user``'s accrued rewards.

        Base rewards go to the parent pool (which mints shares for them);
        every other token goes straight to the user.

        Raises:
            InsufficientBalanceError: Nothing has accrued
        """
        self._only_parent(caller)
        record = self.get_proposal(proposal_id)

        rewards = record.rewards.checkpoint(user, record.lp2_balances.get(user, ZERO))
        paid: dict[Token, Decimal] = {}
        for token, stored in rewards.stored.items():
            amount = floor_amount(stored)
            if amount > ZERO:
                paid[token] = amount
                rewards.stored[token] = stored - amount

        if not paid:
            raise InsufficientBalanceError("nothing to divest")

        for token, amount in paid.items():
            recipient = self.parent.address if token == self.base_token else user
            self.assets.transfer(token, self.address, recipient, amount)

        log.info("proposal.claimed", variant=self.variant, proposal_id=proposal_id, investor=user, tokens=len(paid))
        return paid

    # ------------------------------------------------------------------
    # Trader actions
    # ------------------------------------------------------------------

    @atomic
    def withdraw(self, sender: Address, proposal_id: ProposalId, amount: Decimal) -> None:
        """Take raised base out of a round to deploy it.

        Raises:
            InsufficientBalanceError: More than the round's undeployed base
        """
        self._only_trader_admin(sender)
        record = self.get_proposal(proposal_id)
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError("zero amount")
        if amount > record.new_invested_base:
            raise InsufficientBalanceError("withdrawing more than balance")

        record.new_invested_base -= amount
        self.assets.transfer(self.base_token, self.address, sender, amount)

        self.events.emit(
            ProposalWithdrawn(
                pool=self.address, actor=sender, timestamp=self._now(), proposal_id=proposal_id, amount=amount
            )
        )
        log.info("proposal.withdrawn", proposal_id=proposal_id, trader=sender, amount=amount)

    @atomic
    def supply(
        self,
        sender: Address,
        proposal_id: ProposalId,
        amounts: Sequence[Decimal],
        tokens: Sequence[Token],
    ) -> None:
        """Add dividend tokens to a round's reward basket.

        Raises:
            ValidationError: Length mismatch, zero amount or blacklisted token
        """
        self._only_trader_admin(sender)
        record = self.get_proposal(proposal_id)
        if len(amounts) != len(tokens):
            raise ValidationError("length mismatch")
        if record.lp2_supply == ZERO:
            raise ValidationError("no investors")

        supplied: dict[Token, Decimal] = {}
        for token, raw_amount in zip(tokens, amounts, strict=True):
            amount = to_decimal(raw_amount)
            if amount <= ZERO:
                raise ValidationError("amount is 0")
            if self.registry.is_blacklisted(token):
                raise ValidationError("token is blacklisted")

            self.assets.transfer(token, sender, self.address, amount)
            record.rewards.distribute(token, amount, record.lp2_supply)
            supplied[token] = supplied.get(token, ZERO) + amount

        self.events.emit(
            ProposalSupplied(
                pool=self.address, actor=sender, timestamp=self._now(), proposal_id=proposal_id, amounts=supplied
            )
        )
        log.info("proposal.supplied", proposal_id=proposal_id, tokens=list(supplied))

    @atomic
    def convert_invested_base_to_dividends(self, sender: Address, proposal_id: ProposalId) -> Decimal:
        """Hand the round's undeployed base back to holders as a base reward."""
        self._only_trader_admin(sender)
        record = self.get_proposal(proposal_id)
        amount = record.new_invested_base
        if amount <= ZERO:
            raise ValidationError("zero amount")

        record.new_invested_base = ZERO
        record.rewards.distribute(self.base_token, amount, record.lp2_supply)

        self.events.emit(
            ProposalConvertedToDividends(
                pool=self.address, actor=sender, timestamp=self._now(), proposal_id=proposal_id, amount=amount
            )
        )
        log.info("proposal.converted_to_dividends", proposal_id=proposal_id, amount=amount)
        return amount

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @exact
    def locked_value_in_unit(self) -> Decimal:
        return sum(
            (self.valuation.value_of(self.base_token, record.invested_base) for record in self.proposals.values()),
            ZERO,
        )

    @exact
    def get_proposal_infos(self, offset: int = 0, limit: int = 100) -> list[InvestProposalInfo]:
        return [
            InvestProposalInfo(
                proposal_id=record.proposal_id,
                limits=record.limits,
                lp_locked=record.lp_locked,
                lp2_supply=record.lp2_supply,
                invested_base=record.invested_base,
                new_invested_base=record.new_invested_base,
                reward_tokens=record.rewards.tokens(),
                total_investors=sum(1 for balance in record.lp2_balances.values() if balance > ZERO),
                closed=self.is_closed(record),
            )
            for record in list(self.proposals.values())[offset : offset + limit]
        ]

    @exact
    def get_rewards(self, proposal_ids: Sequence[ProposalId], user: Address) -> list[Rewards]:
        """Rewards ``user`` could claim now, per proposal."""
        result = []
        for pid in proposal_ids:
            record = self.get_proposal(pid)
            amounts = record.rewards.pending(user, record.lp2_balances.get(user, ZERO))
            result.append(
                Rewards(
                    proposal_id=pid,
                    amounts=amounts,
                    base_amount=amounts.get(self.base_token, ZERO),
                )
            )
        return result
