"""Shared skeleton of a pool's sub-proposal funds.

A proposal pool holds every sub-proposal of one parent pool. Each proposal
locks parent shares (LP) handed over by the parent pool, tracks its own
secondary share (LP2) and remembers, per investor, how much LP and base
went in. The parent pool drives creation, investment and exits through the
``caller``-checked entry points below; only trader-admin actions and LP2
transfers are public.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

import msgspec
import structlog

from traderpool.core.errors import (
    AuthorizationError,
    InsufficientBalanceError,
    ProposalClosedError,
    ValidationError,
)
from traderpool.core.events import ProposalRestrictionsChanged, ProposalSharesTransferred
from traderpool.core.fixed import ZERO, ratio, to_decimal
from traderpool.core.guard import Snapshottable, TransactionGuard, atomic
from traderpool.core.types import Address, ProposalId, Timestamp

if TYPE_CHECKING:
    from traderpool.pool.ledger import TraderPool

log = structlog.get_logger()


class ProposalLimits(msgspec.Struct, frozen=True, kw_only=True):
    """Owner-adjustable bounds; zero means unlimited.

    Attributes:
        timestamp_limit: Expiry; investing is closed after it
        invest_lp_limit: Maximum parent LP the proposal may lock
    """

    timestamp_limit: Timestamp = 0
    invest_lp_limit: Decimal = ZERO


@dataclass
class ProposalRecord:
    """State common to both proposal variants."""

    proposal_id: ProposalId
    limits: Any
    created_at: Timestamp
    lp_locked: Decimal = ZERO
    lp2_supply: Decimal = ZERO
    lp2_balances: dict[Address, Decimal] = field(default_factory=dict)


class ActiveInvestment(msgspec.Struct, frozen=True, kw_only=True):
    proposal_id: ProposalId
    lp2_balance: Decimal
    lp_locked: Decimal
    base_invested: Decimal


R = TypeVar("R", bound=ProposalRecord)


class ProposalPool(Snapshottable, ABC, Generic[R]):
    """Book of sub-proposals owned by one parent pool.

    Args:
        parent: Owning pool; supplies collaborators and the shared guard
    """

    variant: ClassVar[str] = "proposal"

    _snapshot_exclude = frozenset({"parent", "assets", "valuation", "gateway", "registry", "clock", "events"})

    def __init__(self, parent: TraderPool) -> None:
        self.parent = parent
        self.address = f"{parent.address}/{self.variant}"
        self.assets = parent.assets
        self.valuation = parent.valuation
        self.gateway = parent.gateway
        self.registry = parent.registry
        self.clock = parent.clock
        self.events = parent.events

        self.proposals: dict[ProposalId, R] = {}
        self.lp_balances: dict[Address, dict[ProposalId, Decimal]] = {}
        self.base_balances: dict[Address, dict[ProposalId, Decimal]] = {}
        self.total_lp_balances: dict[Address, Decimal] = {}
        self.total_locked_lp = ZERO

    @property
    def guard(self) -> TransactionGuard:
        return self.parent.guard

    @property
    def base_token(self) -> str:
        return self.parent.base_token

    @property
    def trader(self) -> Address:
        return self.parent.trader

    @property
    def proposals_count(self) -> int:
        return len(self.proposals)

    def _now(self) -> Timestamp:
        return self.clock.now()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def get_proposal(self, proposal_id: ProposalId) -> R:
        record = self.proposals.get(proposal_id)
        if record is None:
            raise ValidationError("proposal doesn't exist")
        return record

    def _only_parent(self, caller: Address) -> None:
        # Parent entry points only run inside the parent's own transaction.
        if caller != self.parent.address or not self.guard.locked:
            raise AuthorizationError("not a parent pool")

    def _only_trader_admin(self, sender: Address) -> None:
        if not self.parent.is_admin(sender):
            raise AuthorizationError("not a trader admin")

    def _is_expired(self, record: R) -> bool:
        limit = record.limits.timestamp_limit
        return limit != 0 and self._now() > limit

    def is_closed(self, record: R) -> bool:
        return self._is_expired(record)

    def _check_open(self, record: R) -> None:
        if self.is_closed(record):
            raise ProposalClosedError("proposal is closed")

    def _validate_limits(self, limits: ProposalLimits, lp_locked: Decimal) -> None:
        if limits.timestamp_limit != 0 and limits.timestamp_limit < self._now():
            raise ValidationError("wrong timestamp")
        if limits.invest_lp_limit != ZERO and limits.invest_lp_limit < lp_locked:
            raise ValidationError("wrong investment limit")

    def _next_id(self) -> ProposalId:
        return len(self.proposals) + 1

    # ------------------------------------------------------------------
    # Locked LP / LP2 bookkeeping
    # ------------------------------------------------------------------

    def balance_of(self, user: Address, proposal_id: ProposalId) -> Decimal:
        record = self.proposals.get(proposal_id)
        if record is None:
            return ZERO
        return record.lp2_balances.get(user, ZERO)

    def lp_balance(self, user: Address, proposal_id: ProposalId) -> Decimal:
        return self.lp_balances.get(user, {}).get(proposal_id, ZERO)

    def base_balance(self, user: Address, proposal_id: ProposalId) -> Decimal:
        return self.base_balances.get(user, {}).get(proposal_id, ZERO)

    def total_lp_balance(self, user: Address) -> Decimal:
        return self.total_lp_balances.get(user, ZERO)

    def active_proposals(self, user: Address) -> list[ProposalId]:
        return [pid for pid, record in self.proposals.items() if record.lp2_balances.get(user, ZERO) > ZERO]

    def active_accounts(self) -> set[Address]:
        accounts: set[Address] = set()
        for record in self.proposals.values():
            accounts.update(user for user, balance in record.lp2_balances.items() if balance > ZERO)
        return accounts

    def _add_position(
        self,
        record: R,
        user: Address,
        lp: Decimal,
        base: Decimal,
        lp2: Decimal,
    ) -> None:
        pid = record.proposal_id
        record.lp2_balances[user] = record.lp2_balances.get(user, ZERO) + lp2
        record.lp2_supply += lp2
        record.lp_locked += lp

        self.lp_balances.setdefault(user, {})[pid] = self.lp_balance(user, pid) + lp
        self.base_balances.setdefault(user, {})[pid] = self.base_balance(user, pid) + base
        self.total_lp_balances[user] = self.total_lp_balance(user) + lp
        self.total_locked_lp += lp

    def _remove_position(self, record: R, user: Address, lp2: Decimal) -> tuple[Decimal, Decimal]:
        """Drop ``lp2`` of ``user``'s stake; return the (lp, base) it carried."""
        pid = record.proposal_id
        balance = record.lp2_balances.get(user, ZERO)
        if lp2 > balance:
            raise InsufficientBalanceError("divesting more than balance")

        if lp2 == balance:
            lp = self.lp_balance(user, pid)
            base = self.base_balance(user, pid)
        else:
            lp = ratio(self.lp_balance(user, pid), lp2, balance)
            base = ratio(self.base_balance(user, pid), lp2, balance)

        record.lp2_balances[user] = balance - lp2
        record.lp2_supply -= lp2
        record.lp_locked -= lp

        self.lp_balances[user][pid] -= lp
        self.base_balances[user][pid] -= base
        self.total_lp_balances[user] -= lp
        self.total_locked_lp -= lp

        if record.lp2_balances[user] == ZERO:
            del self.lp_balances[user][pid]
            del self.base_balances[user][pid]
        return lp, base

    def _before_lp2_transfer(self, record: R, sender: Address, recipient: Address) -> None:
        """Variant hook run before LP2 balances move."""

    def _check_lp2_recipient(self, record: R, recipient: Address, lp: Decimal) -> None:
        """Variant check on a recipient about to receive ``lp`` of locked LP."""

    @atomic
    def transfer(
        self,
        sender: Address,
        recipient: Address,
        proposal_id: ProposalId,
        amount: Decimal,
    ) -> None:
        """Move LP2 with its proportional locked LP and invested base.

        Raises:
            ValidationError: Zero amount or unknown proposal
            InsufficientBalanceError: More LP2 than held
            OverinvestedError: Risky proposals only, recipient would be more exposed
                than the trader
        """
        record = self.get_proposal(proposal_id)
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError("0 transfer")
        if sender == recipient:
            raise ValidationError("self transfer")

        self._before_lp2_transfer(record, sender, recipient)
        lp, base = self._remove_position(record, sender, amount)
        self._check_lp2_recipient(record, recipient, lp)
        self._add_position(record, recipient, lp, base, amount)

        self.events.emit(
            ProposalSharesTransferred(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                proposal_id=proposal_id,
                recipient=recipient,
                lp2=amount,
            )
        )
        log.info(
            "proposal.lp2_transferred",
            proposal_id=proposal_id,
            sender=sender,
            recipient=recipient,
            lp2=amount,
        )

    @atomic
    def change_proposal_restrictions(self, sender: Address, proposal_id: ProposalId, limits: Any) -> None:
        """Replace a proposal's limits; they must still admit what is locked.

        Raises:
            AuthorizationError: Sender is not a trader admin
            ValidationError: Expiry in the past or limit below locked LP
        """
        self._only_trader_admin(sender)
        record = self.get_proposal(proposal_id)
        self._validate_limits(limits, record.lp_locked)
        record.limits = limits

        self.events.emit(
            ProposalRestrictionsChanged(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                proposal_id=proposal_id,
                timestamp_limit=limits.timestamp_limit,
                invest_lp_limit=limits.invest_lp_limit,
                max_token_price_limit=getattr(limits, "max_token_price_limit", None),
            )
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @abstractmethod
    def locked_value_in_unit(self) -> Decimal:
        """Unit-of-account value held across all proposals."""

    def _paginate(self, items: list[Any], offset: int, limit: int) -> Iterator[Any]:
        yield from items[offset : offset + limit]

    def get_active_investments_info(
        self, user: Address, offset: int = 0, limit: int = 100
    ) -> list[ActiveInvestment]:
        return [
            ActiveInvestment(
                proposal_id=pid,
                lp2_balance=self.balance_of(user, pid),
                lp_locked=self.lp_balance(user, pid),
                base_invested=self.base_balance(user, pid),
            )
            for pid in self._paginate(self.active_proposals(user), offset, limit)
        ]
