"""Invest pools: any supported token, investment rounds, entry cooldown."""

from decimal import Decimal

import structlog

from traderpool.core.errors import InvestmentDelayError, ValidationError
from traderpool.core.events import ProposalClaimed
from traderpool.core.fixed import ZERO, to_decimal
from traderpool.core.guard import atomic
from traderpool.core.types import Address, ProposalId, Timestamp, Token
from traderpool.pool.ledger import TraderPool
from traderpool.pool.params import PoolKind
from traderpool.proposals.base import ProposalLimits
from traderpool.proposals.invest import InvestProposalPool

log = structlog.get_logger()


class InvestTraderPool(TraderPool):
    """Pool trading any supported token, spawning invest proposals.

    Outside capital (into the pool or its rounds) is held back until
    ``investment_delay`` seconds have passed since the trader's latest
    exchange, and until the trader has exchanged at least once.
    """

    kind = PoolKind.INVEST
    proposal_pool: InvestProposalPool

    def _create_proposal_pool(self) -> InvestProposalPool:
        return InvestProposalPool(self)

    def investment_open_at(self) -> Timestamp | None:
        """Earliest time outside capital is accepted (None before any exchange)."""
        delay = self.properties.investment_delay
        if delay == 0:
            return 0
        if self.last_exchange_at is None:
            return None
        return self.last_exchange_at + delay

    def _check_investment_delay(self) -> None:
        open_at = self.investment_open_at()
        if open_at is None or self._now() < open_at:
            raise InvestmentDelayError("investment delay")

    def _check_exchange_target(self, token: Token) -> None:
        if token == self.base_token:
            return
        if self.registry.is_blacklisted(token):
            raise ValidationError("token is blacklisted")
        if not self.valuation.supports(token):
            raise ValidationError("token is not supported")

    @atomic
    def create_proposal(
        self,
        sender: Address,
        lp_amount: Decimal,
        *,
        timestamp_limit: Timestamp = 0,
        invest_lp_limit: Decimal = ZERO,
        min_base_out: Decimal = ZERO,
    ) -> ProposalId:
        """Open an investment round funded by part of the trader's stake."""
        self._only_trader(sender)
        lp_amount = to_decimal(lp_amount)
        if lp_amount <= ZERO:
            raise ValidationError("zero investment")

        base_amount = self._divest_to_proposal(sender, lp_amount, min_base_out)
        limits = ProposalLimits(timestamp_limit=timestamp_limit, invest_lp_limit=invest_lp_limit)
        return self.proposal_pool.create(self.address, limits, lp_amount, base_amount)

    @atomic
    def invest_proposal(
        self,
        sender: Address,
        proposal_id: ProposalId,
        lp_amount: Decimal,
        min_base_out: Decimal = ZERO,
    ) -> Decimal:
        """Join a round with ``lp_amount`` of the sender's shares.

        Returns:
            LP2 received (equal to the base committed)
        """
        self.proposal_pool.get_proposal(proposal_id)
        if not self.is_admin(sender):
            self._check_investment_delay()

        lp_amount = to_decimal(lp_amount)
        base_amount = self._divest_to_proposal(sender, lp_amount, min_base_out)
        return self.proposal_pool.invest(self.address, proposal_id, sender, lp_amount, base_amount)

    @atomic
    def reinvest_proposal(
        self,
        sender: Address,
        proposal_id: ProposalId,
        min_shares_out: Decimal = ZERO,
    ) -> dict[Token, Decimal]:
        """Claim a round's rewards; base rewards come back as pool shares.

        Returns:
            Token to amount claimed
        """
        self._close_commission_if_due()
        nav_before = self.nav()

        claimed = self.proposal_pool.claim(self.address, proposal_id, sender)
        base_amount = claimed.get(self.base_token, ZERO)
        shares = self._mint_for_returned_base(sender, base_amount, nav_before, min_shares_out)

        self.events.emit(
            ProposalClaimed(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                proposal_id=proposal_id,
                investor=sender,
                amounts=claimed,
                shares_minted=shares,
            )
        )
        log.info(
            "pool.proposal_claimed",
            pool=self.address,
            proposal_id=proposal_id,
            investor=sender,
            base_amount=base_amount,
            shares=shares,
        )
        return claimed
