"""Basic pools: whitelisted trading plus risky proposals."""

from decimal import Decimal

import structlog

from traderpool.core.errors import ValidationError
from traderpool.core.events import ProposalDivested
from traderpool.core.fixed import ZERO, to_decimal
from traderpool.core.guard import atomic
from traderpool.core.types import Address, ProposalId, Timestamp, Token
from traderpool.pool.ledger import TraderPool
from traderpool.pool.params import PoolKind
from traderpool.proposals.risky import RiskyProposalLimits, RiskyProposalPool

log = structlog.get_logger()


class BasicTraderPool(TraderPool):
    """Pool trading whitelisted tokens, spawning risky proposals.

    Example:
        >>> pool = BasicTraderPool("pool-1", params, assets=assets, valuation=oracle,
        ...                        gateway=exchange, registry=registry, clock=clock)
        >>> pool.invest("trader", {"WETH": Decimal(1000)})
        >>> pid = pool.create_proposal("trader", "MANA", Decimal(500), invest_lp_limit=Decimal(10000))
    """

    kind = PoolKind.BASIC
    proposal_pool: RiskyProposalPool

    def _create_proposal_pool(self) -> RiskyProposalPool:
        return RiskyProposalPool(self)

    @atomic
    def create_proposal(
        self,
        sender: Address,
        token: Token,
        lp_amount: Decimal,
        *,
        timestamp_limit: Timestamp = 0,
        invest_lp_limit: Decimal = ZERO,
        max_token_price_limit: Decimal = ZERO,
        instant_trade_percentage: Decimal = ZERO,
        min_base_out: Decimal = ZERO,
        min_position_out: Decimal = ZERO,
    ) -> ProposalId:
        """Lock part of the trader's stake into a new risky proposal.

        The shares are divested through the normal path (commission is
        realized on them) and every non-base asset of the slice is swapped
        to base before it moves into the proposal.

        Returns:
            New proposal id
        """
        self._only_trader(sender)
        lp_amount = to_decimal(lp_amount)
        if lp_amount <= ZERO:
            raise ValidationError("zero investment")

        base_amount = self._divest_to_proposal(sender, lp_amount, min_base_out)
        limits = RiskyProposalLimits(
            timestamp_limit=timestamp_limit,
            invest_lp_limit=invest_lp_limit,
            max_token_price_limit=max_token_price_limit,
        )
        return self.proposal_pool.create(
            self.address,
            token,
            limits,
            lp_amount,
            base_amount,
            instant_trade_percentage,
            min_position_out,
        )

    @atomic
    def invest_proposal(
        self,
        sender: Address,
        proposal_id: ProposalId,
        lp_amount: Decimal,
        min_base_out: Decimal = ZERO,
        min_position_out: Decimal = ZERO,
    ) -> Decimal:
        """Move ``lp_amount`` of the sender's shares into a risky proposal.

        Returns:
            LP2 received
        """
        self.proposal_pool.get_proposal(proposal_id)
        lp_amount = to_decimal(lp_amount)
        base_amount = self._divest_to_proposal(sender, lp_amount, min_base_out)
        return self.proposal_pool.invest(
            self.address, proposal_id, sender, lp_amount, base_amount, min_position_out
        )

    @atomic
    def reinvest_proposal(
        self,
        sender: Address,
        proposal_id: ProposalId,
        lp2_amount: Decimal,
        min_base_out: Decimal = ZERO,
        min_shares_out: Decimal = ZERO,
    ) -> Decimal:
        """Exit a risky proposal back into the pool.

        Returns:
            Pool shares minted for the returned base
        """
        self._close_commission_if_due()
        nav_before = self.nav()

        base_out, lp_released = self.proposal_pool.divest(
            self.address, proposal_id, sender, to_decimal(lp2_amount), min_base_out
        )
        shares = self._mint_for_returned_base(sender, base_out, nav_before, min_shares_out)
        self._refresh_investor(sender)

        self.events.emit(
            ProposalDivested(
                pool=self.address,
                actor=sender,
                timestamp=self._now(),
                proposal_id=proposal_id,
                investor=sender,
                lp2=to_decimal(lp2_amount),
                lp_released=lp_released,
                base_out=base_out,
                shares_minted=shares,
            )
        )
        log.info(
            "pool.proposal_reinvested",
            pool=self.address,
            proposal_id=proposal_id,
            investor=sender,
            base_out=base_out,
            shares=shares,
        )
        return shares
