"""Epoch-based performance commission.

The engine tracks a baseline NAV (the NAV at the last close, adjusted by
capital flows). At each epoch close the gains above the baseline are charged
``commission_percentage`` percent, paid by minting new shares that dilute
every holder, and split between the trader and the DAO treasury.

Capital flows never count as gains:

* an invest of value ``V`` raises the baseline by ``V``;
* a divest of fraction ``f`` of the supply realizes ``f`` of the accrued
  commission on the spot and scales the baseline to ``B(1 - f)`` plus that
  realized amount (the commission shares stay in the pool).
"""

from dataclasses import dataclass
from decimal import Decimal

import msgspec
import structlog

from traderpool.core.fixed import ZERO, clamp_positive, percentage, ratio
from traderpool.core.types import Timestamp

log = structlog.get_logger()


@dataclass
class CommissionEpoch:
    """Commission epoch state.

    Attributes:
        index: Epoch index the pool last closed in (or was created in)
        closed_at: Timestamp of the last close
        nav_at_close: Flow-adjusted NAV baseline, in base-token units
    """

    index: int
    closed_at: Timestamp
    nav_at_close: Decimal = ZERO


class CommissionClose(msgspec.Struct, frozen=True, kw_only=True):
    """Outcome of an epoch close (or a preview of one)."""

    epoch: int
    nav: Decimal
    baseline: Decimal
    gains: Decimal
    commission_value: Decimal
    trader_shares: Decimal
    dao_shares: Decimal

    @property
    def minted_shares(self) -> Decimal:
        return self.trader_shares + self.dao_shares


class CommissionEngine:
    """Per-pool commission state machine.

    Args:
        percentage: Trader commission percentage
        dao_percentage: Treasury's percentage of every commission
        init_timestamp: Protocol-wide epoch origin
        duration: Epoch length in seconds
        started_at: Pool creation time; the first epoch is the one containing it

    Example:
        >>> engine = CommissionEngine(Decimal(50), Decimal(30), 0, 30 * 86400, 0)
        >>> engine.record_invest(Decimal(1000))
        >>> engine.accrued(Decimal(1500))
        Decimal('250.000000000000000000')
    """

    def __init__(
        self,
        percentage: Decimal,
        dao_percentage: Decimal,
        init_timestamp: Timestamp,
        duration: int,
        started_at: Timestamp,
    ) -> None:
        self.percentage = percentage
        self.dao_percentage = dao_percentage
        self.init_timestamp = init_timestamp
        self.duration = duration

        self.epoch = CommissionEpoch(index=self.epoch_at(started_at), closed_at=started_at)
        self.trader_shares_issued = ZERO
        self.dao_shares_issued = ZERO

    @property
    def baseline(self) -> Decimal:
        return self.epoch.nav_at_close

    def epoch_at(self, timestamp: Timestamp) -> int:
        return (timestamp - self.init_timestamp) // self.duration

    def epoch_end(self) -> Timestamp:
        """Timestamp after which the current epoch may be closed."""
        return self.init_timestamp + (self.epoch.index + 1) * self.duration

    def is_due(self, now: Timestamp) -> bool:
        return self.epoch_at(now) > self.epoch.index

    def gains(self, nav: Decimal) -> Decimal:
        return clamp_positive(nav - self.baseline)

    def accrued(self, nav: Decimal) -> Decimal:
        """Commission value owed on gains so far (never negative)."""
        return percentage(self.gains(nav), self.percentage)

    def split(self, shares: Decimal) -> tuple[Decimal, Decimal]:
        """Split commission shares into (trader, treasury)."""
        dao_shares = percentage(shares, self.dao_percentage)
        return shares - dao_shares, dao_shares

    def record_invest(self, value: Decimal) -> None:
        self.epoch.nav_at_close += value

    def record_divest(
        self,
        shares: Decimal,
        supply: Decimal,
        realized_value: Decimal,
        trader_shares: Decimal,
        dao_shares: Decimal,
    ) -> None:
        """Shrink the baseline for ``shares`` of ``supply`` leaving the pool."""
        remaining = ratio(self.epoch.nav_at_close, supply - shares, supply) if supply > ZERO else ZERO
        self.epoch.nav_at_close = remaining + realized_value
        self.trader_shares_issued += trader_shares
        self.dao_shares_issued += dao_shares

    def preview(self, nav: Decimal, supply: Decimal, now: Timestamp) -> CommissionClose:
        gains = self.gains(nav)
        commission_value = percentage(gains, self.percentage)

        minted = ZERO
        if commission_value > ZERO and supply > ZERO and nav > commission_value:
            minted = ratio(supply, commission_value, nav - commission_value)
        trader_shares, dao_shares = self.split(minted)

        return CommissionClose(
            epoch=self.epoch_at(now),
            nav=nav,
            baseline=self.baseline,
            gains=gains,
            commission_value=commission_value,
            trader_shares=trader_shares,
            dao_shares=dao_shares,
        )

    def close(self, nav: Decimal, supply: Decimal, now: Timestamp) -> CommissionClose:
        """Close the current epoch.

        The caller mints ``trader_shares`` and ``dao_shares``; minting does
        not move NAV, so the new baseline is ``nav`` itself.
        """
        result = self.preview(nav, supply, now)

        self.epoch = CommissionEpoch(index=result.epoch, closed_at=now, nav_at_close=nav)
        self.trader_shares_issued += result.trader_shares
        self.dao_shares_issued += result.dao_shares

        log.info(
            "commission.epoch_closed",
            epoch=result.epoch,
            nav=nav,
            gains=result.gains,
            commission_value=result.commission_value,
            minted_shares=result.minted_shares,
        )
        return result
