"""Pool parameters, per-investor state and read-only view records."""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

import msgspec

from traderpool.config import CommissionPeriod
from traderpool.core.fixed import ZERO
from traderpool.core.types import Address, Timestamp, Token


class PoolKind(StrEnum):
    """Pool flavour; selects the sub-proposal variant it spawns."""

    BASIC = "basic"
    INVEST = "invest"


@dataclass
class PoolParameters:
    """Pool configuration chosen by the trader at creation.

    ``total_lp_emission`` caps the share supply (0 means unlimited).
    """

    trader: Address
    base_token: Token
    commission_percentage: Decimal
    commission_period: CommissionPeriod = CommissionPeriod.PERIOD_1
    description: str = ""
    private_pool: bool = False
    minimal_investment: Decimal = ZERO
    total_lp_emission: Decimal = ZERO


@dataclass
class InvestorPosition:
    """Bookkeeping for one pool holder.

    Attributes:
        investor: Holder address
        invested_base: Cost basis in base-token units
        opened_at: Timestamp of the first share received
    """

    investor: Address
    invested_base: Decimal = ZERO
    opened_at: Timestamp = 0


class PositionBalance(msgspec.Struct, frozen=True, kw_only=True):
    token: Token
    amount: Decimal
    value: Decimal


class PoolInfo(msgspec.Struct, frozen=True, kw_only=True):
    """Snapshot of a pool's valuation and configuration."""

    address: Address
    kind: PoolKind
    trader: Address
    base_token: Token
    description: str
    private_pool: bool
    minimal_investment: Decimal
    total_lp_emission: Decimal
    commission_period: CommissionPeriod
    commission_percentage: Decimal
    total_supply: Decimal
    nav: Decimal
    nav_in_unit: Decimal
    base_balance: Decimal
    positions: list[PositionBalance]
    open_positions: int
    total_investors: int
    commission_epoch: int
    commission_epoch_end: Timestamp
    trader_commission_shares: Decimal
    dao_commission_shares: Decimal


class UserInfo(msgspec.Struct, frozen=True, kw_only=True):
    investor: Address
    shares: Decimal
    invested_base: Decimal
    pool_value: Decimal
    locked_lp: Decimal


class DivestPreview(msgspec.Struct, frozen=True, kw_only=True):
    """What a divest of ``shares`` would pay out right now."""

    shares: Decimal
    amounts: dict[Token, Decimal]
    commission_value: Decimal
    commission_shares: Decimal
    trader_shares: Decimal
    dao_shares: Decimal


class CommissionPreview(msgspec.Struct, frozen=True, kw_only=True):
    """Pending epoch close as of now."""

    due: bool
    epoch: int
    epoch_end: Timestamp
    nav: Decimal
    baseline: Decimal
    gains: Decimal
    commission_value: Decimal
    trader_shares: Decimal
    dao_shares: Decimal


class LeverageInfo(msgspec.Struct, frozen=True, kw_only=True):
    total_value: Decimal
    trader_value: Decimal
    max_total_value: Decimal
    available: Decimal
