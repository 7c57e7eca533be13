"""Pool ledger, commission engine and leverage limiter."""

from traderpool.pool.basic import BasicTraderPool
from traderpool.pool.commission import CommissionClose, CommissionEngine, CommissionEpoch
from traderpool.pool.invest import InvestTraderPool
from traderpool.pool.ledger import TraderPool
from traderpool.pool.leverage import LeverageLimiter
from traderpool.pool.params import (
    CommissionPreview,
    DivestPreview,
    InvestorPosition,
    LeverageInfo,
    PoolInfo,
    PoolKind,
    PoolParameters,
    UserInfo,
)

__all__ = [
    # Pools
    "BasicTraderPool",
    "InvestTraderPool",
    "TraderPool",
    # Commission & leverage
    "CommissionClose",
    "CommissionEngine",
    "CommissionEpoch",
    "LeverageLimiter",
    # Parameters and views
    "CommissionPreview",
    "DivestPreview",
    "InvestorPosition",
    "LeverageInfo",
    "PoolInfo",
    "PoolKind",
    "PoolParameters",
    "UserInfo",
]
