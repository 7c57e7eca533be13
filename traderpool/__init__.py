"""Pooled trading funds: share accounting, commission and sub-proposals."""

from traderpool.config import CommissionPeriod, CoreProperties
from traderpool.pool import BasicTraderPool, InvestTraderPool, PoolKind, PoolParameters, TraderPool

__version__ = "0.1.0"

__all__ = [
    "BasicTraderPool",
    "CommissionPeriod",
    "CoreProperties",
    "InvestTraderPool",
    "PoolKind",
    "PoolParameters",
    "TraderPool",
]
