"""Protocol-wide properties shared by every pool.

Loads from environment variables (``TRADERPOOL_`` prefix) or a ``.env``
file. Defaults mirror the production deployment.
"""

from __future__ import annotations

from decimal import Decimal
from enum import IntEnum
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from traderpool.core.fixed import PERCENTAGE_100, ZERO
from traderpool.core.types import Timestamp

DAY = 24 * 60 * 60
MONTH = 30 * DAY


class CommissionPeriod(IntEnum):
    """Commission epoch length selectable per pool."""

    PERIOD_1 = 0  # one month
    PERIOD_2 = 1  # three months
    PERIOD_3 = 2  # one year


class CoreProperties(BaseSettings):
    """Protocol-wide limits, commission schedule and leverage parameters."""

    model_config = SettingsConfigDict(
        env_prefix="TRADERPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_pool_investors: Annotated[int, Field(ge=1, description="Investors per pool")] = 1000
    max_open_positions: Annotated[int, Field(ge=1, description="Non-base tokens a pool may hold")] = 25

    leverage_threshold: Annotated[int, Field(ge=1, description="Leverage step in unit-of-account value")] = 2500
    leverage_slope: Annotated[int, Field(ge=1, description="Leverage curve slope")] = 5

    commission_init_timestamp: Timestamp = 0
    commission_durations: tuple[int, int, int] = (MONTH, 3 * MONTH, 12 * MONTH)

    dao_commission_percentage: Decimal = Decimal(30)
    min_trader_commission: Decimal = Decimal(20)
    max_trader_commissions: tuple[Decimal, Decimal, Decimal] = (Decimal(30), Decimal(50), Decimal(70))

    investment_delay: Annotated[int, Field(ge=0, description="Cooldown after an exchange (seconds)")] = 20 * DAY

    treasury_address: str = "dao-treasury"

    @field_validator("commission_durations")
    @classmethod
    def validate_durations(cls, v: tuple[int, int, int]) -> tuple[int, int, int]:
        """Every epoch length must be positive."""
        if any(duration <= 0 for duration in v):
            msg = f"Commission durations must be positive: {v}"
            raise ValueError(msg)
        return v

    @field_validator("dao_commission_percentage", "min_trader_commission")
    @classmethod
    def validate_percentage(cls, v: Decimal) -> Decimal:
        if not ZERO <= v <= PERCENTAGE_100:
            msg = f"Percentage out of range: {v}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _validate_commission_bounds(self) -> CoreProperties:
        """Each period's maximum must be a percentage no lower than the minimum."""
        for pct in self.max_trader_commissions:
            if not self.min_trader_commission <= pct <= PERCENTAGE_100:
                msg = f"Max trader commission {pct} outside [{self.min_trader_commission}, 100]"
                raise ValueError(msg)
        return self

    def commission_duration(self, period: CommissionPeriod) -> int:
        return self.commission_durations[period]

    def max_trader_commission(self, period: CommissionPeriod) -> Decimal:
        return self.max_trader_commissions[period]

    def commission_epoch_by_timestamp(self, timestamp: Timestamp, period: CommissionPeriod) -> int:
        """Index of the epoch containing ``timestamp``."""
        return (timestamp - self.commission_init_timestamp) // self.commission_duration(period)

    def commission_timestamp_by_epoch(self, epoch: int, period: CommissionPeriod) -> Timestamp:
        """End timestamp of ``epoch``."""
        return self.commission_init_timestamp + (epoch + 1) * self.commission_duration(period)
