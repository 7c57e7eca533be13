"""External collaborator protocols and in-memory implementations."""

from traderpool.adapters.assets import AssetLedger
from traderpool.adapters.protocols import Clock, ExchangeGateway, TokenRegistry, ValuationAdapter
from traderpool.adapters.simulated import (
    ManualClock,
    SimulatedExchange,
    StaticPriceOracle,
    StaticTokenRegistry,
    SystemClock,
)

__all__ = [
    # Protocols
    "Clock",
    "ExchangeGateway",
    "TokenRegistry",
    "ValuationAdapter",
    # Implementations
    "AssetLedger",
    "ManualClock",
    "SimulatedExchange",
    "StaticPriceOracle",
    "StaticTokenRegistry",
    "SystemClock",
]
