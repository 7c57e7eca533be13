"""Leverage limiter: caps outside capital against the trader's own stake."""

from decimal import Decimal

import structlog

from traderpool.core.errors import LeverageExceededError
from traderpool.core.fixed import ZERO, clamp_positive, exact

log = structlog.get_logger()


class LeverageLimiter:
    """Ceiling on a pool's total managed value.

    With ``t`` the trader's own value (whole units), ``m = t // threshold``::

        ceiling = (threshold + (m + 1)(2t - threshold) - m^2 * threshold) // slope + 2t

    The ceiling grows with ``t``: below one threshold the pool may manage
    ``2t + 2t / slope``, and the extra allowance steepens at each further
    threshold step.

    Example:
        >>> LeverageLimiter(threshold=2500, slope=5).max_total_value(Decimal(1000))
        Decimal('2400')
    """

    def __init__(self, threshold: int, slope: int) -> None:
        self.threshold = threshold
        self.slope = slope

    def max_total_value(self, trader_value: Decimal) -> Decimal:
        trader_units = int(clamp_positive(trader_value))
        multiplier = trader_units // self.threshold

        numerator = (
            self.threshold
            + (multiplier + 1) * (2 * trader_units - self.threshold)
            - multiplier * multiplier * self.threshold
        )
        return Decimal(numerator // self.slope + 2 * trader_units)

    @exact
    def available(self, total_value: Decimal, trader_value: Decimal) -> Decimal:
        """Further value the pool may admit."""
        return clamp_positive(self.max_total_value(trader_value) - total_value)

    @exact
    def check(self, total_value: Decimal, trader_value: Decimal, added_value: Decimal) -> None:
        """Raise if admitting ``added_value`` would breach the ceiling.

        Raises:
            LeverageExceededError: If total + added exceeds the ceiling
        """
        ceiling = self.max_total_value(trader_value)
        if total_value + added_value > ceiling:
            log.warning(
                "leverage.exceeded",
                total_value=total_value,
                trader_value=trader_value,
                added_value=added_value,
                ceiling=ceiling,
            )
            raise LeverageExceededError("leverage exceeded")

        if added_value > ZERO:
            log.debug("leverage.ok", headroom=ceiling - total_value - added_value)
