"""Tests for fixed-point helpers."""

from decimal import DefaultContext, Decimal, getcontext, localcontext

import pytest

from traderpool.core.fixed import (
    ENGINE_CONTEXT,
    PERCENTAGE_100,
    ZERO,
    clamp_positive,
    exact,
    floor_amount,
    is_percentage,
    percentage,
    percentage_of,
    ratio,
    to_decimal,
)


class TestToDecimal:
    def test_accepts_int_str_and_decimal(self) -> None:
        """Test that integers, strings and Decimals convert exactly."""
        assert to_decimal(5) == Decimal(5)
        assert to_decimal("2.5") == Decimal("2.5")
        assert to_decimal(Decimal("0.1")) == Decimal("0.1")

    def test_rejects_float(self) -> None:
        """Test that floats are refused."""
        with pytest.raises(TypeError, match="float"):
            to_decimal(1.5)  # type: ignore[arg-type]

    def test_rejects_bool(self) -> None:
        """Test that booleans are not treated as integers."""
        with pytest.raises(TypeError):
            to_decimal(True)  # type: ignore[arg-type]


class TestRounding:
    def test_floor_truncates_to_18_places(self) -> None:
        """Test that amounts are truncated, never rounded up."""
        assert floor_amount(Decimal("1.9999999999999999999")) == Decimal("1.999999999999999999")

    def test_ratio_rounds_down(self) -> None:
        """Test that division truncates toward zero."""
        assert ratio(Decimal(10), Decimal(1), Decimal(3)) == Decimal("3.333333333333333333")
        assert ratio(Decimal(20), Decimal(1), Decimal(3)) == Decimal("6.666666666666666666")

    def test_ratio_below_precision_is_zero(self) -> None:
        """Test that a result below one quantum floors to zero."""
        assert ratio(Decimal("0.000000000000000001"), Decimal(1), Decimal(2)) == ZERO

    def test_ratio_large_values_stay_exact(self) -> None:
        """Test that uint256-scale values keep full precision."""
        big = Decimal(10**40)
        third = ratio(big, Decimal(1), Decimal(3))
        with localcontext(ENGINE_CONTEXT):
            assert big - third * 3 == Decimal("0.000000000000000001")


class TestEngineContext:
    def test_import_leaves_host_context_alone(self) -> None:
        """Test that the host thread keeps its own decimal precision."""
        assert getcontext().prec == DefaultContext.prec

    def test_exact_widens_precision_for_the_call(self) -> None:
        @exact
        def add_quantum(value: Decimal) -> Decimal:
            return value + Decimal("0.000000000000000001")

        assert add_quantum(Decimal(10**30)) == Decimal("1000000000000000000000000000000.000000000000000001")
        assert getcontext().prec == DefaultContext.prec


class TestPercentages:
    def test_percentage(self) -> None:
        assert percentage(Decimal(250), Decimal(30)) == Decimal(75)

    def test_percentage_of_zero_whole(self) -> None:
        """Test that a zero whole reports the full percentage."""
        assert percentage_of(Decimal(5), ZERO) == PERCENTAGE_100

    def test_percentage_of(self) -> None:
        assert percentage_of(Decimal(1), Decimal(4)) == Decimal(25)

    def test_is_percentage_bounds(self) -> None:
        assert is_percentage(ZERO)
        assert is_percentage(PERCENTAGE_100)
        assert not is_percentage(Decimal("100.000000000000000001"))
        assert not is_percentage(Decimal(-1))


def test_clamp_positive() -> None:
    assert clamp_positive(Decimal(-3)) == ZERO
    assert clamp_positive(Decimal(3)) == Decimal(3)
