"""Tests for the contribution base (IBC)."""

from decimal import ROUND_HALF_UP, Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from nomina_engine.calculators.configuration import DEFAULT_CONFIGURATIONS
from nomina_engine.calculators.ibc import IncomeBaseCalculator
from nomina_engine.calculators.types import NovedadInput
from nomina_engine.errors import ValidationError

SMMLV_2025 = Decimal("1423500")
CONFIG_2025 = DEFAULT_CONFIGURATIONS[2025]


@pytest.fixture
def calculator():
    return IncomeBaseCalculator()


class TestIncomeBase:
    """IBC = clip(salary + constitutive, SMMLV, 25 SMMLV)."""

    def test_salary_only(self, calculator, config_2025):
        result = calculator.calculate(Decimal("3000000"), [], config_2025)
        assert result.ibc == Decimal("3000000")
        assert result.clipped is False

    def test_constitutive_earnings_added(self, calculator, config_2025):
        novedades = [
            NovedadInput(kind="overtime", value=Decimal("150000")),
            NovedadInput(kind="non_salary_bonus", value=Decimal("400000")),
            NovedadInput(kind="loan", value=Decimal("50000")),
        ]
        result = calculator.calculate(Decimal("3000000"), novedades, config_2025)
        assert result.ibc == Decimal("3150000")
        assert result.constitutive_total == Decimal("150000")

    def test_floor_at_minimum_wage(self, calculator, config_2025):
        result = calculator.calculate(Decimal("900000"), [], config_2025)
        assert result.ibc == SMMLV_2025
        assert result.clip_reason == "floor"

    def test_ceiling_at_25_minimum_wages(self, calculator, config_2025):
        result = calculator.calculate(Decimal("50000000"), [], config_2025)
        assert result.ibc == SMMLV_2025 * 25
        assert result.clip_reason == "ceiling"

    def test_limits_scale_with_days(self, calculator, config_2025):
        """A 15-day period uses half of each limit."""
        result = calculator.calculate(Decimal("500000"), [], config_2025, days=15)
        assert result.floor == Decimal("711750")
        assert result.ibc == Decimal("711750")

    @settings(max_examples=200)
    @given(
        salary=st.decimals(min_value=SMMLV_2025, max_value=50_000_000, places=0),
        low=st.decimals(min_value=0, max_value=40_000_000, places=0),
        extra=st.decimals(min_value=0, max_value=40_000_000, places=0),
    )
    def test_ibc_is_monotonic_and_bounded(self, salary, low, extra):
        calculator = IncomeBaseCalculator()
        lower = calculator.calculate_from_totals(salary, low, CONFIG_2025).ibc
        higher = calculator.calculate_from_totals(salary, low + extra, CONFIG_2025).ibc

        assert lower <= higher
        assert SMMLV_2025 <= lower <= SMMLV_2025 * 25
        assert SMMLV_2025 <= higher <= SMMLV_2025 * 25

    @settings(max_examples=100)
    @given(
        salary=st.decimals(min_value=0, max_value=50_000_000, places=0),
        days=st.integers(min_value=1, max_value=30),
    )
    def test_partial_period_limits_scale_with_days(self, salary, days):
        result = IncomeBaseCalculator().calculate_from_totals(salary, Decimal("0"), CONFIG_2025, days)
        assert result.floor <= result.ibc <= result.ceiling
        assert result.floor == (SMMLV_2025 * days / 30).quantize(Decimal("1"), ROUND_HALF_UP)

    def test_negative_salary_rejected(self, calculator, config_2025):
        with pytest.raises(ValidationError):
            calculator.calculate_from_totals(Decimal("-1"), Decimal("0"), config_2025)
