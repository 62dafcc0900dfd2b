"""Tests for incapacity (sick leave) values."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from nomina_engine.calculators.incapacity import IncapacityValueCalculator, calculate_incapacity
from nomina_engine.calculators.types import IncapacityPolicy, IncapacitySubtype
from nomina_engine.errors import ValidationError

SMMLV = Decimal("1423500")
STANDARD = IncapacityPolicy.STANDARD_2D_100_REST_66
FROM_DAY1 = IncapacityPolicy.FROM_DAY1_66_WITH_FLOOR


class TestGeneralIncapacity:
    """Non-occupational sick leave."""

    def test_standard_policy_two_days_full_then_two_thirds(self):
        calc = calculate_incapacity(Decimal("3000000"), 5, "general", STANDARD, SMMLV)
        assert calc.full_pay_days == 2
        assert calc.reduced_days == 3
        assert calc.value == Decimal("400000")
        assert calc.payer == "employer+eps"

    def test_from_day1_policy(self):
        calc = calculate_incapacity(Decimal("3000000"), 5, "general", FROM_DAY1, SMMLV)
        assert calc.full_pay_days == 0
        assert calc.value == Decimal("333333")
        assert calc.payer == "eps"

    def test_minimum_wage_floor(self):
        """Two thirds of a minimum-wage daily salary is lifted to the daily minimum wage."""
        calc = calculate_incapacity(SMMLV, 10, "general", STANDARD, SMMLV)
        assert calc.floor_applied is True
        assert calc.reduced_daily_value == Decimal("47450")
        assert calc.value == Decimal("474500")

    def test_short_leave_paid_by_employer(self):
        calc = calculate_incapacity(Decimal("3000000"), 1, "general", STANDARD, SMMLV)
        assert calc.value == Decimal("100000")
        assert calc.payer == "employer"

    def test_zero_days(self):
        calc = calculate_incapacity(Decimal("3000000"), 0, "general", STANDARD, SMMLV)
        assert calc.value == Decimal("0")
        assert calc.payer == "none"

    @settings(max_examples=200)
    @given(
        salary=st.decimals(min_value=SMMLV, max_value=30_000_000, places=0),
        days=st.integers(min_value=0, max_value=30),
    )
    def test_standard_never_pays_less_than_from_day1(self, salary, days):
        standard = calculate_incapacity(salary, days, "general", STANDARD, SMMLV)
        day1 = calculate_incapacity(salary, days, "general", FROM_DAY1, SMMLV)
        assert standard.value >= day1.value

    @settings(max_examples=200)
    @given(
        salary=st.decimals(min_value=SMMLV, max_value=30_000_000, places=0),
        days=st.integers(min_value=0, max_value=29),
        policy=st.sampled_from(list(IncapacityPolicy)),
    )
    def test_value_grows_with_days_and_respects_floor(self, salary, days, policy):
        value = calculate_incapacity(salary, days, "general", policy, SMMLV).value
        next_day = calculate_incapacity(salary, days + 1, "general", policy, SMMLV).value

        assert next_day >= value
        assert value >= (SMMLV / 30 * days).quantize(Decimal("1")) - 1


class TestOccupationalIncapacity:
    def test_full_pay_from_day_one(self):
        calc = calculate_incapacity(Decimal("3000000"), 5, "occupational", FROM_DAY1, SMMLV)
        assert calc.value == Decimal("500000")
        assert calc.payer == "arl"
        assert calc.subtype == IncapacitySubtype.OCCUPATIONAL


class TestValidation:
    def test_non_positive_salary(self):
        with pytest.raises(ValidationError):
            calculate_incapacity(Decimal("0"), 3, "general", STANDARD, SMMLV)

    def test_negative_days(self):
        with pytest.raises(ValidationError):
            calculate_incapacity(Decimal("3000000"), -1, "general", STANDARD, SMMLV)

    def test_unknown_subtype(self):
        with pytest.raises(ValueError):
            calculate_incapacity(Decimal("3000000"), 3, "maternity", STANDARD, SMMLV)


class TestIncapacityValueCalculator:
    def test_uses_configuration_minimum_wage(self, config_2025):
        calc = IncapacityValueCalculator().calculate(SMMLV, 3, "general", STANDARD, config_2025)
        assert calc.value == Decimal("142350")
        trace = calc.to_trace()
        assert trace["method"] == "incapacity"
        assert trace["policy"] == STANDARD.value
