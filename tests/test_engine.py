"""Unit tests for the per-employee liquidation engine.

The engine is pure, so every test builds snapshots directly.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from nomina_engine.calculators.deductions import DeductionCalculator
from nomina_engine.calculators.engine import (
    EmployeeLiquidation,
    LiquidationEngine,
    aggregate_totals,
    period_days,
)
from nomina_engine.calculators.types import (
    CalculationPath,
    EmployeeSnapshot,
    IbcMode,
    NovedadInput,
    PeriodContext,
    PeriodKind,
    PolicySnapshot,
)
from nomina_engine.errors import ValidationError
from nomina_engine.models import Novedad

SMMLV = Decimal("1423500")
MARCH_2025 = PeriodContext(uuid4(), date(2025, 3, 1), date(2025, 3, 31))


def employee(salary="1423500", risk="I", **kwargs) -> EmployeeSnapshot:
    values = {
        "employee_id": uuid4(),
        "base_salary": Decimal(salary),
        "arl_risk_class": risk,
        "health_insurer": "EPS Sura",
        "pension_fund": "Porvenir",
    }
    values.update(kwargs)
    return EmployeeSnapshot(**values)


class FailingBackend:
    def calculate(self, request):
        raise TimeoutError("deduction service timed out")


@pytest.fixture
def engine():
    return LiquidationEngine()


class TestPeriodDays:
    """Paid days per period kind."""

    def test_fixed_kinds(self):
        assert period_days(PeriodContext(None, date(2025, 3, 3), date(2025, 3, 9), PeriodKind.WEEKLY)) == 7
        assert period_days(PeriodContext(None, date(2025, 3, 1), date(2025, 3, 15), PeriodKind.BIWEEKLY)) == 15

    def test_custom_uses_explicit_days(self):
        period = PeriodContext(None, date(2025, 3, 1), date(2025, 3, 31), PeriodKind.CUSTOM, 12)
        assert period_days(period) == 12

    def test_custom_without_days(self):
        with pytest.raises(ValidationError):
            period_days(PeriodContext(None, date(2025, 3, 1), date(2025, 3, 31), PeriodKind.CUSTOM))

    def test_full_calendar_month_counts_thirty(self):
        assert period_days(PeriodContext(None, date(2025, 2, 1), date(2025, 2, 28))) == 30
        assert period_days(MARCH_2025) == 30

    def test_partial_month_counts_calendar_days(self):
        assert period_days(PeriodContext(None, date(2025, 3, 10), date(2025, 3, 19))) == 10

    def test_long_range_capped(self):
        assert period_days(PeriodContext(None, date(2025, 1, 15), date(2025, 2, 20))) == 30


class TestMinimumWageEmployee:
    """A minimum-wage employee for a full month with no novedades."""

    def test_pay(self, engine, config_2025):
        result = engine.calculate_employee(employee(), MARCH_2025, [], config_2025)

        assert result.success
        assert result.worked_days == 30
        assert result.prorated_salary == SMMLV
        assert result.transport_allowance == Decimal("200000")
        assert result.ibc == SMMLV
        assert result.health_deduction == Decimal("56940")
        assert result.pension_deduction == Decimal("56940")
        assert result.withholding_tax == Decimal("0")
        assert result.gross_pay == Decimal("1623500")
        assert result.total_deductions == Decimal("113880")
        assert result.net_pay == Decimal("1509620")

    def test_employer_side(self, engine, config_2025):
        result = engine.calculate_employee(employee(), MARCH_2025, [], config_2025)

        assert result.contributions_detail["health"] == "120998"
        assert result.contributions_detail["arl"] == "7431"
        assert result.employer_contributions == Decimal("427364")
        assert result.provisions_detail["severance"] == "135238"

    def test_gross_minus_deductions_is_net(self, engine, config_2025):
        novedades = [
            NovedadInput(kind="bonus", value=Decimal("300000")),
            NovedadInput(kind="loan", value=Decimal("80000")),
        ]
        result = engine.calculate_employee(employee("4500000"), MARCH_2025, novedades, config_2025)
        assert result.gross_pay - result.total_deductions == result.net_pay


class TestFiveMinimumWages:
    def test_solidarity_fund_and_no_transport(self, engine, config_2025):
        result = engine.calculate_employee(employee(str(SMMLV * 5), "II"), MARCH_2025, [], config_2025)

        assert result.success
        assert result.transport_allowance == Decimal("0")
        assert result.ibc == Decimal("7117500")
        assert result.health_deduction == Decimal("284700")
        assert result.pension_deduction == Decimal("284700")
        assert result.solidarity_deductions == Decimal("71175")
        assert result.gross_pay == Decimal("7117500")


class TestNovedades:
    def test_transport_only_up_to_two_minimum_wages(self, engine, config_2025):
        result = engine.calculate_employee(employee("2847001"), MARCH_2025, [], config_2025)
        assert result.transport_allowance == Decimal("0")

    def test_constitutive_bonus_raises_ibc(self, engine, config_2025):
        novedades = [NovedadInput(kind="bonus", value=Decimal("500000"))]
        result = engine.calculate_employee(employee("3000000"), MARCH_2025, novedades, config_2025)
        assert result.ibc == Decimal("3500000")
        assert result.novedad_earnings == Decimal("500000")

    def test_non_constitutive_bonus_leaves_ibc(self, engine, config_2025):
        novedades = [NovedadInput(kind="bonus", value=Decimal("500000"), constitutive=False)]
        result = engine.calculate_employee(employee("3000000"), MARCH_2025, novedades, config_2025)
        assert result.ibc == Decimal("3000000")
        assert result.gross_pay == Decimal("3500000")

    def test_incapacity_days_reduce_worked_days(self, engine, config_2025):
        novedades = [
            NovedadInput(kind="incapacity", value=Decimal("237250"), subtype="general", days=5)
        ]
        result = engine.calculate_employee(employee(), MARCH_2025, novedades, config_2025)

        assert result.worked_days == 25
        assert result.prorated_salary == Decimal("1186250")
        assert result.transport_allowance == Decimal("166667")
        assert result.ibc == Decimal("1186250")
        assert result.novedad_earnings == Decimal("237250")

    def test_incapacity_date_range_reduces_worked_days(self, engine, config_2025):
        stored = Novedad(
            kind="incapacity",
            subtype="general",
            value=Decimal("237250"),
            start_date=date(2025, 3, 10),
            end_date=date(2025, 3, 14),
        )
        novedad = NovedadInput.from_model(stored)

        result = engine.calculate_employee(employee(), MARCH_2025, [novedad], config_2025)

        assert novedad.days == 5
        assert result.worked_days == 25
        assert result.prorated_salary == Decimal("1186250")
        assert result.gross_pay == Decimal("1590167")

    def test_full_salary_ibc_mode_ignores_incapacity(self, engine, config_2025):
        novedades = [
            NovedadInput(kind="incapacity", value=Decimal("237250"), subtype="general", days=5)
        ]
        policy = PolicySnapshot(ibc_mode=IbcMode.FULL_SALARY)
        result = engine.calculate_employee(employee(), MARCH_2025, novedades, config_2025, policy)
        assert result.ibc == SMMLV
        assert result.breakdown["ibc_mode"] == "full_salary"

    def test_unknown_kind_excluded_from_totals(self, engine, config_2025):
        novedades = [NovedadInput(kind="tips", value=Decimal("999999"))]
        result = engine.calculate_employee(employee(), MARCH_2025, novedades, config_2025)

        assert result.gross_pay == Decimal("1623500")
        assert result.breakdown["novedades"]["excluded"][0]["kind"] == "tips"

    def test_negative_net_pay_warns(self, engine, config_2025):
        novedades = [NovedadInput(kind="garnishment", value=Decimal("5000000"))]
        result = engine.calculate_employee(employee(), MARCH_2025, novedades, config_2025)
        assert result.net_pay < 0
        assert any("negative" in w for w in result.warnings)


class TestEmployeeErrors:
    def test_non_positive_salary(self, engine, config_2025):
        result = engine.calculate_employee(employee("0"), MARCH_2025, [], config_2025)
        assert not result.success
        assert result.record_values()["status"] == "error"

    def test_unknown_risk_class(self, engine, config_2025):
        result = engine.calculate_employee(employee(risk="VI"), MARCH_2025, [], config_2025)
        assert any("VI" in e for e in result.errors)

    def test_missing_insurers_warn(self, engine, config_2025):
        result = engine.calculate_employee(
            employee(health_insurer=None, pension_fund=None), MARCH_2025, [], config_2025
        )
        assert result.success
        assert len(result.warnings) == 2


class TestFallbackPath:
    def test_fallback_matches_local_result(self, config_2025):
        emp = employee("12000000")
        local = LiquidationEngine().calculate_employee(emp, MARCH_2025, [], config_2025)
        fallback = LiquidationEngine(
            deduction_calculator=DeductionCalculator(primary=FailingBackend())
        ).calculate_employee(emp, MARCH_2025, [], config_2025)

        assert fallback.calculation_path == CalculationPath.FALLBACK
        assert fallback.fallback is not None
        assert fallback.net_pay == local.net_pay
        assert fallback.record_values()["calculation_path"] == "fallback"


class TestAggregateTotals:
    def test_sums_successful_liquidations_only(self, engine, config_2025):
        ok = engine.calculate_employee(employee(), MARCH_2025, [], config_2025)
        failed = EmployeeLiquidation.failed(uuid4(), ["boom"])

        totals = aggregate_totals([ok, ok, failed])

        assert totals.employee_count == 2
        assert totals.gross_pay == ok.gross_pay * 2
        assert totals.net_pay == ok.net_pay * 2
