"""Tests for yearly configuration and the configuration cache."""

from dataclasses import replace
from decimal import Decimal

import pytest

from nomina_engine.calculators.configuration import (
    DEFAULT_CONFIGURATIONS,
    ConfigurationCache,
    SolidarityBracket,
    WithholdingBracket,
    YearlyConfiguration,
    default_configuration,
)
from nomina_engine.errors import ValidationError


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestDefaults:
    """Hard-coded legal parameters."""

    def test_known_years(self):
        """2024-2026 carry the published minimum wage, transport and UVT."""
        assert DEFAULT_CONFIGURATIONS[2024].minimum_wage == Decimal("1300000")
        assert DEFAULT_CONFIGURATIONS[2025].transport_allowance == Decimal("200000")
        assert DEFAULT_CONFIGURATIONS[2026].uvt == Decimal("52374")

    def test_unknown_later_year_uses_latest_known(self):
        """A year after the table reuses the latest known parameters."""
        config = default_configuration(2030)
        assert config.year == 2030
        assert config.minimum_wage == DEFAULT_CONFIGURATIONS[2026].minimum_wage

    def test_unknown_earlier_year_uses_earliest_known(self):
        """A year before the table reuses the earliest known parameters."""
        config = default_configuration(2019)
        assert config.year == 2019
        assert config.minimum_wage == DEFAULT_CONFIGURATIONS[2024].minimum_wage

    def test_contribution_rates(self, config_2025):
        """Employee health and pension are 4% each."""
        assert config_2025.contributions.employee_health == Decimal("0.04")
        assert config_2025.contributions.employee_pension == Decimal("0.04")


class TestValidation:
    """Configuration instances reject impossible values."""

    def test_non_positive_minimum_wage(self):
        with pytest.raises(ValidationError) as exc_info:
            YearlyConfiguration(
                year=2025,
                minimum_wage=Decimal("0"),
                transport_allowance=Decimal("200000"),
                uvt=Decimal("49799"),
            )
        assert "minimum_wage must be positive" in exc_info.value.errors

    def test_overlapping_brackets(self):
        """Overlapping solidarity brackets are reported."""
        with pytest.raises(ValidationError) as exc_info:
            replace(
                DEFAULT_CONFIGURATIONS[2025],
                solidarity_brackets=(
                    SolidarityBracket(Decimal("4"), Decimal("16"), Decimal("0.01")),
                    SolidarityBracket(Decimal("10"), None, Decimal("0.02")),
                ),
            )
        assert any("overlaps" in e for e in exc_info.value.errors)

    def test_open_bracket_must_be_last(self):
        with pytest.raises(ValidationError) as exc_info:
            replace(
                DEFAULT_CONFIGURATIONS[2025],
                withholding_brackets=(
                    WithholdingBracket(Decimal("0"), None, Decimal("0")),
                    WithholdingBracket(Decimal("95"), Decimal("150"), Decimal("0.19")),
                ),
            )
        assert any("open-ended but not last" in e for e in exc_info.value.errors)

    def test_missing_arl_class(self):
        with pytest.raises(ValidationError):
            replace(DEFAULT_CONFIGURATIONS[2025], arl_rates={"I": Decimal("0.00522")})

    def test_unknown_arl_class_lookup(self, config_2025):
        with pytest.raises(ValidationError):
            config_2025.arl_rate("VI")


class TestBrackets:
    """Bracket lookups are half-open on the upper bound."""

    @pytest.mark.parametrize(
        "multiple, rate",
        [
            ("4", "0.010"),
            ("15.99", "0.010"),
            ("16", "0.012"),
            ("17", "0.014"),
            ("18", "0.016"),
            ("19", "0.018"),
            ("20", "0.020"),
            ("25", "0.020"),
        ],
    )
    def test_solidarity_bracket_steps(self, config_2025, multiple, rate):
        assert config_2025.solidarity_bracket_for(Decimal(multiple)).rate == Decimal(rate)

    def test_below_four_minimum_wages_has_no_bracket(self, config_2025):
        assert config_2025.solidarity_bracket_for(Decimal("3.99")) is None

    def test_withholding_bracket_boundaries(self, config_2025):
        assert config_2025.withholding_bracket_for(Decimal("94.9")).rate == Decimal("0")
        assert config_2025.withholding_bracket_for(Decimal("95")).rate == Decimal("0.19")
        assert config_2025.withholding_bracket_for(Decimal("3000")).rate == Decimal("0.39")


class TestPayload:
    """Stored payloads."""

    def test_payload_preserves_parameters(self, config_2025):
        """A stored payload loads back to an equal configuration."""
        loaded = YearlyConfiguration.from_payload(2025, config_2025.to_payload(), version=3)
        assert loaded == replace(config_2025, version=3)

    def test_missing_sections_take_defaults(self):
        """Only the three scalar parameters are required."""
        loaded = YearlyConfiguration.from_payload(
            2027, {"minimum_wage": "1900000", "transport_allowance": "260000", "uvt": "55000"}
        )
        assert loaded.solidarity_brackets == DEFAULT_CONFIGURATIONS[2025].solidarity_brackets
        assert loaded.arl_rate("V") == Decimal("0.06960")

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            YearlyConfiguration.from_payload(2027, {"minimum_wage": "1900000"})


class TestConfigurationCache:
    """TTL cache behaviour."""

    def test_fresh_entry_is_returned(self, config_2025):
        clock = FakeClock()
        cache = ConfigurationCache(ttl_seconds=300, clock=clock)
        cache.put(config_2025)

        clock.now = 299
        assert cache.get(2025) is config_2025
        assert cache.is_fresh(2025) is True

    def test_expired_entry_only_served_stale(self, config_2025):
        """After the TTL a fresh read misses but a stale read still hits."""
        clock = FakeClock()
        cache = ConfigurationCache(ttl_seconds=300, clock=clock)
        cache.put(config_2025)

        clock.now = 300
        assert cache.get(2025) is None
        assert cache.get(2025, allow_stale=True) is config_2025

    def test_invalidate(self, config_2025):
        cache = ConfigurationCache()
        cache.put(config_2025)
        cache.invalidate(2025)
        assert cache.get(2025, allow_stale=True) is None

    def test_invalid_ttl(self):
        with pytest.raises(ValueError):
            ConfigurationCache(ttl_seconds=0)

    async def test_get_or_load_loads_once_while_fresh(self, config_2025):
        """The loader runs on a miss and again only after expiry."""
        clock = FakeClock()
        cache = ConfigurationCache(ttl_seconds=300, clock=clock)
        calls = []

        async def loader(year):
            calls.append(year)
            return config_2025

        await cache.get_or_load(2025, loader)
        await cache.get_or_load(2025, loader)
        assert calls == [2025]

        clock.now = 301
        await cache.get_or_load(2025, loader)
        assert calls == [2025, 2025]
