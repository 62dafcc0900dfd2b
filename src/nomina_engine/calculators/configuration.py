"""Yearly legal parameters, hard-coded defaults and the configuration cache.

Configuration payloads are stored as JSON with the structure:
{
    "minimum_wage": "1423500",
    "transport_allowance": "200000",
    "uvt": "49799",
    "contributions": {"employee_health": "0.04", ...},
    "provisions": {"severance": "0.0833", ...},
    "arl_rates": {"I": "0.00522", ...},
    "solidarity_brackets": [{"min": "4", "max": "16", "rate": "0.01"}, ...],
    "withholding_brackets": [{"min": "0", "max": "95", "rate": "0", "fixed": "0"}, ...],
    "additional_solidarity": {"threshold": "16", "rate": "0"},
    "subsistence": {"threshold": "20", "rate": "0"}
}
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from typing import Any, Awaitable, Callable, Mapping

from nomina_engine.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolidarityBracket:
    """Half-open bracket ``[min_multiple, max_multiple)`` of minimum wages."""

    min_multiple: Decimal
    max_multiple: Decimal | None
    rate: Decimal

    def contains(self, multiple: Decimal) -> bool:
        if multiple < self.min_multiple:
            return False
        return self.max_multiple is None or multiple < self.max_multiple


@dataclass(frozen=True)
class WithholdingBracket:
    """Half-open bracket ``[min_uvt, max_uvt)`` with marginal rate and fixed UVT offset."""

    min_uvt: Decimal
    max_uvt: Decimal | None
    rate: Decimal
    fixed_uvt: Decimal = Decimal("0")

    def contains(self, value_uvt: Decimal) -> bool:
        if value_uvt < self.min_uvt:
            return False
        return self.max_uvt is None or value_uvt < self.max_uvt


@dataclass(frozen=True)
class ContributionRates:
    """Statutory contribution percentages (as fractions)."""

    employee_health: Decimal = Decimal("0.04")
    employee_pension: Decimal = Decimal("0.04")
    employer_health: Decimal = Decimal("0.085")
    employer_pension: Decimal = Decimal("0.12")
    family_fund: Decimal = Decimal("0.04")
    icbf: Decimal = Decimal("0.03")
    sena: Decimal = Decimal("0.02")


@dataclass(frozen=True)
class ProvisionRates:
    """Employer accruals for social benefits."""

    severance: Decimal = Decimal("0.0833")
    severance_interest: Decimal = Decimal("0.01")
    service_bonus: Decimal = Decimal("0.0833")
    vacation: Decimal = Decimal("0.0417")


DEFAULT_ARL_RATES: dict[str, Decimal] = {
    "I": Decimal("0.00522"),
    "II": Decimal("0.01044"),
    "III": Decimal("0.02436"),
    "IV": Decimal("0.04350"),
    "V": Decimal("0.06960"),
}

DEFAULT_SOLIDARITY_BRACKETS: tuple[SolidarityBracket, ...] = (
    SolidarityBracket(Decimal("4"), Decimal("16"), Decimal("0.010")),
    SolidarityBracket(Decimal("16"), Decimal("17"), Decimal("0.012")),
    SolidarityBracket(Decimal("17"), Decimal("18"), Decimal("0.014")),
    SolidarityBracket(Decimal("18"), Decimal("19"), Decimal("0.016")),
    SolidarityBracket(Decimal("19"), Decimal("20"), Decimal("0.018")),
    SolidarityBracket(Decimal("20"), None, Decimal("0.020")),
)

# Art. 383 Estatuto Tributario, in UVT
DEFAULT_WITHHOLDING_BRACKETS: tuple[WithholdingBracket, ...] = (
    WithholdingBracket(Decimal("0"), Decimal("95"), Decimal("0")),
    WithholdingBracket(Decimal("95"), Decimal("150"), Decimal("0.19")),
    WithholdingBracket(Decimal("150"), Decimal("360"), Decimal("0.28"), Decimal("10")),
    WithholdingBracket(Decimal("360"), Decimal("640"), Decimal("0.33"), Decimal("69")),
    WithholdingBracket(Decimal("640"), Decimal("945"), Decimal("0.35"), Decimal("162")),
    WithholdingBracket(Decimal("945"), Decimal("2300"), Decimal("0.37"), Decimal("268")),
    WithholdingBracket(Decimal("2300"), None, Decimal("0.39"), Decimal("770")),
)


@dataclass(frozen=True)
class YearlyConfiguration:
    """Legal parameters for one calendar year.

    Instances are immutable; a correction is a new instance with a higher
    ``version``.
    """

    year: int
    minimum_wage: Decimal
    transport_allowance: Decimal
    uvt: Decimal
    contributions: ContributionRates = field(default_factory=ContributionRates)
    provisions: ProvisionRates = field(default_factory=ProvisionRates)
    arl_rates: Mapping[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_ARL_RATES))
    solidarity_brackets: tuple[SolidarityBracket, ...] = DEFAULT_SOLIDARITY_BRACKETS
    withholding_brackets: tuple[WithholdingBracket, ...] = DEFAULT_WITHHOLDING_BRACKETS
    additional_solidarity_threshold: Decimal = Decimal("16")
    additional_solidarity_rate: Decimal = Decimal("0")
    subsistence_threshold: Decimal = Decimal("20")
    subsistence_rate: Decimal = Decimal("0")
    version: int = 1

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValidationError(errors, year=self.year)

    def validate(self) -> list[str]:
        """Return a list of problems with this configuration (empty if valid)."""
        errors: list[str] = []
        if self.minimum_wage <= 0:
            errors.append("minimum_wage must be positive")
        if self.transport_allowance < 0:
            errors.append("transport_allowance cannot be negative")
        if self.uvt <= 0:
            errors.append("uvt must be positive")

        for group in (self.contributions, self.provisions):
            for f in fields(group):
                if getattr(group, f.name) < 0:
                    errors.append(f"{f.name} rate cannot be negative")

        missing = {"I", "II", "III", "IV", "V"} - set(self.arl_rates)
        if missing:
            errors.append(f"arl_rates missing classes: {', '.join(sorted(missing))}")

        errors.extend(
            _check_brackets(
                "solidarity",
                [(b.min_multiple, b.max_multiple, b.rate) for b in self.solidarity_brackets],
            )
        )
        errors.extend(
            _check_brackets(
                "withholding",
                [(b.min_uvt, b.max_uvt, b.rate) for b in self.withholding_brackets],
            )
        )
        if self.additional_solidarity_rate < 0 or self.subsistence_rate < 0:
            errors.append("flat solidarity rates cannot be negative")
        return errors

    def arl_rate(self, risk_class: str) -> Decimal:
        try:
            return self.arl_rates[risk_class]
        except KeyError:
            raise ValidationError(f"Unknown ARL risk class '{risk_class}'") from None

    def solidarity_bracket_for(self, multiple: Decimal) -> SolidarityBracket | None:
        for bracket in self.solidarity_brackets:
            if bracket.contains(multiple):
                return bracket
        return None

    def withholding_bracket_for(self, value_uvt: Decimal) -> WithholdingBracket | None:
        for bracket in self.withholding_brackets:
            if bracket.contains(value_uvt):
                return bracket
        return None

    def with_year(self, year: int) -> YearlyConfiguration:
        return replace(self, year=year)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe representation for persistence."""
        return {
            "minimum_wage": str(self.minimum_wage),
            "transport_allowance": str(self.transport_allowance),
            "uvt": str(self.uvt),
            "contributions": {f.name: str(getattr(self.contributions, f.name)) for f in fields(self.contributions)},
            "provisions": {f.name: str(getattr(self.provisions, f.name)) for f in fields(self.provisions)},
            "arl_rates": {k: str(v) for k, v in self.arl_rates.items()},
            "solidarity_brackets": [
                {
                    "min": str(b.min_multiple),
                    "max": str(b.max_multiple) if b.max_multiple is not None else None,
                    "rate": str(b.rate),
                }
                for b in self.solidarity_brackets
            ],
            "withholding_brackets": [
                {
                    "min": str(b.min_uvt),
                    "max": str(b.max_uvt) if b.max_uvt is not None else None,
                    "rate": str(b.rate),
                    "fixed": str(b.fixed_uvt),
                }
                for b in self.withholding_brackets
            ],
            "additional_solidarity": {
                "threshold": str(self.additional_solidarity_threshold),
                "rate": str(self.additional_solidarity_rate),
            },
            "subsistence": {
                "threshold": str(self.subsistence_threshold),
                "rate": str(self.subsistence_rate),
            },
        }

    @classmethod
    def from_payload(cls, year: int, payload: dict[str, Any], version: int = 1) -> YearlyConfiguration:
        """Parse a stored payload; missing sections take the statutory defaults."""
        try:
            contributions = ContributionRates(
                **{k: Decimal(v) for k, v in payload.get("contributions", {}).items()}
            )
            provisions = ProvisionRates(
                **{k: Decimal(v) for k, v in payload.get("provisions", {}).items()}
            )
            arl_rates = {
                k: Decimal(v) for k, v in payload.get("arl_rates", {}).items()
            } or dict(DEFAULT_ARL_RATES)

            solidarity = tuple(
                SolidarityBracket(
                    min_multiple=Decimal(str(b["min"])),
                    max_multiple=Decimal(str(b["max"])) if b.get("max") is not None else None,
                    rate=Decimal(str(b["rate"])),
                )
                for b in payload.get("solidarity_brackets", [])
            ) or DEFAULT_SOLIDARITY_BRACKETS

            withholding = tuple(
                WithholdingBracket(
                    min_uvt=Decimal(str(b["min"])),
                    max_uvt=Decimal(str(b["max"])) if b.get("max") is not None else None,
                    rate=Decimal(str(b["rate"])),
                    fixed_uvt=Decimal(str(b.get("fixed", "0"))),
                )
                for b in payload.get("withholding_brackets", [])
            ) or DEFAULT_WITHHOLDING_BRACKETS

            additional = payload.get("additional_solidarity", {})
            subsistence = payload.get("subsistence", {})

            return cls(
                year=year,
                minimum_wage=Decimal(str(payload["minimum_wage"])),
                transport_allowance=Decimal(str(payload["transport_allowance"])),
                uvt=Decimal(str(payload["uvt"])),
                contributions=contributions,
                provisions=provisions,
                arl_rates=arl_rates,
                solidarity_brackets=solidarity,
                withholding_brackets=withholding,
                additional_solidarity_threshold=Decimal(str(additional.get("threshold", "16"))),
                additional_solidarity_rate=Decimal(str(additional.get("rate", "0"))),
                subsistence_threshold=Decimal(str(subsistence.get("threshold", "20"))),
                subsistence_rate=Decimal(str(subsistence.get("rate", "0"))),
                version=version,
            )
        except (KeyError, TypeError, ArithmeticError) as e:
            raise ValidationError(f"Invalid configuration payload for {year}: {e}") from e


def _check_brackets(
    name: str, brackets: list[tuple[Decimal, Decimal | None, Decimal]]
) -> list[str]:
    """Brackets must be ordered, non-overlapping and only the last may be open-ended."""
    errors: list[str] = []
    previous_max: Decimal | None = None
    for i, (low, high, rate) in enumerate(brackets):
        if rate < 0:
            errors.append(f"{name} bracket {i} has a negative rate")
        if high is not None and high <= low:
            errors.append(f"{name} bracket {i} is empty or inverted")
        if high is None and i != len(brackets) - 1:
            errors.append(f"{name} bracket {i} is open-ended but not last")
        if i > 0 and previous_max is not None and low < previous_max:
            errors.append(f"{name} bracket {i} overlaps the previous bracket")
        previous_max = high
    return errors


def _statutory(year: int, minimum_wage: str, transport: str, uvt: str) -> YearlyConfiguration:
    return YearlyConfiguration(
        year=year,
        minimum_wage=Decimal(minimum_wage),
        transport_allowance=Decimal(transport),
        uvt=Decimal(uvt),
    )


DEFAULT_CONFIGURATIONS: dict[int, YearlyConfiguration] = {
    2024: _statutory(2024, "1300000", "162000", "47065"),
    2025: _statutory(2025, "1423500", "200000", "49799"),
    2026: _statutory(2026, "1750905", "249095", "52374"),
}


def default_configuration(year: int) -> YearlyConfiguration:
    """Hard-coded legal defaults for ``year``.

    Years without a hard-coded table reuse the latest known year not after
    ``year`` (or the earliest known year), re-labelled with ``year``.
    """
    if year in DEFAULT_CONFIGURATIONS:
        return DEFAULT_CONFIGURATIONS[year]

    earlier = [y for y in DEFAULT_CONFIGURATIONS if y < year]
    source_year = max(earlier) if earlier else min(DEFAULT_CONFIGURATIONS)
    logger.warning(
        "No legal defaults for %s; using %s parameters until a configuration is stored",
        year,
        source_year,
    )
    return DEFAULT_CONFIGURATIONS[source_year].with_year(year)


@dataclass
class _CacheEntry:
    config: YearlyConfiguration
    loaded_at: float


class ConfigurationCache:
    """In-memory cache of yearly configurations with a bounded TTL.

    Shared across requests. Fresh reads respect the TTL; stale reads return
    whatever is cached without blocking. Entries are dropped explicitly on
    write through ``invalidate``.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[int, _CacheEntry] = {}

    def get(self, year: int, allow_stale: bool = False) -> YearlyConfiguration | None:
        entry = self._entries.get(year)
        if entry is None:
            return None
        if allow_stale or self._is_fresh(entry):
            return entry.config
        return None

    def put(self, config: YearlyConfiguration) -> None:
        self._entries[config.year] = _CacheEntry(config, self._clock())

    async def get_or_load(
        self,
        year: int,
        loader: Callable[[int], Awaitable[YearlyConfiguration]],
    ) -> YearlyConfiguration:
        """Return a fresh cached entry, loading through ``loader`` otherwise."""
        cached = self.get(year)
        if cached is not None:
            return cached
        config = await loader(year)
        self.put(config)
        return config

    def is_fresh(self, year: int) -> bool:
        entry = self._entries.get(year)
        return entry is not None and self._is_fresh(entry)

    def invalidate(self, year: int) -> None:
        self._entries.pop(year, None)

    def clear(self) -> None:
        self._entries.clear()

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.loaded_at < self.ttl_seconds
