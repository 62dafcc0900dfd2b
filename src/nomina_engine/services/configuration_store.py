"""Versioned yearly configuration and company policy store."""

from __future__ import annotations

import logging
from dataclasses import replace
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.configuration import (
    DEFAULT_CONFIGURATIONS,
    ConfigurationCache,
    YearlyConfiguration,
    default_configuration,
)
from nomina_engine.calculators.types import IbcMode, IncapacityPolicy, PolicySnapshot
from nomina_engine.config import get_settings
from nomina_engine.errors import ValidationError
from nomina_engine.repositories import ConfigurationRepository, SqlConfigurationRepository

logger = logging.getLogger(__name__)


class ConfigurationStore:
    """Read and write yearly legal parameters.

    Two read paths:
    - get_configuration: consistent, reads the backing store (and lazily
      persists the hard-coded default for a year never stored before)
    - get_configuration_sync: never blocks, returns the cached copy even if
      its TTL expired, or the hard-coded default when nothing is cached

    ``cached_configuration`` sits between the two: fresh cache hit or a
    consistent load that refreshes the cache.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: ConfigurationCache | None = None,
        repository: ConfigurationRepository | None = None,
    ):
        self.session = session
        self.repository = repository or SqlConfigurationRepository(session)
        self.cache = cache or ConfigurationCache(get_settings().config_cache_ttl_seconds)

    async def get_configuration(self, year: int) -> YearlyConfiguration:
        """Consistent read of the current version for ``year``."""
        record = await self.repository.get_latest(year)
        if record is not None:
            config = YearlyConfiguration.from_payload(record.year, record.payload, record.version)
        else:
            config = default_configuration(year)
            record = await self.repository.insert_version(
                year, config.to_payload(), created_by="system"
            )
            config = replace(config, version=record.version)
            logger.info("Persisted default legal configuration for %s", year)

        self.cache.put(config)
        return config

    def get_configuration_sync(self, year: int) -> YearlyConfiguration:
        """Immediate, possibly stale read."""
        cached = self.cache.get(year, allow_stale=True)
        if cached is not None:
            return cached
        return default_configuration(year)

    async def cached_configuration(self, year: int) -> YearlyConfiguration:
        return await self.cache.get_or_load(year, self.get_configuration)

    async def get_available_years(self) -> list[int]:
        stored = await self.repository.list_years()
        return sorted(set(stored) | set(DEFAULT_CONFIGURATIONS))

    async def set_configuration(
        self,
        year: int,
        config: YearlyConfiguration,
        actor: str | None = None,
    ) -> YearlyConfiguration:
        """Store ``config`` as the next version for ``year``.

        Existing versions are never modified.
        """
        if config.year != year:
            raise ValidationError(
                f"Configuration is for year {config.year}, not {year}", year=year
            )
        errors = config.validate()
        if errors:
            raise ValidationError(errors, year=year)

        record = await self.repository.insert_version(year, config.to_payload(), created_by=actor)
        self.cache.invalidate(year)
        logger.info("Stored configuration %s version %s", year, record.version)
        return replace(config, version=record.version)

    async def get_policy(self, company_id: UUID) -> PolicySnapshot:
        policy = await self.repository.get_policy(company_id)
        if policy is None:
            return PolicySnapshot(company_id=company_id)
        return PolicySnapshot(
            company_id=company_id,
            ibc_mode=IbcMode(policy.ibc_mode),
            incapacity_policy=IncapacityPolicy(policy.incapacity_policy),
        )

    async def set_policy(
        self,
        company_id: UUID,
        ibc_mode: IbcMode | str | None = None,
        incapacity_policy: IncapacityPolicy | str | None = None,
    ) -> PolicySnapshot:
        current = await self.get_policy(company_id)
        try:
            new_ibc_mode = IbcMode(ibc_mode) if ibc_mode is not None else current.ibc_mode
            new_incapacity = (
                IncapacityPolicy(incapacity_policy)
                if incapacity_policy is not None
                else current.incapacity_policy
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        await self.repository.save_policy(company_id, new_ibc_mode.value, new_incapacity.value)
        return PolicySnapshot(
            company_id=company_id,
            ibc_mode=new_ibc_mode,
            incapacity_policy=new_incapacity,
        )
