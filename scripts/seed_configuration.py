"""Seed script for the yearly legal parameters.

Run with:
    python scripts/seed_configuration.py

Creates the tables if needed and stores version 1 of every built-in year
(minimum wage, transport allowance, UVT, contribution rates) that is not
in the database yet.
"""

from __future__ import annotations

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.configuration import DEFAULT_CONFIGURATIONS
from nomina_engine.config import configure_logging
from nomina_engine.database import create_all, get_session
from nomina_engine.repositories import SqlConfigurationRepository
from nomina_engine.services.configuration_store import ConfigurationStore


async def seed_years(session: AsyncSession) -> None:
    """Persist the default configuration of each known year."""
    repository = SqlConfigurationRepository(session)
    store = ConfigurationStore(session, repository=repository)

    for year in sorted(DEFAULT_CONFIGURATIONS):
        if await repository.get_latest(year) is not None:
            print(f"{year} already configured, skipping...")
            continue
        config = await store.get_configuration(year)
        print(
            f"Stored {year}: minimum wage {config.minimum_wage}, "
            f"transport {config.transport_allowance}, UVT {config.uvt}"
        )


async def main():
    """Run seed script."""
    configure_logging()
    print("Seeding yearly configuration...")

    await create_all()
    async with get_session() as session:
        await seed_years(session)

    print("\nDone! Configuration seeded successfully.")


if __name__ == "__main__":
    asyncio.run(main())
