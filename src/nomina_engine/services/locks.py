"""Per-company serialization of period state transitions."""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID


class CompanyLockRegistry:
    """One asyncio lock per company, created on first use.

    Locks are held weakly: once no caller holds or awaits a company's lock
    it is dropped, so the registry only tracks companies in flight.

    Covers concurrent requests inside one process; the optimistic version
    check on the period row covers writers in other processes.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def tracked_count(self) -> int:
        return len(self._locks)

    def get(self, company_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(company_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[company_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, company_id: UUID) -> AsyncIterator[None]:
        async with self.get(company_id):
            yield

    def is_locked(self, company_id: UUID) -> bool:
        lock = self._locks.get(company_id)
        return lock is not None and lock.locked()


_registry = CompanyLockRegistry()


def get_lock_registry() -> CompanyLockRegistry:
    """Process-wide registry shared by every lifecycle manager."""
    return _registry
