"""Tests for the per-company lock registry."""

import asyncio
import gc
from uuid import uuid4

import pytest

from nomina_engine.services.locks import CompanyLockRegistry

pytestmark = pytest.mark.asyncio


class TestCompanyLockRegistry:
    async def test_same_lock_while_held(self):
        registry = CompanyLockRegistry()
        company_id = uuid4()

        async with registry.hold(company_id):
            assert registry.is_locked(company_id)
            assert registry.get(company_id) is registry.get(company_id)

        assert not registry.is_locked(company_id)

    async def test_transitions_of_one_company_are_serialized(self):
        registry = CompanyLockRegistry()
        company_id = uuid4()
        order: list[str] = []

        async def transition(name: str) -> None:
            async with registry.hold(company_id):
                order.append(f"{name}:start")
                await asyncio.sleep(0)
                order.append(f"{name}:end")

        await asyncio.gather(transition("a"), transition("b"))

        assert order == ["a:start", "a:end", "b:start", "b:end"]

    async def test_released_locks_are_dropped(self):
        registry = CompanyLockRegistry()
        for _ in range(50):
            async with registry.hold(uuid4()):
                pass
        gc.collect()

        assert registry.tracked_count() == 0
