"""Tests for the keyed lock registry."""

import asyncio
from uuid import uuid4

import pytest

from src.core.context import get_resource_key
from src.core.locks import KeyedLock, format_key


@pytest.fixture
def locks() -> KeyedLock:
    return KeyedLock()


class TestKeyedLock:
    """KeyedLock.hold."""

    @pytest.mark.asyncio
    async def test_same_key_runs_one_at_a_time(self, locks):
        learner, part = uuid4(), uuid4()
        active = 0
        peak = 0

        async def work():
            nonlocal active, peak
            async with locks.hold("part", learner, part):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(work() for _ in range(5)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_other_keys_run_concurrently(self, locks):
        learner = uuid4()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("part", learner, "a"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await inside.wait()

        async with locks.hold("part", learner, "b"):
            assert locks.locked("part", learner, "a")

        release.set()
        await task

    @pytest.mark.asyncio
    async def test_waiters_run_in_arrival_order(self, locks):
        order: list[int] = []
        release = asyncio.Event()

        async def first():
            async with locks.hold("quiz", "learner", "q"):
                await release.wait()
                order.append(0)

        async def waiter(n: int):
            async with locks.hold("quiz", "learner", "q"):
                order.append(n)

        tasks = [asyncio.create_task(first())]
        await asyncio.sleep(0)
        for n in range(1, 4):
            tasks.append(asyncio.create_task(waiter(n)))
            await asyncio.sleep(0)

        release.set()
        await asyncio.gather(*tasks)

        assert order == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_entries_dropped_after_use(self, locks):
        async with locks.hold("part", "learner", "p"):
            assert len(locks) == 1
            assert locks.locked("part", "learner", "p")

        assert len(locks) == 0
        assert not locks.locked("part", "learner", "p")

    @pytest.mark.asyncio
    async def test_entry_dropped_when_block_raises(self, locks):
        with pytest.raises(RuntimeError):
            async with locks.hold("part", "learner", "p"):
                raise RuntimeError("boom")

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_resource_key_in_context(self, locks):
        learner, part = uuid4(), uuid4()

        async with locks.hold("part", learner, part):
            assert get_resource_key() == f"part:{learner}:{part}"

        assert get_resource_key() is None


def test_format_key():
    assert format_key(("course", "l1", "c1")) == "course:l1:c1"
