import asyncio

import pytest

from app.core.locks import KeyedLocks


@pytest.mark.asyncio
async def test_same_key_is_serialized_and_released():
    locks = KeyedLocks("ledger")
    order = []

    async def worker(name):
        async with locks.hold("user-1", "event-1"):
            order.append(f"{name} in")
            await asyncio.sleep(0.01)
            order.append(f"{name} out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a in", "a out", "b in", "b out"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_distinct_keys_do_not_block():
    locks = KeyedLocks("ledger")

    async with locks.hold("user-1", "event-1"):
        async with locks.hold("user-1", "event-2"):
            assert len(locks) == 2
            assert repr(locks) == "KeyedLocks('ledger', held=2)"

    assert repr(locks) == "KeyedLocks('ledger', held=0)"
