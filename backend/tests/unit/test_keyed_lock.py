"""Tests for KeyedLock — per-key asyncio locks."""

import asyncio

from ridepool.core.locks import KeyedLock


class TestKeyedLock:
    async def test_same_key_is_serialized(self) -> None:
        locks = KeyedLock()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("ride-1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a-in", "a-out", "b-in", "b-out"]

    async def test_different_keys_interleave(self) -> None:
        locks = KeyedLock()
        events: list[str] = []

        async def worker(key: str) -> None:
            async with locks.hold(key):
                events.append(f"{key}-in")
                await asyncio.sleep(0)
                events.append(f"{key}-out")

        await asyncio.gather(worker("x"), worker("y"))

        assert events[:2] == ["x-in", "y-in"]

    async def test_entries_dropped_when_idle(self) -> None:
        locks = KeyedLock()
        async with locks.hold("k"):
            assert locks.is_locked("k")
            assert len(locks) == 1
        assert not locks.is_locked("k")
        assert len(locks) == 0

    async def test_entry_released_after_exception(self) -> None:
        locks = KeyedLock()
        try:
            async with locks.hold("k"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert len(locks) == 0
        async with locks.hold("k"):
            assert locks.is_locked("k")
