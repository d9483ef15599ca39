from __future__ import annotations

import asyncio

import pytest

from gcecloud.locking import SharedResourceLock

pytestmark = [pytest.mark.timeout(30)]


class SimulatedFirewall:
    """Shared vendor collection with slow reads and writes, logging each step."""

    def __init__(self) -> None:
        self.rules: set[str] = set()
        self.log: list[tuple[str, str]] = []

    async def read(self, who: str) -> set[str]:
        self.log.append((who, "read"))
        await asyncio.sleep(0.01)
        return set(self.rules)

    async def write(self, who: str, rules: set[str]) -> None:
        await asyncio.sleep(0.01)
        self.rules = rules
        self.log.append((who, "write"))


async def add_rule(lock: SharedResourceLock, fw: SimulatedFirewall, who: str, rule: str) -> None:
    async with lock.hold(f"add {rule}"):
        current = await fw.read(who)
        await asyncio.sleep(0)
        await fw.write(who, current | {rule})


class TestSharedResourceLock:
    @pytest.mark.asyncio
    async def test_sequences_never_interleave(self):
        lock = SharedResourceLock()
        fw = SimulatedFirewall()

        await asyncio.gather(*(add_rule(lock, fw, f"seq-{i}", f"rule-{i}") for i in range(10)))

        # each read is immediately followed by the same sequence's write
        for i in range(0, len(fw.log), 2):
            (reader, step_a), (writer, step_b) = fw.log[i], fw.log[i + 1]
            assert (step_a, step_b) == ("read", "write")
            assert reader == writer
        # no lost update
        assert fw.rules == {f"rule-{i}" for i in range(10)}

    @pytest.mark.asyncio
    async def test_without_lock_updates_are_lost(self):
        fw = SimulatedFirewall()

        async def unguarded(who: str, rule: str) -> None:
            current = await fw.read(who)
            await fw.write(who, current | {rule})

        await asyncio.gather(unguarded("a", "rule-a"), unguarded("b", "rule-b"))
        assert fw.rules != {"rule-a", "rule-b"}

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        lock = SharedResourceLock()

        with pytest.raises(ValueError):
            async with lock.hold("failing"):
                raise ValueError("vendor rejected the write")

        assert not lock.locked()
        assert lock.holder == ""
        async with lock.hold("next"):
            assert lock.holder == "next"

    @pytest.mark.asyncio
    async def test_released_on_cancellation(self):
        lock = SharedResourceLock()
        entered = asyncio.Event()

        async def holder() -> None:
            async with lock.hold("slow"):
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(holder())
        await entered.wait()
        assert lock.locked()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_nested_acquisition_raises(self):
        lock = SharedResourceLock()

        async with lock.hold("outer"):
            with pytest.raises(RuntimeError, match="already held by this task"):
                async with lock.hold("inner"):
                    pass
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_waiter_proceeds_after_release(self):
        lock = SharedResourceLock()
        order: list[str] = []

        async def first() -> None:
            async with lock.hold("first"):
                order.append("first-in")
                await asyncio.sleep(0.02)
                order.append("first-out")

        async def second() -> None:
            await asyncio.sleep(0.005)
            async with lock.hold("second"):
                order.append("second-in")

        await asyncio.gather(first(), second())
        assert order == ["first-in", "first-out", "second-in"]
