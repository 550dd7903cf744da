"""Tests for the process-wide mutation gate."""

import asyncio

import pytest

from ksmbot.gate import SerializationGate, get_gate


async def test_acquire_and_release():
    gate = SerializationGate()
    assert not gate.locked()

    await gate.acquire()
    assert gate.locked()

    gate.release()
    assert not gate.locked()


async def test_only_one_critical_section_in_flight():
    gate = SerializationGate()
    in_flight = 0
    peak = 0

    async def mutation():
        nonlocal in_flight, peak
        async with gate:
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

    await asyncio.gather(*(mutation() for _ in range(10)))
    assert peak == 1
    assert not gate.locked()


async def test_waiter_proceeds_after_release():
    gate = SerializationGate()
    order = []

    async def waiter():
        async with gate:
            order.append("waiter")

    await gate.acquire()
    task = asyncio.create_task(waiter())
    await asyncio.sleep(0.01)
    assert order == []

    order.append("holder")
    gate.release()
    await task
    assert order == ["holder", "waiter"]


async def test_owner_can_reenter():
    gate = SerializationGate()

    async with gate:
        async with gate:
            assert gate.locked()
        # Inner exit must not open the gate for others
        assert gate.locked()

    assert not gate.locked()


async def test_child_task_waits_for_parent_hold():
    gate = SerializationGate()
    entered = asyncio.Event()

    async def child():
        async with gate:
            entered.set()

    async with gate:
        task = asyncio.create_task(child())
        # Re-entry belongs to the holding task only
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.shield(task), timeout=0.05)
        assert not entered.is_set()

    await asyncio.wait_for(task, timeout=2)
    assert entered.is_set()
    assert not gate.locked()


async def test_release_by_non_owner_raises():
    gate = SerializationGate()
    await gate.acquire()

    async def intruder():
        gate.release()

    with pytest.raises(RuntimeError):
        await asyncio.create_task(intruder())

    gate.release()
    assert not gate.locked()


async def test_release_without_acquire_raises():
    with pytest.raises(RuntimeError):
        SerializationGate().release()


async def test_gate_released_when_section_raises():
    gate = SerializationGate()

    with pytest.raises(ValueError):
        async with gate:
            raise ValueError("boom")

    assert not gate.locked()


def test_get_gate_returns_singleton():
    assert get_gate() is get_gate()
