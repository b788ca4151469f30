from __future__ import annotations

import asyncio

import pytest

from yeti_telemetry.channel import ChannelClosed, EventChannel


@pytest.mark.asyncio
async def test_close_drains_buffered_events_before_iteration_ends() -> None:
    channel = EventChannel(maxsize=10)
    for i in range(3):
        await channel.send({"kind": "log", "n": i})
    channel.close()

    received = [event["n"] async for event in channel]

    assert received == [0, 1, 2]


@pytest.mark.asyncio
async def test_idle_consumer_wakes_up_on_close() -> None:
    channel = EventChannel(maxsize=2)

    async def _consume() -> list[object]:
        return [event async for event in channel]

    consumer = asyncio.create_task(_consume())
    await asyncio.sleep(0)
    channel.close()

    assert await asyncio.wait_for(consumer, timeout=1.0) == []


@pytest.mark.asyncio
async def test_send_suspends_while_full_until_consumer_catches_up() -> None:
    channel = EventChannel(maxsize=1)
    await channel.send("a")

    blocked = asyncio.create_task(channel.send("b"))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    assert await channel.recv() == "a"
    assert await asyncio.wait_for(blocked, timeout=1.0) is True
    assert await channel.recv() == "b"
    assert channel.dropped == 0


@pytest.mark.asyncio
async def test_close_waits_for_producer_suspended_on_full_channel() -> None:
    channel = EventChannel(maxsize=1)
    await channel.send("a")
    pending = asyncio.create_task(channel.send("b"))
    await asyncio.sleep(0.01)
    assert not pending.done()

    channel.close()
    received = [event async for event in channel]

    assert received == ["a", "b"]
    assert await asyncio.wait_for(pending, timeout=1.0) is True
    assert channel.dropped == 0


@pytest.mark.asyncio
async def test_close_after_consumer_freed_a_slot_still_delivers_woken_producer() -> None:
    channel = EventChannel(maxsize=1)
    await channel.send("a")
    pending = asyncio.create_task(channel.send("b"))
    await asyncio.sleep(0.01)

    assert await channel.recv() == "a"
    channel.close()
    received = await asyncio.wait_for(_drain(channel), timeout=1.0)

    assert received == ["b"]
    assert await pending is True


async def _drain(channel: EventChannel) -> list[object]:
    return [event async for event in channel]


@pytest.mark.asyncio
async def test_drop_when_full_counts_dropped_events() -> None:
    channel = EventChannel(maxsize=2, drop_when_full=True)

    results = [await channel.send(i) for i in range(5)]

    assert results == [True, True, False, False, False]
    assert channel.dropped == 3
    assert channel.send_nowait(99) is False
    assert channel.dropped == 4


@pytest.mark.asyncio
async def test_send_after_close_raises_and_close_is_idempotent() -> None:
    channel = EventChannel(maxsize=2)
    channel.close()
    channel.close()

    with pytest.raises(ChannelClosed):
        await channel.send("late")
    with pytest.raises(ChannelClosed):
        channel.send_nowait("late")
    with pytest.raises(ChannelClosed):
        await channel.recv()


def test_maxsize_must_be_positive():
    with pytest.raises(ValueError):
        EventChannel(maxsize=0)
