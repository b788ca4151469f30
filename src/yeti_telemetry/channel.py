"""Bounded inbound channel between the host and the dispatch loop.

Producers either suspend when the channel is full (`send`) or drop the event
(`send_nowait`, or `send` when the channel was built with `drop_when_full`).
After `close()` the consumer still receives every buffered event, including
those from producers that were already suspended in `send`; its iteration
ends once the buffer is drained and no such producer remains.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

_CLOSED = object()


class ChannelClosed(Exception):
    """Raised when sending into, or receiving from, a closed and drained channel."""


class EventChannel:
    """Single-consumer bounded queue of raw events."""

    def __init__(self, *, maxsize: int = 10000, drop_when_full: bool = False) -> None:
        if maxsize <= 0:
            raise ValueError(f"maxsize must be > 0. Got: {maxsize}")
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._drop_when_full = drop_when_full
        self._closed = False
        self._dropped = 0
        # Producers suspended in `send` on a full queue; their events still count as buffered.
        self._pending_sends = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped(self) -> int:
        """Number of events dropped because the channel was full."""
        return self._dropped

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, event: Any) -> bool:
        """Enqueue an event, suspending while full unless configured to drop.

        Returns False when the event was dropped.
        """
        if self._closed:
            raise ChannelClosed("channel is closed")
        if self._drop_when_full:
            return self.send_nowait(event)
        self._pending_sends += 1
        try:
            await self._queue.put(event)
        finally:
            self._pending_sends -= 1
            # A producer cancelled after close may have been the last thing the consumer waited on.
            if self._closed and self._pending_sends == 0 and self._queue.empty():
                self._queue.put_nowait(_CLOSED)
        return True

    def send_nowait(self, event: Any) -> bool:
        """Enqueue without waiting; returns False (and counts a drop) when full."""
        if self._closed:
            raise ChannelClosed("channel is closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            return False
        return True

    def close(self) -> None:
        """Close the channel for producers. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        # Only an idle consumer needs waking; a busy one sees the flag once drained.
        # With producers still suspended, the last of them wakes it instead.
        if self._queue.empty() and self._pending_sends == 0:
            self._queue.put_nowait(_CLOSED)

    async def recv(self) -> Any:
        """Return the next event, or raise ChannelClosed once closed and drained."""
        if self._closed and self._queue.empty() and self._pending_sends == 0:
            raise ChannelClosed("channel is closed")
        item = await self._queue.get()
        if item is _CLOSED:
            raise ChannelClosed("channel is closed")
        return item

    async def __aiter__(self) -> AsyncIterator[Any]:
        while True:
            try:
                event = await self.recv()
            except ChannelClosed:
                return
            yield event
