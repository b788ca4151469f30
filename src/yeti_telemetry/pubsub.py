"""In-process live-update fan-out (Record -> live subscribers).

Each subscriber gets its own queue for one entity kind (`Log`, `Span`,
`Metric`), e.g. to drive a server-sent-event stream for that table.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_kind: str
    id: str
    record: dict[str, Any]


class Notifier(Protocol):
    async def notify(self, entity_kind: str, id: str, record: dict[str, Any]) -> None:
        """Publish a record update to live subscribers (fire-and-forget)."""


class PubSub:
    """Fan-out bus for record updates, keyed by entity kind."""

    def __init__(self, *, max_pending: int = 0) -> None:
        """Create a bus; `max_pending` bounds each subscriber queue (0 = unbounded)."""
        self._subscribers: defaultdict[str, set[asyncio.Queue[Notification]]] = defaultdict(set)
        self._max_pending = max_pending
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Notifications skipped because a subscriber queue was full."""
        return self._dropped

    def subscribe(self, entity_kind: str) -> asyncio.Queue[Notification]:
        """Create a new subscriber queue for the given entity kind."""
        q: asyncio.Queue[Notification] = asyncio.Queue(maxsize=self._max_pending)
        self._subscribers[entity_kind].add(q)
        return q

    def unsubscribe(self, entity_kind: str, q: asyncio.Queue[Notification]) -> None:
        """Remove a subscriber queue (no further notifications will be delivered)."""
        self._subscribers[entity_kind].discard(q)

    def subscriber_count(self, entity_kind: str) -> int:
        return len(self._subscribers.get(entity_kind, ()))

    async def notify(self, entity_kind: str, id: str, record: dict[str, Any]) -> None:
        """Deliver to all current subscribers of the kind.

        A slow subscriber never stalls the pipeline: when its queue is full the
        notification is skipped for that subscriber only.
        """
        subscribers = self._subscribers.get(entity_kind)
        if not subscribers:
            return
        notification = Notification(entity_kind=entity_kind, id=id, record=record)
        for q in list(subscribers):
            try:
                q.put_nowait(notification)
            except asyncio.QueueFull:
                self._dropped += 1
