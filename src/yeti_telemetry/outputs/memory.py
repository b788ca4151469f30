"""In-memory output for tests and local debugging."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from .base import BaseOutput, RecordDict


class InMemoryOutput(BaseOutput):
    """Collects `(kind, record)` pairs in arrival order."""

    def __init__(self) -> None:
        """Create an empty in-memory output."""
        self._lock = threading.Lock()
        self._items: list[tuple[str, RecordDict]] = []
        self.closed = False

    def _append(self, kind: str, record: RecordDict) -> None:
        with self._lock:
            self._items.append((kind, record))

    def write_log(self, record: RecordDict) -> None:
        self._append("log", record)

    def write_span(self, record: RecordDict) -> None:
        self._append("span", record)

    def write_metric(self, record: RecordDict) -> None:
        self._append("metric", record)

    def close(self) -> None:
        self.closed = True

    def snapshot(self) -> Sequence[tuple[str, RecordDict]]:
        """Return a point-in-time copy of all received records."""
        with self._lock:
            return list(self._items)
