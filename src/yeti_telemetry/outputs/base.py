"""Output capability: destinations for records beyond the durable store."""

from __future__ import annotations

from typing import Any, Protocol

RecordDict = dict[str, Any]


class TelemetryOutput(Protocol):
    """Receives normalized records (as dicts) from the dispatch loop.

    Writes are fire-and-forget: an output handles and logs its own failures.
    Outputs are only ever touched by the dispatch loop, so they need no locking.
    """

    def write_log(self, record: RecordDict) -> None: ...

    def write_span(self, record: RecordDict) -> None: ...

    def write_metric(self, record: RecordDict) -> None: ...

    def close(self) -> None: ...


class BaseOutput:
    """No-op defaults for the record kinds an output does not handle."""

    def write_log(self, record: RecordDict) -> None:
        return None

    def write_span(self, record: RecordDict) -> None:
        return None

    def write_metric(self, record: RecordDict) -> None:
        return None

    def close(self) -> None:
        return None
