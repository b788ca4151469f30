"""Dispatch loop: the single consumer of the inbound event channel.

For every event, in arrival order:

1. normalize it into a record (unknown kinds are skipped),
2. persist it to the kind's store (best-effort),
3. publish a live-update notification (best-effort),
4. hand it to every registered output, in registration order.

Store and notifier calls are awaited one after the other, so a slow store
backpressures the whole pipeline; ordering wins over throughput.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from .channel import EventChannel
from .ids import generate_id
from .models import ENTITY_KINDS, RawEvent, TelemetryRecord
from .normalizer import IdFactory, normalize
from .outputs.base import TelemetryOutput
from .pubsub import Notifier
from .storage import KvStore, to_storage_bytes

logger = structlog.get_logger(__name__)

DEFAULT_STATUS_INTERVAL = 1000


@dataclass
class WriterSummary:
    """Loop-local counters, reported periodically and returned at shutdown."""

    logs: int = 0
    spans: int = 0
    metrics: int = 0
    ignored: int = 0
    persist_failures: int = 0
    notify_failures: int = 0
    output_failures: int = 0

    @property
    def total(self) -> int:
        """Events of a recognized kind (unknown kinds are not counted here)."""
        return self.logs + self.spans + self.metrics

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "logs": self.logs,
            "spans": self.spans,
            "metrics": self.metrics,
            "ignored": self.ignored,
            "persist_failures": self.persist_failures,
            "notify_failures": self.notify_failures,
            "output_failures": self.output_failures,
        }


StatusCallback = Callable[[WriterSummary], None]


class TelemetryWriter:
    """Normalizes, persists, publishes and fans out telemetry events.

    The log store is required; span and metric stores are optional. When a
    kind's store is missing its events are counted and otherwise discarded
    (no notification, no outputs).
    """

    def __init__(
        self,
        *,
        log_store: KvStore,
        span_store: KvStore | None = None,
        metric_store: KvStore | None = None,
        notifier: Notifier | None = None,
        outputs: Sequence[TelemetryOutput] = (),
        status_interval: int = DEFAULT_STATUS_INTERVAL,
        on_status: StatusCallback | None = None,
        id_factory: IdFactory = generate_id,
    ) -> None:
        if status_interval <= 0:
            raise ValueError(f"status_interval must be > 0. Got: {status_interval}")
        self._stores: dict[str, KvStore | None] = {
            "log": log_store,
            "span": span_store,
            "metric": metric_store,
        }
        self._notifier = notifier
        self._outputs: list[TelemetryOutput] = list(outputs)
        self._status_interval = status_interval
        self._on_status = on_status
        self._id_factory = id_factory
        self._summary = WriterSummary()
        self._running = False

    def add_output(self, output: TelemetryOutput) -> TelemetryWriter:
        """Register an output; outputs receive records in registration order."""
        self._outputs.append(output)
        return self

    @property
    def outputs(self) -> Sequence[TelemetryOutput]:
        return tuple(self._outputs)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def summary(self) -> WriterSummary:
        return self._summary

    async def run(self, events: EventChannel | AsyncIterable[Any]) -> WriterSummary:
        """Consume events until the source closes, then close outputs and return counts."""
        self._running = True
        logger.info("telemetry writer started", outputs=len(self._outputs))
        try:
            async for event in events:
                await self.process(event)
        finally:
            self._close_outputs()
            self._running = False
            logger.info("telemetry writer shutting down", **self._summary.as_dict())
        return self._summary

    def start(self, events: EventChannel | AsyncIterable[Any]) -> asyncio.Task[WriterSummary]:
        """Run the loop in a background task on the current event loop."""
        return asyncio.create_task(self.run(events), name="telemetry-writer")

    async def process(self, event: Any) -> TelemetryRecord | None:
        """Handle one event; never raises for a bad event."""
        raw = RawEvent.from_value(event)
        kind = raw.kind
        if kind not in ENTITY_KINDS:
            self._summary.ignored += 1
            return None

        self._count(kind)
        record: TelemetryRecord | None = None
        store = self._stores[kind]
        if store is not None:
            try:
                record = normalize(raw, id_factory=self._id_factory)
            except Exception as exc:  # noqa: BLE001 - one bad event must not stop the loop
                logger.warning("failed to normalize event", kind=kind, error=str(exc))
            if record is not None:
                await self._dispatch(kind, store, record)

        if self._summary.total % self._status_interval == 0:
            self._report_status()
        return record

    def _count(self, kind: str) -> None:
        if kind == "log":
            self._summary.logs += 1
        elif kind == "span":
            self._summary.spans += 1
        else:
            self._summary.metrics += 1

    async def _dispatch(self, kind: str, store: KvStore, record: TelemetryRecord) -> None:
        data = record.to_dict()

        try:
            await store.put(record.id.encode("utf-8"), to_storage_bytes(data))
        except Exception as exc:  # noqa: BLE001 - persistence is best-effort
            self._summary.persist_failures += 1
            logger.warning("failed to persist record", kind=kind, id=record.id, error=str(exc))

        if self._notifier is not None:
            try:
                await self._notifier.notify(ENTITY_KINDS[kind], record.id, dict(data))
            except Exception as exc:  # noqa: BLE001 - notifications are best-effort
                self._summary.notify_failures += 1
                logger.warning("failed to publish notification", kind=kind, id=record.id, error=str(exc))

        for output in self._outputs:
            # Outputs may implement only the kinds they care about.
            write = getattr(output, f"write_{kind}", None)
            if write is None:
                continue
            try:
                write(dict(data))
            except Exception as exc:  # noqa: BLE001 - outputs must not stop the loop
                self._summary.output_failures += 1
                logger.warning("output failed", output=type(output).__name__, kind=kind, error=str(exc))

    def _report_status(self) -> None:
        logger.info("telemetry writer progress", **self._summary.as_dict())
        if self._on_status is not None:
            try:
                self._on_status(self._summary)
            except Exception as exc:  # noqa: BLE001 - status reporting is observability only
                logger.warning("status callback failed", error=str(exc))

    def _close_outputs(self) -> None:
        for output in self._outputs:
            try:
                output.close()
            except Exception as exc:  # noqa: BLE001 - keep closing the rest
                logger.warning("failed to close output", output=type(output).__name__, error=str(exc))
