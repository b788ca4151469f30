"""Demo entrypoint wiring the telemetry pipeline end to end.

This module contains a small, local "host" that:

- Loads configuration from the environment (and `yeti-config.yaml` under the root dir).
- Creates `log`/`span`/`metric` tables (DuckDB when `YETI_TELEMETRY_DB_PATH` is set,
  in-memory otherwise) sharing one live-update bus.
- Registers the telemetry extension and runs its writer against a channel.
- Sends a handful of sample events, closes the channel and prints the counts.

It is a manual integration harness, not production host logic.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import duckdb
import structlog

from .channel import EventChannel
from .config import Config, load_config
from .extension import AppInfo, HostRegistry, Table, TelemetryExtension, register_extension
from .logging_setup import configure_logging
from .pubsub import PubSub
from .storage import DuckDBKvStore, InMemoryKvStore, KvStore
from .writer import TelemetryWriter

logger = structlog.get_logger(__name__)


@dataclass
class LocalHost:
    """Minimal host context handed to extensions."""

    root_dir: Path
    tables: dict[str, Table] = field(default_factory=dict)
    apps: list[AppInfo] = field(default_factory=list)
    subscriber: TelemetryWriter | None = None

    def table(self, name: str) -> Table | None:
        return self.tables.get(name)

    def set_event_subscriber(self, writer: TelemetryWriter) -> None:
        self.subscriber = writer

    def app_registry(self) -> list[AppInfo]:
        return list(self.apps)


def _build_tables(cfg: Config, pubsub: PubSub) -> tuple[dict[str, Table], Callable[[], None]]:
    """Create the three host tables; returns them with a function that closes their storage."""
    names = ("log", "span", "metric")
    stores: dict[str, KvStore]
    if cfg.db_path is not None:
        conn = duckdb.connect(str(cfg.db_path))
        stores = {name: DuckDBKvStore(table=name, connection=conn) for name in names}
        close = conn.close
    else:
        stores = {name: InMemoryKvStore() for name in names}

        def close() -> None:
            for store in stores.values():
                store.close()

    tables = {name: Table(name=name, storage=store, pubsub=pubsub) for name, store in stores.items()}
    return tables, close


def _sample_events() -> list[dict[str, object]]:
    now_ms = time.time() * 1000
    return [
        {"kind": "log", "level": "INFO", "target": "demo", "message": "telemetry demo started", "timestamp": now_ms},
        {"kind": "log", "level": "WARN", "target": "demo", "message": "disk low", "timestamp": now_ms + 1},
        {
            "kind": "span",
            "name": "GET /health",
            "target": "http.request",
            "startTime": now_ms,
            "endTime": now_ms + 12,
            "fields": {"http.method": "GET", "http.route": "/health", "http.status_code": "200"},
        },
        {"kind": "metric", "name": "queue.depth", "value": 3, "attributes": {"queue": "demo"}, "timestamp": now_ms},
        {"kind": "heartbeat"},
    ]


async def run_demo() -> None:
    """Run the pipeline over a few sample events and log the final summary."""
    cfg = load_config()
    configure_logging(json_output=cfg.logging.json_output, level=cfg.logging.level)

    pubsub = PubSub()
    tables, close_tables = _build_tables(cfg, pubsub)
    host = LocalHost(
        root_dir=cfg.root_dir,
        tables=tables,
        apps=[AppInfo(id="yeti-telemetry", name="telemetry", is_extension=True)],
    )

    registry = HostRegistry()
    extension = TelemetryExtension(writer_config=cfg.writer)
    register_extension(registry, extension)
    extension.initialize()
    extension.on_ready(host)

    writer = host.subscriber
    if writer is None:
        return

    channel = EventChannel(maxsize=cfg.writer.queue_size, drop_when_full=cfg.writer.drop_when_full)
    live_logs = pubsub.subscribe("Log")
    task = writer.start(channel)
    try:
        for event in _sample_events():
            await channel.send(event)
        channel.close()
        summary = await task
    finally:
        close_tables()

    logger.info(
        "demo finished",
        live_log_updates=live_logs.qsize(),
        dropped=channel.dropped,
        status=extension.status(),
        **summary.as_dict(),
    )


def main() -> None:
    """CLI entrypoint for `python -m yeti_telemetry.main` / the `yeti-telemetry-demo` script."""
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
