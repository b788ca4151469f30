"""Host integration: the telemetry extension and its registration.

A host bootstrap calls `register_extension(registry, TelemetryExtension())`,
then `initialize()` and, once its tables exist, `on_ready(ctx)`. `on_ready`
wires a `TelemetryWriter` with the `log`/`span`/`metric` tables, a file output
under `<root>/logs` and, when configured, the OTLP output, and hands the
writer to the host as its event subscriber.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog

from .config import WriterConfig
from .outputs.file import FileOutput
from .outputs.otlp import OtlpOutput
from .pubsub import PubSub
from .storage import KvStore
from .writer import TelemetryWriter

logger = structlog.get_logger(__name__)


@dataclass
class Table:
    """A host table as seen by the extension: its store and optional live-update bus."""

    name: str
    storage: KvStore
    pubsub: PubSub | None = None


@dataclass(frozen=True)
class AppInfo:
    id: str
    name: str
    is_extension: bool = False


class ExtensionContext(Protocol):
    @property
    def root_dir(self) -> Path: ...

    def table(self, name: str) -> Table | None: ...

    def set_event_subscriber(self, writer: TelemetryWriter) -> None: ...

    def app_registry(self) -> list[AppInfo]: ...


class Extension(Protocol):
    @property
    def name(self) -> str: ...

    def initialize(self) -> None: ...

    def on_ready(self, ctx: ExtensionContext) -> None: ...


@dataclass
class HostRegistry:
    """Extensions registered by the host bootstrap, keyed by name."""

    extensions: dict[str, Extension] = field(default_factory=dict)

    def get(self, name: str) -> Extension | None:
        return self.extensions.get(name)


def register_extension(registry: HostRegistry, extension: Extension) -> None:
    """Register an extension; names must be unique."""
    if extension.name in registry.extensions:
        raise ValueError(f"Extension already registered: {extension.name!r}")
    registry.extensions[extension.name] = extension
    logger.debug("extension registered", extension=extension.name)


class TelemetryExtension:
    """Sets up the telemetry writer once the host's tables are available."""

    def __init__(self, *, writer_config: WriterConfig | None = None) -> None:
        self._writer_config = writer_config or WriterConfig()
        self._writer: TelemetryWriter | None = None
        self._ctx: ExtensionContext | None = None

    @property
    def name(self) -> str:
        return "telemetry"

    @property
    def writer(self) -> TelemetryWriter | None:
        return self._writer

    def initialize(self) -> None:
        logger.info("telemetry extension initialized")

    def on_ready(self, ctx: ExtensionContext) -> None:
        """Build the writer from the host tables; without a `log` table nothing is wired."""
        self._ctx = ctx
        log_table = ctx.table("log")
        if log_table is None:
            logger.warning("log table not found, no event subscriber")
            return

        span_table = ctx.table("span")
        metric_table = ctx.table("metric")
        writer = TelemetryWriter(
            log_store=log_table.storage,
            span_store=span_table.storage if span_table is not None else None,
            metric_store=metric_table.storage if metric_table is not None else None,
            notifier=log_table.pubsub,
            status_interval=self._writer_config.status_interval,
        )

        writer.add_output(
            FileOutput(
                Path(ctx.root_dir) / "logs",
                max_file_size=self._writer_config.max_file_size,
                retention_days=self._writer_config.retention_days,
            )
        )

        otlp = OtlpOutput.from_config(ctx.root_dir)
        if otlp is not None:
            writer.add_output(otlp)
            logger.info("OTLP output configured")
        else:
            logger.info("OTLP disabled (no otlpEndpoint configured)")

        ctx.set_event_subscriber(writer)
        self._writer = writer
        logger.info("event subscriber configured")

    def status(self) -> dict[str, Any]:
        """Extension status plus the host's app registry."""
        apps = self._ctx.app_registry() if self._ctx is not None else []
        return {
            "writer": self._writer is not None,
            "status": "active" if self._writer is not None else "inactive",
            "apps": [{"id": a.id, "name": a.name, "is_extension": a.is_extension} for a in apps],
        }
