"""OTLP output: HTTP request metrics derived from span records.

Only spans whose target is `http.request` are exported, as three instruments:

- `http.server.requests` (counter)
- `http.server.request.duration` (histogram, seconds)
- `http.server.errors` (counter, spans whose `status` field is `ERROR`)

The meter provider is created lazily on the first matching span rather than
at construction, so building the output never starts export threads or opens
a collector connection.
"""

from __future__ import annotations

import enum
import json
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from ..config import OtlpConfig, load_otlp_config
from ..errors import TelemetryExporterError
from .base import BaseOutput, RecordDict

if TYPE_CHECKING:
    from opentelemetry.metrics import Counter, Histogram
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import MetricReader

logger = structlog.get_logger(__name__)

HTTP_REQUEST_TARGET = "http.request"
METER_NAME = "yeti-telemetry"
EXPORT_INTERVAL_MS = 15_000
EXPORT_TIMEOUT_S = 10

ReaderFactory = Callable[[OtlpConfig], "MetricReader"]


class InitState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def otlp_reader_factory(config: OtlpConfig) -> MetricReader:
    """Build a periodic reader that pushes to the configured collector over gRPC."""
    try:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    except ImportError as exc:
        raise TelemetryExporterError(
            "otlp",
            f"OpenTelemetry OTLP exporter not installed: {exc}. "
            "Install with: pip install opentelemetry-exporter-otlp-proto-grpc",
        ) from exc

    exporter = OTLPMetricExporter(endpoint=config.endpoint, timeout=EXPORT_TIMEOUT_S)
    return PeriodicExportingMetricReader(exporter, export_interval_millis=EXPORT_INTERVAL_MS)


def _field_str(fields: dict[str, Any], key: str, default: str) -> str:
    value = fields.get(key)
    if isinstance(value, str):
        return value
    return default


def _status_code(fields: dict[str, Any]) -> str:
    value = fields.get("http.status_code")
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return "0"


def _parse_fields(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, str):
        return {}
    try:
        fields = json.loads(raw)
    except ValueError:
        return {}
    return fields if isinstance(fields, dict) else {}


def _duration_ms(record: RecordDict) -> float:
    value = record.get("durationMs")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


class OtlpOutput(BaseOutput):
    """Export HTTP request metrics from span records to an OTLP collector.

    Only the dispatch loop calls into this output, so the init state machine
    needs no locking.
    """

    def __init__(self, config: OtlpConfig, *, reader_factory: ReaderFactory = otlp_reader_factory) -> None:
        self._config = config
        self._reader_factory = reader_factory
        self._state = InitState.UNINITIALIZED
        self._provider: MeterProvider | None = None
        self._requests_total: Counter | None = None
        self._requests_duration: Histogram | None = None
        self._errors_total: Counter | None = None

    @classmethod
    def from_config(
        cls, root_dir: str | Path, *, reader_factory: ReaderFactory = otlp_reader_factory
    ) -> OtlpOutput | None:
        """Build from the host config; None when no `otlpEndpoint` is configured."""
        config = load_otlp_config(root_dir)
        if config is None:
            return None
        return cls(config, reader_factory=reader_factory)

    @property
    def config(self) -> OtlpConfig:
        return self._config

    @property
    def state(self) -> InitState:
        return self._state

    def ensure_initialized(self) -> None:
        """Create the meter provider and instruments once; no-op when ready or disabled."""
        if self._state is not InitState.UNINITIALIZED:
            return
        if not self._config.metrics_enabled:
            return

        self._state = InitState.INITIALIZING
        try:
            self._build_instruments()
        except Exception as exc:  # noqa: BLE001 - export setup must not crash the pipeline
            logger.error("failed to initialize meter provider", endpoint=self._config.endpoint, error=str(exc))
            self._state = InitState.UNINITIALIZED
            return

        self._state = InitState.READY
        logger.info("meter provider initialized", endpoint=self._config.endpoint)

    def _build_instruments(self) -> None:
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.resources import Resource

        reader = self._reader_factory(self._config)
        resource = Resource.create(
            {
                "service.name": self._config.service_name,
                "deployment.environment": self._config.environment,
            }
        )
        provider = MeterProvider(metric_readers=[reader], resource=resource)
        meter = provider.get_meter(METER_NAME)

        self._requests_total = meter.create_counter(
            "http.server.requests",
            description="Total number of HTTP requests",
        )
        self._requests_duration = meter.create_histogram(
            "http.server.request.duration",
            unit="s",
            description="HTTP request duration in seconds",
        )
        self._errors_total = meter.create_counter(
            "http.server.errors",
            description="Total number of HTTP errors",
        )
        self._provider = provider

    def write_span(self, record: RecordDict) -> None:
        if record.get("target") != HTTP_REQUEST_TARGET:
            return

        self.ensure_initialized()
        if self._state is not InitState.READY:
            return

        fields = _parse_fields(record.get("fields"))
        attributes = {
            "http.method": _field_str(fields, "http.method", "UNKNOWN"),
            "http.route": _field_str(fields, "http.route", "/"),
            "http.status_code": _status_code(fields),
        }
        is_error = fields.get("status") == "ERROR"

        try:
            if self._requests_total is not None:
                self._requests_total.add(1, attributes)
            if self._requests_duration is not None:
                self._requests_duration.record(_duration_ms(record) / 1000.0, attributes)
            if is_error and self._errors_total is not None:
                self._errors_total.add(1, attributes)
        except Exception as exc:  # noqa: BLE001 - recording must not crash the pipeline
            logger.warning("failed to record span metrics", error=str(exc))

    def close(self) -> None:
        """Flush and shut down the meter provider if it was started."""
        provider = self._provider
        if provider is None:
            return
        self._provider = None
        self._requests_total = None
        self._requests_duration = None
        self._errors_total = None
        logger.info("shutting down meter provider")
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001 - shutdown errors are only reported
            logger.error("meter provider shutdown error", error=str(exc))
