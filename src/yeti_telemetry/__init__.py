"""Telemetry event pipeline.

This package consumes a live stream of tracing events (logs, spans, metrics)
from a host process and:
- Normalizes each event into an immutable record with a time-ordered id.
- Persists records to a key-value store and publishes live-update notifications.
- Fans records out to pluggable outputs (rotating JSON Lines files, OTLP metrics).
"""

from .channel import ChannelClosed, EventChannel
from .models import LogRecord, MetricRecord, RawEvent, SpanRecord
from .normalizer import normalize
from .outputs import FileOutput, InMemoryOutput, OtlpOutput, TelemetryOutput
from .pubsub import Notification, PubSub
from .storage import DuckDBKvStore, InMemoryKvStore, KvStore
from .writer import TelemetryWriter, WriterSummary

__all__ = [
    "ChannelClosed",
    "DuckDBKvStore",
    "EventChannel",
    "FileOutput",
    "InMemoryKvStore",
    "InMemoryOutput",
    "KvStore",
    "LogRecord",
    "MetricRecord",
    "Notification",
    "OtlpOutput",
    "PubSub",
    "RawEvent",
    "SpanRecord",
    "TelemetryOutput",
    "TelemetryWriter",
    "WriterSummary",
    "normalize",
]
