"""Raw event and normalized record models.

Raw events arrive loosely typed from the host; records are the strongly-shaped,
immutable form that is persisted, published and handed to outputs. Records
dump with the camelCase keys used by the storage tables and the file format.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

EventKind = Literal["log", "span", "metric"]

# Entity kinds used for live-update notifications, keyed by record kind.
ENTITY_KINDS: dict[str, str] = {"log": "Log", "span": "Span", "metric": "Metric"}


class RawEvent(BaseModel):
    """A raw event envelope: the `kind` discriminant plus untouched payload.

    Unknown keys are preserved in `payload` so nothing the host sends is lost,
    even though normalization only reads the keys it knows about.
    """

    model_config = ConfigDict(frozen=True)

    kind: str = "unknown"
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> RawEvent:
        """Wrap a host value; non-mappings and non-string kinds become ``unknown``."""
        if isinstance(value, RawEvent):
            return value
        if not isinstance(value, Mapping):
            return cls()
        kind = value.get("kind")
        # Host payloads are arbitrary; skip validation so odd keys can't raise here.
        return cls.model_construct(kind=kind if isinstance(kind, str) else "unknown", payload=dict(value))


class _Record(BaseModel):
    # Records are created once and never mutated afterwards.
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str

    def to_dict(self) -> dict[str, Any]:
        """Dump with storage key names (camelCase aliases)."""
        return self.model_dump(by_alias=True)


class LogRecord(_Record):
    timestamp: str
    level: str = "INFO"
    target: str = ""
    message: str = ""
    fields: str = "{}"


class SpanRecord(_Record):
    name: str = ""
    target: str = ""
    level: str = "INFO"
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    # end - start, kept as-is even when negative.
    duration_ms: float = Field(alias="durationMs")
    fields: str = "{}"


class MetricRecord(_Record):
    name: str = ""
    value: float = 0.0
    attributes: str = "{}"
    timestamp: str


TelemetryRecord = LogRecord | SpanRecord | MetricRecord
