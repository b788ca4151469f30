"""Normalize raw host events into telemetry records.

Extraction is permissive: a missing or wrongly-typed field falls back to a
default instead of rejecting the event. Every record gets its own freshly
generated time-ordered id.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable, Mapping
from typing import Any

from .ids import format_epoch_ms, generate_id
from .models import LogRecord, MetricRecord, RawEvent, SpanRecord, TelemetryRecord

IdFactory = Callable[[], str]


def _get_str(payload: Mapping[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    if isinstance(value, str):
        return value
    return default


def _get_number(payload: Mapping[str, Any], key: str) -> float:
    """Read a numeric field; booleans, non-numbers and non-finite values count as missing."""
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    number = float(value)
    return number if math.isfinite(number) else 0.0


def _serialize_map(payload: Mapping[str, Any], key: str) -> str:
    """Serialize a nested map to compact JSON, ``"{}"`` when absent or malformed."""
    value = payload.get(key)
    if value is None:
        return "{}"
    try:
        return json.dumps(value, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError):
        return "{}"


def normalize_log(payload: Mapping[str, Any], *, id_factory: IdFactory = generate_id) -> LogRecord:
    return LogRecord(
        id=id_factory(),
        timestamp=format_epoch_ms(_get_number(payload, "timestamp")),
        level=_get_str(payload, "level", "INFO"),
        target=_get_str(payload, "target"),
        message=_get_str(payload, "message"),
        fields=_serialize_map(payload, "fields"),
    )


def normalize_span(payload: Mapping[str, Any], *, id_factory: IdFactory = generate_id) -> SpanRecord:
    start_ms = _get_number(payload, "startTime")
    end_ms = _get_number(payload, "endTime")
    return SpanRecord(
        id=id_factory(),
        name=_get_str(payload, "name"),
        target=_get_str(payload, "target"),
        level=_get_str(payload, "level", "INFO"),
        start_time=format_epoch_ms(start_ms),
        end_time=format_epoch_ms(end_ms),
        duration_ms=end_ms - start_ms,
        fields=_serialize_map(payload, "fields"),
    )


def normalize_metric(payload: Mapping[str, Any], *, id_factory: IdFactory = generate_id) -> MetricRecord:
    return MetricRecord(
        id=id_factory(),
        name=_get_str(payload, "name"),
        value=_get_number(payload, "value"),
        attributes=_serialize_map(payload, "attributes"),
        timestamp=format_epoch_ms(_get_number(payload, "timestamp")),
    )


_NORMALIZERS: dict[str, Callable[..., TelemetryRecord]] = {
    "log": normalize_log,
    "span": normalize_span,
    "metric": normalize_metric,
}


def normalize(event: RawEvent | Mapping[str, Any], *, id_factory: IdFactory = generate_id) -> TelemetryRecord | None:
    """Produce exactly one record for a known kind, or None for anything else."""
    raw = RawEvent.from_value(event)
    normalizer = _NORMALIZERS.get(raw.kind)
    if normalizer is None:
        return None
    return normalizer(raw.payload, id_factory=id_factory)
