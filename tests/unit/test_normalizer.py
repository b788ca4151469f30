from __future__ import annotations

import json

from yeti_telemetry.models import LogRecord, MetricRecord, RawEvent, SpanRecord
from yeti_telemetry.normalizer import normalize


def _ids():
    counter = iter(range(1, 1000))
    return lambda: f"id-{next(counter):04d}"


def test_log_event_is_normalized_with_formatted_timestamp():
    record = normalize(
        {"kind": "log", "level": "WARN", "message": "disk low", "timestamp": 1700000000000},
        id_factory=_ids(),
    )

    assert isinstance(record, LogRecord)
    assert record.id == "id-0001"
    assert record.level == "WARN"
    assert record.message == "disk low"
    assert record.target == ""
    assert record.timestamp == "1700000000.000"
    assert record.fields == "{}"


def test_missing_fields_fall_back_to_defaults():
    log = normalize({"kind": "log"})
    span = normalize({"kind": "span"})
    metric = normalize({"kind": "metric"})

    assert isinstance(log, LogRecord)
    assert (log.level, log.target, log.message, log.timestamp) == ("INFO", "", "", "0.000")
    assert isinstance(span, SpanRecord)
    assert (span.name, span.level, span.duration_ms) == ("", "INFO", 0.0)
    assert isinstance(metric, MetricRecord)
    assert (metric.name, metric.value, metric.attributes) == ("", 0.0, "{}")


def test_ill_typed_fields_are_treated_as_missing():
    record = normalize(
        {"kind": "log", "level": 3, "message": None, "target": ["x"], "timestamp": "soon"},
    )
    assert isinstance(record, LogRecord)
    assert (record.level, record.message, record.target, record.timestamp) == ("INFO", "", "", "0.000")

    metric = normalize({"kind": "metric", "value": True})
    assert isinstance(metric, MetricRecord)
    assert metric.value == 0.0


def test_span_duration_is_end_minus_start_even_when_negative():
    record = normalize({"kind": "span", "startTime": 2000, "endTime": 1500})

    assert isinstance(record, SpanRecord)
    assert record.duration_ms == -500
    assert record.to_dict()["durationMs"] == -500
    assert record.start_time == "2.000"
    assert record.end_time == "1.500"


def test_span_record_dumps_with_camel_case_keys():
    record = normalize(
        {
            "kind": "span",
            "name": "GET /health",
            "target": "http.request",
            "startTime": 1000,
            "endTime": 1500,
            "fields": {"http.method": "GET"},
        },
        id_factory=_ids(),
    )

    assert record is not None
    assert record.to_dict() == {
        "id": "id-0001",
        "name": "GET /health",
        "target": "http.request",
        "level": "INFO",
        "startTime": "1.000",
        "endTime": "1.500",
        "durationMs": 500.0,
        "fields": '{"http.method":"GET"}',
    }


def test_field_maps_are_serialized_and_malformed_maps_become_empty():
    metric = normalize({"kind": "metric", "name": "q", "value": 2.5, "attributes": {"queue": "a", "n": [1, 2]}})
    assert isinstance(metric, MetricRecord)
    assert json.loads(metric.attributes) == {"queue": "a", "n": [1, 2]}

    bad = normalize({"kind": "log", "fields": {"obj": object()}})
    assert isinstance(bad, LogRecord)
    assert bad.fields == "{}"

    nan = normalize({"kind": "log", "fields": {"x": float("nan")}})
    assert isinstance(nan, LogRecord)
    assert nan.fields == "{}"


def test_unknown_kinds_and_non_mappings_are_dropped():
    assert normalize({"kind": "other", "message": "x"}) is None
    assert normalize({"message": "no kind"}) is None
    assert normalize({"kind": 7}) is None
    assert normalize(["not", "a", "mapping"]) is None  # type: ignore[arg-type]


def test_every_record_gets_its_own_id():
    event = {"kind": "log", "message": "same"}
    first = normalize(event)
    second = normalize(event)
    assert first is not None and second is not None
    assert first.id != second.id


def test_raw_event_preserves_unknown_keys():
    raw = RawEvent.from_value({"kind": "log", "message": "m", "extra": {"a": 1}})
    assert raw.kind == "log"
    assert raw.payload["extra"] == {"a": 1}
