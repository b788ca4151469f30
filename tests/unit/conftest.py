from __future__ import annotations

from collections.abc import Callable

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from yeti_telemetry.config import OtlpConfig


@pytest.fixture(autouse=True)
def _no_threads_in_unit_tests(monkeypatch: pytest.MonkeyPatch):
    """Run `asyncio.to_thread` inline for unit tests.

    The DuckDB store uses `asyncio.to_thread` to keep queries off the event
    loop. In unit tests, this can create threadpool workers that keep the
    Python process alive longer than expected under some runtimes.
    """

    async def _to_thread(func, /, *args, **kwargs):  # noqa: ANN001, D401
        return func(*args, **kwargs)

    monkeypatch.setattr("yeti_telemetry.storage.asyncio.to_thread", _to_thread)
    yield


@pytest.fixture(autouse=True)
def _clean_yeti_env(monkeypatch: pytest.MonkeyPatch):
    """Keep host `YETI_*` variables from leaking into configuration tests."""
    for name in [
        "YETI_ROOT_DIR",
        "YETI_ENV",
        "YETI_TELEMETRY_QUEUE_SIZE",
        "YETI_TELEMETRY_DROP_WHEN_FULL",
        "YETI_TELEMETRY_STATUS_INTERVAL",
        "YETI_TELEMETRY_MAX_FILE_MB",
        "YETI_TELEMETRY_RETENTION_DAYS",
        "YETI_TELEMETRY_DB_PATH",
        "YETI_LOG_JSON",
        "YETI_LOG_LEVEL",
    ]:
        monkeypatch.delenv(name, raising=False)
    yield


class RecordingReaderFactory:
    """Reader factory that hands out one in-memory reader and counts builds."""

    def __init__(self) -> None:
        self.reader = InMemoryMetricReader()
        self.calls = 0

    def __call__(self, config: OtlpConfig) -> InMemoryMetricReader:
        self.calls += 1
        return self.reader


@pytest.fixture
def reader_factory() -> RecordingReaderFactory:
    return RecordingReaderFactory()


@pytest.fixture
def otlp_config() -> OtlpConfig:
    return OtlpConfig(endpoint="http://collector:4317")


def metric_points(reader: InMemoryMetricReader, name: str) -> list:
    """Return the data points recorded for a metric name (empty when none)."""
    data = reader.get_metrics_data()
    if data is None:
        return []
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    return list(metric.data.data_points)
    return []


@pytest.fixture
def points() -> Callable[[InMemoryMetricReader, str], list]:
    return metric_points
