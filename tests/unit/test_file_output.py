from __future__ import annotations

import json
import os
import time
from datetime import date
from pathlib import Path

import pytest

from yeti_telemetry.outputs.file import FileOutput


class _Clock:
    """Mutable calendar day for rotation tests."""

    def __init__(self, day: date) -> None:
        self.day = day

    def __call__(self) -> date:
        return self.day


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _age(path: Path, days: float) -> None:
    mtime = time.time() - days * 86400
    os.utime(path, (mtime, mtime))


def test_records_are_written_as_type_and_data_lines(tmp_path: Path):
    out = FileOutput(tmp_path, today=_Clock(date(2024, 1, 2)))
    out.write_log({"id": "1", "message": "hi"})
    out.write_span({"id": "2", "durationMs": 5})
    out.write_metric({"id": "3", "value": 1.5})
    out.close()

    path = tmp_path / "telemetry-2024-01-02.jsonl"
    assert _lines(path) == [
        {"type": "log", "data": {"id": "1", "message": "hi"}},
        {"type": "span", "data": {"id": "2", "durationMs": 5}},
        {"type": "metric", "data": {"id": "3", "value": 1.5}},
    ]


def test_same_record_written_twice_produces_two_lines(tmp_path: Path):
    out = FileOutput(tmp_path, today=_Clock(date(2024, 1, 2)))
    record = {"id": "same", "message": "dup"}
    out.write_log(record)
    out.write_log(record)
    out.close()

    assert len(_lines(tmp_path / "telemetry-2024-01-02.jsonl")) == 2


def test_byte_counter_tracks_written_bytes_and_resumes_on_reopen(tmp_path: Path):
    clock = _Clock(date(2024, 1, 2))
    out = FileOutput(tmp_path, today=clock)
    out.write_log({"id": "1"})
    out.close()

    path = tmp_path / "telemetry-2024-01-02.jsonl"
    size = path.stat().st_size
    assert out.current_size == size

    reopened = FileOutput(tmp_path, today=clock)
    assert reopened.current_size == size
    reopened.write_log({"id": "2"})
    reopened.close()
    assert len(_lines(path)) == 2


def test_day_change_rotates_to_a_new_file(tmp_path: Path):
    clock = _Clock(date(2024, 1, 2))
    out = FileOutput(tmp_path, today=clock)
    out.write_log({"id": "1"})
    clock.day = date(2024, 1, 3)
    out.write_log({"id": "2"})
    out.close()

    first = tmp_path / "telemetry-2024-01-02.jsonl"
    second = tmp_path / "telemetry-2024-01-03.jsonl"
    assert [line["data"]["id"] for line in _lines(first)] == ["1"]
    assert [line["data"]["id"] for line in _lines(second)] == ["2"]
    assert out.current_path == second


def test_size_threshold_keeps_appending_to_the_same_file(tmp_path: Path):
    out = FileOutput(tmp_path, max_file_size=200, today=_Clock(date(2024, 1, 2)))
    for i in range(20):
        out.write_log({"id": str(i), "message": "x" * 40})
    out.close()

    files = sorted(p.name for p in tmp_path.iterdir())
    assert files == ["telemetry-2024-01-02.jsonl"]
    path = tmp_path / files[0]
    assert path.stat().st_size > 200
    assert len(_lines(path)) == 20
    # The counter restarts on every size-triggered rotation.
    assert out.current_size < 200 + 100


def test_retention_runs_only_at_rotation(tmp_path: Path):
    old = tmp_path / "telemetry-2023-12-01.jsonl"
    old.write_text("{}\n", encoding="utf-8")
    _age(old, 10)

    clock = _Clock(date(2024, 1, 2))
    out = FileOutput(tmp_path, today=clock)
    out.write_log({"id": "1"})
    assert old.exists()

    clock.day = date(2024, 1, 3)
    out.write_log({"id": "2"})
    out.close()
    assert not old.exists()


def test_retention_keeps_recent_and_foreign_files(tmp_path: Path):
    recent = tmp_path / "telemetry-2023-12-30.jsonl"
    recent.write_text("{}\n", encoding="utf-8")
    _age(recent, 3)
    foreign = tmp_path / "notes.txt"
    foreign.write_text("keep", encoding="utf-8")
    _age(foreign, 30)

    out = FileOutput(tmp_path, today=_Clock(date(2024, 1, 2)))
    removed = out.cleanup_old_files()
    out.close()

    assert removed == []
    assert recent.exists()
    assert foreign.exists()


def test_retention_boundary_is_exclusive(tmp_path: Path):
    now = 1_700_000_000.0
    boundary = tmp_path / "telemetry-boundary.jsonl"
    boundary.write_text("{}\n", encoding="utf-8")
    cutoff = now - 7 * 86400
    os.utime(boundary, (cutoff, cutoff))
    older = tmp_path / "telemetry-older.jsonl"
    older.write_text("{}\n", encoding="utf-8")
    os.utime(older, (cutoff - 1, cutoff - 1))

    out = FileOutput(tmp_path, today=_Clock(date(2024, 1, 2)), now=lambda: now)
    removed = out.cleanup_old_files()
    out.close()

    assert removed == [older]
    assert boundary.exists()


def test_open_failure_leaves_output_degraded_but_usable(tmp_path: Path):
    blocker = tmp_path / "logs"
    blocker.write_text("not a directory", encoding="utf-8")

    out = FileOutput(blocker, today=_Clock(date(2024, 1, 2)))
    assert not out.is_open

    out.write_log({"id": "1"})
    out.close()


@pytest.mark.parametrize("count", [99, 100, 101])
def test_close_flushes_pending_lines(tmp_path: Path, count: int):
    out = FileOutput(tmp_path, today=_Clock(date(2024, 1, 2)))
    for i in range(count):
        out.write_metric({"id": str(i)})
    out.close()
    out.close()

    assert len(_lines(tmp_path / "telemetry-2024-01-02.jsonl")) == count
