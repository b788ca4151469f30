"""JSON Lines file output with daily rotation and age-based retention.

Each record becomes one line `{"type": <kind>, "data": <record>}` in
`telemetry-YYYY-MM-DD.jsonl` (UTC date). Rotation happens when the date
changes or the byte counter reaches `max_file_size`. The size threshold is
advisory: a same-day rotation reopens the same file name and keeps appending,
with the counter reset so the next check happens one threshold later.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import BinaryIO

import structlog

from ..ids import date_string, utc_today
from .base import BaseOutput, RecordDict

logger = structlog.get_logger(__name__)

FILE_PREFIX = "telemetry-"
FILE_SUFFIX = ".jsonl"

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024
DEFAULT_RETENTION_DAYS = 7
FLUSH_EVERY = 100


class FileOutput(BaseOutput):
    """Append records to a date-rotated set of JSON Lines files."""

    def __init__(
        self,
        log_dir: str | Path,
        *,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        today: Callable[[], date] = utc_today,
        now: Callable[[], float] = time.time,
    ) -> None:
        """Create the directory if needed and open today's file.

        Args:
            log_dir: Directory holding the rotated files.
            max_file_size: Byte count that triggers a (same-name) rotation.
            retention_days: Files whose mtime is older than this are deleted on rotation.
            today: Clock for the current calendar day.
            now: Wall clock (epoch seconds) used for the retention cutoff.
        """
        self._log_dir = Path(log_dir)
        self._max_file_size = max_file_size
        self._retention_days = retention_days
        self._today = today
        self._now = now

        self._current_date = date_string(today())
        self._handle: BinaryIO | None = None
        self._current_size = 0
        self._write_count = 0

        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("failed to create log dir", path=str(self._log_dir), error=str(exc))
        self._open_file(resume=True)

    @property
    def current_path(self) -> Path:
        return self._log_dir / f"{FILE_PREFIX}{self._current_date}{FILE_SUFFIX}"

    @property
    def current_size(self) -> int:
        return self._current_size

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def write_log(self, record: RecordDict) -> None:
        self.write("log", record)

    def write_span(self, record: RecordDict) -> None:
        self.write("span", record)

    def write_metric(self, record: RecordDict) -> None:
        self.write("metric", record)

    def write(self, kind: str, record: RecordDict) -> None:
        """Append one `{"type", "data"}` line, rotating first when due."""
        self._maybe_rotate()
        if self._handle is None:
            return

        try:
            line = json.dumps({"type": kind, "data": record}, separators=(",", ":"), default=str).encode("utf-8")
        except (TypeError, ValueError) as exc:
            logger.warning("unserializable record dropped", kind=kind, error=str(exc))
            return

        try:
            self._handle.write(line + b"\n")
        except OSError as exc:
            logger.error("write failed", path=str(self.current_path), error=str(exc))
            return

        self._current_size += len(line) + 1
        self._write_count += 1
        if self._write_count % FLUSH_EVERY == 0:
            self._flush()

    def close(self) -> None:
        """Flush and close the current file. Safe to call multiple times."""
        self._close_handle()

    def _flush(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.flush()
        except OSError as exc:
            logger.error("flush failed", path=str(self.current_path), error=str(exc))

    def _close_handle(self) -> None:
        if self._handle is None:
            return
        self._flush()
        try:
            self._handle.close()
        except OSError as exc:
            logger.error("close failed", path=str(self.current_path), error=str(exc))
        self._handle = None

    def _maybe_rotate(self) -> None:
        today = date_string(self._today())
        day_changed = today != self._current_date
        size_exceeded = self._current_size >= self._max_file_size
        if not day_changed and not size_exceeded:
            return

        logger.debug(
            "rotating output file",
            from_date=self._current_date,
            to_date=today,
            size_exceeded=size_exceeded,
        )
        self._close_handle()
        self._current_date = today
        self._current_size = 0
        # A size-only rotation keeps appending to the same name; the counter
        # restarts so the threshold is re-checked one threshold later.
        self._open_file(resume=day_changed)
        self.cleanup_old_files()

    def _open_file(self, *, resume: bool) -> None:
        path = self.current_path
        try:
            handle = path.open("ab")
        except OSError as exc:
            logger.error("failed to open output file", path=str(path), error=str(exc))
            return
        if resume:
            try:
                self._current_size = path.stat().st_size
            except OSError:
                self._current_size = 0
        self._handle = handle

    def cleanup_old_files(self) -> list[Path]:
        """Delete `*.jsonl` files whose mtime is strictly older than the retention window."""
        cutoff = self._now() - self._retention_days * 86400
        removed: list[Path] = []
        try:
            entries = list(self._log_dir.iterdir())
        except OSError as exc:
            logger.warning("failed to scan log dir", path=str(self._log_dir), error=str(exc))
            return removed

        for path in entries:
            if path.suffix != FILE_SUFFIX or not path.is_file():
                continue
            try:
                modified = path.stat().st_mtime
            except OSError:
                continue
            if modified >= cutoff:
                continue
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("failed to remove old file", path=str(path), error=str(exc))
                continue
            removed.append(path)
            logger.info("cleaned up old file", path=str(path))
        return removed
