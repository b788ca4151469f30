"""Identifier and timestamp helpers for telemetry records.

Record ids are UUIDv7 strings: a 48-bit unix-millisecond prefix followed by a
12-bit sequence and random bits. The canonical lowercase hex form sorts
lexically in creation order, which makes the id usable as a storage sort key.
"""

from __future__ import annotations

import math
import os
import threading
import time
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone

_SEQ_MAX = 0xFFF


class TimeOrderedIdGenerator:
    """Generate UUIDv7 strings that never sort before a previously issued id.

    Within one millisecond the 12-bit sequence is incremented; when it
    overflows (or the clock steps backwards) the timestamp is advanced past the
    last issued value instead of going back in time.
    """

    def __init__(self, *, clock_ms: Callable[[], int] | None = None) -> None:
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._lock = threading.Lock()
        self._last_ms = -1
        self._seq = 0

    def __call__(self) -> str:
        with self._lock:
            now_ms = self._clock_ms()
            if now_ms > self._last_ms:
                self._last_ms = now_ms
                # Random start leaves headroom for increments in the same ms.
                self._seq = int.from_bytes(os.urandom(2), "big") & 0x7FF
            else:
                self._seq += 1
                if self._seq > _SEQ_MAX:
                    self._last_ms += 1
                    self._seq = 0
            ms, seq = self._last_ms, self._seq

        rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
        value = (ms & ((1 << 48) - 1)) << 80
        value |= 0x7 << 76
        value |= seq << 64
        value |= 0b10 << 62
        value |= rand_b
        return str(uuid.UUID(int=value))


generate_id = TimeOrderedIdGenerator()


def format_epoch_ms(ms: float) -> str:
    """Format epoch milliseconds as a ``"<seconds>.<millis>"`` string.

    Negative and non-finite inputs format as ``"0.000"``; fractional
    milliseconds are truncated.
    """
    if not math.isfinite(ms) or ms <= 0:
        return "0.000"
    secs = int(ms // 1000)
    millis = int(ms % 1000)
    return f"{secs}.{millis:03d}"


def utc_today() -> date:
    """Return the current UTC calendar day."""
    return datetime.now(tz=timezone.utc).date()


def date_string(day: date) -> str:
    """Format a day as `YYYY-MM-DD`, the date part of log file names."""
    return day.strftime("%Y-%m-%d")
