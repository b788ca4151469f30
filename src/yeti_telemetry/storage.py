"""Key-value stores used for durable record persistence.

The dispatch loop only ever writes: `put(key, value)` with the record id as
key and the storage-encoded record as value.
"""

from __future__ import annotations

import asyncio
import json
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import duckdb

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DuplicateKeyError(KeyError):
    """Raised when a key is written a second time."""


class KvStore(Protocol):
    """An async write contract for a single record table."""

    async def put(self, key: bytes, value: bytes) -> None:
        """Persist `value` under `key`."""

    def close(self) -> None:
        """Close any underlying resources."""


def to_storage_bytes(record: Mapping[str, Any]) -> bytes:
    """Encode a record dict as compact, key-sorted JSON."""
    return json.dumps(record, separators=(",", ":"), sort_keys=True, default=str).encode("utf-8")


def from_storage_bytes(value: bytes) -> dict[str, Any]:
    """Decode a value written by `to_storage_bytes`."""
    return json.loads(value.decode("utf-8"))


class InMemoryKvStore:
    """In-memory store for tests and local debugging."""

    def __init__(self) -> None:
        """Create an empty in-memory store."""
        self._lock = threading.Lock()
        self._items: dict[bytes, bytes] = {}

    async def put(self, key: bytes, value: bytes) -> None:
        """Store a value; a key is accepted at most once."""
        with self._lock:
            if key in self._items:
                raise DuplicateKeyError(key)
            self._items[key] = value

    def get(self, key: bytes) -> bytes | None:
        with self._lock:
            return self._items.get(key)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> dict[bytes, bytes]:
        """Return a point-in-time copy of all stored items, in key order."""
        with self._lock:
            return dict(sorted(self._items.items()))

    def records(self) -> list[dict[str, Any]]:
        """Decode every stored value, in key order."""
        return [from_storage_bytes(v) for v in self.snapshot().values()]


@dataclass(frozen=True)
class DuckDBOptions:
    path: Path
    table: str


class DuckDBKvStore:
    """DuckDB-backed store: one table of (key, value) rows per record kind.

    Several stores may share one DuckDB connection (one table each); queries
    run in a worker thread so the event loop stays responsive.
    """

    def __init__(
        self,
        *,
        path: str | Path | None = None,
        table: str,
        connection: duckdb.DuckDBPyConnection | None = None,
    ) -> None:
        """Create (or open) a table in a DuckDB database."""
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._opts = DuckDBOptions(path=Path(path) if path is not None else Path(":memory:"), table=table)
        self._lock = threading.Lock()
        self._owns_connection = connection is None
        self._conn = connection if connection is not None else duckdb.connect(str(self._opts.path))
        self._ensure_schema()

    @property
    def table(self) -> str:
        return self._opts.table

    def _ensure_schema(self) -> None:
        """Create the backing table if it does not exist yet."""
        create_sql = f"""
        create table if not exists {self._opts.table} (
          key varchar primary key,
          value blob not null
        )
        """
        with self._lock:
            self._conn.execute(create_sql)

    def _insert(self, key: bytes, value: bytes) -> None:
        insert_sql = f"insert into {self._opts.table} (key, value) values (?, ?)"
        with self._lock:
            try:
                self._conn.execute(insert_sql, [key.decode("utf-8"), value])
            except duckdb.ConstraintException as exc:
                raise DuplicateKeyError(key) from exc

    async def put(self, key: bytes, value: bytes) -> None:
        """Insert one row; the primary key rejects a second write of the same id."""
        await asyncio.to_thread(self._insert, key, value)

    def get(self, key: bytes) -> bytes | None:
        with self._lock:
            row = self._conn.execute(
                f"select value from {self._opts.table} where key = ?", [key.decode("utf-8")]
            ).fetchone()
        return bytes(row[0]) if row is not None else None

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute(f"select count(*) from {self._opts.table}").fetchone()
        return int(row[0]) if row is not None else 0

    def close(self) -> None:
        """Close the connection if this store opened it."""
        if not self._owns_connection:
            return
        with self._lock:
            self._conn.close()
