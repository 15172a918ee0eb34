"""Namespaced key/value store for small client-side state (dismissals, outcome card).

Values are JSON-serializable. `namespace(prefix)` returns a view whose keys live under
`<parent>.<prefix>`, so independent components never collide.
"""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


class KeyValueStore(Protocol):
    """Minimal persistent store interface."""

    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> None: ...
    def namespace(self, prefix: str) -> KeyValueStore: ...


def _join(parent: str, prefix: str) -> str:
    return f"{parent}.{prefix}" if parent else prefix


class MemoryStore:
    """In-process store. Namespaces share the same backing dict."""

    def __init__(self, data: dict[tuple[str, str], str] | None = None, prefix: str = "") -> None:
        self._data = data if data is not None else {}
        self.prefix = prefix

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get((self.prefix, key))
        return json.loads(raw) if raw is not None else default

    def set(self, key: str, value: Any) -> None:
        self._data[(self.prefix, key)] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop((self.prefix, key), None)

    def namespace(self, prefix: str) -> MemoryStore:
        return MemoryStore(self._data, _join(self.prefix, prefix))


class DuckDBStore:
    """Store backed by the kv_store table. Survives process restarts."""

    def __init__(self, conn: DuckDBPyConnection, prefix: str = "") -> None:
        self._conn = conn
        self.prefix = prefix

    def get(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute(
            "SELECT value FROM kv_store WHERE namespace = ? AND key = ?",
            [self.prefix, key],
        ).fetchone()
        if row is None or row[0] is None:
            return default
        return json.loads(row[0])

    def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO kv_store (namespace, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (namespace, key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            [self.prefix, key, json.dumps(value), int(time.time() * 1000)],
        )

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv_store WHERE namespace = ? AND key = ?", [self.prefix, key])

    def namespace(self, prefix: str) -> DuckDBStore:
        return DuckDBStore(self._conn, _join(self.prefix, prefix))
