"""Key-value persistence with per-key expiry.

Canonical records, forwarding pointers, merge history, and cached scores
all live behind the small :class:`KeyValueStore` protocol so the engines
never depend on a concrete database.  Values are JSON-serialisable data.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Protocol

import psycopg

from supplierlens.db import execute_query

# Key layout
RECORD_KEY = "business:{id}"
FORWARD_KEY = "business:merged:{id}"
MERGE_HISTORY_KEY = "merge:history:{primary}:{secondary}"
DUPLICATE_KEY = "duplicate:{pair}"
PRIORITY_SCORE_KEY = "priority:score:{id}"
QUALITY_SCORE_KEY = "quality:score:{id}"
RELATIONSHIP_PREFIX = "relationship:{id}:"
NEARBY_KEY = "nearby:{prefix}"
DEDUP_STATS_KEY = "dedup:stats"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    def delete(self, *keys: str) -> int: ...

    def keys(self, prefix: str) -> list[str]: ...


class InMemoryStore:
    """Thread-safe dict-backed store; expiry uses the monotonic clock."""

    def __init__(self, clock=time.monotonic) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return payload

    def get(self, key: str) -> Any | None:
        with self._lock:
            payload = self._live(key)
        return None if payload is None else json.loads(payload)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = None if ttl_seconds is None else self._clock() + ttl_seconds
        payload = json.dumps(value)
        with self._lock:
            self._data[key] = (payload, expires_at)

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._data.pop(key, None) is not None:
                    removed += 1
        return removed

    def keys(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(k for k in list(self._data) if k.startswith(prefix) and self._live(k))


class PostgresStore:
    """Store backed by a ``kv_store`` table.

    Expired rows are filtered on read and purged by :meth:`purge_expired`.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def ensure_schema(self) -> None:
        execute_query(
            self._conn,
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                expires_at TIMESTAMPTZ
            )
            """,
        )

    def get(self, key: str) -> Any | None:
        rows = execute_query(
            self._conn,
            """
            SELECT value
            FROM kv_store
            WHERE key = %s AND (expires_at IS NULL OR expires_at > now())
            """,
            (key,),
        )
        if not rows:
            return None
        value = rows[0]["value"]
        if isinstance(value, str):
            value = json.loads(value)
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        execute_query(
            self._conn,
            """
            INSERT INTO kv_store (key, value, expires_at)
            VALUES (%s, %s::jsonb,
                    CASE WHEN %s::int IS NULL THEN NULL
                         ELSE now() + make_interval(secs => %s::int) END)
            ON CONFLICT (key) DO UPDATE SET
                value = EXCLUDED.value,
                expires_at = EXCLUDED.expires_at
            """,
            (key, json.dumps(value), ttl_seconds, ttl_seconds),
        )

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        rows = execute_query(
            self._conn,
            "DELETE FROM kv_store WHERE key = ANY(%s) RETURNING key",
            (list(keys),),
        )
        return len(rows)

    def keys(self, prefix: str) -> list[str]:
        rows = execute_query(
            self._conn,
            """
            SELECT key
            FROM kv_store
            WHERE starts_with(key, %s) AND (expires_at IS NULL OR expires_at > now())
            ORDER BY key
            """,
            (prefix,),
        )
        return [r["key"] for r in rows]

    def purge_expired(self) -> int:
        rows = execute_query(
            self._conn,
            "DELETE FROM kv_store WHERE expires_at <= now() RETURNING key",
        )
        return len(rows)
