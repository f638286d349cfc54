"""
Key-value stores backing the research and review caches.

Schema (SQLite)
───────────────
table: cache_entries
  namespace  TEXT NOT NULL  ("research" | "reviews")
  key        TEXT NOT NULL  (lower-cased platform name)
  value      TEXT NOT NULL  (entry serialised as JSON)
  PRIMARY KEY (namespace, key)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[dict[str, Any]]: ...

    def set(self, key: str, value: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list_matching(
        self, predicate: Callable[[str, dict[str, Any]], bool]
    ) -> list[tuple[str, dict[str, Any]]]: ...

    def clear(self) -> None: ...


class MemoryStore:
    """Dict-backed store; used in tests and when no database is configured."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> Optional[dict[str, Any]]:
        value = self._data.get(key)
        # Round-trip through JSON so callers never share mutable state.
        return json.loads(json.dumps(value)) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = json.loads(json.dumps(value))

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def list_matching(
        self, predicate: Callable[[str, dict[str, Any]], bool]
    ) -> list[tuple[str, dict[str, Any]]]:
        return [(k, self.get(k)) for k, v in self._data.items() if predicate(k, v)]

    def clear(self) -> None:
        self._data.clear()


class SqliteStore:
    """One namespace of the shared ``cache_entries`` table.

    Args:
        path: Database file; parent directories are created on first use.
        namespace: Partition of the table this store reads and writes.
    """

    def __init__(self, path: str | Path, namespace: str) -> None:
        self.path = Path(path)
        self.namespace = namespace
        self._init_db()

    @contextmanager
    def _connect(self):
        """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    namespace  TEXT NOT NULL,
                    key        TEXT NOT NULL,
                    value      TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
                """
            )
        logger.info("Cache DB initialised at %s (namespace=%s)", self.path, self.namespace)

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM cache_entries WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            logger.warning("Skipping corrupt cache entry %s/%s: %s", self.namespace, key, exc)
            return None

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries (namespace, key, value) VALUES (?, ?, ?)",
                (self.namespace, key, json.dumps(value)),
            )

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM cache_entries WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            )
        return cursor.rowcount > 0

    def list_matching(
        self, predicate: Callable[[str, dict[str, Any]], bool]
    ) -> list[tuple[str, dict[str, Any]]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, value FROM cache_entries WHERE namespace = ? ORDER BY rowid",
                (self.namespace,),
            ).fetchall()

        matches: list[tuple[str, dict[str, Any]]] = []
        for row in rows:
            try:
                value = json.loads(row["value"])
            except json.JSONDecodeError as exc:
                logger.warning("Skipping corrupt cache entry %s/%s: %s",
                               self.namespace, row["key"], exc)
                continue
            if predicate(row["key"], value):
                matches.append((row["key"], value))
        return matches

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM cache_entries WHERE namespace = ?", (self.namespace,))
        logger.info("Cleared cache namespace %s", self.namespace)
