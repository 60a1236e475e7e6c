"""Key-value stores backing the rate cache."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import aiosqlite

from agile_rates.errors import StoreError, StoreFullError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """String-keyed, string-valued local store."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value. Raises StoreFullError when out of space."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        ...

    async def size_bytes(self, prefix: str = "") -> int:
        total = 0
        for key in await self.keys(prefix):
            value = await self.get(key)
            if value is not None:
                total += len(key.encode()) + len(value.encode())
        return total


class MemoryKeyValueStore(KeyValueStore):
    """In-process dict store with an optional byte quota."""

    def __init__(self, max_bytes: int = 0) -> None:
        self._data: dict[str, str] = {}
        self._max_bytes = max_bytes

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self._max_bytes:
            used = sum(
                len(k.encode()) + len(v.encode())
                for k, v in self._data.items()
                if k != key
            )
            needed = len(key.encode()) + len(value.encode())
            if used + needed > self._max_bytes:
                raise StoreFullError(
                    f"Store quota exceeded ({used + needed} > {self._max_bytes} bytes)"
                )
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]


class SqliteKeyValueStore(KeyValueStore):
    """Store backed by the cache_entries table.

    Every aiosqlite failure surfaces as StoreError, or StoreFullError when
    the database reports it is full.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get(self, key: str) -> str | None:
        try:
            async with self._db.execute(
                "SELECT value FROM cache_entries WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"Cache read failed for {key}: {e}") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self._db.execute(
                """INSERT INTO cache_entries (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                   updated_at = excluded.updated_at""",
                (key, value, now),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            await self._rollback()
            if "full" in str(e).lower():
                raise StoreFullError(str(e)) from e
            raise StoreError(f"Cache write failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            await self._db.commit()
        except aiosqlite.Error as e:
            await self._rollback()
            raise StoreError(f"Cache delete failed for {key}: {e}") from e

    async def keys(self, prefix: str = "") -> list[str]:
        # Escape LIKE wildcards; cache namespaces contain underscores.
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        try:
            async with self._db.execute(
                "SELECT key FROM cache_entries WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(f"Cache key listing failed: {e}") from e
        return [row[0] for row in rows]

    async def _rollback(self) -> None:
        try:
            await self._db.rollback()
        except aiosqlite.Error:
            logger.warning("Cache rollback failed", exc_info=True)
