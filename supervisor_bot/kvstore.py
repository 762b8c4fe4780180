"""
Key-value backends for group records.

Both backends expose the same async surface: get/set/delete of string
values, prefix scanning and a health check. Driver errors are re-raised as
StoreUnavailable.
"""

import asyncio
import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import AsyncIterator, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)


class KeyValueStore:
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    def scan(self, prefix: str) -> AsyncIterator[str]:
        raise NotImplementedError

    async def health_check(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class RedisKeyValueStore(KeyValueStore):
    """Redis backend using the asyncio client."""

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None, scan_count: int = 500):
        if client is None and not url:
            raise ValueError("Either a Redis URL or a client is required")
        self.client = client if client is not None else redis.from_url(url, decode_responses=True)
        self.scan_count = scan_count

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.client.get(key)
        except RedisError as exc:
            logger.error("Redis get failed for %s: %s", key, exc)
            raise StoreUnavailable(f"Redis get failed: {exc}") from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self.client.set(key, value)
        except RedisError as exc:
            logger.error("Redis set failed for %s: %s", key, exc)
            raise StoreUnavailable(f"Redis set failed: {exc}") from exc

    async def delete(self, key: str) -> bool:
        try:
            removed = await self.client.delete(key)
        except RedisError as exc:
            logger.error("Redis delete failed for %s: %s", key, exc)
            raise StoreUnavailable(f"Redis delete failed: {exc}") from exc
        return removed > 0

    async def exists(self, key: str) -> bool:
        try:
            found = await self.client.exists(key)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis exists failed: {exc}") from exc
        return found > 0

    async def scan(self, prefix: str) -> AsyncIterator[str]:
        # Cursor-based SCAN restricted to the prefix, never KEYS.
        try:
            async for key in self.client.scan_iter(match=f"{prefix}*", count=self.scan_count):
                yield key.decode("utf-8") if isinstance(key, bytes) else key
        except RedisError as exc:
            logger.error("Redis scan failed for prefix %s: %s", prefix, exc)
            raise StoreUnavailable(f"Redis scan failed: {exc}") from exc

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as exc:
            logger.error("Redis health check failed: %s", exc)
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")


SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


class SqliteKeyValueStore(KeyValueStore):
    """Single-file backend for development and small deployments.

    Calls run in a worker thread so the event loop is never blocked.
    """

    def __init__(self, path: str):
        self.path = path
        self._initialized = False

    def _ensure_directory(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

    def _init_db(self) -> None:
        if self._initialized:
            return

        self._ensure_directory()

        conn = sqlite3.connect(self.path, timeout=30)
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=30000;")
            conn.executescript(SCHEMA)
            conn.commit()
            self._initialized = True
            logger.info("Key-value database initialized at %s", self.path)
        finally:
            conn.close()

    @contextmanager
    def _conn(self):
        if not self._initialized:
            self._init_db()

        conn = sqlite3.connect(self.path, timeout=30)
        try:
            conn.execute("PRAGMA busy_timeout=30000;")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            logger.error("Database error: %s", exc)
            raise StoreUnavailable(f"SQLite operation failed: {exc}") from exc

    def _get(self, key: str) -> Optional[str]:
        with self._conn() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, int(time.time())),
            )

    def _delete(self, key: str) -> bool:
        with self._conn() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def _keys(self, prefix: str) -> List[str]:
        with self._conn() as conn:
            cursor = conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            )
            return [row[0] for row in cursor.fetchall()]

    def _health(self) -> bool:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name = 'kv'"
            ).fetchone()
            return row is not None

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await self._run(self._set, key, value)

    async def delete(self, key: str) -> bool:
        return await self._run(self._delete, key)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def scan(self, prefix: str) -> AsyncIterator[str]:
        for key in await self._run(self._keys, prefix):
            yield key

    async def health_check(self) -> bool:
        try:
            return await self._run(self._health)
        except StoreUnavailable:
            return False
