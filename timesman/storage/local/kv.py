"""
Single-file key-value engine for the local backend.

KVFile is a flat key/value table kept in one SQLite file (WAL mode). It is
synchronous and not safe for concurrent use on its own.

KVHandle wraps one KVFile for async callers: it owns the only lock on the
engine and runs every engine call on the default thread pool executor. The
lock is taken for a single engine step and released before the coroutine
returns, so callers never hold it and cannot re-acquire it recursively.
"""

import asyncio
import sqlite3
from pathlib import Path
from typing import Callable, Iterable, List, TypeVar

from loguru import logger

from timesman.common.errors import BackendFailureError, NotFoundError

T = TypeVar("T")


class KVFile:
    """
    Flat key/value table stored in a single file.

    Keys are strings, values are bytes.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # access is serialized by KVHandle, possibly from executor threads
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value BLOB NOT NULL)"
        )
        self._conn.commit()

    def contains(self, key: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone()
        return row is not None

    def fetch(self, key: str) -> bytes:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            raise NotFoundError(f"no value stored under {key}")
        return bytes(row[0])

    def store(self, key: str, value: bytes) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._conn.commit()

    def keys(self, prefix: str = "") -> List[str]:
        rows = self._conn.execute(
            "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        self._conn.close()


class KVHandle:
    """
    Shared async access to one KVFile.

    Every TimesStore/PostStore/TodoStore handle derived from one LocalStore
    holds a reference to the same KVHandle.
    """

    def __init__(self, engine: KVFile):
        self.engine = engine
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: str | Path) -> "KVHandle":
        """Open the engine on the executor."""
        loop = asyncio.get_event_loop()
        try:
            engine = await loop.run_in_executor(None, KVFile, path)
        except (sqlite3.Error, OSError) as e:
            raise BackendFailureError(f"cannot open store file: {e}", key=str(path)) from e
        return cls(engine)

    async def _run(self, key: str, fn: Callable[..., T], *args) -> T:
        """Run one engine step under the lock on the executor."""
        async with self._lock:
            loop = asyncio.get_event_loop()
            try:
                return await loop.run_in_executor(None, fn, *args)
            except (sqlite3.Error, OSError) as e:
                raise BackendFailureError(f"storage engine error: {e}", key=key) from e

    async def contains(self, key: str) -> bool:
        return await self._run(key, self.engine.contains, key)

    async def fetch(self, key: str) -> bytes:
        return await self._run(key, self.engine.fetch, key)

    async def store(self, key: str, value: bytes) -> None:
        logger.trace(f"kv store {key} ({len(value)} bytes)")
        await self._run(key, self.engine.store, key, value)

    async def delete(self, key: str) -> None:
        await self._run(key, self.engine.delete, key)

    async def keys(self, prefix: str = "") -> List[str]:
        return await self._run(prefix, self.engine.keys, prefix)

    async def fetch_many(self, keys: Iterable[str]) -> List[bytes]:
        """Fetch several keys within one lock hold."""
        keys = list(keys)

        def _fetch_all() -> List[bytes]:
            values = []
            for key in keys:
                try:
                    values.append(self.engine.fetch(key))
                except sqlite3.Error as e:
                    raise BackendFailureError(f"storage engine error: {e}", key=key) from e
            return values

        return await self._run(keys[0] if keys else "", _fetch_all)

    async def load_or_init(self, key: str, default: bytes) -> bytes:
        """
        Fetch key, storing default first if it is absent.

        The check and the write happen within one lock hold.
        """
        def _load() -> bytes:
            if not self.engine.contains(key):
                self.engine.store(key, default)
                return default
            return self.engine.fetch(key)

        return await self._run(key, _load)

    async def close(self) -> None:
        await self._run(str(self.engine.path), self.engine.close)


def decode(key: str, parse: Callable[[bytes], T], data: bytes) -> T:
    """Parse a stored value, reporting corrupt records as backend failures."""
    try:
        return parse(data)
    except (ValueError, KeyError, TypeError) as e:
        raise BackendFailureError(f"corrupt record: {e}", key=key) from e
