"""Handle for one Times in the local backend."""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Optional

from loguru import logger

from timesman.common.types import Times
from timesman.storage.base import PostStore, TimesStore, TodoStore
from timesman.storage.local.kv import KVHandle
from timesman.storage.local.meta import TimesMeta, times_meta_key
from timesman.storage.local.post import LocalPostStore
from timesman.storage.local.todo import LocalTodoStore


class LocalTimesStore(TimesStore):
    """
    TimesStore backed by {tid}/meta.data.

    Leaf stores are opened on first request (bootstrapping their index
    record) and reused afterwards, so each Times has exactly one in-memory
    copy of its Post and Todo indices.
    """

    def __init__(self, times: Times, kv: KVHandle):
        self.times = times
        self.kv = kv
        self._pstore: Optional[LocalPostStore] = None
        self._tdstore: Optional[LocalTodoStore] = None
        self._lock = asyncio.Lock()

    async def get(self) -> Times:
        return replace(self.times)

    async def update(self, times: Times) -> Times:
        log = logger.bind(context="LocalTimesStore.update")

        async with self._lock:
            updated = replace(self.times, title=times.title, updated_at=datetime.now())
            await self.kv.store(times_meta_key(updated.id), TimesMeta.from_times(updated).to_json())
            self.times = updated

        log.debug(f"Updated times {updated.id} ({updated.title!r})")
        return replace(updated)

    async def pstore(self) -> PostStore:
        async with self._lock:
            if self._pstore is None:
                self._pstore = await LocalPostStore.open(self.times.id, self.kv)
            return self._pstore

    async def tdstore(self) -> TodoStore:
        async with self._lock:
            if self._tdstore is None:
                self._tdstore = await LocalTodoStore.open(self.times.id, self.kv)
            return self._tdstore
