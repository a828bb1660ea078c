"""
Root of the local (embedded key-value file) backend.

Opening the store reads meta.data (creating an empty root index if the file
is new) and eagerly builds one LocalTimesStore per listed Times id. Post and
Todo indices are bootstrapped lazily by the leaf stores.
"""

import asyncio
from pathlib import Path
from typing import List

from loguru import logger

from timesman.common.errors import (
    AlreadyExistsError,
    BackendFailureError,
    NotFoundError,
    StoreError,
    UnsupportedError,
)
from timesman.storage.base import Store, TimesStore
from timesman.storage.local.kv import KVHandle, decode
from timesman.storage.local.meta import ROOT_META_KEY, RootMeta, TimesMeta, times_meta_key
from timesman.storage.local.times import LocalTimesStore


class LocalStore(Store):
    """
    Store persisted in a single key-value file.

    Use ``await LocalStore.open(path)``; the constructor does no I/O.
    """

    def __init__(self, kv: KVHandle, meta: RootMeta, tstores: List[LocalTimesStore]):
        self.kv = kv
        self.meta = meta
        self.tstores = tstores
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: str | Path) -> "LocalStore":
        """
        Open (or create) a store file.

        Args:
            path: Location of the store file

        Returns:
            LocalStore with one handle per existing Times

        Raises:
            BackendFailureError: If the file cannot be opened or is corrupt
        """
        log = logger.bind(context="LocalStore.open")
        log.info(f"Opening local store at {path}")

        kv = await KVHandle.open(path)

        try:
            data = await kv.load_or_init(ROOT_META_KEY, RootMeta().to_json())
            meta = decode(ROOT_META_KEY, RootMeta.from_json, data)

            tstores = []
            for tid in meta.tids:
                key = times_meta_key(tid)
                try:
                    tmeta = decode(key, TimesMeta.from_json, await kv.fetch(key))
                except NotFoundError as e:
                    raise BackendFailureError(f"times {tid} is listed but has no metadata", key=key) from e
                tstores.append(LocalTimesStore(tmeta.to_times(tid), kv))
        except StoreError:
            log.error(f"Cannot load local store at {path}")
            await kv.close()
            raise

        log.info(f"Local store opened with {len(tstores)} times (next id {meta.ntid})")
        return cls(kv, meta, tstores)

    async def check(self) -> None:
        if not await self.kv.contains(ROOT_META_KEY):
            raise BackendFailureError("root metadata missing", key=ROOT_META_KEY)

    async def get(self) -> List[TimesStore]:
        return list(self.tstores)

    async def create(self, title: str) -> TimesStore:
        log = logger.bind(context="LocalStore.create")

        async with self._lock:
            for tstore in self.tstores:
                if tstore.times.title == title:
                    log.warning(f"Times titled {title!r} already exists (id {tstore.times.id})")
                    raise AlreadyExistsError(f"times {title!r} already exists")

            tid = self.meta.ntid
            tmeta = TimesMeta.new(title)

            await self.kv.store(times_meta_key(tid), tmeta.to_json())

            meta = self.meta.appended(tid)
            await self.kv.store(ROOT_META_KEY, meta.to_json())
            self.meta = meta

            tstore = LocalTimesStore(tmeta.to_times(tid), self.kv)
            self.tstores.append(tstore)

        log.info(f"Created times {tid} ({title!r})")
        return tstore

    async def delete(self, tid: int) -> None:
        raise UnsupportedError("Store.delete", "LocalStore")

    async def close(self) -> None:
        logger.info(f"Closing local store at {self.kv.engine.path}")
        await self.kv.close()
