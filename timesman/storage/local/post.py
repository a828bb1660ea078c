"""
Posts and Tags of one Times in the local backend.

Write protocol for every new record:
1. build and serialize the record
2. write the data key
3. write the index key with the id appended
4. swap the written index in as the in-memory one

Steps 2 and 3 each take the shared KV lock on their own. A failure between
them leaves a record without an index entry, never an index entry without
its record, and the unchanged counter hands the same id to the next write.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

from loguru import logger

from timesman.common.errors import NotFoundError, UnsupportedError
from timesman.common.types import File, Post, Tag
from timesman.storage.base import PostStore
from timesman.storage.local.kv import KVHandle, decode
from timesman.storage.local.meta import IndexMeta, post_key, post_meta_key, tag_key, tag_meta_key


async def load_index(kv: KVHandle, key: str) -> IndexMeta:
    """Load an index record, creating an empty one if absent."""
    data = await kv.load_or_init(key, IndexMeta().to_json())
    return decode(key, IndexMeta.from_json, data)


class LocalPostStore(PostStore):
    """PostStore backed by the shared KV file."""

    def __init__(self, tid: int, kv: KVHandle, pmeta: IndexMeta, tag_meta: IndexMeta):
        self.tid = tid
        self.kv = kv
        self.pmeta = pmeta
        self.tag_meta = tag_meta
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, tid: int, kv: KVHandle) -> "LocalPostStore":
        log = logger.bind(context="LocalPostStore.open")

        pmeta = await load_index(kv, post_meta_key(tid))
        tag_meta = await load_index(kv, tag_meta_key(tid))

        log.debug(f"Opened posts of times {tid}: {len(pmeta.ids)} posts, {len(tag_meta.ids)} tags")
        return cls(tid, kv, pmeta, tag_meta)

    async def _sync_post_meta(self, pmeta: IndexMeta) -> None:
        await self.kv.store(post_meta_key(self.tid), pmeta.to_json())
        self.pmeta = pmeta

    async def _sync_tag_meta(self, tag_meta: IndexMeta) -> None:
        await self.kv.store(tag_meta_key(self.tid), tag_meta.to_json())
        self.tag_meta = tag_meta

    async def get(self, pid: int) -> Post:
        if pid not in self.pmeta:
            raise NotFoundError(f"post {pid} not found in times {self.tid}")

        key = post_key(self.tid, pid)
        data = await self.kv.fetch(key)
        return decode(key, Post.from_json, data)

    async def get_all(self) -> List[Post]:
        keys = [post_key(self.tid, pid) for pid in self.pmeta.ids]
        values = await self.kv.fetch_many(keys)
        return [decode(key, Post.from_json, data) for key, data in zip(keys, values)]

    async def post(self, text: str, file: Optional[File] = None) -> Post:
        log = logger.bind(context="LocalPostStore.post")

        async with self._lock:
            pid = self.pmeta.next_id
            post = Post(
                id=pid,
                text=text,
                created_at=datetime.now(),
                updated_at=None,
                file=file,
                tag=None,
            )

            await self.kv.store(post_key(self.tid, pid), post.to_json().encode("utf-8"))

            # store() has released the KV lock; the index write takes it again
            await self._sync_post_meta(self.pmeta.appended(pid))

        log.debug(f"Created post {pid} in times {self.tid}")
        return post

    async def update(self, post: Post) -> Post:
        raise UnsupportedError("PostStore.update", "LocalStore")

    async def delete(self, pid: int) -> None:
        raise UnsupportedError("PostStore.delete", "LocalStore")

    async def get_tags(self) -> List[Tag]:
        keys = [tag_key(self.tid, tagid) for tagid in self.tag_meta.ids]
        values = await self.kv.fetch_many(keys)
        return [decode(key, Tag.from_json, data) for key, data in zip(keys, values)]

    async def create_tag(self, name: str) -> Tag:
        async with self._lock:
            tag = Tag(id=self.tag_meta.next_id, name=name)

            await self.kv.store(tag_key(self.tid, tag.id), tag.to_json().encode("utf-8"))

            await self._sync_tag_meta(self.tag_meta.appended(tag.id))

        logger.debug(f"Created tag {tag.id} ({name!r}) in times {self.tid}")
        return tag
