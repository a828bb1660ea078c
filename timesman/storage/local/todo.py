"""Todos of one Times in the local backend."""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import List

from loguru import logger

from timesman.common.errors import InvalidStateTransitionError, NotFoundError, UnsupportedError
from timesman.common.types import Todo
from timesman.storage.base import TodoStore
from timesman.storage.local.kv import KVHandle, decode
from timesman.storage.local.meta import IndexMeta, todo_key, todo_meta_key
from timesman.storage.local.post import load_index


class LocalTodoStore(TodoStore):
    """TodoStore backed by the shared KV file."""

    def __init__(self, tid: int, kv: KVHandle, meta: IndexMeta):
        self.tid = tid
        self.kv = kv
        self.meta = meta
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, tid: int, kv: KVHandle) -> "LocalTodoStore":
        meta = await load_index(kv, todo_meta_key(tid))
        logger.debug(f"Opened todos of times {tid}: {len(meta.ids)} todos")
        return cls(tid, kv, meta)

    async def _sync_meta(self, meta: IndexMeta) -> None:
        await self.kv.store(todo_meta_key(self.tid), meta.to_json())
        self.meta = meta

    async def _load(self, tdid: int) -> Todo:
        if tdid not in self.meta:
            raise NotFoundError(f"todo {tdid} not found in times {self.tid}")
        key = todo_key(self.tid, tdid)
        data = await self.kv.fetch(key)
        return decode(key, Todo.from_json, data)

    async def get(self) -> List[Todo]:
        keys = [todo_key(self.tid, tdid) for tdid in self.meta.ids]
        values = await self.kv.fetch_many(keys)
        return [decode(key, Todo.from_json, data) for key, data in zip(keys, values)]

    async def new(self, content: str) -> Todo:
        async with self._lock:
            tdid = self.meta.next_id
            todo = Todo(id=tdid, content=content, created_at=datetime.now(), done_at=None)

            await self.kv.store(todo_key(self.tid, tdid), todo.to_json().encode("utf-8"))

            # store() has released the KV lock; the index write takes it again
            await self._sync_meta(self.meta.appended(tdid))

        logger.debug(f"Created todo {tdid} in times {self.tid}")
        return todo

    async def done(self, tdid: int, done: bool) -> Todo:
        log = logger.bind(context="LocalTodoStore.done")

        async with self._lock:
            todo = await self._load(tdid)
            if todo.is_done == done:
                log.warning(f"Rejected no-op transition of todo {tdid} in times {self.tid}")
                raise InvalidStateTransitionError(
                    f"todo {tdid} is already {todo.state.value}"
                )

            todo = replace(todo, done_at=datetime.now() if done else None)
            await self.kv.store(todo_key(self.tid, tdid), todo.to_json().encode("utf-8"))

        log.debug(f"Todo {tdid} in times {self.tid} is now {todo.state.value}")
        return todo

    async def update(self, todo: Todo) -> Todo:
        raise UnsupportedError("TodoStore.update", "LocalStore")

    async def delete(self, tdid: int) -> None:
        raise UnsupportedError("TodoStore.delete", "LocalStore")
