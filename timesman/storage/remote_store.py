"""
Remote proxy backend.

Implements the store contract by forwarding every call to a StoreServer
over one StoreClient connection. The server may host any backend, so the
same caller code runs against memory, a local file or another proxy.

Errors raised by the hosted backend come back with the same kind
(NotFoundError, UnsupportedError, ...); transport failures are reported as
BackendFailureError.
"""

import asyncio
from dataclasses import replace
from typing import List, Optional

from loguru import logger

from timesman.common.errors import NotFoundError
from timesman.common.types import File, Post, Tag, Times, Todo
from timesman.communication.client_socket import StoreClient
from timesman.communication.protocol import MessageType
from timesman.storage.base import PostStore, Store, TimesStore, TodoStore


class RemoteStore(Store):
    """
    Store whose data lives behind a StoreServer.

    Use ``await RemoteStore.connect(host, port)``; the store owns the
    client and closes it in close().
    """

    def __init__(self, client: StoreClient):
        self.client = client

    @classmethod
    async def connect(
        cls,
        host: str = "localhost",
        port: int = 8765,
        request_timeout: float = 30.0,
    ) -> "RemoteStore":
        """
        Connect to a StoreServer.

        Raises:
            BackendFailureError: If the server cannot be reached
        """
        log = logger.bind(context="RemoteStore.connect")
        log.info(f"Connecting remote store to {host}:{port}")

        client = StoreClient(server_host=host, server_port=port, request_timeout=request_timeout)
        await client.connect()
        return cls(client)

    async def check(self) -> None:
        await self.client.request(MessageType.CHECK)

    async def get(self) -> List[TimesStore]:
        result = await self.client.request(MessageType.GET_TIMES)
        return [RemoteTimesStore(self.client, Times.from_dict(data)) for data in result]

    async def create(self, title: str) -> TimesStore:
        result = await self.client.request(MessageType.CREATE_TIMES, {"title": title})
        times = Times.from_dict(result)
        logger.bind(context="RemoteStore.create").debug(f"Created remote times {times.id} ({title!r})")
        return RemoteTimesStore(self.client, times)

    async def delete(self, tid: int) -> None:
        await self.client.request(MessageType.DELETE_TIMES, {"tid": tid})

    async def close(self) -> None:
        await self.client.close()


class RemoteTimesStore(TimesStore):
    """Handle for one Times hosted by a StoreServer."""

    def __init__(self, client: StoreClient, times: Times):
        self.client = client
        self.times = times
        self._pstore: Optional["RemotePostStore"] = None
        self._tdstore: Optional["RemoteTodoStore"] = None
        self._lock = asyncio.Lock()

    async def get(self) -> Times:
        return replace(self.times)

    async def update(self, times: Times) -> Times:
        async with self._lock:
            result = await self.client.request(
                MessageType.UPDATE_TIMES,
                {"tid": self.times.id, "times": times.to_dict()},
            )
            self.times = Times.from_dict(result)
            return replace(self.times)

    async def pstore(self) -> PostStore:
        if self._pstore is None:
            self._pstore = RemotePostStore(self.client, self.times.id)
        return self._pstore

    async def tdstore(self) -> TodoStore:
        if self._tdstore is None:
            self._tdstore = RemoteTodoStore(self.client, self.times.id)
        return self._tdstore


class RemotePostStore(PostStore):
    """Posts and Tags of one remote Times."""

    def __init__(self, client: StoreClient, tid: int):
        self.client = client
        self.tid = tid

    async def get(self, pid: int) -> Post:
        # the protocol has no single-post lookup
        for post in await self.get_all():
            if post.id == pid:
                return post
        raise NotFoundError(f"post {pid} not found in times {self.tid}")

    async def get_all(self) -> List[Post]:
        result = await self.client.request(MessageType.GET_POSTS, {"tid": self.tid})
        return [Post.from_dict(data) for data in result]

    async def post(self, text: str, file: Optional[File] = None) -> Post:
        payload = {
            "tid": self.tid,
            "text": text,
            "file": file.to_dict() if file is not None else None,
        }
        result = await self.client.request(MessageType.CREATE_POST, payload)
        return Post.from_dict(result)

    async def update(self, post: Post) -> Post:
        result = await self.client.request(
            MessageType.UPDATE_POST, {"tid": self.tid, "post": post.to_dict()}
        )
        return Post.from_dict(result)

    async def delete(self, pid: int) -> None:
        await self.client.request(MessageType.DELETE_POST, {"tid": self.tid, "pid": pid})

    async def get_tags(self) -> List[Tag]:
        result = await self.client.request(MessageType.GET_TAGS, {"tid": self.tid})
        return [Tag.from_dict(data) for data in result]

    async def create_tag(self, name: str) -> Tag:
        result = await self.client.request(MessageType.CREATE_TAG, {"tid": self.tid, "name": name})
        return Tag.from_dict(result)


class RemoteTodoStore(TodoStore):
    """Todos of one remote Times."""

    def __init__(self, client: StoreClient, tid: int):
        self.client = client
        self.tid = tid

    async def get(self) -> List[Todo]:
        result = await self.client.request(MessageType.GET_TODOS, {"tid": self.tid})
        return [Todo.from_dict(data) for data in result]

    async def new(self, content: str) -> Todo:
        result = await self.client.request(
            MessageType.CREATE_TODO, {"tid": self.tid, "content": content}
        )
        return Todo.from_dict(result)

    async def done(self, tdid: int, done: bool) -> Todo:
        result = await self.client.request(
            MessageType.DONE_TODO, {"tid": self.tid, "tdid": tdid, "done": done}
        )
        return Todo.from_dict(result)

    async def update(self, todo: Todo) -> Todo:
        result = await self.client.request(
            MessageType.UPDATE_TODO, {"tid": self.tid, "todo": todo.to_dict()}
        )
        return Todo.from_dict(result)

    async def delete(self, tdid: int) -> None:
        await self.client.request(MessageType.DELETE_TODO, {"tid": self.tid, "tdid": tdid})
