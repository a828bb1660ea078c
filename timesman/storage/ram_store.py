"""
In-memory storage backend.

Keeps every Times, Post, Todo and Tag in process memory. Nothing is
persisted; this backend is the behavioral reference the other backends are
tested against (ordering by id, latest post, post/todo update and delete).
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger

from timesman.common.errors import InvalidStateTransitionError, NotFoundError, UnsupportedError
from timesman.common.types import File, Post, Tag, Times, Todo
from timesman.storage.base import PostStore, Store, TimesStore, TodoStore


class RamStore(Store):
    """Root of the in-memory backend."""

    def __init__(self):
        self.tstores: Dict[int, "RamTimesStore"] = {}
        self.ntid = 0
        logger.info("Initialized RamStore")

    async def check(self) -> None:
        return None

    async def get(self) -> List[TimesStore]:
        return [self.tstores[tid] for tid in sorted(self.tstores)]

    async def create(self, title: str) -> TimesStore:
        log = logger.bind(context="RamStore.create")

        tid = self.ntid
        self.ntid += 1

        times = Times(id=tid, title=title, created_at=datetime.now(), updated_at=None)
        tstore = RamTimesStore(times)
        self.tstores[tid] = tstore

        log.debug(f"Created times {tid} ({title!r})")
        return tstore

    async def delete(self, tid: int) -> None:
        raise UnsupportedError("Store.delete", "RamStore")


class RamTimesStore(TimesStore):
    """Handle for one in-memory Times."""

    def __init__(self, times: Times):
        self.times = times
        self._pstore = RamPostStore()
        self._tdstore = RamTodoStore()

    async def get(self) -> Times:
        return replace(self.times)

    async def update(self, times: Times) -> Times:
        self.times = replace(
            self.times,
            title=times.title,
            updated_at=datetime.now(),
        )
        return replace(self.times)

    async def pstore(self) -> PostStore:
        return self._pstore

    async def tdstore(self) -> TodoStore:
        return self._tdstore


class RamPostStore(PostStore):
    """Posts and Tags of one in-memory Times."""

    def __init__(self):
        self.posts: Dict[int, Post] = {}
        self.npid = 0
        self.tags: Dict[int, Tag] = {}
        self.ntagid = 0

    async def get(self, pid: int) -> Post:
        post = self.posts.get(pid)
        if post is None:
            raise NotFoundError(f"invalid pid {pid}")
        return replace(post)

    async def get_all(self) -> List[Post]:
        return [replace(self.posts[pid]) for pid in sorted(self.posts)]

    async def post(self, text: str, file: Optional[File] = None) -> Post:
        pid = self.npid
        self.npid += 1

        post = Post(
            id=pid,
            text=text,
            created_at=datetime.now(),
            updated_at=None,
            file=file,
        )
        self.posts[pid] = post
        return replace(post)

    async def update(self, post: Post) -> Post:
        current = self.posts.get(post.id)
        if current is None:
            raise NotFoundError(f"invalid pid {post.id}")

        updated = replace(
            post,
            created_at=current.created_at,
            updated_at=datetime.now(),
        )
        self.posts[post.id] = updated
        return replace(updated)

    async def delete(self, pid: int) -> None:
        if self.posts.pop(pid, None) is None:
            raise NotFoundError(f"invalid pid {pid}")

    async def get_tags(self) -> List[Tag]:
        return [replace(self.tags[tagid]) for tagid in sorted(self.tags)]

    async def create_tag(self, name: str) -> Tag:
        tag = Tag(id=self.ntagid, name=name)
        self.ntagid += 1
        self.tags[tag.id] = tag
        return replace(tag)


class RamTodoStore(TodoStore):
    """Todos of one in-memory Times."""

    def __init__(self):
        self.todos: Dict[int, Todo] = {}
        self.ntdid = 0

    def _lookup(self, tdid: int) -> Todo:
        todo = self.todos.get(tdid)
        if todo is None:
            raise NotFoundError(f"invalid tdid {tdid}")
        return todo

    async def get(self) -> List[Todo]:
        return [replace(self.todos[tdid]) for tdid in sorted(self.todos)]

    async def new(self, content: str) -> Todo:
        tdid = self.ntdid
        self.ntdid += 1

        todo = Todo(id=tdid, content=content, created_at=datetime.now(), done_at=None)
        self.todos[tdid] = todo
        return replace(todo)

    async def done(self, tdid: int, done: bool) -> Todo:
        todo = self._lookup(tdid)
        if todo.is_done == done:
            raise InvalidStateTransitionError(
                f"todo {tdid} is already {todo.state.value}"
            )

        updated = replace(todo, done_at=datetime.now() if done else None)
        self.todos[tdid] = updated
        return replace(updated)

    async def update(self, todo: Todo) -> Todo:
        current = self._lookup(todo.id)
        # state only changes through done()
        updated = replace(current, content=todo.content, detail=todo.detail)
        self.todos[todo.id] = updated
        return replace(updated)

    async def delete(self, tdid: int) -> None:
        if self.todos.pop(tdid, None) is None:
            raise NotFoundError(f"invalid tdid {tdid}")
