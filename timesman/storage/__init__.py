"""
Storage layer for timesman.

This package provides one store contract with several backends:
- Memory: everything in process memory, the behavioral reference
- Local: a single key-value file with per-scope metadata indices
- Remote: a proxy forwarding every call to a StoreServer

Key Features:
- Four-level contract: Store -> TimesStore -> PostStore / TodoStore
- Async: every operation is a coroutine
- Shared error taxonomy: same exceptions from every backend

Example:
    from timesman.storage import open_local_store

    store = await open_local_store("./data/timesman.db")
    tstore = await store.create("2024-01-01")

    pstore = await tstore.pstore()
    await pstore.post("morning note")

    tdstore = await tstore.tdstore()
    todo = await tdstore.new("buy milk")
    await tdstore.done(todo.id, True)

    await store.close()
"""

from .base import (
    PostStore,
    Store,
    StoreType,
    TimesStore,
    TodoStore,
)
from .ram_store import RamPostStore, RamStore, RamTimesStore, RamTodoStore
from .local import LocalPostStore, LocalStore, LocalTimesStore, LocalTodoStore
from .remote_store import RemotePostStore, RemoteStore, RemoteTimesStore, RemoteTodoStore
from .factory import (
    connect_remote_store,
    create_memory_store,
    create_store,
    open_local_store,
)

__all__ = [
    "PostStore",
    "Store",
    "StoreType",
    "TimesStore",
    "TodoStore",
    "RamStore",
    "RamTimesStore",
    "RamPostStore",
    "RamTodoStore",
    "LocalStore",
    "LocalTimesStore",
    "LocalPostStore",
    "LocalTodoStore",
    "RemoteStore",
    "RemoteTimesStore",
    "RemotePostStore",
    "RemoteTodoStore",
    "create_store",
    "create_memory_store",
    "open_local_store",
    "connect_remote_store",
]
