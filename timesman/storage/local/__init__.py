"""
Local backend: the store contract persisted in one key-value file.

Example:
    store = await LocalStore.open("./data/timesman.db")
    tstore = await store.create("2024-01-01")
    pstore = await tstore.pstore()
    await pstore.post("morning note")
"""

from .kv import KVFile, KVHandle
from .post import LocalPostStore
from .store import LocalStore
from .times import LocalTimesStore
from .todo import LocalTodoStore

__all__ = [
    "KVFile",
    "KVHandle",
    "LocalStore",
    "LocalTimesStore",
    "LocalPostStore",
    "LocalTodoStore",
]
