"""
Unit tests for the local (single key-value file) backend.

Covers the persisted key layout, index/data consistency, persistence across
reopen, the operations this backend rejects and concurrent writers.
"""

import asyncio
import json

import pytest

from timesman.common.errors import (
    AlreadyExistsError,
    BackendFailureError,
    InvalidStateTransitionError,
    NotFoundError,
    UnsupportedError,
)
from timesman.common.types import File, FileType, Times, TodoState
from timesman.storage.local import KVFile, LocalStore
from timesman.storage.local.meta import IndexMeta, post_key, todo_key


async def index_ids(store: LocalStore, key: str) -> list:
    """Ids listed by an index record, read straight from the file."""
    return IndexMeta.from_json(await store.kv.fetch(key)).ids


async def data_ids(store: LocalStore, prefix: str) -> list:
    """Ids that have a data record under prefix."""
    keys = await store.kv.keys(prefix)
    return sorted(int(key[len(prefix):]) for key in keys if not key.endswith("meta.data"))


class TestLocalStoreOpen:
    """Test opening and bootstrapping a store file."""

    @pytest.mark.asyncio
    async def test_new_file_has_root_meta(self, local_store):
        """Test that opening a new file writes an empty root index."""
        data = json.loads(await local_store.kv.fetch("meta.data"))

        assert data == {"ntid": 0, "tids": []}
        assert await local_store.get() == []

    @pytest.mark.asyncio
    async def test_check(self, local_store):
        """Test that check passes on an opened store."""
        await local_store.check()

    @pytest.mark.asyncio
    async def test_check_fails_without_root_meta(self, local_store):
        """Test that check reports a missing root record."""
        await local_store.kv.delete("meta.data")

        with pytest.raises(BackendFailureError):
            await local_store.check()

    @pytest.mark.asyncio
    async def test_corrupt_root_meta(self, store_path):
        """Test that a corrupt root record fails the open."""
        engine = KVFile(store_path)
        engine.store("meta.data", b"garbage")
        engine.close()

        with pytest.raises(BackendFailureError):
            await LocalStore.open(store_path)

    @pytest.mark.asyncio
    async def test_missing_times_meta(self, store_path):
        """Test that a root index pointing at a missing Times fails the open."""
        engine = KVFile(store_path)
        engine.store("meta.data", json.dumps({"ntid": 1, "tids": [0]}).encode())
        engine.close()

        with pytest.raises(BackendFailureError) as exc_info:
            await LocalStore.open(store_path)

        assert exc_info.value.key == "0/meta.data"


class TestLocalStoreTimes:
    """Test Times creation, update and persistence."""

    @pytest.mark.asyncio
    async def test_create_writes_layout(self, local_store):
        """Test the keys written by create."""
        tstore = await local_store.create("2024-01-01")
        times = await tstore.get()

        root = json.loads(await local_store.kv.fetch("meta.data"))
        tmeta = json.loads(await local_store.kv.fetch("0/meta.data"))

        assert times.id == 0
        assert times.updated_at is None
        assert root == {"ntid": 1, "tids": [0]}
        assert tmeta["title"] == "2024-01-01"
        assert tmeta["updated_at"] is None

    @pytest.mark.asyncio
    async def test_duplicate_title_rejected(self, local_store):
        """Test that this backend enforces unique Times titles."""
        await local_store.create("same")

        with pytest.raises(AlreadyExistsError):
            await local_store.create("same")

        assert len(await local_store.get()) == 1
        assert json.loads(await local_store.kv.fetch("meta.data"))["tids"] == [0]

    @pytest.mark.asyncio
    async def test_delete_unsupported(self, local_store):
        """Test that Times deletion fails explicitly."""
        await local_store.create("a")

        with pytest.raises(UnsupportedError):
            await local_store.delete(0)

    @pytest.mark.asyncio
    async def test_update_persists(self, store_path):
        """Test that a Times update survives reopening the file."""
        store = await LocalStore.open(store_path)
        tstore = await store.create("old")
        original = await tstore.get()
        updated = await tstore.update(Times(id=5, title="new", created_at=original.created_at))
        await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            times = await (await reopened.get())[0].get()
        finally:
            await reopened.close()

        assert updated.id == 0
        assert updated.updated_at is not None
        assert updated.updated_at >= updated.created_at
        assert times == updated

    @pytest.mark.asyncio
    async def test_reopen_restores_times(self, store_path):
        """Test that every Times and the id counter survive reopening."""
        store = await LocalStore.open(store_path)
        for title in ["a", "b", "c"]:
            await store.create(title)
        await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            titles = [(await t.get()).title for t in await reopened.get()]
            next_times = await (await reopened.create("d")).get()
        finally:
            await reopened.close()

        assert titles == ["a", "b", "c"]
        assert next_times.id == 3


class TestLocalPostStore:
    """Test Posts and Tags of the local backend."""

    @pytest.fixture
    async def tstore(self, local_store):
        return await local_store.create("posts")

    @pytest.mark.asyncio
    async def test_index_bootstrapped_lazily(self, local_store, tstore):
        """Test that the Post index is created on first pstore()."""
        assert not await local_store.kv.contains("0/posts/meta.data")

        await tstore.pstore()

        assert await local_store.kv.contains("0/posts/meta.data")
        assert await local_store.kv.contains("0/tags/meta.data")

    @pytest.mark.asyncio
    async def test_post_writes_data_and_index(self, local_store, tstore):
        """Test that a new Post has its record and its index entry."""
        pstore = await tstore.pstore()

        post = await pstore.post("morning note")

        assert post.id == 0
        assert post.updated_at is None
        assert await local_store.kv.contains(post_key(0, 0))
        assert await index_ids(local_store, "0/posts/meta.data") == [0]

    @pytest.mark.asyncio
    async def test_get(self, tstore):
        """Test reading one Post back."""
        pstore = await tstore.pstore()
        post = await pstore.post("with file", File("a.png", FileType.IMAGE, b"\x89PNG"))

        assert await pstore.get(post.id) == post

        with pytest.raises(NotFoundError):
            await pstore.get(1)

    @pytest.mark.asyncio
    async def test_get_all_insertion_order(self, tstore):
        """Test that get_all follows the index order."""
        pstore = await tstore.pstore()
        for text in ["morning note", "evening note"]:
            await pstore.post(text)

        posts = await pstore.get_all()

        assert [p.text for p in posts] == ["morning note", "evening note"]
        assert (await pstore.get_latest()).text == "evening note"

    @pytest.mark.asyncio
    async def test_index_matches_data(self, local_store, tstore):
        """Test that the index always lists exactly the stored records."""
        pstore = await tstore.pstore()

        for i in range(5):
            await pstore.post(f"post {i}")
            assert await index_ids(local_store, "0/posts/meta.data") == await data_ids(local_store, "0/posts/")

    @pytest.mark.asyncio
    async def test_concurrent_posts_get_unique_ids(self, local_store, tstore):
        """Test that concurrent writers never share an id."""
        pstore = await tstore.pstore()

        posts = await asyncio.gather(*(pstore.post(f"post {i}") for i in range(10)))

        assert sorted(p.id for p in posts) == list(range(10))
        assert await index_ids(local_store, "0/posts/meta.data") == list(range(10))
        assert await data_ids(local_store, "0/posts/") == list(range(10))

    @pytest.mark.asyncio
    async def test_posts_persist(self, store_path):
        """Test that Posts and the id counter survive reopening."""
        store = await LocalStore.open(store_path)
        pstore = await (await store.create("a")).pstore()
        await pstore.post("one")
        await pstore.post("two")
        await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            pstore = await (await reopened.get())[0].pstore()
            texts = [p.text for p in await pstore.get_all()]
            third = await pstore.post("three")
        finally:
            await reopened.close()

        assert texts == ["one", "two"]
        assert third.id == 2

    @pytest.mark.asyncio
    async def test_update_and_delete_unsupported(self, tstore):
        """Test that Post update and delete fail explicitly."""
        pstore = await tstore.pstore()
        post = await pstore.post("x")

        with pytest.raises(UnsupportedError):
            await pstore.update(post)
        with pytest.raises(UnsupportedError):
            await pstore.delete(post.id)

        assert await pstore.get(post.id) == post

    @pytest.mark.asyncio
    async def test_tags(self, local_store, tstore):
        """Test creating and listing Tags."""
        pstore = await tstore.pstore()

        await pstore.create_tag("work")
        await pstore.create_tag("home")

        assert [(t.id, t.name) for t in await pstore.get_tags()] == [(0, "work"), (1, "home")]
        assert await index_ids(local_store, "0/tags/meta.data") == [0, 1]

    @pytest.mark.asyncio
    async def test_times_are_isolated(self, local_store, tstore):
        """Test that Post ids are scoped to their Times."""
        other = await local_store.create("other")

        first = await (await tstore.pstore()).post("a")
        second = await (await other.pstore()).post("b")

        assert first.id == second.id == 0
        assert await local_store.kv.contains("1/posts/0")


class TestLocalTodoStore:
    """Test Todos of the local backend."""

    @pytest.fixture
    async def tdstore(self, local_store):
        tstore = await local_store.create("todos")
        return await tstore.tdstore()

    @pytest.mark.asyncio
    async def test_new(self, local_store, tdstore):
        """Test that a new Todo is written pending, with its index entry."""
        todo = await tdstore.new("buy milk")

        assert todo.id == 0
        assert todo.state == TodoState.PENDING
        assert await local_store.kv.contains(todo_key(0, 0))
        assert await index_ids(local_store, "0/todos/meta.data") == [0]

    @pytest.mark.asyncio
    async def test_done_persisted(self, local_store, tdstore):
        """Test that done() rewrites the stored record."""
        todo = await tdstore.new("buy milk")

        done = await tdstore.done(todo.id, True)
        stored = json.loads(await local_store.kv.fetch(todo_key(0, 0)))

        assert done.state == TodoState.DONE
        assert stored["done_at"] == done.done_at.isoformat()
        assert (await tdstore.get())[0] == done

    @pytest.mark.asyncio
    async def test_strict_transitions(self, tdstore):
        """Test that requesting the current state is rejected."""
        todo = await tdstore.new("buy milk")

        with pytest.raises(InvalidStateTransitionError):
            await tdstore.done(todo.id, False)

        await tdstore.done(todo.id, True)
        with pytest.raises(InvalidStateTransitionError):
            await tdstore.done(todo.id, True)

        pending = await tdstore.done(todo.id, False)
        assert pending.done_at is None

    @pytest.mark.asyncio
    async def test_done_unknown_todo(self, tdstore):
        """Test that an unknown tdid raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await tdstore.done(0, True)

    @pytest.mark.asyncio
    async def test_update_and_delete_unsupported(self, tdstore):
        """Test that Todo update and delete fail explicitly."""
        todo = await tdstore.new("x")

        with pytest.raises(UnsupportedError):
            await tdstore.update(todo)
        with pytest.raises(UnsupportedError):
            await tdstore.delete(todo.id)

    @pytest.mark.asyncio
    async def test_todos_persist(self, store_path):
        """Test that Todos and their state survive reopening."""
        store = await LocalStore.open(store_path)
        tdstore = await (await store.create("a")).tdstore()
        todo = await tdstore.new("buy milk")
        await tdstore.done(todo.id, True)
        await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            todos = await (await (await reopened.get())[0].tdstore()).get()
        finally:
            await reopened.close()

        assert len(todos) == 1
        assert todos[0].is_done


def fail_store_once(monkeypatch, store: LocalStore, failing_key: str) -> None:
    """Make the next write of failing_key raise BackendFailureError."""
    original = store.kv.store
    failed = []

    async def store_or_fail(key, value):
        if key == failing_key and not failed:
            failed.append(key)
            raise BackendFailureError("storage engine error: disk I/O error", key=key)
        await original(key, value)

    monkeypatch.setattr(store.kv, "store", store_or_fail)


class TestLocalFailedIndexWrite:
    """Test that a failed index write leaves no trace in memory or on disk."""

    @pytest.mark.asyncio
    async def test_failed_create_can_be_retried(self, store_path, monkeypatch):
        """Test that a retried create does not duplicate the title."""
        store = await LocalStore.open(store_path)
        try:
            fail_store_once(monkeypatch, store, "meta.data")
            with pytest.raises(BackendFailureError):
                await store.create("2024-01-01")

            assert await store.get() == []
            assert store.meta.tids == []

            tstore = await store.create("2024-01-01")
            assert (await tstore.get()).id == 0
        finally:
            await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            titles = [(await t.get()).title for t in await reopened.get()]
        finally:
            await reopened.close()

        assert titles == ["2024-01-01"]

    @pytest.mark.asyncio
    async def test_failed_post_is_not_listed(self, store_path, monkeypatch):
        """Test that a Post whose index write failed is neither listed nor kept."""
        store = await LocalStore.open(store_path)
        try:
            pstore = await (await store.create("a")).pstore()
            fail_store_once(monkeypatch, store, "0/posts/meta.data")

            with pytest.raises(BackendFailureError):
                await pstore.post("lost")

            assert await pstore.get_all() == []
            with pytest.raises(NotFoundError):
                await pstore.get(0)

            kept = await pstore.post("kept")
            assert kept.id == 0
        finally:
            await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            pstore = await (await reopened.get())[0].pstore()
            posts = [(p.id, p.text) for p in await pstore.get_all()]
            next_post = await pstore.post("next")
        finally:
            await reopened.close()

        assert posts == [(0, "kept")]
        assert next_post.id == 1

    @pytest.mark.asyncio
    async def test_failed_tag_is_not_listed(self, local_store, monkeypatch):
        """Test that a Tag whose index write failed is not listed."""
        pstore = await (await local_store.create("a")).pstore()
        fail_store_once(monkeypatch, local_store, "0/tags/meta.data")

        with pytest.raises(BackendFailureError):
            await pstore.create_tag("lost")

        assert await pstore.get_tags() == []
        assert (await pstore.create_tag("work")).id == 0
        assert await index_ids(local_store, "0/tags/meta.data") == [0]

    @pytest.mark.asyncio
    async def test_failed_todo_is_not_listed(self, store_path, monkeypatch):
        """Test that a Todo whose index write failed is neither listed nor kept."""
        store = await LocalStore.open(store_path)
        try:
            tdstore = await (await store.create("a")).tdstore()
            fail_store_once(monkeypatch, store, "0/todos/meta.data")

            with pytest.raises(BackendFailureError):
                await tdstore.new("lost")

            assert await tdstore.get() == []
            with pytest.raises(NotFoundError):
                await tdstore.done(0, True)

            kept = await tdstore.new("kept")
            assert kept.id == 0
        finally:
            await store.close()

        reopened = await LocalStore.open(store_path)
        try:
            todos = [(t.id, t.content) for t in await (await (await reopened.get())[0].tdstore()).get()]
        finally:
            await reopened.close()

        assert todos == [(0, "kept")]
