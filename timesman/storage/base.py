"""
Base abstractions for the storage layer.

This module defines the four-level store contract every backend implements:
- Store: root of a backend, owns the set of Times
- TimesStore: handle scoped to exactly one Times id
- PostStore: Posts (and Tags) of one Times
- TodoStore: Todos of one Times

All operations are coroutines. Errors are raised as StoreError subclasses
(see timesman.common.errors); backends raise UnsupportedError for operations they do not
implement instead of silently succeeding.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from timesman.common.types import File, Post, Tag, Times, Todo


class StoreType(str, Enum):
    """Available storage backends."""
    MEMORY = "memory"
    LOCAL = "local"
    REMOTE = "remote"


class PostStore(ABC):
    """
    Abstract interface for the Posts of one Times.

    Implementations allocate Post ids monotonically within the Times and
    never reuse an id after deletion.
    """

    @abstractmethod
    async def get(self, pid: int) -> Post:
        """
        Get a single Post.

        Raises:
            NotFoundError: If pid does not exist in this Times
        """
        pass

    @abstractmethod
    async def get_all(self) -> List[Post]:
        """Get all Posts of this Times, in ascending id order."""
        pass

    @abstractmethod
    async def post(self, text: str, file: Optional[File] = None) -> Post:
        """
        Create a new Post.

        Args:
            text: Entry body
            file: Optional attachment

        Returns:
            The created Post, with created_at set and updated_at None
        """
        pass

    @abstractmethod
    async def update(self, post: Post) -> Post:
        """
        Replace an existing Post.

        The returned Post has updated_at stamped with the current time,
        whatever the caller supplied.
        """
        pass

    @abstractmethod
    async def delete(self, pid: int) -> None:
        """Delete a Post (data and index entry)."""
        pass

    @abstractmethod
    async def get_tags(self) -> List[Tag]:
        """Get all Tags of this Times."""
        pass

    @abstractmethod
    async def create_tag(self, name: str) -> Tag:
        """Create a new Tag."""
        pass

    async def get_latest(self) -> Optional[Post]:
        """
        Get the Post with the highest id.

        Returns:
            The latest Post, or None if the Times has no Posts
        """
        posts = await self.get_all()
        if not posts:
            return None
        return max(posts, key=lambda p: p.id)


class TodoStore(ABC):
    """
    Abstract interface for the Todos of one Times.

    Todo state machine: Pending -> Done and Done -> Pending, both only via
    done(). Requesting the current state raises InvalidStateTransitionError.
    """

    @abstractmethod
    async def get(self) -> List[Todo]:
        """Get all Todos of this Times."""
        pass

    @abstractmethod
    async def new(self, content: str) -> Todo:
        """Create a new pending Todo."""
        pass

    @abstractmethod
    async def done(self, tdid: int, done: bool) -> Todo:
        """
        Move a Todo to Done (done=True) or back to Pending (done=False).

        Raises:
            NotFoundError: If tdid does not exist
            InvalidStateTransitionError: If the Todo is already in that state
        """
        pass

    @abstractmethod
    async def update(self, todo: Todo) -> Todo:
        """Replace content and detail of an existing Todo."""
        pass

    @abstractmethod
    async def delete(self, tdid: int) -> None:
        """Delete a Todo."""
        pass


class TimesStore(ABC):
    """
    Abstract interface for a handle scoped to one Times.

    The handle keeps an in-memory copy of its Times record; get() returns it
    without touching storage.
    """

    @abstractmethod
    async def get(self) -> Times:
        """Get the Times record held by this handle."""
        pass

    @abstractmethod
    async def update(self, times: Times) -> Times:
        """
        Persist a replacement of the Times record.

        Only the title is taken from the argument; id and created_at belong
        to the handle and updated_at is set to the current time.
        """
        pass

    @abstractmethod
    async def pstore(self) -> PostStore:
        """Get the PostStore of this Times (constructed lazily)."""
        pass

    @abstractmethod
    async def tdstore(self) -> TodoStore:
        """Get the TodoStore of this Times (constructed lazily)."""
        pass


class Store(ABC):
    """
    Abstract interface for the root of a storage backend.

    Callers obtain TimesStore handles from here and leaf stores from those.
    The order of get() is not part of the contract.
    """

    @abstractmethod
    async def check(self) -> None:
        """
        Liveness probe. Must not mutate state.

        Raises:
            BackendFailureError: If the backend is unreachable
        """
        pass

    @abstractmethod
    async def get(self) -> List[TimesStore]:
        """Get one handle per existing Times."""
        pass

    @abstractmethod
    async def create(self, title: str) -> TimesStore:
        """
        Create a new Times.

        Args:
            title: Title of the new Times

        Returns:
            Handle for the new Times
        """
        pass

    @abstractmethod
    async def delete(self, tid: int) -> None:
        """Delete a Times and everything it owns."""
        pass

    async def close(self) -> None:
        """Release backend resources. Default is a no-op."""
        return None
