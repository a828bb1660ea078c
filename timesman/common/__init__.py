"""Shared value types and errors used by every storage backend and the wire protocol."""

from .errors import (
    AlreadyExistsError,
    BackendFailureError,
    InvalidStateTransitionError,
    NotFoundError,
    StoreError,
    UnsupportedError,
    error_from_dict,
)
from .types import File, FileType, Post, Tag, Times, Todo, TodoState

__all__ = [
    "File",
    "FileType",
    "Post",
    "Tag",
    "Times",
    "Todo",
    "TodoState",
    "StoreError",
    "NotFoundError",
    "AlreadyExistsError",
    "UnsupportedError",
    "InvalidStateTransitionError",
    "BackendFailureError",
    "error_from_dict",
]
