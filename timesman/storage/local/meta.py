"""
Key layout and metadata records of the local backend.

Storage structure (one flat key space):
    meta.data                  root metadata (next Times id, live Times ids)
    {tid}/meta.data            Times metadata (title, timestamps)
    {tid}/posts/meta.data      Post index
    {tid}/posts/{pid}          Post record
    {tid}/todos/meta.data      Todo index
    {tid}/todos/{tdid}         Todo record
    {tid}/tags/meta.data       Tag index
    {tid}/tags/{tagid}         Tag record

Changing these names or the record schemas breaks existing store files.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from timesman.common.types import Times

ROOT_META_KEY = "meta.data"


def times_meta_key(tid: int) -> str:
    return f"{tid}/meta.data"


def post_meta_key(tid: int) -> str:
    return f"{tid}/posts/meta.data"


def post_key(tid: int, pid: int) -> str:
    return f"{tid}/posts/{pid}"


def todo_meta_key(tid: int) -> str:
    return f"{tid}/todos/meta.data"


def todo_key(tid: int, tdid: int) -> str:
    return f"{tid}/todos/{tdid}"


def tag_meta_key(tid: int) -> str:
    return f"{tid}/tags/meta.data"


def tag_key(tid: int, tagid: int) -> str:
    return f"{tid}/tags/{tagid}"


@dataclass
class RootMeta:
    """Root index: next Times id and the ids of live Times."""
    ntid: int = 0
    tids: List[int] = field(default_factory=list)

    def appended(self, tid: int) -> "RootMeta":
        """Return a copy listing tid, with ntid advanced past it."""
        return RootMeta(ntid=max(self.ntid, tid + 1), tids=[*self.tids, tid])

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "RootMeta":
        raw = json.loads(data)
        return cls(ntid=raw["ntid"], tids=list(raw["tids"]))


@dataclass
class TimesMeta:
    """Stored form of a Times (the id lives in the key)."""
    title: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def new(cls, title: str) -> "TimesMeta":
        return cls(title=title, created_at=datetime.now(), updated_at=None)

    @classmethod
    def from_times(cls, times: Times) -> "TimesMeta":
        return cls(title=times.title, created_at=times.created_at, updated_at=times.updated_at)

    def to_times(self, tid: int) -> Times:
        return Times(
            id=tid,
            title=self.title,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "TimesMeta":
        raw = json.loads(data)
        updated_at = raw.get("updated_at")
        return cls(
            title=raw["title"],
            created_at=datetime.fromisoformat(raw["created_at"]),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


@dataclass
class IndexMeta:
    """
    Child index of one scope (posts, todos or tags of a Times).

    ids always equals the set of child records present in the store.
    next_id never decreases, so an id is issued at most once.
    """
    next_id: int = 0
    ids: List[int] = field(default_factory=list)

    def appended(self, child_id: int) -> "IndexMeta":
        """Return a copy listing child_id, with next_id advanced past it."""
        return IndexMeta(next_id=max(self.next_id, child_id + 1), ids=[*self.ids, child_id])

    def __contains__(self, child_id: int) -> bool:
        return child_id in self.ids

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "IndexMeta":
        raw = json.loads(data)
        return cls(next_id=raw["next_id"], ids=list(raw["ids"]))
