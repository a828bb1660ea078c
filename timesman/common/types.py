"""
Domain value types for the timesman storage core.

This module defines the records that every backend stores and returns:
- Times: a named bucket owning Posts, Todos and Tags
- Post: a single logged entry, optionally carrying a File and a Tag reference
- Todo: a task item with a Pending/Done state machine
- Tag: a named label referenced by Posts by id
- File: an attachment embedded in a Post

All records serialize to plain dictionaries (and JSON) so that the embedded
key-value backend and the remote proxy share one encoding.
"""

import base64
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


class FileType(str, Enum):
    """Kind of payload carried by a File attachment."""
    IMAGE = "image"
    TEXT = "text"
    OTHER = "other"


class TodoState(str, Enum):
    """States of the Todo state machine."""
    PENDING = "pending"
    DONE = "done"


@dataclass
class File:
    """
    Attachment embedded in a Post.

    Attributes:
        name: Original file name
        ftype: Payload kind (image, text, other)
        data: Raw payload bytes
    """
    name: str
    ftype: FileType
    data: bytes

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "ftype": self.ftype.value,
            "data": base64.b64encode(self.data).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "File":
        """Create from dictionary."""
        return cls(
            name=data["name"],
            ftype=FileType(data["ftype"]),
            data=base64.b64decode(data["data"]),
        )

    @classmethod
    def from_text(cls, name: str, text: str) -> "File":
        """Create a text attachment from a string."""
        return cls(name=name, ftype=FileType.TEXT, data=text.encode("utf-8"))

    def text(self) -> str:
        """Decode a text attachment."""
        if self.ftype != FileType.TEXT:
            raise ValueError(f"File {self.name} is not a text file ({self.ftype.value})")
        return self.data.decode("utf-8")


@dataclass
class Times:
    """
    A named bucket (conceptually a day or a topic).

    Attributes:
        id: Identifier, unique within the root store
        title: Display title
        created_at: Creation time
        updated_at: Last modification time, None until first update
    """
    id: int
    title: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Times":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            title=data["title"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=_dt_from_str(data.get("updated_at")),
        )

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "Times":
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))

    def __str__(self) -> str:
        if self.updated_at is not None:
            return f"{self.id} {self.title} {self.created_at} {self.updated_at}"
        return f"{self.id} {self.title} {self.created_at}"


@dataclass
class Post:
    """
    A single entry inside a Times.

    Attributes:
        id: Identifier, unique within its Times
        text: Entry body
        created_at: Creation time
        updated_at: Last modification time, None until first update
        file: Optional embedded attachment
        tag: Optional Tag id (weak reference, the Tag is not owned)
    """
    id: int
    text: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    file: Optional[File] = None
    tag: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "text": self.text,
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
            "file": self.file.to_dict() if self.file is not None else None,
            "tag": self.tag,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        """Create from dictionary."""
        file_data = data.get("file")
        return cls(
            id=data["id"],
            text=data["text"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=_dt_from_str(data.get("updated_at")),
            file=File.from_dict(file_data) if file_data is not None else None,
            tag=data.get("tag"),
        )

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "Post":
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))


@dataclass
class Todo:
    """
    A task item inside a Times.

    The presence of done_at marks the Todo as Done; transitions only happen
    through TodoStore.done().

    Attributes:
        id: Identifier, unique within its Times
        content: Short description
        created_at: Creation time
        detail: Optional longer description
        done_at: Completion time, None while pending
    """
    id: int
    content: str
    created_at: datetime
    detail: Optional[str] = None
    done_at: Optional[datetime] = None

    @property
    def state(self) -> TodoState:
        return TodoState.DONE if self.done_at is not None else TodoState.PENDING

    @property
    def is_done(self) -> bool:
        return self.done_at is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "content": self.content,
            "detail": self.detail,
            "created_at": _dt_to_str(self.created_at),
            "done_at": _dt_to_str(self.done_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Todo":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            content=data["content"],
            detail=data.get("detail"),
            created_at=datetime.fromisoformat(data["created_at"]),
            done_at=_dt_from_str(data.get("done_at")),
        )

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "Todo":
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))


@dataclass
class Tag:
    """A named label, referenced by Posts through its id."""
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tag":
        return cls(id=data["id"], name=data["name"])

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "Tag":
        return cls.from_dict(json.loads(json_str))
