"""
Request/response protocol between a RemoteStore and a StoreServer.

This module defines the message types, message structure, and JSON
serialization used on the proxy channel.

Key Components:
    - MessageType: Enum of all request and response types
    - Message: Dataclass representing one protocol message
    - MessageFactory: Factory for requests, results and errors

Every request carries a request_id; the server answers with a RESULT or
ERROR message carrying the same id, so several requests can be in flight on
one connection.
"""

import json
import time
import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger

from timesman.common.errors import StoreError


class MessageType(Enum):
    """
    Enumeration of all message types used by the store protocol.

    Client -> Server (one per store contract operation):
        CHECK, GET_TIMES, CREATE_TIMES, DELETE_TIMES, UPDATE_TIMES,
        GET_POSTS, CREATE_POST, UPDATE_POST, DELETE_POST, GET_TAGS,
        CREATE_TAG, GET_TODOS, CREATE_TODO, DONE_TODO, UPDATE_TODO,
        DELETE_TODO

    Server -> Client:
        RESULT: Successful response, payload holds the return value
        ERROR: Failed response, payload holds the error kind and message
    """
    # Root store
    CHECK = "check"
    GET_TIMES = "get_times"
    CREATE_TIMES = "create_times"
    DELETE_TIMES = "delete_times"

    # Times store
    UPDATE_TIMES = "update_times"

    # Post store
    GET_POSTS = "get_posts"
    CREATE_POST = "create_post"
    UPDATE_POST = "update_post"
    DELETE_POST = "delete_post"
    GET_TAGS = "get_tags"
    CREATE_TAG = "create_tag"

    # Todo store
    GET_TODOS = "get_todos"
    CREATE_TODO = "create_todo"
    DONE_TODO = "done_todo"
    UPDATE_TODO = "update_todo"
    DELETE_TODO = "delete_todo"

    # Server -> Client
    RESULT = "result"
    ERROR = "error"


# Payload keys each message type must carry
REQUIRED_PAYLOAD_KEYS: Dict[MessageType, tuple] = {
    MessageType.CHECK: (),
    MessageType.GET_TIMES: (),
    MessageType.CREATE_TIMES: ("title",),
    MessageType.DELETE_TIMES: ("tid",),
    MessageType.UPDATE_TIMES: ("tid", "times"),
    MessageType.GET_POSTS: ("tid",),
    MessageType.CREATE_POST: ("tid", "text"),
    MessageType.UPDATE_POST: ("tid", "post"),
    MessageType.DELETE_POST: ("tid", "pid"),
    MessageType.GET_TAGS: ("tid",),
    MessageType.CREATE_TAG: ("tid", "name"),
    MessageType.GET_TODOS: ("tid",),
    MessageType.CREATE_TODO: ("tid", "content"),
    MessageType.DONE_TODO: ("tid", "tdid", "done"),
    MessageType.UPDATE_TODO: ("tid", "todo"),
    MessageType.DELETE_TODO: ("tid", "tdid"),
    MessageType.RESULT: ("result",),
    MessageType.ERROR: ("kind", "message"),
}


@dataclass
class Message:
    """
    Base message structure for all proxy communication.

    Attributes:
        type: Type of message (must be a valid MessageType value)
        request_id: Correlates a response with its request
        payload: Message-specific data
        timestamp: Unix timestamp when the message was created
    """
    type: str
    request_id: str
    payload: Dict[str, Any]
    timestamp: float

    def to_json(self) -> str:
        """Serialize the message to a JSON string."""
        log = logger.bind(context="Message.to_json")
        try:
            json_str = json.dumps(asdict(self))
            log.trace(f"Serialized JSON: {json_str[:100]}...")
            return json_str
        except (TypeError, ValueError) as e:
            log.error(f"Error serializing message {self.type}: {e}")
            raise

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "Message":
        """Deserialize a JSON string to a Message object."""
        log = logger.bind(context="Message.from_json")
        log.trace(f"Deserializing JSON: {json_str[:100]!r}...")

        try:
            data = json.loads(json_str)
            return cls(**data)
        except json.JSONDecodeError as e:
            log.error(f"JSON decode error: {e}")
            raise
        except TypeError as e:
            log.error(f"Invalid message structure: {e}")
            raise ValueError(f"Invalid message structure: {e}") from e

    @property
    def message_type(self) -> MessageType:
        return MessageType(self.type)

    def is_response(self) -> bool:
        return self.type in (MessageType.RESULT.value, MessageType.ERROR.value)

    def validate(self) -> bool:
        """
        Validate message structure and required fields.

        Performs two levels of validation:
        1. Basic structure: type is a known MessageType, request_id present
        2. Payload: the keys required by the message type are present

        Returns:
            bool: True if message is valid, False otherwise
        """
        log = logger.bind(context="Message.validate")

        if self.type not in [mt.value for mt in MessageType]:
            log.warning(f"Invalid message type: {self.type}")
            return False

        if not self.request_id:
            log.warning("Missing required field: request_id")
            return False

        if not isinstance(self.payload, dict):
            log.warning("Payload must be an object")
            return False

        missing = [key for key in REQUIRED_PAYLOAD_KEYS[self.message_type] if key not in self.payload]
        if missing:
            log.warning(f"{self.type} payload missing {', '.join(missing)}")
            return False

        return True


class MessageFactory:
    """Factory for creating protocol messages."""

    @staticmethod
    def new_request_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def create_request(
        message_type: MessageType,
        payload: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None
    ) -> Message:
        """
        Create a request message from client to server.

        Args:
            message_type: Operation being requested
            payload: Operation arguments
            request_id: Optional explicit id (generated if None)

        Returns:
            Message: Request ready to send
        """
        return Message(
            type=message_type.value,
            request_id=request_id or MessageFactory.new_request_id(),
            payload=payload or {},
            timestamp=time.time(),
        )

    @staticmethod
    def create_result(request_id: str, result: Any) -> Message:
        """
        Create a successful response.

        Args:
            request_id: Id of the request being answered
            result: JSON-compatible return value

        Returns:
            Message: RESULT message ready to send
        """
        return Message(
            type=MessageType.RESULT.value,
            request_id=request_id,
            payload={"result": result},
            timestamp=time.time(),
        )

    @staticmethod
    def create_error(request_id: str, error: StoreError) -> Message:
        """
        Create an error response from a StoreError.

        Args:
            request_id: Id of the request being answered
            error: Error raised by the hosted backend

        Returns:
            Message: ERROR message ready to send
        """
        log = logger.bind(context="MessageFactory.create_error")
        log.debug(f"Creating ERROR message for request {request_id}: {error.kind}")

        return Message(
            type=MessageType.ERROR.value,
            request_id=request_id,
            payload=error.to_dict(),
            timestamp=time.time(),
        )
