"""
WebSocket client used by the remote store backend.

This module implements the client side of the proxy channel. It keeps one
connection to a StoreServer, sends requests and matches responses to them
by request id, so any number of store operations may be awaited
concurrently over the same socket.

Key Components:
    - StoreClient: Connection, request/response multiplexing
    - ConnectionStats: Counters for monitoring

Every transport problem (refused connection, closed socket, timeout) is
raised as BackendFailureError, the same error type the store contract
already uses for I/O failures.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import websockets
from loguru import logger

from timesman.common.errors import BackendFailureError, error_from_dict

from .protocol import Message, MessageFactory, MessageType


@dataclass
class ConnectionStats:
    """Statistics about the connection."""
    connection_attempts: int = 0
    successful_connections: int = 0
    total_requests_sent: int = 0
    total_responses_received: int = 0
    error_responses: int = 0
    timeouts: int = 0
    last_connection_time: float = 0.0


class StoreClient:
    """
    Request/response client for a StoreServer.

    Typical workflow:
    1. client = StoreClient(host, port); await client.connect()
    2. result = await client.request(MessageType.GET_TIMES)
    3. await client.close()
    """

    def __init__(
        self,
        server_host: str = "localhost",
        server_port: int = 8765,
        request_timeout: float = 30.0,
    ):
        """
        Initialize the store client.

        Args:
            server_host: StoreServer hostname (default: localhost)
            server_port: StoreServer port (default: 8765)
            request_timeout: Seconds to wait for each response
        """
        self.server_host = server_host
        self.server_port = server_port
        self.server_url = f"ws://{self.server_host}:{self.server_port}"
        self.request_timeout = request_timeout

        self.websocket = None
        self.receive_task: Optional[asyncio.Task] = None
        self.pending_responses: Dict[str, asyncio.Future] = {}
        self.stats = ConnectionStats()

        logger.bind(context="StoreClient.__init__").info(
            f"Initialized client for server URL: {self.server_url}"
        )

    def is_connected(self) -> bool:
        return self.websocket is not None and self.receive_task is not None and not self.receive_task.done()

    async def connect(self):
        """
        Connect to the server and start the receive loop.

        Raises:
            BackendFailureError: If the server cannot be reached
        """
        log = logger.bind(context="StoreClient.connect")
        log.info(f"Establishing WebSocket connection at {self.server_url}")

        self.stats.connection_attempts += 1
        try:
            self.websocket = await websockets.connect(
                self.server_url,
                ping_interval=30,
                ping_timeout=10,
                max_size=50 * 1024 * 1024,
            )
        except (OSError, websockets.InvalidURI, websockets.InvalidHandshake) as e:
            log.error(f"Cannot connect to {self.server_url}: {e}")
            raise BackendFailureError(f"cannot connect to store server: {e}", key=self.server_url) from e

        self.stats.successful_connections += 1
        self.stats.last_connection_time = time.time()
        self.receive_task = asyncio.create_task(self._message_loop())
        log.info("WebSocket connection established")

    async def close(self):
        """Close the connection and fail any request still waiting."""
        log = logger.bind(context="StoreClient.close")
        log.info("Closing client")

        if self.websocket is not None:
            await self.websocket.close()

        if self.receive_task is not None:
            try:
                await self.receive_task
            except asyncio.CancelledError:
                pass
            self.receive_task = None

        self.websocket = None
        self._fail_pending("connection closed")

    async def request(self, message_type: MessageType, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a request and wait for its response.

        Args:
            message_type: Operation to run on the server
            payload: Operation arguments

        Returns:
            The ``result`` of the RESULT response

        Raises:
            StoreError: The error raised by the hosted backend
            BackendFailureError: On any transport failure or timeout
        """
        log = logger.bind(context="StoreClient.request")

        if not self.is_connected():
            raise BackendFailureError("not connected to store server", key=message_type.value)

        message = MessageFactory.create_request(message_type, payload)
        future = asyncio.get_event_loop().create_future()
        self.pending_responses[message.request_id] = future

        try:
            log.debug(f"Sending {message.type} ({message.request_id})")
            await self.websocket.send(message.to_json())
            self.stats.total_requests_sent += 1

            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            self.stats.timeouts += 1
            log.warning(f"Timeout waiting for {message.type} ({message.request_id})")
            raise BackendFailureError(
                f"no response within {self.request_timeout}s", key=message_type.value
            ) from e
        except websockets.ConnectionClosed as e:
            log.error(f"Connection closed while sending {message.type}: {e}")
            raise BackendFailureError(f"connection closed: {e}", key=message_type.value) from e
        finally:
            self.pending_responses.pop(message.request_id, None)

    async def _message_loop(self):
        """Receive responses and resolve the matching pending requests."""
        log = logger.bind(context="StoreClient._message_loop")
        log.debug("Starting message loop")

        try:
            async for raw_msg in self.websocket:
                try:
                    message = Message.from_json(raw_msg)
                except ValueError:
                    log.error(f"Failed to decode message: {raw_msg[:100]!r}")
                    continue

                if not message.validate() or not message.is_response():
                    log.warning(f"Invalid response received: {message.type}")
                    continue

                self._handle_response(message)
        except websockets.ConnectionClosed as e:
            log.warning(f"Message loop ended, connection closed: {e}")
        finally:
            self._fail_pending("connection lost")

    def _handle_response(self, message: Message):
        self.stats.total_responses_received += 1

        future = self.pending_responses.pop(message.request_id, None)
        if future is None or future.done():
            logger.warning(f"Response for unknown request {message.request_id}")
            return

        if message.message_type == MessageType.ERROR:
            self.stats.error_responses += 1
            future.set_exception(error_from_dict(message.payload))
        else:
            future.set_result(message.payload["result"])

    def _fail_pending(self, reason: str):
        for request_id, future in list(self.pending_responses.items()):
            if not future.done():
                future.set_exception(BackendFailureError(reason, key=request_id))
        self.pending_responses.clear()

    def get_connection_stats(self) -> ConnectionStats:
        return self.stats
