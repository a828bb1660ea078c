"""
WebSocket server exposing a storage backend to RemoteStore clients.

This module implements the hosting side of the remote proxy: it accepts
client connections, decodes requests, runs them against any Store backend
(in-memory, local file, even another RemoteStore) and answers with a RESULT
or ERROR message carrying the request id.

Key Components:
    - StoreServer: Main WebSocket server class
    - Per-connection message loop, requests handled in arrival order
    - Mapping of StoreError subclasses to ERROR payloads

Architecture:
    - Async WebSocket server using websockets library
    - Each client connection handled as a separate task
    - The hosted Store is shared by all connections
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from loguru import logger

from timesman.common.errors import BackendFailureError, NotFoundError, StoreError
from timesman.common.types import File, Post, Times, Todo
from timesman.storage.base import Store, TimesStore

from .protocol import Message, MessageFactory, MessageType

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class StoreServer:
    """
    WebSocket server hosting one Store.

    Typical workflow:
    1. Open a backend (e.g. LocalStore.open(path))
    2. Create StoreServer(store, host, port) and await start_server()
    3. RemoteStore clients connect and issue requests
    4. stop_server() closes the listener and all connections
    """

    def __init__(self, store: Store, host: str = "localhost", port: int = 8765):
        """
        Initialize the store server.

        Args:
            store: Backend every request is executed against
            host: Server host address (default: localhost)
            port: Server port (default: 8765)
        """
        log = logger.bind(context="StoreServer.__init__")

        self.store = store
        self.host = host
        self.port = port

        # Server state
        self.is_running = False
        self.server_instance = None
        self.active_connections = 0

        # Performance monitoring
        self.total_requests_handled = 0
        self.start_time = 0.0

        self.handlers: Dict[MessageType, Handler] = {
            MessageType.CHECK: self._handle_check,
            MessageType.GET_TIMES: self._handle_get_times,
            MessageType.CREATE_TIMES: self._handle_create_times,
            MessageType.DELETE_TIMES: self._handle_delete_times,
            MessageType.UPDATE_TIMES: self._handle_update_times,
            MessageType.GET_POSTS: self._handle_get_posts,
            MessageType.CREATE_POST: self._handle_create_post,
            MessageType.UPDATE_POST: self._handle_update_post,
            MessageType.DELETE_POST: self._handle_delete_post,
            MessageType.GET_TAGS: self._handle_get_tags,
            MessageType.CREATE_TAG: self._handle_create_tag,
            MessageType.GET_TODOS: self._handle_get_todos,
            MessageType.CREATE_TODO: self._handle_create_todo,
            MessageType.DONE_TODO: self._handle_done_todo,
            MessageType.UPDATE_TODO: self._handle_update_todo,
            MessageType.DELETE_TODO: self._handle_delete_todo,
        }

        log.info(f"StoreServer initialized for {host}:{port} ({type(store).__name__})")

    async def start(self):
        """Start listening; returns once the socket is bound."""
        log = logger.bind(context="StoreServer.start")
        log.info(f"Starting store server on {self.host}:{self.port}")

        self.server_instance = await websockets.serve(
            self._handle_client_connection,
            host=self.host,
            port=self.port,
            ping_interval=30,
            ping_timeout=10,
            max_size=50 * 1024 * 1024,
        )
        self.is_running = True
        self.start_time = time.time()
        log.info("Store server ready to accept connections")

    async def start_server(self):
        """
        Start the server and run until it is stopped.

        This method starts the async server and will run indefinitely,
        handling client connections as they arrive.
        """
        log = logger.bind(context="StoreServer.start_server")
        try:
            await self.start()
            await self.server_instance.wait_closed()
        except OSError as e:
            log.error(f"Error starting server: {e}")
            self.is_running = False
            raise

    async def stop_server(self):
        """Stop the server and close all client connections."""
        log = logger.bind(context="StoreServer.stop_server")
        log.info("Stopping store server...")

        if self.server_instance:
            self.server_instance.close()
            await self.server_instance.wait_closed()
            self.server_instance = None

        self.is_running = False
        uptime = time.time() - self.start_time if self.start_time else 0.0
        log.info(f"Store server stopped. Uptime: {uptime:.2f} seconds, requests: {self.total_requests_handled}")

    async def _handle_client_connection(self, websocket):
        """
        Handle one client connection until it closes.

        Args:
            websocket: Active WebSocket connection
        """
        remote = websocket.remote_address
        client_addr = f"{remote[0]}:{remote[1]}" if remote else "unknown"
        log = logger.bind(context="StoreServer._handle_client_connection")
        log.info(f"New client connection from {client_addr}")

        self.active_connections += 1
        try:
            async for raw_message in websocket:
                response = await self._process_raw_message(raw_message)
                if response is not None:
                    await websocket.send(response.to_json())
        except websockets.ConnectionClosed:
            log.info(f"Connection closed by client {client_addr}")
        finally:
            self.active_connections -= 1
            log.info(f"Client {client_addr} disconnected")

    async def _process_raw_message(self, raw_message) -> Optional[Message]:
        """Decode, validate and execute one request."""
        log = logger.bind(context="StoreServer._process_raw_message")
        self.total_requests_handled += 1

        try:
            message = Message.from_json(raw_message)
        except ValueError as e:
            log.warning(f"Undecodable request: {e}")
            return None

        if not message.validate() or message.is_response():
            log.warning(f"Invalid request {message.type} ({message.request_id})")
            return MessageFactory.create_error(
                message.request_id or "", BackendFailureError("Invalid message format")
            )

        return await self._route_message(message)

    async def _route_message(self, message: Message) -> Message:
        """
        Run a request against the hosted store.

        Args:
            message: Validated request

        Returns:
            RESULT or ERROR message for the request
        """
        log = logger.bind(context="StoreServer._route_message")
        log.debug(f"Routing {message.type} ({message.request_id})")

        handler = self.handlers[message.message_type]
        try:
            result = await handler(message.payload)
        except StoreError as e:
            log.debug(f"{message.type} failed: {e.kind}: {e}")
            return MessageFactory.create_error(message.request_id, e)
        except (KeyError, ValueError, TypeError) as e:
            log.warning(f"Malformed {message.type} payload: {e}")
            return MessageFactory.create_error(
                message.request_id, BackendFailureError(f"malformed payload: {e}")
            )

        return MessageFactory.create_result(message.request_id, result)

    async def _times_store(self, tid: int) -> TimesStore:
        for tstore in await self.store.get():
            times = await tstore.get()
            if times.id == tid:
                return tstore
        raise NotFoundError(f"times {tid} not found")

    # Root store

    async def _handle_check(self, payload: Dict[str, Any]) -> None:
        await self.store.check()

    async def _handle_get_times(self, payload: Dict[str, Any]) -> list:
        return [(await tstore.get()).to_dict() for tstore in await self.store.get()]

    async def _handle_create_times(self, payload: Dict[str, Any]) -> dict:
        tstore = await self.store.create(payload["title"])
        return (await tstore.get()).to_dict()

    async def _handle_delete_times(self, payload: Dict[str, Any]) -> None:
        await self.store.delete(int(payload["tid"]))

    # Times store

    async def _handle_update_times(self, payload: Dict[str, Any]) -> dict:
        tstore = await self._times_store(int(payload["tid"]))
        times = await tstore.update(Times.from_dict(payload["times"]))
        return times.to_dict()

    # Post store

    async def _handle_get_posts(self, payload: Dict[str, Any]) -> list:
        pstore = await (await self._times_store(int(payload["tid"]))).pstore()
        return [post.to_dict() for post in await pstore.get_all()]

    async def _handle_create_post(self, payload: Dict[str, Any]) -> dict:
        pstore = await (await self._times_store(int(payload["tid"]))).pstore()
        file_data = payload.get("file")
        file = File.from_dict(file_data) if file_data is not None else None
        post = await pstore.post(payload["text"], file)
        return post.to_dict()

    async def _handle_update_post(self, payload: Dict[str, Any]) -> dict:
        pstore = await (await self._times_store(int(payload["tid"]))).pstore()
        post = await pstore.update(Post.from_dict(payload["post"]))
        return post.to_dict()

    async def _handle_delete_post(self, payload: Dict[str, Any]) -> None:
        pstore = await (await self._times_store(int(payload["tid"]))).pstore()
        await pstore.delete(int(payload["pid"]))

    async def _handle_get_tags(self, payload: Dict[str, Any]) -> list:
        pstore = await (await self._times_store(int(payload["tid"]))).pstore()
        return [tag.to_dict() for tag in await pstore.get_tags()]

    async def _handle_create_tag(self, payload: Dict[str, Any]) -> dict:
        pstore = await (await self._times_store(int(payload["tid"]))).pstore()
        tag = await pstore.create_tag(payload["name"])
        return tag.to_dict()

    # Todo store

    async def _handle_get_todos(self, payload: Dict[str, Any]) -> list:
        tdstore = await (await self._times_store(int(payload["tid"]))).tdstore()
        return [todo.to_dict() for todo in await tdstore.get()]

    async def _handle_create_todo(self, payload: Dict[str, Any]) -> dict:
        tdstore = await (await self._times_store(int(payload["tid"]))).tdstore()
        todo = await tdstore.new(payload["content"])
        return todo.to_dict()

    async def _handle_done_todo(self, payload: Dict[str, Any]) -> dict:
        tdstore = await (await self._times_store(int(payload["tid"]))).tdstore()
        done = payload["done"]
        if not isinstance(done, bool):
            raise TypeError(f"done must be a boolean, got {done!r}")
        todo = await tdstore.done(int(payload["tdid"]), done)
        return todo.to_dict()

    async def _handle_update_todo(self, payload: Dict[str, Any]) -> dict:
        tdstore = await (await self._times_store(int(payload["tid"]))).tdstore()
        todo = await tdstore.update(Todo.from_dict(payload["todo"]))
        return todo.to_dict()

    async def _handle_delete_todo(self, payload: Dict[str, Any]) -> None:
        tdstore = await (await self._times_store(int(payload["tid"]))).tdstore()
        await tdstore.delete(int(payload["tdid"]))

    def get_server_stats(self) -> Dict[str, Any]:
        """Get server statistics."""
        return {
            "is_running": self.is_running,
            "active_connections": self.active_connections,
            "total_requests_handled": self.total_requests_handled,
            "uptime": time.time() - self.start_time if self.is_running else 0.0,
        }
