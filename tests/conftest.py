"""
Pytest configuration and shared fixtures for timesman storage tests.

This module provides reusable fixtures for testing every storage backend,
including an in-process StoreServer and a RemoteStore connected to it. All
tests run within the same process using asyncio.

Key Fixtures:
    - store_path: Fresh store file location per test
    - ram_store: Empty in-memory store
    - local_store: Opened local (key-value file) store
    - test_server: Running StoreServer hosting a RamStore
    - remote_store: RemoteStore connected to test_server
"""

import asyncio
import socket
import time

import pytest
from loguru import logger

from timesman.communication.server_socket import StoreServer
from timesman.storage.local import LocalStore
from timesman.storage.ram_store import RamStore
from timesman.storage.remote_store import RemoteStore


def get_free_port() -> int:
    """
    Get an available port for testing.

    Returns:
        int: Available port number
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('', 0))
        return s.getsockname()[1]


@pytest.fixture
def test_port():
    """Provide a free port for testing."""
    return get_free_port()


@pytest.fixture
def store_path(tmp_path):
    """Location of a store file that does not exist yet."""
    return tmp_path / "data" / "timesman.db"


@pytest.fixture
def ram_store():
    """Provide an empty in-memory store."""
    return RamStore()


@pytest.fixture
async def local_store(store_path):
    """
    Provide an opened local store.

    Yields:
        LocalStore: Store backed by a fresh file, closed after the test
    """
    store = await LocalStore.open(store_path)
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture
async def test_server(test_port, ram_store):
    """
    Provide a running StoreServer hosting a RamStore.

    The server is started in a background task and will be automatically
    cleaned up after the test completes.

    Yields:
        StoreServer: Running server instance
    """
    log = logger.bind(context="test_server_fixture")
    log.info(f"Starting test server on port {test_port}")

    server = StoreServer(ram_store, host="localhost", port=test_port)

    # Start server in background task
    server_task = asyncio.create_task(server.start_server())

    # Verify server is running
    start_time = time.time()
    timeout = 5.0
    while not server.is_running and (time.time() - start_time) < timeout:
        await asyncio.sleep(0.05)

    if not server.is_running:
        server_task.cancel()
        raise RuntimeError("Test server failed to start within timeout")

    log.info(f"Test server started successfully on port {test_port}")

    try:
        yield server
    finally:
        log.info("Stopping test server")
        await server.stop_server()

        # Cancel server task if still running
        if not server_task.done():
            server_task.cancel()
            try:
                await server_task
            except asyncio.CancelledError:
                pass

        log.info("Test server stopped")


@pytest.fixture
async def remote_store(test_server, test_port):
    """
    Provide a RemoteStore connected to the test server.

    Yields:
        RemoteStore: Connected proxy store
    """
    store = await RemoteStore.connect(host="localhost", port=test_port, request_timeout=5.0)
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture
async def store(request, store_path):
    """
    Provide each backend in turn (used with indirect parametrization).

    Yields:
        Store: RamStore or LocalStore depending on request.param
    """
    if request.param == "memory":
        yield RamStore()
    elif request.param == "local":
        local = await LocalStore.open(store_path)
        try:
            yield local
        finally:
            await local.close()
    else:
        raise ValueError(f"Unknown backend: {request.param}")


def pytest_configure(config):
    """Configure pytest settings."""
    # Set up logging for tests
    logger.remove()  # Remove default logger
    logger.add(
        "tests.log",
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{function}:{line} | {message}",
        rotation="10 MB"
    )

    # Also log to console during tests
    logger.add(
        lambda msg: print(msg, end=""),
        level="WARNING",
        format="{time:HH:mm:ss} | {level} | {message}"
    )


def pytest_sessionstart(session):
    """Called after the Session object has been created."""
    logger.info("Starting timesman storage test session")


def pytest_sessionfinish(session, exitstatus):
    """Called after whole test run finished."""
    logger.info(f"timesman storage test session finished with status: {exitstatus}")
