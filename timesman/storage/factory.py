"""
Factory functions for creating storage backends.

Provides convenient functions for opening a store from a StoreConfig or
from backend-specific arguments.
"""

from pathlib import Path

from loguru import logger

from timesman.config import StoreConfig

from .base import Store, StoreType
from .local import LocalStore
from .ram_store import RamStore
from .remote_store import RemoteStore


async def create_store(config: StoreConfig) -> Store:
    """
    Open the store described by a configuration.

    Args:
        config: Store configuration (backend plus its settings)

    Returns:
        Store ready for use; call ``await store.close()`` when done

    Raises:
        ValueError: If the backend is not supported
        BackendFailureError: If the backend cannot be opened or reached

    Example:
        store = await create_store(create_default_config("local", "./data/timesman.db"))
        tstore = await store.create("2024-01-01")
    """
    log = logger.bind(context="create_store")
    log.info(f"Creating {config.backend} store")

    if config.backend == StoreType.MEMORY.value:
        return create_memory_store()
    elif config.backend == StoreType.LOCAL.value:
        return await open_local_store(config.path)
    elif config.backend == StoreType.REMOTE.value:
        return await connect_remote_store(
            host=config.server_host,
            port=config.server_port,
            request_timeout=config.request_timeout,
        )
    else:
        raise ValueError(f"Unsupported backend: {config.backend}")


def create_memory_store() -> RamStore:
    """Create an empty in-memory store."""
    return RamStore()


async def open_local_store(path: str | Path) -> LocalStore:
    """
    Open (or create) a local store file.

    Args:
        path: Location of the store file

    Returns:
        Opened LocalStore instance
    """
    if not path:
        raise ValueError("A path is required for the local backend")
    return await LocalStore.open(path)


async def connect_remote_store(
    host: str = "localhost",
    port: int = 8765,
    request_timeout: float = 30.0
) -> RemoteStore:
    """
    Connect to a store hosted by a StoreServer.

    Args:
        host: StoreServer hostname
        port: StoreServer port
        request_timeout: Seconds to wait for each response

    Returns:
        Connected RemoteStore instance
    """
    return await RemoteStore.connect(host=host, port=port, request_timeout=request_timeout)
