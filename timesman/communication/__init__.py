"""
Proxy channel between RemoteStore clients and a StoreServer.

Requests and responses are JSON messages over one WebSocket per client,
matched by request id.
"""

from .protocol import Message, MessageFactory, MessageType
from .client_socket import ConnectionStats, StoreClient
from .server_socket import StoreServer

__all__ = [
    "Message",
    "MessageFactory",
    "MessageType",
    "ConnectionStats",
    "StoreClient",
    "StoreServer",
]
