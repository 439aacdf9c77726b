"""Transport layer for the Chucky SDK.

This package contains all IO and network handling.

Components:
- base: Transport interface, connection status and event callbacks
- ws: Endpoint URL building and WebSocket dialing
- ws_client: WebSocket message iteration
- websocket: WebSocket transport with send queue and keep-alive
"""

from .base import (
    ChuckyTransport,
    ConnectionStatus,
    TransportEvents,
    dispatch_callback,
)
from .websocket import ChuckyWsTransport
from .ws import build_connect_url, connect_websocket
from .ws_client import ChuckyWsClient, ChuckyWsMessage, ChuckyWsMessageType

__all__ = [
    "ChuckyTransport",
    "ChuckyWsClient",
    "ChuckyWsMessage",
    "ChuckyWsMessageType",
    "ChuckyWsTransport",
    "ConnectionStatus",
    "TransportEvents",
    "build_connect_url",
    "connect_websocket",
    "dispatch_callback",
]
