"""WebSocket helpers for the Chucky service endpoint."""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    ChuckyConnectionError,
    ChuckyHandshakeError,
)

CONNECTION_PURPOSE = "prompt"


def build_connect_url(base_url: str, token: str) -> str:
    """Append the bearer token and connection purpose to ``base_url``.

    Existing query parameters are kept; ``token`` and ``type`` are replaced.

    Raises:
        ValueError: ``base_url`` is not a ws:// or wss:// URL with a host.
    """
    parts = urlsplit(base_url)
    if parts.scheme not in ("ws", "wss"):
        raise ValueError(f"unsupported URL scheme: {parts.scheme or '<none>'}")
    if not parts.netloc:
        raise ValueError("URL has no host")

    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in ("token", "type")
    ]
    query.append(("token", token))
    query.append(("type", CONNECTION_PURPOSE))
    return urlunsplit(parts._replace(query=urlencode(query)))


async def connect_websocket(
    url: str,
    *,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to a WebSocket endpoint.

    Uses the websockets library which properly implements RFC 6455 frame masking.
    All client-to-server frames are automatically masked per the standard.

    Args:
        url: Full endpoint URL including query parameters
        ping_interval: Interval for protocol-level ping frames
        timeout: Connection timeout
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise ChuckyConnectionError("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise ChuckyHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise ChuckyConnectionError("WebSocket connection failed") from err
