"""WebSocket client wrapper for the Chucky service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import ChuckyConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# RFC 6455: no close frame was received.
ABNORMAL_CLOSURE = 1006


class ChuckyWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class ChuckyWsMessage:
    """Normalized WebSocket message payload.

    TEXT carries the frame body, CLOSED carries ``{"code", "reason"}`` and
    ERROR carries the error text.
    """

    type: ChuckyWsMessageType
    data: str | bytes | dict[str, Any] | None = None


class ChuckyWsClient:
    """Wrapper around websockets library for the Chucky service."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Connect to the service websocket."""
        self._ws = await connect_websocket(
            url,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection with a normal-closure frame."""
        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, WebSocketException) as err:
                raise ChuckyConnectionError("WebSocket close failed") from err

    async def send_text(self, data: str) -> None:
        """Send one text frame."""
        if self._ws is None:
            raise ChuckyConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(data)
        except (ConnectionClosed, OSError) as err:
            raise ChuckyConnectionError("failed to send message") from err

    def __aiter__(self) -> AsyncIterator[ChuckyWsMessage]:
        if self._ws is None:
            raise ChuckyConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[ChuckyWsMessage]:
        if self._ws is None:
            raise ChuckyConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized: ChuckyWsMessage | None = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed as err:
            yield ChuckyWsMessage(
                type=ChuckyWsMessageType.CLOSED,
                data=self._close_details(err),
            )
        except Exception as err:
            yield ChuckyWsMessage(type=ChuckyWsMessageType.ERROR, data=str(err))
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield ChuckyWsMessage(
                type=ChuckyWsMessageType.CLOSED,
                data=self._close_details(None),
            )

    def _close_details(self, err: ConnectionClosed | None) -> dict[str, Any]:
        """Extract the close code and reason the peer sent, if any."""
        frame = getattr(err, "rcvd", None) if err is not None else None
        if frame is not None:
            return {"code": frame.code, "reason": frame.reason}

        code = getattr(self._ws, "close_code", None)
        reason = getattr(self._ws, "close_reason", None)
        return {
            "code": code if isinstance(code, int) else ABNORMAL_CLOSURE,
            "reason": reason if isinstance(reason, str) else "",
        }

    @staticmethod
    def _normalize_message(msg: Any) -> ChuckyWsMessage | None:
        """Normalize backend-specific frames into ChuckyWsMessage."""
        if isinstance(msg, (str, bytes)):
            # Binary frames are passed through; the decoder treats them as UTF-8.
            return ChuckyWsMessage(ChuckyWsMessageType.TEXT, msg)
        if msg is None:
            return None

        # Fallback: treat unknown objects as text via their string repr
        return ChuckyWsMessage(ChuckyWsMessageType.TEXT, str(msg))
