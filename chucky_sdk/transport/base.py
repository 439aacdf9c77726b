"""Transport abstraction used by sessions."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..protocol import IncomingMessage, OutgoingMessage


class ConnectionStatus(Enum):
    """Connection status of a transport.

    RECONNECTING is part of the public vocabulary but no transport enters
    it: there is no automatic reconnection.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass
class TransportEvents:
    """Callbacks a transport invokes.

    Each callback may be a plain function or a coroutine function.
    Message, close and error callbacks run on the transport's read-loop
    task; status callbacks run on whichever task changed the status.
    """

    on_message: Callable[[IncomingMessage], Awaitable[None] | None] | None = None
    on_close: Callable[[int, str], Awaitable[None] | None] | None = None
    on_status_change: Callable[[ConnectionStatus], Awaitable[None] | None] | None = (
        None
    )
    on_error: Callable[[Exception], Awaitable[None] | None] | None = None


class ChuckyTransport(ABC):
    """Owns one physical connection to the service."""

    @property
    @abstractmethod
    def status(self) -> ConnectionStatus:
        """Current connection status."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and start background tasks.

        Raises:
            ChuckyConnectionError: The endpoint is malformed or unreachable.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Stop background tasks and close the connection. Idempotent."""

    @abstractmethod
    async def send(self, message: OutgoingMessage) -> None:
        """Send ``message``, queueing it while the connection is not open."""

    @abstractmethod
    def set_event_handlers(self, handlers: TransportEvents) -> None:
        """Register the callbacks invoked by this transport."""

    @abstractmethod
    async def wait_for_ready(self) -> None:
        """Wait until the connection is open.

        Raises:
            ChuckyTimeout: The connection did not open in time.
        """


async def dispatch_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a sync or async callback."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
