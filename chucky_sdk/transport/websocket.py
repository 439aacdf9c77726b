"""WebSocket transport for the Chucky service.

Owns one connection: dials the endpoint, queues outbound frames until the
connection opens, decodes inbound frames on a read-loop task and sends a
keep-alive ping on a fixed interval.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..errors import (
    ChuckyClientError,
    ChuckyConnectionError,
    ChuckyProtocolError,
    ChuckyTimeout,
)
from ..options import DEFAULT_KEEP_ALIVE_INTERVAL, DEFAULT_TIMEOUT
from ..protocol import PingEnvelope, encode_message, parse_incoming_message
from .base import ChuckyTransport, ConnectionStatus, TransportEvents, dispatch_callback
from .ws import build_connect_url
from .ws_client import (
    ABNORMAL_CLOSURE,
    ChuckyWsClient,
    ChuckyWsMessage,
    ChuckyWsMessageType,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..protocol import OutgoingMessage

_LOGGER = logging.getLogger(__name__)

CLOSE_TIMEOUT = 2.0


class ChuckyWsTransport(ChuckyTransport):
    """Transport over a single WebSocket connection.

    Usage:
        transport = ChuckyWsTransport("wss://conjure.chucky.cloud/ws", token)
        transport.set_event_handlers(TransportEvents(on_message=handle))
        await transport.connect()
        await transport.send(UserMessage("hello"))
        await transport.disconnect()
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        debug: bool = False,
        ping_interval: int | None = 20,
    ) -> None:
        """Initialize transport.

        Args:
            base_url: Service endpoint (ws:// or wss://)
            token: Bearer credential appended to the URL
            timeout: Dial and readiness timeout (seconds)
            keep_alive_interval: Application-level ping interval (seconds)
            debug: Log raw frames at DEBUG level
            ping_interval: Protocol-level ping interval of the websocket library
        """
        self._base_url = base_url
        self._token = token
        self._timeout = timeout
        self._keep_alive_interval = keep_alive_interval
        self._debug = debug
        self._ping_interval = ping_interval

        self._status = ConnectionStatus.DISCONNECTED
        self._handlers = TransportEvents()
        self._ws: ChuckyWsClient | None = None
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()

        # Outbound frames held until the connection opens
        self._queue: list[OutgoingMessage] = []
        self._flushing = False

        self._read_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def set_event_handlers(self, handlers: TransportEvents) -> None:
        self._handlers = handlers

    async def connect(self) -> None:
        """Dial the endpoint, flush queued frames and start background tasks.

        Raises:
            ChuckyConnectionError: The URL is malformed or the dial failed.
        """
        if self._status is ConnectionStatus.CONNECTED and self._ws is not None:
            return

        self._closing.clear()
        await self._set_status(ConnectionStatus.CONNECTING)

        try:
            url = build_connect_url(self._base_url, self._token)
        except ValueError as err:
            await self._set_status(ConnectionStatus.ERROR)
            raise ChuckyConnectionError(f"invalid URL: {err}") from err

        _LOGGER.info("Connecting to %s", self._base_url)

        ws_client = ChuckyWsClient()
        try:
            await ws_client.connect(
                url,
                ping_interval=self._ping_interval,
                timeout=self._timeout,
            )
        except ChuckyClientError as err:
            _LOGGER.warning("Connection failed: %s", err)
            await self._set_status(ConnectionStatus.ERROR)
            raise

        # disconnect() ran while dialing; the new socket has no owner.
        if self._closing.is_set():
            _LOGGER.info("Disconnected while dialing, closing new socket")
            await self._close_client(ws_client)
            await self._set_status(ConnectionStatus.DISCONNECTED)
            return

        self._ws = ws_client
        await self._set_status(ConnectionStatus.CONNECTED)
        self._ready.set()
        _LOGGER.info("WebSocket connected, starting listener")

        await self._flush_queue()

        self._read_task = asyncio.create_task(self._read_loop(ws_client))
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    async def disconnect(self) -> None:
        """Stop background tasks and close the socket. Safe to call twice."""
        self._closing.set()
        self._ready.clear()

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._keepalive_task, self._read_task)
            if task is not None
        ]
        self._keepalive_task = None
        self._read_task = None

        for task in tasks:
            # Close handlers may run on the read loop itself.
            if task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._queue:
            _LOGGER.debug("Dropping %d unsent message(s)", len(self._queue))
            self._queue.clear()

        ws_client, self._ws = self._ws, None
        if ws_client is not None:
            await self._close_client(ws_client)

        await self._set_status(ConnectionStatus.DISCONNECTED)

    async def send(self, message: OutgoingMessage) -> None:
        """Send ``message`` or queue it until the connection opens.

        Raises:
            ChuckyProtocolError: The message could not be encoded.
            ChuckyConnectionError: The socket rejected the frame.
        """
        if (
            self._status is ConnectionStatus.CONNECTING
            or self._ws is None
            or self._flushing
        ):
            self._queue.append(message)
            return
        await self._send_now(message)

    async def wait_for_ready(self) -> None:
        """Wait until the connection is open.

        Raises:
            ChuckyTimeout: The connection did not open within the timeout.
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=self._timeout)
        except TimeoutError as err:
            raise ChuckyTimeout("connection timeout") from err

    # -------------------------------------------------------------------------
    # Internal: Sending
    # -------------------------------------------------------------------------

    async def _send_now(self, message: OutgoingMessage) -> None:
        try:
            data = encode_message(message)
        except (TypeError, ValueError) as err:
            raise ChuckyProtocolError("failed to marshal message") from err

        if self._ws is None:
            raise ChuckyConnectionError("WebSocket is not connected")

        if self._debug:
            _LOGGER.debug("Sending: %s", data)
        await self._ws.send_text(data)

    @staticmethod
    async def _close_client(ws_client: ChuckyWsClient) -> None:
        try:
            await asyncio.wait_for(ws_client.close(), timeout=CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("WebSocket close timed out")
        except ChuckyClientError as err:
            _LOGGER.debug("WebSocket close failed: %s", err)

    async def _flush_queue(self) -> None:
        """Send queued frames in order; failures go to the error callback."""
        if not self._queue:
            return

        _LOGGER.debug("Flushing %d queued message(s)", len(self._queue))
        self._flushing = True
        try:
            # Frames queued while flushing are picked up by the same loop.
            while self._queue:
                message = self._queue.pop(0)
                try:
                    await self._send_now(message)
                except ChuckyClientError as err:
                    _LOGGER.warning("Failed to send queued message: %s", err)
                    await self._emit(self._handlers.on_error, err)
        finally:
            self._flushing = False

    # -------------------------------------------------------------------------
    # Internal: Background Tasks
    # -------------------------------------------------------------------------

    async def _read_loop(self, ws_client: ChuckyWsClient) -> None:
        """Decode inbound frames until the socket closes or the task is cancelled."""
        message_count = 0

        try:
            async for msg in ws_client:
                if self._closing.is_set():
                    return

                if msg.type is ChuckyWsMessageType.TEXT:
                    message_count += 1
                    await self._handle_frame(msg.data)
                    continue

                code, reason = self._close_info(msg)
                _LOGGER.info(
                    "WebSocket closed (code=%s, %d messages)", code, message_count
                )
                await self._emit(
                    self._handlers.on_error,
                    ChuckyConnectionError(f"read error: connection closed ({code})"),
                )
                await self._emit(self._handlers.on_close, code, reason)
                return

        except asyncio.CancelledError:
            _LOGGER.debug("Read loop cancelled (%d messages)", message_count)
            raise

    async def _handle_frame(self, data: Any) -> None:
        if self._debug:
            _LOGGER.debug("Received: %s", data)

        try:
            message = parse_incoming_message(data)
        except ValueError as err:
            _LOGGER.warning("Invalid message: %s", err)
            await self._emit(
                self._handlers.on_error,
                ChuckyProtocolError(f"failed to parse message: {err}"),
            )
            return

        await self._emit(self._handlers.on_message, message)

    async def _keepalive_loop(self) -> None:
        """Keepalive loop - send periodic pings."""
        try:
            while not self._closing.is_set():
                await asyncio.sleep(self._keep_alive_interval)
                if self._closing.is_set():
                    break
                try:
                    await self.send(PingEnvelope())
                except ChuckyClientError as err:
                    _LOGGER.warning("Keep-alive ping failed: %s", err)
                    await self._emit(self._handlers.on_error, err)
        except asyncio.CancelledError:
            _LOGGER.debug("Keepalive cancelled")

    # -------------------------------------------------------------------------
    # Internal: Callbacks
    # -------------------------------------------------------------------------

    async def _set_status(self, status: ConnectionStatus) -> None:
        """Update status and notify callback."""
        if self._status is status:
            return
        _LOGGER.debug("Status: %s → %s", self._status.value, status.value)
        self._status = status
        await self._emit(self._handlers.on_status_change, status)

    @staticmethod
    async def _emit(callback: Callable[..., Any] | None, *args: Any) -> None:
        try:
            await dispatch_callback(callback, *args)
        except Exception as err:
            _LOGGER.exception("Transport callback error: %s", err)

    @staticmethod
    def _close_info(msg: ChuckyWsMessage) -> tuple[int, str]:
        if msg.type is ChuckyWsMessageType.CLOSED and isinstance(msg.data, dict):
            code = msg.data.get("code")
            reason = msg.data.get("reason")
            return (
                code if isinstance(code, int) else ABNORMAL_CLOSURE,
                reason if isinstance(reason, str) else "",
            )
        return ABNORMAL_CLOSURE, msg.data if isinstance(msg.data, str) else ""
