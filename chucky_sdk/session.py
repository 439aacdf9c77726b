"""Conversation session on top of a transport.

A session drives the init handshake, sends user turns, buffers inbound
envelopes for a single stream consumer and answers ``tool_call`` frames
with locally registered tool handlers.

Usage:
    session = client.create_session(SessionOptions(model=Model.CLAUDE_SONNET))
    await session.send("What is 2 + 2?")
    async for message in session.stream():
        print(get_assistant_text(message))
    await session.close()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import (
    ChuckyClientError,
    ChuckySessionError,
    ChuckyTimeout,
    ChuckyToolExecutionError,
)
from .options import DEFAULT_TOOL_TIMEOUT, SessionOptions
from .protocol import (
    UNKNOWN_SESSION_ID,
    ControlAction,
    ControlEnvelope,
    ErrorEnvelope,
    IncomingMessage,
    InitEnvelope,
    ResultMessage,
    SystemMessage,
    SystemSubtype,
    ToolCallEnvelope,
    ToolResultEnvelope,
    UserMessage,
)
from .tools import ToolHandler, ToolResult, collect_tool_handlers
from .transport.base import ConnectionStatus, TransportEvents, dispatch_callback

if TYPE_CHECKING:
    from .client import ChuckyClient
    from .transport.base import ChuckyTransport

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

INBOUND_QUEUE_SIZE = 100
ERROR_QUEUE_SIZE = 10


class SessionState(Enum):
    """Lifecycle states of a session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    PROCESSING = "processing"
    WAITING_TOOL = "waiting_tool"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(slots=True)
class _SessionContext:
    """Mutable session fields; guarded by ``ChuckySession._context_lock``."""

    state: SessionState = SessionState.IDLE
    session_id: str = ""
    connected: bool = False


class ChuckySession:
    """One conversation with the service."""

    def __init__(
        self,
        transport: ChuckyTransport,
        options: SessionOptions | None = None,
        *,
        client: ChuckyClient | None = None,
        timeout: float | None = None,
        tool_timeout: float | None = DEFAULT_TOOL_TIMEOUT,
    ) -> None:
        """Initialize session.

        Args:
            transport: Connection used by this session only
            options: Configuration sent in the init frame
            client: Owning client, notified of start, end and errors
            timeout: Default bound for ``connect`` (seconds); None waits
            tool_timeout: Bound for one local tool call (seconds); None waits
        """
        self._transport = transport
        self._options = options or SessionOptions()
        self._client = client
        self._timeout = timeout
        self._tool_timeout = tool_timeout

        # Shared with worker-thread tool handlers
        self._context = _SessionContext()
        self._context_lock = threading.Lock()

        self._connect_lock = asyncio.Lock()
        self._inbound: asyncio.Queue[IncomingMessage] = asyncio.Queue(
            maxsize=INBOUND_QUEUE_SIZE
        )
        # Envelopes taken off the queue by a cancelled stream consumer
        self._held: deque[IncomingMessage] = deque()
        self._errors: asyncio.Queue[Exception] = asyncio.Queue(
            maxsize=ERROR_QUEUE_SIZE
        )
        self._closed = asyncio.Event()
        self._handshake_ready = asyncio.Event()
        self._init_error: ChuckySessionError | None = None

        self._tool_handlers: dict[str, ToolHandler] = collect_tool_handlers(
            self._options.mcp_servers
        )

        # Callbacks
        self._message_callback: Callable[[IncomingMessage], Any] | None = None
        self._error_callback: Callable[[Exception], Any] | None = None
        self._close_callback: Callable[[], Any] | None = None

        transport.set_event_handlers(
            TransportEvents(
                on_message=self._handle_message,
                on_close=self._handle_close,
                on_status_change=self._handle_status_change,
                on_error=self._handle_error,
            )
        )

    # -------------------------------------------------------------------------
    # Public API: Properties
    # -------------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        """Service-assigned id; empty until the service announces it."""
        with self._context_lock:
            return self._context.session_id

    @property
    def state(self) -> SessionState:
        with self._context_lock:
            return self._context.state

    @property
    def is_connected(self) -> bool:
        """Check if the handshake completed and the session is still open."""
        with self._context_lock:
            connected = self._context.connected
        return connected and not self._closed.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    @property
    def options(self) -> SessionOptions:
        return self._options

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_message(self, callback: Callable[[IncomingMessage], Any]) -> None:
        """Register callback for every envelope delivered to the stream."""
        self._message_callback = callback

    def on_error(self, callback: Callable[[Exception], Any]) -> None:
        """Register callback for asynchronous errors (transport, protocol, tools)."""
        self._error_callback = callback

    def on_close(self, callback: Callable[[], Any]) -> None:
        """Register callback invoked once when the session closes."""
        self._close_callback = callback

    # -------------------------------------------------------------------------
    # Public API: Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, *, timeout: float | None = None) -> None:
        """Open the transport and complete the init handshake.

        Raises:
            ChuckySessionError: The session is closed, the service rejected
                the init frame, or the session closed during the handshake.
            ChuckyTimeout: The handshake did not finish in time.
            ChuckyConnectionError: The transport could not connect.
        """
        async with self._connect_lock:
            if self.is_connected:
                return
            if self._closed.is_set():
                raise ChuckySessionError("session is closed")

            wait = timeout if timeout is not None else self._timeout
            self._set_state(SessionState.INITIALIZING)
            _LOGGER.info("[%s] Connecting session", self._log_id)

            try:
                await asyncio.wait_for(self._initialize(), timeout=wait)
            except TimeoutError as err:
                self._set_state(SessionState.ERROR)
                raise ChuckyTimeout("session initialization timed out") from err
            except BaseException:
                self._set_state(SessionState.ERROR)
                raise

            with self._context_lock:
                self._context.connected = True
            self._set_state(SessionState.READY)
            _LOGGER.info("[%s] Session ready", self._log_id)

        if self._client is not None:
            await self._client._notify_session_start(self.session_id)

    async def send(
        self, message: str | list[Any], *, timeout: float | None = None
    ) -> None:
        """Send one user turn, connecting first if needed.

        Does not wait for a reply; read replies with :meth:`stream`.
        """
        if not self.is_connected:
            await self.connect(timeout=timeout)

        self._set_state(SessionState.PROCESSING)
        session_id = self.session_id or UNKNOWN_SESSION_ID
        await self._transport.send(UserMessage(content=message, session_id=session_id))

    async def stream(self) -> AsyncIterator[IncomingMessage]:
        """Yield inbound envelopes until a result arrives or the session closes.

        Envelopes buffered before close are still yielded.
        """
        while True:
            try:
                message = (
                    self._held.popleft() if self._held else self._inbound.get_nowait()
                )
            except asyncio.QueueEmpty:
                received, pending = await self._until_closed(
                    self._inbound.get(), restore=self._requeue
                )
                if not received or pending is None:
                    return
                message = pending

            if isinstance(message, ResultMessage):
                self._set_state(SessionState.COMPLETED)
                yield message
                return
            yield message

    def receive(self) -> AsyncIterator[IncomingMessage]:
        """Alias of :meth:`stream`."""
        return self.stream()

    def drain_errors(self) -> list[Exception]:
        """Return and clear the buffered asynchronous errors."""
        errors: list[Exception] = []
        while True:
            try:
                errors.append(self._errors.get_nowait())
            except asyncio.QueueEmpty:
                return errors

    async def close(self) -> None:
        """Close the session. Runs once; later calls return immediately."""
        if self._closed.is_set():
            return
        self._closed.set()
        _LOGGER.info("[%s] Closing session", self._log_id)

        with self._context_lock:
            self._context.connected = False

        try:
            await self._transport.send(ControlEnvelope(ControlAction.CLOSE))
        except ChuckyClientError as err:
            _LOGGER.debug("[%s] Close frame not sent: %s", self._log_id, err)

        await self._transport.disconnect()

        if self._client is not None:
            await self._client._remove_session(self)

        await self._run_callback(self._close_callback)

    # -------------------------------------------------------------------------
    # Internal: Handshake
    # -------------------------------------------------------------------------

    async def _initialize(self) -> None:
        self._handshake_ready.clear()
        self._init_error = None

        opened, _ = await self._until_closed(self._transport.connect())
        if opened and not self._closed.is_set():
            opened, _ = await self._until_closed(self._transport.wait_for_ready())
        if not opened or self._closed.is_set():
            # close() may have run before the dial finished.
            await self._transport.disconnect()
            raise ChuckySessionError("session closed during initialization")

        await self._transport.send(InitEnvelope(self._options.to_init_payload()))
        _LOGGER.debug("[%s] Init sent", self._log_id)

        ready, _ = await self._until_closed(self._handshake_ready.wait())
        if self._init_error is not None:
            raise self._init_error
        if not ready:
            raise ChuckySessionError("session closed during initialization")

    async def _until_closed(
        self,
        aw: Awaitable[_T],
        *,
        restore: Callable[[_T], None] | None = None,
    ) -> tuple[bool, _T | None]:
        """Wait for ``aw`` unless the session closes first.

        Returns ``(True, result)`` when ``aw`` finished and ``(False, None)``
        when the session closed; ``aw`` is cancelled in that case. If the
        caller is cancelled after ``aw`` already produced a result, that
        result is handed to ``restore`` instead of being lost.
        """
        task = asyncio.ensure_future(aw)
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({task, closed}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if (
                restore is not None
                and task.done()
                and not task.cancelled()
                and task.exception() is None
            ):
                restore(task.result())
            else:
                task.cancel()
            raise
        finally:
            closed.cancel()

        if task.done():
            return True, task.result()
        task.cancel()
        return False, None

    def _requeue(self, message: IncomingMessage) -> None:
        self._held.append(message)

    # -------------------------------------------------------------------------
    # Internal: Transport Events
    # -------------------------------------------------------------------------

    async def _handle_message(self, message: IncomingMessage) -> None:
        with self._context_lock:
            connected = self._context.connected

        if not connected:
            if isinstance(message, ControlEnvelope) and message.action in (
                ControlAction.READY,
                ControlAction.SESSION_INFO,
            ):
                _LOGGER.debug("[%s] Handshake ready", self._log_id)
                self._handshake_ready.set()
                return
            if (
                isinstance(message, ErrorEnvelope)
                and not self._handshake_ready.is_set()
            ):
                _LOGGER.warning(
                    "[%s] Initialization rejected: %s", self._log_id, message.message
                )
                self._init_error = ChuckySessionError(
                    message.message or "session initialization failed",
                    server_code=message.code or None,
                )
                self._handshake_ready.set()

        if isinstance(message, SystemMessage) and message.subtype is SystemSubtype.INIT:
            self._assign_session_id(message.session_id)
            self._handshake_ready.set()

        if isinstance(message, ToolCallEnvelope):
            await self._handle_tool_call(message)
            return

        delivered, _ = await self._until_closed(self._inbound.put(message))
        if not delivered:
            _LOGGER.debug("[%s] Dropped %s after close", self._log_id, message.type)
            return

        await self._run_callback(self._message_callback, message)

    async def _handle_error(self, err: Exception) -> None:
        _LOGGER.debug("[%s] Error: %s", self._log_id, err)
        try:
            self._errors.put_nowait(err)
        except asyncio.QueueFull:
            _LOGGER.debug("[%s] Error buffer full, dropping: %s", self._log_id, err)

        if self._client is not None:
            await self._client._notify_error(err)
        await self._run_callback(self._error_callback, err)

    async def _handle_close(self, code: int, reason: str) -> None:
        _LOGGER.info(
            "[%s] Connection closed by service (code=%s, reason=%s)",
            self._log_id,
            code,
            reason or "-",
        )
        await self.close()

    def _handle_status_change(self, status: ConnectionStatus) -> None:
        _LOGGER.debug("[%s] Transport %s", self._log_id, status.value)

    # -------------------------------------------------------------------------
    # Internal: Tool Calls
    # -------------------------------------------------------------------------

    async def _handle_tool_call(self, call: ToolCallEnvelope) -> None:
        """Run a locally registered tool and answer with a tool_result."""
        self._set_state(SessionState.WAITING_TOOL)
        _LOGGER.debug(
            "[%s] Tool call %s (%s)", self._log_id, call.tool_name, call.call_id
        )

        result = await self._execute_tool(call)

        try:
            await self._transport.send(
                ToolResultEnvelope(call_id=call.call_id, result=result)
            )
        except ChuckyClientError as err:
            _LOGGER.warning(
                "[%s] Failed to send tool result for %s: %s",
                self._log_id,
                call.tool_name,
                err,
            )
            await self._handle_error(err)

        self._set_state(SessionState.PROCESSING)

    async def _execute_tool(self, call: ToolCallEnvelope) -> ToolResult:
        handler = self._tool_handlers.get(call.tool_name)
        if handler is None:
            _LOGGER.warning("[%s] Tool not found: %s", self._log_id, call.tool_name)
            return ToolResult.error(f"Tool not found: {call.tool_name}")

        tool_input = dict(call.input) if isinstance(call.input, Mapping) else {}

        try:
            value = await asyncio.wait_for(
                _invoke_handler(handler, tool_input), timeout=self._tool_timeout
            )
            if isinstance(value, str):
                return ToolResult.text(value)
            if isinstance(value, ToolResult):
                return value
            raise TypeError(f"unsupported tool result type: {type(value).__name__}")
        except TimeoutError:
            detail = f"timed out after {self._tool_timeout}s"
        except Exception as err:
            detail = str(err) or type(err).__name__

        _LOGGER.warning(
            "[%s] Tool %s failed: %s", self._log_id, call.tool_name, detail
        )
        await self._handle_error(ChuckyToolExecutionError(call.tool_name, detail))
        return ToolResult.error(f"Tool execution error: {detail}")

    # -------------------------------------------------------------------------
    # Internal: Helpers
    # -------------------------------------------------------------------------

    @property
    def _log_id(self) -> str:
        return self.session_id or "pending"

    def _set_state(self, state: SessionState) -> None:
        with self._context_lock:
            previous = self._context.state
            self._context.state = state
        if previous is not state:
            _LOGGER.debug(
                "[%s] State: %s → %s", self._log_id, previous.value, state.value
            )

    def _assign_session_id(self, session_id: str) -> None:
        """Record the service-assigned id; the first non-empty id wins."""
        if not session_id:
            return
        with self._context_lock:
            if self._context.session_id:
                return
            self._context.session_id = session_id
        _LOGGER.info("[%s] Session id assigned", session_id)

    async def _run_callback(
        self, callback: Callable[..., Any] | None, *args: Any
    ) -> None:
        try:
            await dispatch_callback(callback, *args)
        except Exception as err:
            _LOGGER.exception("[%s] Callback error: %s", self._log_id, err)


async def _invoke_handler(handler: ToolHandler, tool_input: dict[str, Any]) -> Any:
    """Await coroutine handlers; run plain handlers in a worker thread."""
    if inspect.iscoroutinefunction(handler):
        value = await handler(tool_input)
    else:
        value = await asyncio.to_thread(handler, tool_input)
    if inspect.isawaitable(value):
        value = await value
    return value
