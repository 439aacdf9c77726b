"""Client entry point: session registry and one-shot prompts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .errors import ChuckySessionError, ChuckyTimeout
from .options import ClientOptions, SessionOptions
from .protocol import ResultMessage
from .results import SessionResult
from .session import ChuckySession
from .transport.base import dispatch_callback
from .transport.websocket import ChuckyWsTransport

_LOGGER = logging.getLogger(__name__)


class ChuckyClient:
    """Creates sessions and tracks the ones still open.

    Usage:
        client = ChuckyClient(ClientOptions.from_env())
        result = await client.prompt("Summarize RFC 6455 in one line")
        print(result.result)
        await client.close()
    """

    def __init__(self, options: ClientOptions) -> None:
        self._options = options
        self._sessions: list[ChuckySession] = []

        # Callbacks
        self._session_start_callback: Callable[[str], Any] | None = None
        self._session_end_callback: Callable[[str], Any] | None = None
        self._error_callback: Callable[[Exception], Any] | None = None

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def sessions(self) -> list[ChuckySession]:
        """Snapshot of the sessions that are not closed yet."""
        return list(self._sessions)

    # -------------------------------------------------------------------------
    # Public API: Sessions
    # -------------------------------------------------------------------------

    def create_session(self, options: SessionOptions | None = None) -> ChuckySession:
        """Create a session with its own WebSocket transport.

        The session connects lazily on its first ``connect`` or ``send``.
        """
        transport = ChuckyWsTransport(
            self._options.base_url,
            self._options.token,
            timeout=self._options.timeout,
            keep_alive_interval=self._options.keep_alive_interval,
            debug=self._options.debug,
        )
        session = ChuckySession(
            transport,
            options,
            client=self,
            timeout=self._options.timeout,
            tool_timeout=self._options.tool_timeout,
        )
        self._sessions.append(session)
        _LOGGER.debug("Session created (%d open)", len(self._sessions))
        return session

    def resume_session(
        self, session_id: str, options: SessionOptions | None = None
    ) -> ChuckySession:
        """Create a session that continues the conversation ``session_id``."""
        resumed = (options or SessionOptions()).with_resume(session_id)
        return self.create_session(resumed)

    async def prompt(
        self,
        message: str | list[Any],
        options: SessionOptions | None = None,
        *,
        timeout: float | None = None,
    ) -> SessionResult:
        """Send one message in a fresh session and return its result.

        Raises:
            ChuckySessionError: The stream ended without a result.
            ChuckyTimeout: No result within ``timeout`` seconds.
        """
        session = self.create_session(options)
        try:
            return await asyncio.wait_for(
                self._run_prompt(session, message), timeout=timeout
            )
        except TimeoutError as err:
            raise ChuckyTimeout("prompt timed out") from err
        finally:
            await session.close()

    async def close(self) -> None:
        """Close every open session."""
        _LOGGER.info("Closing client (%d sessions)", len(self._sessions))
        for session in list(self._sessions):
            await session.close()

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_session_start(self, callback: Callable[[str], Any]) -> None:
        """Register callback receiving the session id after each handshake."""
        self._session_start_callback = callback

    def on_session_end(self, callback: Callable[[str], Any]) -> None:
        """Register callback receiving the session id when a session closes."""
        self._session_end_callback = callback

    def on_error(self, callback: Callable[[Exception], Any]) -> None:
        """Register callback for asynchronous errors of any session."""
        self._error_callback = callback

    # -------------------------------------------------------------------------
    # Internal: Session Notifications
    # -------------------------------------------------------------------------

    async def _run_prompt(
        self, session: ChuckySession, message: str | list[Any]
    ) -> SessionResult:
        await session.send(message)

        result: SessionResult | None = None
        async for inbound in session.stream():
            if isinstance(inbound, ResultMessage):
                result = SessionResult.from_message(inbound)

        if result is None:
            raise ChuckySessionError("no result received")
        return result

    async def _remove_session(self, session: ChuckySession) -> None:
        if session in self._sessions:
            self._sessions.remove(session)
        await self._notify(self._session_end_callback, session.session_id)

    async def _notify_session_start(self, session_id: str) -> None:
        await self._notify(self._session_start_callback, session_id)

    async def _notify_error(self, err: Exception) -> None:
        await self._notify(self._error_callback, err)

    @staticmethod
    async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        try:
            await dispatch_callback(callback, *args)
        except Exception as err:
            _LOGGER.exception("Client callback error: %s", err)
