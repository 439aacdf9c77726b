"""Client error types for Chucky session interactions."""

from __future__ import annotations


class ChuckyClientError(Exception):
    """Base error for Chucky client failures."""

    code = "UNKNOWN_ERROR"


class ChuckyConnectionError(ChuckyClientError):
    """Network connection to the service failed."""

    code = "CONNECTION_ERROR"


class ChuckyHandshakeError(ChuckyConnectionError):
    """WebSocket handshake failed."""


class ChuckyProtocolError(ChuckyClientError):
    """A frame could not be encoded or decoded."""

    code = "PROTOCOL_ERROR"


class ChuckyTimeout(ChuckyClientError):
    """Timeout while waiting on the service."""

    code = "TIMEOUT_ERROR"


class ChuckySessionError(ChuckyClientError):
    """Session-level failure reported by the service or the session itself."""

    code = "SESSION_ERROR"

    def __init__(self, message: str, *, server_code: str | None = None) -> None:
        super().__init__(message)
        self.server_code = server_code


class ChuckyToolExecutionError(ChuckyClientError):
    """A locally handled tool failed.

    Only reported through error callbacks; the service sees an error
    tool result instead.
    """

    code = "TOOL_EXECUTION_ERROR"

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name
