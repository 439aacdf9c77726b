"""Python client for the Chucky conversational agent service."""

__version__ = "0.1.0"

from .client import ChuckyClient
from .errors import (
    ChuckyClientError,
    ChuckyConnectionError,
    ChuckyHandshakeError,
    ChuckyProtocolError,
    ChuckySessionError,
    ChuckyTimeout,
    ChuckyToolExecutionError,
)
from .options import (
    DEFAULT_BASE_URL,
    ClientOptions,
    Model,
    OutputFormat,
    PermissionMode,
    SessionOptions,
)
from .protocol import (
    AssistantMessage,
    ControlAction,
    ControlEnvelope,
    ErrorEnvelope,
    IncomingMessage,
    MessageType,
    OutgoingMessage,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    ToolCallEnvelope,
    UnknownMessage,
    UserMessage,
    encode_message,
    parse_incoming_message,
)
from .results import SessionResult, get_assistant_text, get_result_text
from .session import ChuckySession, SessionState
from .tools import (
    ExecuteLocation,
    McpClientToolsServer,
    McpHttpServer,
    McpServerDefinition,
    McpSseServer,
    McpStdioServer,
    ToolDefinition,
    ToolResult,
)
from .transport import ChuckyTransport, ChuckyWsTransport, ConnectionStatus

__all__ = [
    "DEFAULT_BASE_URL",
    "AssistantMessage",
    "ChuckyClient",
    "ChuckyClientError",
    "ChuckyConnectionError",
    "ChuckyHandshakeError",
    "ChuckyProtocolError",
    "ChuckySession",
    "ChuckySessionError",
    "ChuckyTimeout",
    "ChuckyToolExecutionError",
    "ChuckyTransport",
    "ChuckyWsTransport",
    "ClientOptions",
    "ConnectionStatus",
    "ControlAction",
    "ControlEnvelope",
    "ErrorEnvelope",
    "ExecuteLocation",
    "IncomingMessage",
    "McpClientToolsServer",
    "McpHttpServer",
    "McpServerDefinition",
    "McpSseServer",
    "McpStdioServer",
    "MessageType",
    "Model",
    "OutgoingMessage",
    "OutputFormat",
    "PermissionMode",
    "ResultMessage",
    "SessionOptions",
    "SessionResult",
    "SessionState",
    "StreamEvent",
    "SystemMessage",
    "ToolCallEnvelope",
    "ToolDefinition",
    "ToolResult",
    "UnknownMessage",
    "UserMessage",
    "__version__",
    "encode_message",
    "get_assistant_text",
    "get_result_text",
    "parse_incoming_message",
]
