"""Tool definitions, tool results and MCP server descriptors.

Tools with a handler run locally: the service sends a ``tool_call`` frame
and the session answers with a ``tool_result``. Tools without a handler
are declared to the service and executed there.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

DEFAULT_MCP_SERVER_VERSION = "1.0.0"


class ExecuteLocation(Enum):
    """Where a declared tool executes."""

    SERVER = "server"
    BROWSER = "browser"


class McpServerType(Enum):
    """Transport types for external MCP servers."""

    STDIO = "stdio"
    SSE = "sse"
    HTTP = "http"


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool execution as sent back to the service."""

    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> ToolResult:
        """Successful result with a single text block."""
        return cls(content=[{"type": "text", "text": text}])

    @classmethod
    def error(cls, message: str) -> ToolResult:
        """Error result with a single text block."""
        return cls(content=[{"type": "text", "text": message}], is_error=True)

    @classmethod
    def image(cls, data: str, mime_type: str) -> ToolResult:
        """Result carrying base64 image data."""
        return cls(content=[{"type": "image", "data": data, "mimeType": mime_type}])

    @classmethod
    def resource(
        cls,
        uri: str,
        *,
        mime_type: str | None = None,
        text: str | None = None,
        blob: str | None = None,
    ) -> ToolResult:
        """Result referencing a resource."""
        block: dict[str, Any] = {"type": "resource", "uri": uri}
        if mime_type:
            block["mimeType"] = mime_type
        if text:
            block["text"] = text
        if blob:
            block["blob"] = blob
        return cls(content=[block])

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the ``result`` object of a tool_result payload."""
        wire: dict[str, Any] = {"content": [dict(block) for block in self.content]}
        if self.is_error:
            wire["isError"] = True
        return wire


ToolHandler = Callable[
    [dict[str, Any]], Union[ToolResult, str, Awaitable[Union[ToolResult, str]]]
]


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the assistant may call.

    Attributes:
        name: Unique, case-sensitive tool name.
        description: Human readable description shown to the model.
        input_schema: JSON Schema object describing the tool input.
        execute_in: Declared execution location. Sent when it is not
            SERVER; a local handler always routes the tool to this client.
        handler: Local handler. Plain functions run in a worker thread,
            coroutine functions are awaited on the event loop.
    """

    name: str
    description: str
    input_schema: Mapping[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    execute_in: ExecuteLocation = ExecuteLocation.SERVER
    handler: ToolHandler | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the init payload; handlers never leave the process."""
        wire: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": dict(self.input_schema),
        }
        if self.handler is not None:
            # Asks the service to route tool_call frames back to this client.
            wire["executeIn"] = "client"
        elif self.execute_in is not ExecuteLocation.SERVER:
            wire["executeIn"] = self.execute_in.value
        return wire


@dataclass(frozen=True)
class McpClientToolsServer:
    """MCP server whose tools are declared by this client."""

    name: str
    tools: list[ToolDefinition] = field(default_factory=list)
    version: str = DEFAULT_MCP_SERVER_VERSION

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "tools": [tool.to_wire() for tool in self.tools],
        }


@dataclass(frozen=True)
class McpStdioServer:
    """MCP server launched by the service over stdio."""

    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": McpServerType.STDIO.value,
            "command": self.command,
            "args": list(self.args),
            "env": dict(self.env),
        }


@dataclass(frozen=True)
class McpSseServer:
    """MCP server reached by the service over server-sent events."""

    name: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": McpServerType.SSE.value,
            "url": self.url,
            "headers": dict(self.headers),
        }


@dataclass(frozen=True)
class McpHttpServer:
    """MCP server reached by the service over streamable HTTP."""

    name: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": McpServerType.HTTP.value,
            "url": self.url,
            "headers": dict(self.headers),
        }


McpServerDefinition = Union[
    McpClientToolsServer, McpStdioServer, McpSseServer, McpHttpServer
]


def collect_tool_handlers(
    servers: list[McpServerDefinition],
) -> dict[str, ToolHandler]:
    """Build the local tool registry from client-side tool servers.

    Later definitions win when two servers declare the same name.
    """
    handlers: dict[str, ToolHandler] = {}
    for server in servers:
        if not isinstance(server, McpClientToolsServer):
            continue
        for tool in server.tools:
            if tool.handler is not None:
                handlers[tool.name] = tool.handler
    return handlers
