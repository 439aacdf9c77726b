"""Client and session configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .tools import McpServerDefinition

DEFAULT_BASE_URL = "wss://conjure.chucky.cloud/ws"
DEFAULT_TIMEOUT = 60.0
DEFAULT_KEEP_ALIVE_INTERVAL = 300.0
DEFAULT_TOOL_TIMEOUT = 60.0

_TRUTHY = {"1", "true", "yes", "on"}


class Model:
    """Known model identifiers. Any model string is accepted on the wire."""

    CLAUDE_SONNET = "claude-sonnet-4-5-20250929"
    CLAUDE_OPUS = "claude-opus-4-5-20251101"


class PermissionMode(Enum):
    """Permission modes for tool execution on the service."""

    DEFAULT = "default"
    PLAN = "plan"
    BYPASS_PERMISSIONS = "bypassPermissions"


@dataclass(frozen=True)
class OutputFormat:
    """Structured output request, e.g. ``OutputFormat("json_schema", {...})``."""

    type: str
    schema: Mapping[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "schema": self.schema}


@dataclass(frozen=True)
class ClientOptions:
    """Connection settings shared by every session of a client.

    Attributes:
        token: Opaque bearer credential passed to the service.
        base_url: WebSocket endpoint (``ws://`` or ``wss://``).
        debug: Log raw inbound and outbound frames at DEBUG level.
        timeout: Dial and readiness timeout (seconds).
        keep_alive_interval: Ping interval (seconds).
        tool_timeout: Upper bound for one local tool call (seconds);
            ``None`` waits indefinitely.
    """

    token: str
    base_url: str = DEFAULT_BASE_URL
    debug: bool = False
    timeout: float = DEFAULT_TIMEOUT
    keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL
    tool_timeout: float | None = DEFAULT_TOOL_TIMEOUT

    def __post_init__(self) -> None:
        """Validate option invariants."""
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.keep_alive_interval <= 0:
            raise ValueError(
                f"keep_alive_interval must be positive, got {self.keep_alive_interval}"
            )
        if self.tool_timeout is not None and self.tool_timeout <= 0:
            raise ValueError(f"tool_timeout must be positive, got {self.tool_timeout}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientOptions:
        """Build options from ``CHUCKY_*`` environment variables.

        Keyword arguments take precedence over the environment.
        """
        values: dict[str, Any] = {
            "token": (os.getenv("CHUCKY_TOKEN") or "").strip(),
            "base_url": (os.getenv("CHUCKY_URL") or "").strip() or DEFAULT_BASE_URL,
            "debug": (os.getenv("CHUCKY_DEBUG") or "").strip().lower() in _TRUTHY,
        }
        timeout = (os.getenv("CHUCKY_TIMEOUT") or "").strip()
        if timeout:
            values["timeout"] = float(timeout)
        keep_alive = (os.getenv("CHUCKY_KEEP_ALIVE_INTERVAL") or "").strip()
        if keep_alive:
            values["keep_alive_interval"] = float(keep_alive)
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class SessionOptions:
    """Per-conversation settings sent to the service in the init frame.

    ``session_id`` is kept locally only: the service assigns the id of
    every session and the init frame never carries one.
    """

    model: str | None = None
    fallback_model: str | None = None
    system_prompt: str | Mapping[str, Any] | None = None
    max_turns: int | None = None
    max_budget_usd: float | None = None
    max_thinking_tokens: int | None = None
    tools: list[str] | Mapping[str, Any] | None = None
    mcp_servers: list[McpServerDefinition] = field(default_factory=list)
    permission_mode: PermissionMode | None = None
    output_format: OutputFormat | None = None
    include_partial_messages: bool = False
    env: dict[str, str] = field(default_factory=dict)
    session_id: str | None = None
    fork_session: bool = False
    resume_session_at: str | None = None
    continue_session: bool = False

    def with_resume(self, session_id: str) -> SessionOptions:
        """Copy of these options that continues ``session_id``."""
        return replace(self, session_id=session_id, continue_session=True)

    def to_init_payload(self) -> dict[str, Any]:
        """Build the init payload, omitting unset fields."""
        payload: dict[str, Any] = {}
        if self.model:
            payload["model"] = self.model
        if self.fallback_model:
            payload["fallbackModel"] = self.fallback_model
        if self.system_prompt:
            payload["systemPrompt"] = (
                self.system_prompt
                if isinstance(self.system_prompt, str)
                else dict(self.system_prompt)
            )
        if self.max_turns:
            payload["maxTurns"] = self.max_turns
        if self.max_budget_usd:
            payload["maxBudgetUsd"] = self.max_budget_usd
        if self.max_thinking_tokens:
            payload["maxThinkingTokens"] = self.max_thinking_tokens
        if self.tools:
            payload["tools"] = (
                list(self.tools) if isinstance(self.tools, list) else dict(self.tools)
            )
        if self.mcp_servers:
            payload["mcpServers"] = [server.to_wire() for server in self.mcp_servers]
        if self.permission_mode is not None:
            payload["permissionMode"] = self.permission_mode.value
        if self.output_format is not None:
            payload["outputFormat"] = self.output_format.to_wire()
        if self.include_partial_messages:
            payload["includePartialMessages"] = True
        if self.env:
            payload["env"] = dict(self.env)
        if self.fork_session:
            payload["forkSession"] = True
        if self.resume_session_at:
            payload["resumeSessionAt"] = self.resume_session_at
        if self.continue_session:
            payload["continue"] = True
        return payload
