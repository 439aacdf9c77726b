"""Wire envelopes exchanged with the Chucky service.

Every frame is a UTF-8 JSON object with a ``type`` discriminator. Known
types decode into the dataclasses below; anything else decodes into
:class:`UnknownMessage` so newer services do not break older clients.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypeVar, Union
from uuid import uuid4

from .tools import ToolResult

UNKNOWN_SESSION_ID = "unknown"

_EnumT = TypeVar("_EnumT", bound=Enum)


class MessageType(Enum):
    """Frame type discriminators."""

    INIT = "init"
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    RESULT = "result"
    STREAM_EVENT = "stream_event"
    CONTROL = "control"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class ControlAction(Enum):
    """Actions carried by control frames."""

    READY = "ready"
    SESSION_INFO = "session_info"
    END_INPUT = "end_input"
    CLOSE = "close"


class SystemSubtype(Enum):
    """Subtypes of system frames."""

    INIT = "init"
    COMPACT_BOUNDARY = "compact_boundary"


class ResultSubtype(Enum):
    """Subtypes of result frames."""

    SUCCESS = "success"
    ERROR_MAX_TURNS = "error_max_turns"
    ERROR_DURING_EXECUTION = "error_during_execution"
    ERROR_BUDGET = "error_budget"
    ERROR_CONCURRENCY = "error_concurrency"
    ERROR_AUTHENTICATION = "error_authentication"


class Role(Enum):
    """Conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def _coerce_enum(enum_cls: type[_EnumT], value: Any) -> _EnumT | str:
    """Map a raw string onto ``enum_cls``, keeping unknown values as-is."""
    try:
        return enum_cls(value)
    except ValueError:
        return "" if value is None else str(value)


def _enum_value(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else value


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    return int(value)


def _float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    return float(value)


# -----------------------------------------------------------------------------
# Shared payload types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatMessage:
    """Role plus content; content is a string or a list of content blocks."""

    role: Role | str
    content: str | list[Any]

    @classmethod
    def from_wire(cls, data: Any) -> ChatMessage:
        body = _require_mapping(data, "message")
        content = body.get("content", "")
        if not isinstance(content, (str, list)):
            raise ValueError("message content must be a string or a list")
        return cls(role=_coerce_enum(Role, body.get("role")), content=content)

    def to_wire(self) -> dict[str, Any]:
        return {"role": _enum_value(self.role), "content": self.content}


@dataclass(frozen=True)
class Usage:
    """Token usage counters reported with a result."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @classmethod
    def from_wire(cls, data: Any) -> Usage:
        body = _require_mapping(data, "usage")
        return cls(
            input_tokens=_int(body.get("input_tokens")),
            output_tokens=_int(body.get("output_tokens")),
            cache_creation_input_tokens=_int(body.get("cache_creation_input_tokens")),
            cache_read_input_tokens=_int(body.get("cache_read_input_tokens")),
        )


# -----------------------------------------------------------------------------
# Outbound envelopes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class InitEnvelope:
    """Handshake request carrying the session configuration."""

    type: ClassVar[MessageType] = MessageType.INIT

    payload: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": dict(self.payload)}


@dataclass(frozen=True)
class UserMessage:
    """One user turn."""

    type: ClassVar[MessageType] = MessageType.USER

    content: str | list[Any]
    session_id: str = UNKNOWN_SESSION_ID
    uuid: str = field(default_factory=lambda: str(uuid4()))
    parent_tool_use_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "uuid": self.uuid,
            "session_id": self.session_id,
            "message": ChatMessage(Role.USER, self.content).to_wire(),
            "parent_tool_use_id": self.parent_tool_use_id,
        }


@dataclass(frozen=True)
class PingEnvelope:
    """Keep-alive ping."""

    type: ClassVar[MessageType] = MessageType.PING

    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": {"timestamp": self.timestamp}}


@dataclass(frozen=True)
class ToolResultEnvelope:
    """Answer to a tool_call frame."""

    type: ClassVar[MessageType] = MessageType.TOOL_RESULT

    call_id: str
    result: ToolResult

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": {"callId": self.call_id, "result": self.result.to_wire()},
        }


# -----------------------------------------------------------------------------
# Bidirectional envelopes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ControlEnvelope:
    """Session management frame."""

    type: ClassVar[MessageType] = MessageType.CONTROL

    action: ControlAction | str
    data: Any = None

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> ControlEnvelope:
        payload = _require_mapping(frame.get("payload"), "control payload")
        return cls(
            action=_coerce_enum(ControlAction, payload.get("action")),
            data=payload.get("data"),
        )

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"action": _enum_value(self.action)}
        if self.data is not None:
            payload["data"] = self.data
        return {"type": self.type.value, "payload": payload}


# -----------------------------------------------------------------------------
# Inbound envelopes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AssistantMessage:
    """Assistant turn."""

    type: ClassVar[MessageType] = MessageType.ASSISTANT

    message: ChatMessage
    uuid: str = ""
    session_id: str = ""
    parent_tool_use_id: str | None = None

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> AssistantMessage:
        return cls(
            message=ChatMessage.from_wire(frame.get("message")),
            uuid=_str(frame.get("uuid")),
            session_id=_str(frame.get("session_id")),
            parent_tool_use_id=frame.get("parent_tool_use_id"),
        )

    def text_content(self) -> str:
        """Concatenate the text blocks of the message."""
        content = self.message.content
        if isinstance(content, str):
            return content
        parts = [
            block["text"]
            for block in content
            if isinstance(block, Mapping)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ]
        return "".join(parts)


@dataclass(frozen=True)
class SystemMessage:
    """System notice; the ``init`` subtype assigns the session id."""

    type: ClassVar[MessageType] = MessageType.SYSTEM

    subtype: SystemSubtype | str
    uuid: str = ""
    session_id: str = ""
    data: Any = None

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> SystemMessage:
        return cls(
            subtype=_coerce_enum(SystemSubtype, frame.get("subtype")),
            uuid=_str(frame.get("uuid")),
            session_id=_str(frame.get("session_id")),
            data=frame.get("data"),
        )


@dataclass(frozen=True)
class ResultMessage:
    """Final frame of a conversation turn."""

    type: ClassVar[MessageType] = MessageType.RESULT

    subtype: ResultSubtype | str
    uuid: str = ""
    session_id: str = ""
    duration_ms: int = 0
    duration_api_ms: int = 0
    is_error: bool = False
    num_turns: int = 0
    result: str = ""
    total_cost_usd: float = 0.0
    usage: Usage = field(default_factory=Usage)
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> ResultMessage:
        errors = frame.get("errors") or []
        if not isinstance(errors, list):
            raise ValueError("result errors must be a list")
        return cls(
            subtype=_coerce_enum(ResultSubtype, frame.get("subtype")),
            uuid=_str(frame.get("uuid")),
            session_id=_str(frame.get("session_id")),
            duration_ms=_int(frame.get("duration_ms")),
            duration_api_ms=_int(frame.get("duration_api_ms")),
            is_error=bool(frame.get("is_error", False)),
            num_turns=_int(frame.get("num_turns")),
            result=_str(frame.get("result")),
            total_cost_usd=_float(frame.get("total_cost_usd")),
            usage=Usage.from_wire(frame.get("usage")),
            errors=[str(item) for item in errors],
        )


@dataclass(frozen=True)
class StreamEvent:
    """Partial assistant output, sent when partial messages are enabled."""

    type: ClassVar[MessageType] = MessageType.STREAM_EVENT

    event: Any = None
    uuid: str = ""
    session_id: str = ""
    parent_tool_use_id: str | None = None

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> StreamEvent:
        return cls(
            event=frame.get("event"),
            uuid=_str(frame.get("uuid")),
            session_id=_str(frame.get("session_id")),
            parent_tool_use_id=frame.get("parent_tool_use_id"),
        )


@dataclass(frozen=True)
class ErrorEnvelope:
    """Failure notice from the service."""

    type: ClassVar[MessageType] = MessageType.ERROR

    message: str
    code: str = ""
    details: Any = None

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> ErrorEnvelope:
        payload = _require_mapping(frame.get("payload"), "error payload")
        return cls(
            message=_str(payload.get("message")),
            code=_str(payload.get("code")),
            details=payload.get("details"),
        )


@dataclass(frozen=True)
class PongEnvelope:
    """Keep-alive answer."""

    type: ClassVar[MessageType] = MessageType.PONG

    timestamp: int = 0

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> PongEnvelope:
        payload = _require_mapping(frame.get("payload"), "pong payload")
        return cls(timestamp=_int(payload.get("timestamp")))


@dataclass(frozen=True)
class ToolCallEnvelope:
    """Request to run a locally handled tool."""

    type: ClassVar[MessageType] = MessageType.TOOL_CALL

    call_id: str
    tool_name: str
    input: Any = None

    @classmethod
    def from_wire(cls, frame: Mapping[str, Any]) -> ToolCallEnvelope:
        payload = _require_mapping(frame.get("payload"), "tool_call payload")
        return cls(
            call_id=_str(payload.get("callId")),
            tool_name=_str(payload.get("toolName")),
            input=payload.get("input"),
        )


@dataclass(frozen=True)
class UnknownMessage:
    """Frame with a type this client does not know."""

    raw_type: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.raw_type


IncomingMessage = Union[
    AssistantMessage,
    SystemMessage,
    ResultMessage,
    StreamEvent,
    ControlEnvelope,
    ErrorEnvelope,
    PongEnvelope,
    ToolCallEnvelope,
    UnknownMessage,
]

OutgoingMessage = Union[
    InitEnvelope,
    UserMessage,
    ControlEnvelope,
    PingEnvelope,
    ToolResultEnvelope,
]

_DECODERS: dict[str, Any] = {
    MessageType.ASSISTANT.value: AssistantMessage.from_wire,
    MessageType.SYSTEM.value: SystemMessage.from_wire,
    MessageType.RESULT.value: ResultMessage.from_wire,
    MessageType.STREAM_EVENT.value: StreamEvent.from_wire,
    MessageType.CONTROL.value: ControlEnvelope.from_wire,
    MessageType.ERROR.value: ErrorEnvelope.from_wire,
    MessageType.PONG.value: PongEnvelope.from_wire,
    MessageType.TOOL_CALL.value: ToolCallEnvelope.from_wire,
}


def parse_incoming_message(data: str | bytes | Mapping[str, Any]) -> IncomingMessage:
    """Decode one inbound frame.

    Raises:
        ValueError: The frame is not JSON, not an object, or a known
            type with a malformed body.
    """
    if isinstance(data, Mapping):
        frame: Any = data
    else:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors.
        frame = json.loads(data)
    if not isinstance(frame, Mapping):
        raise ValueError(f"frame must be a JSON object, got {type(frame).__name__}")

    msg_type = frame.get("type")
    if not isinstance(msg_type, str):
        raise ValueError("frame has no string 'type' field")

    decoder = _DECODERS.get(msg_type)
    if decoder is None:
        return UnknownMessage(raw_type=msg_type, data=dict(frame))
    message: IncomingMessage = decoder(frame)
    return message


def encode_message(message: OutgoingMessage) -> str:
    """Serialize an outbound envelope to JSON text.

    Raises:
        TypeError, ValueError: The envelope holds values JSON cannot encode.
    """
    return json.dumps(message.to_wire(), ensure_ascii=False)
