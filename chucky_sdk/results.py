"""Conversation results and text extraction helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .protocol import AssistantMessage, ResultMessage, Usage


@dataclass(frozen=True)
class SessionResult:
    """Summary of a finished conversation turn."""

    subtype: str
    session_id: str
    result: str = ""
    is_error: bool = False
    duration_ms: int = 0
    num_turns: int = 0
    total_cost_usd: float = 0.0
    usage: Usage = field(default_factory=Usage)
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_message(cls, message: ResultMessage) -> SessionResult:
        subtype = message.subtype
        return cls(
            subtype=subtype if isinstance(subtype, str) else subtype.value,
            session_id=message.session_id,
            result=message.result,
            is_error=message.is_error,
            duration_ms=message.duration_ms,
            num_turns=message.num_turns,
            total_cost_usd=message.total_cost_usd,
            usage=message.usage,
            errors=list(message.errors),
        )


def get_result_text(message: Any) -> str:
    """Return the result text of a result message or session result."""
    if isinstance(message, (ResultMessage, SessionResult)):
        return message.result
    return ""


def get_assistant_text(message: Any) -> str:
    """Return the concatenated text of an assistant message."""
    if isinstance(message, AssistantMessage):
        return message.text_content()
    return ""
