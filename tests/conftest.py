"""Pytest configuration and fixtures for chucky_sdk tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chucky_sdk.options import SessionOptions
from chucky_sdk.protocol import (
    AssistantMessage,
    ChatMessage,
    ControlAction,
    ControlEnvelope,
    IncomingMessage,
    InitEnvelope,
    OutgoingMessage,
    ResultMessage,
    ResultSubtype,
    Role,
    SystemMessage,
    SystemSubtype,
    UserMessage,
)
from chucky_sdk.session import ChuckySession
from chucky_sdk.transport.base import (
    ChuckyTransport,
    ConnectionStatus,
    TransportEvents,
    dispatch_callback,
)


class FakeTransport(ChuckyTransport):
    """In-memory transport recording sent envelopes.

    ``init_replies`` are delivered when the init frame is sent and
    ``user_replies`` when a user message is sent. With ``close_after_user``
    the peer closes the connection after the user replies. A ``connect_gate``
    holds ``connect()`` until the event is set.
    """

    def __init__(
        self,
        *,
        init_replies: list[IncomingMessage] | None = None,
        user_replies: list[IncomingMessage] | None = None,
        close_after_user: bool = False,
        connect_error: Exception | None = None,
        ready_hangs: bool = False,
        connect_gate: asyncio.Event | None = None,
    ) -> None:
        self.init_replies = list(init_replies or [])
        self.user_replies = list(user_replies or [])
        self.close_after_user = close_after_user
        self.connect_error = connect_error
        self.ready_hangs = ready_hangs
        self.connect_gate = connect_gate
        self.send_error: Exception | None = None

        self.handlers = TransportEvents()
        self.sent: list[OutgoingMessage] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self._status = ConnectionStatus.DISCONNECTED

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def set_event_handlers(self, handlers: TransportEvents) -> None:
        self.handlers = handlers

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            self._status = ConnectionStatus.ERROR
            raise self.connect_error
        self._status = ConnectionStatus.CONNECTED

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._status = ConnectionStatus.DISCONNECTED

    async def wait_for_ready(self) -> None:
        if self.ready_hangs:
            await asyncio.Event().wait()

    async def send(self, message: OutgoingMessage) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

        if isinstance(message, InitEnvelope):
            await self.deliver(*self.init_replies)
        elif isinstance(message, UserMessage):
            await self.deliver(*self.user_replies)
            if self.close_after_user:
                await dispatch_callback(self.handlers.on_close, 1000, "done")

    async def deliver(self, *messages: IncomingMessage) -> None:
        """Feed inbound envelopes as the read loop would."""
        for message in messages:
            await dispatch_callback(self.handlers.on_message, message)

    def sent_of(self, kind: type) -> list[Any]:
        return [message for message in self.sent if isinstance(message, kind)]


def control_ready() -> ControlEnvelope:
    return ControlEnvelope(ControlAction.READY)


def system_init(session_id: str) -> SystemMessage:
    return SystemMessage(subtype=SystemSubtype.INIT, session_id=session_id)


def assistant_text(text: str) -> AssistantMessage:
    return AssistantMessage(message=ChatMessage(Role.ASSISTANT, text))


def result_message(text: str = "done", session_id: str = "") -> ResultMessage:
    return ResultMessage(
        subtype=ResultSubtype.SUCCESS,
        session_id=session_id,
        result=text,
        num_turns=1,
    )


@pytest.fixture
def transport() -> FakeTransport:
    """Transport that completes the handshake with a control ready frame."""
    return FakeTransport(init_replies=[control_ready()])


@pytest.fixture
def session(transport: FakeTransport) -> ChuckySession:
    return ChuckySession(transport, SessionOptions(model="test-model"))
