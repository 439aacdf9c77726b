"""Tests for ChuckyWsClient WebSocket wrapper."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosed, InvalidState
from websockets.frames import Close

from chucky_sdk.errors import ChuckyClientError, ChuckyConnectionError
from chucky_sdk.transport.ws_client import (
    ABNORMAL_CLOSURE,
    ChuckyWsClient,
    ChuckyWsMessage,
    ChuckyWsMessageType,
)

URL = "wss://example.test/ws?token=tok&type=prompt"


class TestChuckyWsMessage:
    """Tests for ChuckyWsMessage dataclass."""

    def test_enum_values(self):
        """Test enum has expected values."""
        assert ChuckyWsMessageType.TEXT.value == "text"
        assert ChuckyWsMessageType.CLOSED.value == "closed"
        assert ChuckyWsMessageType.ERROR.value == "error"

    def test_create_closed_message(self):
        """Test creating a closed message."""
        msg = ChuckyWsMessage(type=ChuckyWsMessageType.CLOSED)
        assert msg.type == ChuckyWsMessageType.CLOSED
        assert msg.data is None

    def test_message_is_frozen(self):
        """Test that messages are immutable."""
        msg = ChuckyWsMessage(type=ChuckyWsMessageType.TEXT, data="test")
        with pytest.raises(AttributeError):
            msg.data = "modified"  # type: ignore[misc]


class TestChuckyWsClientConnect:
    """Tests for ChuckyWsClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect_success(self):
        """Test successful WebSocket connection."""
        mock_ws = AsyncMock()

        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            return_value=mock_ws,
        ) as mock_connect:
            client = ChuckyWsClient()
            await client.connect(URL)

            mock_connect.assert_called_once_with(URL, ping_interval=20, timeout=15.0)
            assert client._ws is mock_ws
            assert client.is_connected

    @pytest.mark.asyncio
    async def test_connect_custom_params(self):
        """Test connection with custom parameters."""
        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            return_value=AsyncMock(),
        ) as mock_connect:
            client = ChuckyWsClient()
            await client.connect(URL, ping_interval=None, timeout=5.0)

            mock_connect.assert_called_once_with(URL, ping_interval=None, timeout=5.0)

    @pytest.mark.asyncio
    async def test_connect_propagates_errors(self):
        """Test that connection errors are propagated."""
        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            side_effect=ChuckyConnectionError("Connection failed"),
        ):
            client = ChuckyWsClient()
            with pytest.raises(ChuckyConnectionError, match="Connection failed"):
                await client.connect(URL)
            assert not client.is_connected


class TestChuckyWsClientClose:
    """Tests for ChuckyWsClient.close()."""

    @pytest.mark.asyncio
    async def test_close_connected(self):
        """Test closing a connected client."""
        mock_ws = AsyncMock()

        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ChuckyWsClient()
            await client.connect(URL)
            await client.close()

            mock_ws.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_not_connected(self):
        """Test closing when not connected (no error)."""
        client = ChuckyWsClient()
        # Should not raise
        await client.close()

    @pytest.mark.asyncio
    async def test_close_failure_is_wrapped(self):
        """Test library errors during close become client errors."""
        mock_ws = AsyncMock()
        mock_ws.close.side_effect = OSError("broken pipe")

        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ChuckyWsClient()
            await client.connect(URL)
            with pytest.raises(ChuckyConnectionError, match="close failed"):
                await client.close()


class TestChuckyWsClientSendText:
    """Tests for ChuckyWsClient.send_text()."""

    @pytest.mark.asyncio
    async def test_send_text_success(self):
        """Test sending a text frame."""
        mock_ws = AsyncMock()

        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ChuckyWsClient()
            await client.connect(URL)
            await client.send_text('{"type": "ping"}')

            mock_ws.send.assert_called_once_with('{"type": "ping"}')

    @pytest.mark.asyncio
    async def test_send_text_not_connected(self):
        """Test send_text raises when not connected."""
        client = ChuckyWsClient()
        with pytest.raises(ChuckyConnectionError, match="not connected"):
            await client.send_text("{}")

    @pytest.mark.asyncio
    async def test_send_text_connection_closed(self):
        """Test a closed connection surfaces as a client error."""
        mock_ws = AsyncMock()
        mock_ws.send.side_effect = ConnectionClosed(None, None)

        with patch(
            "chucky_sdk.transport.ws_client.connect_websocket",
            return_value=mock_ws,
        ):
            client = ChuckyWsClient()
            await client.connect(URL)
            with pytest.raises(ChuckyClientError, match="failed to send"):
                await client.send_text("{}")


class AsyncIteratorMock:
    """Helper class to create a proper async iterator mock."""

    def __init__(self, items: list, *, raise_on_iter: Exception | None = None):
        self._items = items
        self._index = 0
        self._raise_on_iter = raise_on_iter
        self.close = AsyncMock()
        self.close_code: int | None = None
        self.close_reason: str | None = None

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._index >= len(self._items):
            if self._raise_on_iter is not None:
                raise self._raise_on_iter
            raise StopAsyncIteration
        item = self._items[self._index]
        self._index += 1
        return item


async def iterate(mock_ws) -> list[ChuckyWsMessage]:
    with patch(
        "chucky_sdk.transport.ws_client.connect_websocket",
        return_value=mock_ws,
    ):
        client = ChuckyWsClient()
        await client.connect(URL)
        return [msg async for msg in client]


class TestChuckyWsClientIteration:
    """Tests for ChuckyWsClient async iteration."""

    @pytest.mark.asyncio
    async def test_iter_not_connected(self):
        """Test iteration raises when not connected."""
        client = ChuckyWsClient()
        with pytest.raises(ChuckyConnectionError, match="not connected"):
            client.__aiter__()

    @pytest.mark.asyncio
    async def test_iter_text_messages(self):
        """Test iterating over text messages."""
        messages = await iterate(AsyncIteratorMock(["message1", "message2"]))

        text_messages = [m for m in messages if m.type == ChuckyWsMessageType.TEXT]
        assert [m.data for m in text_messages] == ["message1", "message2"]

    @pytest.mark.asyncio
    async def test_iter_passes_binary_frames(self):
        """Test binary frames are passed through for decoding."""
        messages = await iterate(AsyncIteratorMock([b'{"type": "pong"}']))

        assert messages[0] == ChuckyWsMessage(
            ChuckyWsMessageType.TEXT, b'{"type": "pong"}'
        )

    @pytest.mark.asyncio
    async def test_iter_connection_closed_with_frame(self):
        """Test the peer close code and reason are reported."""
        closed = ConnectionClosed(Close(1011, "overloaded"), None)
        messages = await iterate(AsyncIteratorMock(["hi"], raise_on_iter=closed))

        assert messages[-1] == ChuckyWsMessage(
            ChuckyWsMessageType.CLOSED, {"code": 1011, "reason": "overloaded"}
        )

    @pytest.mark.asyncio
    async def test_iter_connection_closed_without_frame(self):
        """Test a close with no frame reports abnormal closure."""
        messages = await iterate(
            AsyncIteratorMock([], raise_on_iter=ConnectionClosed(None, None))
        )

        assert len(messages) == 1
        assert messages[0].type == ChuckyWsMessageType.CLOSED
        assert messages[0].data == {"code": ABNORMAL_CLOSURE, "reason": ""}

    @pytest.mark.asyncio
    async def test_iter_unexpected_error(self):
        """Test iteration handles unexpected errors."""
        messages = await iterate(
            AsyncIteratorMock([], raise_on_iter=InvalidState("bad state"))
        )

        assert messages == [ChuckyWsMessage(ChuckyWsMessageType.ERROR, "bad state")]

    @pytest.mark.asyncio
    async def test_iter_graceful_close(self):
        """Test iteration emits CLOSED with the connection close code."""
        mock_ws = AsyncIteratorMock(["hello"])
        mock_ws.close_code = 1000
        mock_ws.close_reason = "bye"

        messages = await iterate(mock_ws)

        assert len(messages) == 2
        assert messages[0].data == "hello"
        assert messages[1] == ChuckyWsMessage(
            ChuckyWsMessageType.CLOSED, {"code": 1000, "reason": "bye"}
        )


class TestChuckyWsClientNormalization:
    """Tests for ChuckyWsClient message normalization."""

    def test_normalize_string_message(self):
        """Test normalizing a plain string."""
        result = ChuckyWsClient._normalize_message("hello world")
        assert result == ChuckyWsMessage(ChuckyWsMessageType.TEXT, "hello world")

    def test_normalize_none(self):
        """Test None frames are skipped."""
        assert ChuckyWsClient._normalize_message(None) is None

    def test_normalize_unknown_object(self):
        """Test unknown objects are stringified."""
        frame = MagicMock()
        frame.__str__ = MagicMock(return_value="frame-text")

        result = ChuckyWsClient._normalize_message(frame)

        assert result == ChuckyWsMessage(ChuckyWsMessageType.TEXT, "frame-text")
