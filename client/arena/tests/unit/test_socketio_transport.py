from unittest.mock import AsyncMock

import pytest
import socketio

from arena.connection.socketio_transport import SocketIOTransport, map_disconnect_reason, socketio_transport_factory
from arena.logic.enums import DisconnectReason
from arena.logic.exceptions import TransientNetworkError


class TestMapDisconnectReason:
    def test_server_disconnect(self):
        assert map_disconnect_reason(socketio.AsyncClient.reason.SERVER_DISCONNECT) == DisconnectReason.SERVER

    def test_client_disconnect(self):
        assert map_disconnect_reason(socketio.AsyncClient.reason.CLIENT_DISCONNECT) == DisconnectReason.CLIENT

    def test_anything_else_is_transport(self):
        assert map_disconnect_reason(socketio.AsyncClient.reason.TRANSPORT_ERROR) == DisconnectReason.TRANSPORT
        assert map_disconnect_reason(None) == DisconnectReason.TRANSPORT


class TestSocketIOTransport:
    async def test_connect_failure_is_transient(self):
        transport = SocketIOTransport("http://arena.test")
        transport._client.connect = AsyncMock(side_effect=socketio.exceptions.ConnectionError("refused"))

        with pytest.raises(TransientNetworkError):
            await transport.connect()

    async def test_connect_passes_transports(self):
        transport = SocketIOTransport("http://arena.test", transports=["websocket"], wait_timeout=3)
        transport._client.connect = AsyncMock()

        await transport.connect()

        transport._client.connect.assert_awaited_once_with("http://arena.test", transports=["websocket"], wait_timeout=3)

    async def test_server_drop_reaches_handler(self):
        transport = SocketIOTransport("http://arena.test")
        handler = AsyncMock()
        transport.on_disconnect(handler)

        await transport._on_disconnect(socketio.AsyncClient.reason.SERVER_DISCONNECT)

        handler.assert_awaited_once_with(DisconnectReason.SERVER)

    async def test_local_disconnect_is_silent(self):
        transport = SocketIOTransport("http://arena.test")
        transport._client.disconnect = AsyncMock()
        handler = AsyncMock()
        transport.on_disconnect(handler)

        await transport.disconnect()
        await transport._on_disconnect(socketio.AsyncClient.reason.CLIENT_DISCONNECT)

        handler.assert_not_awaited()

    async def test_emit_without_namespace_is_transient(self):
        transport = SocketIOTransport("http://arena.test")
        transport._client.emit = AsyncMock(side_effect=socketio.exceptions.BadNamespaceError("/ is not connected"))

        with pytest.raises(TransientNetworkError):
            await transport.emit("cheatDetected", {})

    def test_factory_builds_fresh_transports(self):
        build = socketio_transport_factory("http://arena.test")

        first, second = build(), build()

        assert first is not second
        assert first.transport_id != second.transport_id
