"""Socket.IO implementation of the event-stream transport."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import socketio
import structlog

from arena.logic.enums import DisconnectReason
from arena.logic.exceptions import TransientNetworkError
from arena.messaging.protocol import EventTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()


class SocketIOTransport(EventTransport):
    """
    One Socket.IO client connection.

    Built-in reconnection is disabled: the ConnectionManager owns the retry
    policy and creates a fresh transport for every attempt.
    """

    def __init__(
        self,
        url: str,
        *,
        transports: list[str] | None = None,
        wait_timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._transports = transports or ["websocket", "polling"]
        self._wait_timeout = wait_timeout
        self._client = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._local_id = uuid.uuid4().hex
        self._closing = False
        self._disconnect_handler: Callable[[DisconnectReason], Awaitable[None]] | None = None
        self._client.on("disconnect", self._on_disconnect)

    @property
    def transport_id(self) -> str:
        return self._client.sid or self._local_id

    @property
    def connected(self) -> bool:
        return self._client.connected

    async def connect(self) -> None:
        try:
            await self._client.connect(
                self._url,
                transports=self._transports,
                wait_timeout=self._wait_timeout,
            )
        except socketio.exceptions.ConnectionError as e:
            raise TransientNetworkError(f"could not connect to {self._url}: {e}") from e

    async def disconnect(self) -> None:
        self._closing = True
        await self._client.disconnect()

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._client.emit(event, payload)
        except socketio.exceptions.BadNamespaceError as e:
            raise TransientNetworkError(f"cannot emit {event}: {e}") from e

    def on(self, event: str, handler: Callable[[Any], Awaitable[None]]) -> None:
        async def _handle(data: Any = None) -> None:  # noqa: ANN401
            await handler(data)

        self._client.on(event, _handle)

    def on_disconnect(self, handler: Callable[[DisconnectReason], Awaitable[None]]) -> None:
        self._disconnect_handler = handler

    async def _on_disconnect(self, reason: str | None = None) -> None:
        if self._closing or self._disconnect_handler is None:
            return
        mapped = map_disconnect_reason(reason)
        logger.debug("socket.io disconnect", reason=reason, mapped=mapped)
        await self._disconnect_handler(mapped)


def map_disconnect_reason(reason: str | None) -> DisconnectReason:
    """Translate a Socket.IO disconnect reason into the manager's reason codes."""
    reasons = socketio.AsyncClient.reason
    if reason == reasons.SERVER_DISCONNECT:
        return DisconnectReason.SERVER
    if reason == reasons.CLIENT_DISCONNECT:
        return DisconnectReason.CLIENT
    return DisconnectReason.TRANSPORT


def socketio_transport_factory(
    url: str,
    *,
    transports: list[str] | None = None,
    wait_timeout: float = 10.0,
) -> Callable[[], SocketIOTransport]:
    def _build() -> SocketIOTransport:
        return SocketIOTransport(url, transports=transports, wait_timeout=wait_timeout)

    return _build
