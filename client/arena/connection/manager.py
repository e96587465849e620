"""
Event-stream connection lifecycle.

The manager owns the only subscription table. Every new transport (initial
connect or reconnect) gets the whole table attached before it opens, so no
listener is ever lost or doubled across reconnects. Inbound events are queued
and handled by a single dispatcher task in arrival order.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from arena.logic.enums import ConnectionStatus, DisconnectReason
from arena.logic.exceptions import ConnectionUnavailableError, ReconnectFailedError, TransientNetworkError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from arena.messaging.protocol import EventTransport

logger = structlog.get_logger()


class ConnectionManager:
    def __init__(
        self,
        transport_factory: Callable[[], EventTransport],
        *,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        max_attempts: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport_factory = transport_factory
        self._base_delay = base_delay_seconds
        self._max_delay = max_delay_seconds
        self._max_attempts = max_attempts
        self._sleep = sleep

        self._subscriptions: dict[str, Callable[[Any], Awaitable[None]]] = {}
        self._status_listeners: list[Callable[[ConnectionStatus], Awaitable[None]]] = []
        self._transport: EventTransport | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._failure: ReconnectFailedError | None = None
        self._closing = False
        self._connect_lock = asyncio.Lock()
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._dispatcher: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    @property
    def transport_id(self) -> str | None:
        return self._transport.transport_id if self._transport is not None else None

    @property
    def failure(self) -> ReconnectFailedError | None:
        """The terminal error once reconnect attempts are exhausted."""
        return self._failure

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def subscribe(self, event: str, handler: Callable[[Any], Awaitable[None]]) -> None:
        """Set the handler for a server event; applies to the live transport too."""
        self._subscriptions[event] = handler
        if self._transport is not None:
            self._transport.on(event, self._enqueue_for(self._transport, event))

    def unsubscribe(self, event: str) -> None:
        self._subscriptions.pop(event, None)

    def add_status_listener(self, listener: Callable[[ConnectionStatus], Awaitable[None]]) -> None:
        self._status_listeners.append(listener)

    def remove_status_listener(self, listener: Callable[[ConnectionStatus], Awaitable[None]]) -> None:
        if listener in self._status_listeners:
            self._status_listeners.remove(listener)

    async def connect(self) -> None:
        """Open the stream, or return at once when it is already live."""
        if self.connected:
            return
        async with self._connect_lock:
            if self.connected:
                return
            self._closing = False
            self._failure = None
            await self._open()
        await self._set_status(ConnectionStatus.CONNECTED)

    async def disconnect(self) -> None:
        """Close the stream locally. A local disconnect never reconnects."""
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        transport = self._transport
        self._transport = None
        if transport is not None:
            await transport.disconnect()
        if self._dispatcher is not None and not self._dispatcher.done():
            self._dispatcher.cancel()
        self._dispatcher = None
        self._queue = asyncio.Queue()
        if self._status != ConnectionStatus.DISCONNECTED:
            await self._set_status(ConnectionStatus.DISCONNECTED)

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._failure is not None:
            raise self._failure
        transport = self._transport
        if transport is None or not transport.connected:
            raise ConnectionUnavailableError(f"cannot emit {event}: not connected")
        await transport.emit(event, payload)

    async def drain(self) -> None:
        """Wait until every queued inbound event has been handled."""
        await self._queue.join()

    def reconnect_delay(self, attempt: int, reason: DisconnectReason) -> float:
        """Backoff before the given attempt; a server-initiated drop retries at once."""
        if attempt == 1 and reason == DisconnectReason.SERVER:
            return 0.0
        return min(self._base_delay * attempt, self._max_delay)

    async def _open(self) -> None:
        transport = self._transport_factory()
        for event in self._subscriptions:
            transport.on(event, self._enqueue_for(transport, event))
        transport.on_disconnect(self._make_disconnect_handler(transport))
        # events may arrive as soon as the handshake completes
        self._transport = transport
        self._ensure_dispatcher()
        try:
            await transport.connect()
        except BaseException:
            if self._transport is transport:
                self._transport = None
            raise
        logger.info("stream connected", transport_id=transport.transport_id)

    def _enqueue_for(self, transport: EventTransport, event: str) -> Callable[[Any], Awaitable[None]]:
        async def _enqueue(payload: Any) -> None:  # noqa: ANN401
            if transport is not self._transport:
                logger.debug("dropping event from stale transport", stream_event=event)
                return
            self._queue.put_nowait((event, payload))

        return _enqueue

    def _make_disconnect_handler(self, transport: EventTransport) -> Callable[[DisconnectReason], Awaitable[None]]:
        async def _on_disconnect(reason: DisconnectReason) -> None:
            if transport is not self._transport:
                return
            await self._handle_unexpected_disconnect(reason)

        return _on_disconnect

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop(self._queue))

    async def _dispatch_loop(self, queue: asyncio.Queue[tuple[str, Any]]) -> None:
        while True:
            event, payload = await queue.get()
            try:
                handler = self._subscriptions.get(event)
                if handler is not None:
                    await handler(payload)
            except Exception:
                logger.exception("event handler failed", stream_event=event)
            finally:
                queue.task_done()

    async def _handle_unexpected_disconnect(self, reason: DisconnectReason) -> None:
        if self._closing:
            return
        self._transport = None
        logger.warning("stream disconnected", reason=reason)
        await self._set_status(ConnectionStatus.DISCONNECTED)
        if not self.reconnecting:
            self._reconnect_task = asyncio.create_task(self._reconnect_loop(reason))

    async def _reconnect_loop(self, reason: DisconnectReason) -> None:
        attempt = 0
        while attempt < self._max_attempts:
            attempt += 1
            delay = self.reconnect_delay(attempt, reason)
            logger.info("reconnecting", attempt=attempt, delay=delay)
            await self._set_status(ConnectionStatus.RECONNECTING)
            if delay > 0:
                await self._sleep(delay)
            async with self._connect_lock:
                if self._closing:
                    return
                if self.connected:
                    logger.info("stream reopened by connect during reconnect", attempt=attempt)
                    return
                try:
                    await self._open()
                except TransientNetworkError as e:
                    logger.warning("reconnect attempt failed", attempt=attempt, error=str(e))
                    continue
            logger.info("stream reconnected", attempt=attempt)
            await self._set_status(ConnectionStatus.RECONNECTED)
            return

        self._failure = ReconnectFailedError(attempt)
        logger.error("reconnect failed", attempts=attempt)
        await self._set_status(ConnectionStatus.RECONNECT_FAILED)

    async def _set_status(self, status: ConnectionStatus) -> None:
        self._status = status
        for listener in list(self._status_listeners):
            try:
                await listener(status)
            except Exception:
                logger.exception("status listener failed", status=status)
