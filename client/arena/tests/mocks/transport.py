import uuid
from typing import Any

from arena.logic.enums import DisconnectReason
from arena.logic.exceptions import TransientNetworkError
from arena.messaging.protocol import EventTransport


class MockTransport(EventTransport):
    """
    In-memory event transport for testing.

    Records emitted events and lets tests push server events or drop the
    connection as if the server had done it.
    """

    def __init__(self, *, fail_connect: bool = False) -> None:
        self._id = uuid.uuid4().hex
        self._connected = False
        self._fail_connect = fail_connect
        self._handlers: dict[str, Any] = {}
        self._disconnect_handler: Any = None
        self.emitted: list[tuple[str, dict[str, Any]]] = []
        self.connect_calls = 0
        self.fail_emit = False

    @property
    def transport_id(self) -> str:
        return self._id

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def handlers(self) -> dict[str, Any]:
        return dict(self._handlers)

    async def connect(self) -> None:
        self.connect_calls += 1
        if self._fail_connect:
            raise TransientNetworkError("connection refused")
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.fail_emit:
            raise TransientNetworkError(f"emit {event} failed")
        self.emitted.append((event, payload))

    def on(self, event: str, handler: Any) -> None:
        self._handlers[event] = handler

    def on_disconnect(self, handler: Any) -> None:
        self._disconnect_handler = handler

    async def push(self, event: str, payload: Any = None) -> None:  # noqa: ANN401
        """Simulate the server pushing an event."""
        handler = self._handlers.get(event)
        if handler is not None:
            await handler(payload)

    async def drop(self, reason: DisconnectReason = DisconnectReason.TRANSPORT) -> None:
        """Simulate a disconnect the client did not ask for."""
        self._connected = False
        if self._disconnect_handler is not None:
            await self._disconnect_handler(reason)

    def emitted_events(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.emitted if name == event]


class MockTransportFactory:
    """Builds MockTransports; `failures` makes the next N connects fail."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.created: list[MockTransport] = []

    def __call__(self) -> MockTransport:
        fail = self.failures > 0
        if fail:
            self.failures -= 1
        transport = MockTransport(fail_connect=fail)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> MockTransport:
        return self.created[-1]
