"""Abstract event-stream transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from arena.logic.enums import DisconnectReason


class EventTransport(ABC):
    """
    Abstract interface for one connection to the game event stream.

    This abstraction allows connection handling logic to be tested
    without a real Socket.IO server. A transport is used for a single
    connection; reconnecting creates a new one.
    """

    @property
    @abstractmethod
    def transport_id(self) -> str:
        """Identifier for this connection (changes on every reconnect)."""
        ...

    @property
    @abstractmethod
    def connected(self) -> bool: ...

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection. Raises TransientNetworkError when it cannot be established.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the connection locally. Must not trigger the disconnect callback.
        """
        ...

    @abstractmethod
    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        """
        Send a client event to the server.
        """
        ...

    @abstractmethod
    def on(self, event: str, handler: Callable[[Any], Awaitable[None]]) -> None:
        """
        Register the handler for a server event. One handler per event name.
        """
        ...

    @abstractmethod
    def on_disconnect(self, handler: Callable[[DisconnectReason], Awaitable[None]]) -> None:
        """
        Register the callback for a disconnect the client did not ask for.
        """
        ...
