import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

from arena.config.settings import ArenaClientSettings
from arena.connection.manager import ConnectionManager
from arena.logic.types import ParticipantIdentity
from arena.session.engine import ParticipantSession
from arena.session.notifications import NotificationService
from arena.session.store import SessionCredential, SessionStore
from arena.tests.mocks import FakeClock, FakeSignalSource, MockParticipantApi, MockTransportFactory
from shared.storage import MemoryStateStorage


class RecordingSink:
    def __init__(self) -> None:
        self.received = []

    def notify(self, notification) -> None:
        self.received.append(notification)

    @property
    def messages(self) -> list[str]:
        return [n.message for n in self.received]


@dataclass
class SessionHarness:
    session: ParticipantSession
    api: MockParticipantApi
    store: SessionStore
    connection: ConnectionManager
    transports: MockTransportFactory
    clock: FakeClock
    sink: RecordingSink
    signals: FakeSignalSource

    @property
    def transport(self):
        return self.transports.latest

    async def push(self, event: str, payload=None) -> None:
        """Push a server event and wait until the session has handled it."""
        await self.transport.push(event, payload)
        await self.settle()

    async def settle(self) -> None:
        await self.connection.drain()
        for _ in range(3):
            await asyncio.sleep(0)
        tasks = [t for t in self.session._tasks if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def build_session(*, max_reconnect_attempts: int = 3, tick_interval: float = 1.0) -> SessionHarness:
    api = MockParticipantApi()
    store = SessionStore(MemoryStateStorage())
    transports = MockTransportFactory()
    connection = ConnectionManager(transports, max_attempts=max_reconnect_attempts, sleep=AsyncMock())
    clock = FakeClock()
    sink = RecordingSink()
    signals = FakeSignalSource()
    settings = ArenaClientSettings(submit_timeout_seconds=1, rejoin_timeout_seconds=1)
    session = ParticipantSession(
        api=api,
        store=store,
        connection=connection,
        settings=settings,
        notifications=NotificationService([sink]),
        clock=clock,
        signal_source=signals,
        tick_interval=tick_interval,
    )
    return SessionHarness(session, api, store, connection, transports, clock, sink, signals)


def store_session(harness: SessionHarness, token: str = "tok-1") -> None:
    """Seed the store as if the participant had joined before a restart."""
    harness.store.save(
        SessionCredential(session_token=token),
        ParticipantIdentity(id=7, display_name="Ada", avatar_glyph="🦊"),
        "ABC123",
    )


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)
