import asyncio
from unittest.mock import AsyncMock

import pytest

from arena.connection.manager import ConnectionManager
from arena.logic.enums import ConnectionStatus, DisconnectReason
from arena.logic.exceptions import ConnectionUnavailableError, ReconnectFailedError, TransientNetworkError
from arena.tests.mocks import MockTransportFactory


@pytest.fixture
def factory():
    return MockTransportFactory()


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def manager(factory, sleep, statuses):
    manager = ConnectionManager(factory, base_delay_seconds=1, max_delay_seconds=30, max_attempts=10, sleep=sleep)

    async def record(status):
        statuses.append(status)

    manager.add_status_listener(record)
    return manager


def _recording_handler(received, name):
    async def handler(payload):
        received.append((name, payload))

    return handler


class TestConnect:
    async def test_connect_attaches_subscriptions(self, manager, factory, statuses):
        manager.subscribe("gameEnded", AsyncMock())

        await manager.connect()

        assert manager.connected is True
        assert "gameEnded" in factory.latest.handlers
        assert statuses == [ConnectionStatus.CONNECTED]
        await manager.disconnect()

    async def test_connect_is_idempotent(self, manager, factory):
        await manager.connect()
        await manager.connect()

        assert len(factory.created) == 1
        await manager.disconnect()

    async def test_subscribe_after_connect_applies_to_live_transport(self, manager, factory):
        await manager.connect()
        received = []

        manager.subscribe("gamePaused", _recording_handler(received, "paused"))
        await factory.latest.push("gamePaused", {})
        await manager.drain()

        assert received == [("paused", {})]
        await manager.disconnect()

    async def test_failed_initial_connect_raises(self, sleep):
        manager = ConnectionManager(MockTransportFactory(failures=1), sleep=sleep)

        with pytest.raises(TransientNetworkError):
            await manager.connect()

        assert manager.connected is False
        await manager.disconnect()

    async def test_events_dispatched_in_arrival_order(self, manager, factory):
        received = []
        manager.subscribe("a", _recording_handler(received, "a"))
        manager.subscribe("b", _recording_handler(received, "b"))
        await manager.connect()

        await factory.latest.push("a", 1)
        await factory.latest.push("b", 2)
        await factory.latest.push("a", 3)
        await manager.drain()

        assert received == [("a", 1), ("b", 2), ("a", 3)]
        await manager.disconnect()

    async def test_handler_error_does_not_stop_dispatch(self, manager, factory, caplog):
        received = []

        async def broken(payload):
            raise RuntimeError("boom")

        manager.subscribe("bad", broken)
        manager.subscribe("good", _recording_handler(received, "good"))
        await manager.connect()

        await factory.latest.push("bad", None)
        await factory.latest.push("good", None)
        await manager.drain()

        assert received == [("good", None)]
        assert "event handler failed" in caplog.text
        await manager.disconnect()


class TestEmit:
    async def test_emit_while_disconnected_raises(self, manager):
        with pytest.raises(ConnectionUnavailableError):
            await manager.emit("cheatDetected", {})

    async def test_emit_goes_to_live_transport(self, manager, factory):
        await manager.connect()

        await manager.emit("joinGameRoom", {"gameCode": "ABC123"})

        assert factory.latest.emitted == [("joinGameRoom", {"gameCode": "ABC123"})]
        await manager.disconnect()


class TestReconnect:
    async def test_subscriptions_reapplied_exactly_once(self, manager, factory, statuses):
        received = []
        manager.subscribe("gameEnded", _recording_handler(received, "ended"))
        await manager.connect()
        first = factory.latest

        await first.drop()
        await manager._reconnect_task

        second = factory.latest
        assert second is not first
        assert list(second.handlers) == ["gameEnded"]
        assert statuses[-1] == ConnectionStatus.RECONNECTED

        # the old transport no longer delivers anything
        await first.push("gameEnded", "stale")
        await second.push("gameEnded", "fresh")
        await manager.drain()
        assert received == [("ended", "fresh")]
        await manager.disconnect()

    async def test_backoff_grows_linearly(self, manager, factory, sleep, statuses):
        await manager.connect()
        factory.failures = 2

        await factory.latest.drop(DisconnectReason.TRANSPORT)
        await manager._reconnect_task

        assert [c.args[0] for c in sleep.await_args_list] == [1, 2, 3]
        assert statuses == [
            ConnectionStatus.CONNECTED,
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.RECONNECTING,
            ConnectionStatus.RECONNECTING,
            ConnectionStatus.RECONNECTING,
            ConnectionStatus.RECONNECTED,
        ]
        await manager.disconnect()

    async def test_server_disconnect_retries_immediately(self, manager, factory, sleep):
        await manager.connect()

        await factory.latest.drop(DisconnectReason.SERVER)
        await manager._reconnect_task

        sleep.assert_not_awaited()
        assert manager.connected is True
        await manager.disconnect()

    async def test_gives_up_after_max_attempts(self, factory, sleep, statuses):
        manager = ConnectionManager(factory, max_attempts=3, sleep=sleep)

        async def record(status):
            statuses.append(status)

        manager.add_status_listener(record)
        await manager.connect()
        factory.failures = 3

        await factory.latest.drop()
        await manager._reconnect_task

        assert statuses[-1] == ConnectionStatus.RECONNECT_FAILED
        assert isinstance(manager.failure, ReconnectFailedError)
        assert manager.failure.attempts == 3
        with pytest.raises(ReconnectFailedError):
            await manager.emit("cheatDetected", {})
        await manager.disconnect()

    async def test_connect_after_failure_clears_it(self, factory, sleep):
        manager = ConnectionManager(factory, max_attempts=1, sleep=sleep)
        await manager.connect()
        factory.failures = 1
        await factory.latest.drop()
        await manager._reconnect_task

        await manager.connect()

        assert manager.failure is None
        assert manager.connected is True
        await manager.disconnect()

    async def test_connect_during_backoff_opens_one_transport(self, factory):
        gate = asyncio.Event()

        async def wait_for_gate(_delay):
            await gate.wait()

        manager = ConnectionManager(factory, max_attempts=3, sleep=wait_for_gate)
        await manager.connect()
        await factory.latest.drop()
        await asyncio.sleep(0)

        await manager.connect()
        gate.set()
        await manager._reconnect_task

        assert len(factory.created) == 2
        assert manager.connected is True
        assert factory.latest.connect_calls == 1
        await manager.disconnect()

    async def test_local_disconnect_never_reconnects(self, manager, factory, statuses):
        await manager.connect()

        await manager.disconnect()

        assert len(factory.created) == 1
        assert manager.reconnecting is False
        assert statuses == [ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED]


class TestReconnectDelay:
    def test_delays(self, manager):
        assert manager.reconnect_delay(1, DisconnectReason.SERVER) == 0
        assert manager.reconnect_delay(1, DisconnectReason.TRANSPORT) == 1
        assert manager.reconnect_delay(2, DisconnectReason.SERVER) == 2
        assert manager.reconnect_delay(100, DisconnectReason.TRANSPORT) == 30
