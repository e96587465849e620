from arena.logic.enums import NotificationLevel
from arena.session.notifications import Notification, NotificationService


class _Sink:
    def __init__(self):
        self.received = []

    def notify(self, notification):
        self.received.append(notification)


class _BrokenSink:
    def notify(self, notification):
        raise RuntimeError("display gone")


class TestNotificationService:
    def test_fans_out_to_registered_sinks(self):
        first, second = _Sink(), _Sink()
        service = NotificationService([first])
        service.register(second)

        service.warning("Connection lost")

        expected = Notification(NotificationLevel.WARNING, "Connection lost")
        assert first.received == [expected]
        assert second.received == [expected]

    def test_register_twice_delivers_once(self):
        sink = _Sink()
        service = NotificationService([])
        service.register(sink)
        service.register(sink)

        service.info("hello")

        assert len(sink.received) == 1

    def test_unregister(self):
        sink = _Sink()
        service = NotificationService([sink])
        service.unregister(sink)

        service.error("bye")

        assert sink.received == []

    def test_broken_sink_does_not_block_others(self):
        sink = _Sink()
        service = NotificationService([_BrokenSink(), sink])

        service.success("Reconnected")

        assert sink.received[0].level == NotificationLevel.SUCCESS

    def test_default_sink_logs(self, caplog):
        service = NotificationService()

        service.warning("careful")

        assert "careful" in caplog.text
