from arena.tests.mocks.api import MockParticipantApi, make_analytics, make_participant, make_question
from arena.tests.mocks.signals import FakeClock, FakeSignalSource
from arena.tests.mocks.transport import MockTransport, MockTransportFactory

__all__ = [
    "FakeClock",
    "FakeSignalSource",
    "MockParticipantApi",
    "MockTransport",
    "MockTransportFactory",
    "make_analytics",
    "make_participant",
    "make_question",
]
