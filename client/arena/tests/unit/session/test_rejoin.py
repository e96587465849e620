import asyncio

import pytest

from arena.logic.enums import SessionEvent
from arena.logic.exceptions import CredentialRejectedError, GameNotFoundError, NoSessionError, TransientNetworkError
from arena.logic.types import ParticipantIdentity
from arena.session.rejoin import RejoinProtocol
from arena.session.store import SessionCredential, SessionStore
from arena.tests.mocks import FakeClock, MockParticipantApi, make_participant, make_question
from shared.storage import MemoryStateStorage


@pytest.fixture
def store():
    store = SessionStore(MemoryStateStorage())
    store.save(SessionCredential(session_token="tok-1"), ParticipantIdentity(id=7, display_name="Ada"), "ABC123")
    return store


@pytest.fixture
def api():
    return MockParticipantApi()


@pytest.fixture
def clock():
    return FakeClock()


class TestRejoinProtocol:
    async def test_waiting_game(self, api, store, clock):
        result = await RejoinProtocol(api, store, clock=clock).rejoin()

        assert result.event == SessionEvent.REJOIN_WAITING
        assert result.question is None
        assert api.rejoin_calls == ["tok-1"]

    async def test_question_in_play_is_anchored(self, api, store, clock):
        api.rejoin_results.append(
            {
                "participant": make_participant(gameStatus="active"),
                "currentQuestion": make_question(time_limit=20),
                "gameCode": "ABC123",
            },
        )

        result = await RejoinProtocol(api, store, clock=clock).rejoin()

        assert result.event == SessionEvent.REJOIN_ACTIVE
        assert result.question.deadline_ms == clock() + 20_000

    async def test_completed_game(self, api, store, clock):
        api.rejoin_results.append({"participant": make_participant(gameStatus="completed"), "gameCode": "ABC123"})

        result = await RejoinProtocol(api, store, clock=clock).rejoin()

        assert result.event == SessionEvent.REJOIN_COMPLETED

    @pytest.mark.parametrize("error", [CredentialRejectedError("expired"), GameNotFoundError("gone")])
    async def test_rejected_credential_purges(self, api, store, clock, error):
        api.rejoin_results.append(error)

        with pytest.raises(CredentialRejectedError):
            await RejoinProtocol(api, store, clock=clock).rejoin()

        assert store.has_session is False

    async def test_transient_failure_keeps_session(self, api, store, clock):
        api.rejoin_results.append(TransientNetworkError("offline"))

        with pytest.raises(TransientNetworkError):
            await RejoinProtocol(api, store, clock=clock).rejoin()

        assert store.has_session is True

    async def test_timeout_is_transient(self, store, clock):
        class _SlowApi(MockParticipantApi):
            async def rejoin(self, session_token):
                await asyncio.sleep(10)

        with pytest.raises(TransientNetworkError):
            await RejoinProtocol(_SlowApi(), store, timeout_seconds=0.01, clock=clock).rejoin()

    async def test_no_session(self, api, clock):
        with pytest.raises(NoSessionError):
            await RejoinProtocol(api, SessionStore(MemoryStateStorage()), clock=clock).rejoin()
