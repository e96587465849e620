"""
Resume a stored session after a reload or a reconnect.

The server's answer is authoritative: it tells us whether a question is in
play (with its absolute deadline), whether the game is over, or whether we
are still waiting for the organiser.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog

from arena.logic.enums import GameStatus, SessionEvent
from arena.logic.exceptions import CredentialRejectedError, GameNotFoundError, TransientNetworkError
from arena.logic.timer import wall_clock_ms
from arena.logic.types import anchor_question

if TYPE_CHECKING:
    from collections.abc import Callable

    from arena.api.types import RejoinResponse
    from arena.logic.types import ActiveQuestion, ParticipantRecord
    from arena.session.store import SessionStore

logger = structlog.get_logger()


class RejoinApi(Protocol):
    async def rejoin(self, session_token: str) -> RejoinResponse: ...


@dataclass(frozen=True)
class RejoinResult:
    event: SessionEvent
    participant: ParticipantRecord
    game_code: str | None
    question: ActiveQuestion | None = None


class RejoinProtocol:
    def __init__(
        self,
        api: RejoinApi,
        store: SessionStore,
        *,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self._api = api
        self._store = store
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    async def rejoin(self) -> RejoinResult:
        """
        Exchange the stored credential for the current game state.

        Raises NoSessionError without a stored credential,
        CredentialRejectedError (after purging the store) when the server no
        longer accepts it, and TransientNetworkError when it may be retried.
        """
        credential = self._store.require_credential()
        try:
            async with asyncio.timeout(self._timeout_seconds):
                response = await self._api.rejoin(credential.session_token)
        except (CredentialRejectedError, GameNotFoundError) as e:
            logger.warning("rejoin rejected; purging session", error=str(e))
            self._store.purge()
            raise CredentialRejectedError("session is no longer valid; join the game again") from e
        except TimeoutError as e:
            raise TransientNetworkError(f"rejoin timed out after {self._timeout_seconds}s") from e

        result = self._classify(response)
        logger.info(
            "rejoined",
            outcome=result.event,
            game_status=response.participant.game_status,
            question_id=result.question.question_id if result.question else None,
        )
        return result

    def _classify(self, response: RejoinResponse) -> RejoinResult:
        participant = response.participant
        if participant.game_status == GameStatus.COMPLETED:
            return RejoinResult(SessionEvent.REJOIN_COMPLETED, participant, response.game_code)
        if response.current_question is not None:
            active = anchor_question(response.current_question, self._clock())
            return RejoinResult(SessionEvent.REJOIN_ACTIVE, participant, response.game_code, active)
        return RejoinResult(SessionEvent.REJOIN_WAITING, participant, response.game_code)
