from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog
from pydantic import ValidationError

from arena.messaging.types import (
    AnswerRevealedMessage,
    CheatPenaltyMessage,
    GameEndedMessage,
    GamePausedMessage,
    GameResumedMessage,
    LeaderboardUpdateMessage,
    NoticeMessage,
    QuestionPushMessage,
    QuestionTimeExpiredMessage,
    ServerEvent,
    parse_server_message,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()


class StreamEventHandler(Protocol):
    """Receiver for validated server events."""

    async def handle_question_push(self, event: ServerEvent, message: QuestionPushMessage) -> None: ...

    async def handle_answer_revealed(self, message: AnswerRevealedMessage) -> None: ...

    async def handle_leaderboard(self, message: LeaderboardUpdateMessage) -> None: ...

    async def handle_game_paused(self, message: GamePausedMessage) -> None: ...

    async def handle_game_resumed(self, message: GameResumedMessage) -> None: ...

    async def handle_game_ended(self, message: GameEndedMessage) -> None: ...

    async def handle_cheat_penalty(self, message: CheatPenaltyMessage) -> None: ...

    async def handle_notice(self, event: ServerEvent, message: NoticeMessage) -> None: ...

    async def handle_question_time_expired(self, message: QuestionTimeExpiredMessage) -> None: ...


class MessageRouter:
    """
    Routes server events to the session handler.

    Payloads are validated here; malformed ones are logged and dropped so a
    single bad push never stops the stream.
    """

    def __init__(self, handler: StreamEventHandler) -> None:
        self._handler = handler

    @property
    def events(self) -> tuple[str, ...]:
        """Every event name the router understands."""
        return tuple(event.value for event in ServerEvent)

    def bind(self, event: str) -> Callable[[Any], Awaitable[None]]:
        """Build a per-event callback suitable for a subscription table."""

        async def _deliver(payload: Any) -> None:  # noqa: ANN401
            await self.handle_event(event, payload)

        return _deliver

    async def handle_event(self, event: str, payload: Any) -> None:  # noqa: ANN401
        try:
            server_event = ServerEvent(event)
        except ValueError:
            logger.debug("ignoring unknown event", stream_event=event)
            return
        try:
            message = parse_server_message(server_event, payload)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("invalid payload", stream_event=event, error=str(e))
            return

        handler = self._handler
        if isinstance(message, QuestionPushMessage):
            await handler.handle_question_push(server_event, message)
        elif isinstance(message, AnswerRevealedMessage):
            await handler.handle_answer_revealed(message)
        elif isinstance(message, LeaderboardUpdateMessage):
            await handler.handle_leaderboard(message)
        elif isinstance(message, GamePausedMessage):
            await handler.handle_game_paused(message)
        elif isinstance(message, GameResumedMessage):
            await handler.handle_game_resumed(message)
        elif isinstance(message, GameEndedMessage):
            await handler.handle_game_ended(message)
        elif isinstance(message, CheatPenaltyMessage):
            await handler.handle_cheat_penalty(message)
        elif isinstance(message, NoticeMessage):
            await handler.handle_notice(server_event, message)
        elif isinstance(message, QuestionTimeExpiredMessage):
            await handler.handle_question_time_expired(message)
