from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from arena.logic.types import IntegrityEvent, LeaderboardEntry, Question


class ServerEvent(StrEnum):
    """Event names pushed by the server on the game stream."""

    GAME_STARTED = "gameStarted"
    NEXT_QUESTION = "nextQuestion"
    ANSWER_REVEALED = "answerRevealed"
    LEADERBOARD_UPDATE = "leaderboardUpdate"
    GAME_PAUSED = "gamePaused"
    GAME_RESUMED = "gameResumed"
    GAME_ENDED = "gameEnded"
    CHEAT_PENALTY = "cheatPenalty"
    ORGANISER_WARNING = "organiserWarning"
    ELIMINATED = "eliminated"
    RE_ADMITTED = "reAdmitted"
    QUESTION_TIME_EXPIRED = "questionTimeExpired"


class ClientEvent(StrEnum):
    JOIN_GAME_ROOM = "joinGameRoom"
    CHEAT_DETECTED = "cheatDetected"


class _ServerMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class QuestionPushMessage(_ServerMessage):
    """gameStarted / nextQuestion: the question that is now in play."""

    question: Question


class AnswerRevealedMessage(_ServerMessage):
    correct_answer: Any = Field(default=None, validation_alias=AliasChoices("correct_answer", "correctAnswer"))
    explanation: str | None = None


class LeaderboardUpdateMessage(_ServerMessage):
    entries: list[LeaderboardEntry] = Field(default_factory=list)


class GamePausedMessage(_ServerMessage):
    pass


class GameResumedMessage(_ServerMessage):
    question_ends_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("question_ends_at", "questionEndsAt"),
    )


class GameEndedMessage(_ServerMessage):
    pass


class CheatPenaltyMessage(_ServerMessage):
    warning_count: int = Field(default=0, validation_alias=AliasChoices("warning_count", "warningCount"))
    penalty: float = 0
    message: str = ""


class NoticeMessage(_ServerMessage):
    """organiserWarning / eliminated / reAdmitted: a message for the participant."""

    message: str = ""
    penalty: float | None = None


class QuestionTimeExpiredMessage(_ServerMessage):
    question_id: int | str | None = Field(
        default=None,
        validation_alias=AliasChoices("question_id", "questionId"),
    )


_SERVER_MESSAGE_TYPES: dict[ServerEvent, type[_ServerMessage]] = {
    ServerEvent.GAME_STARTED: QuestionPushMessage,
    ServerEvent.NEXT_QUESTION: QuestionPushMessage,
    ServerEvent.ANSWER_REVEALED: AnswerRevealedMessage,
    ServerEvent.LEADERBOARD_UPDATE: LeaderboardUpdateMessage,
    ServerEvent.GAME_PAUSED: GamePausedMessage,
    ServerEvent.GAME_RESUMED: GameResumedMessage,
    ServerEvent.GAME_ENDED: GameEndedMessage,
    ServerEvent.CHEAT_PENALTY: CheatPenaltyMessage,
    ServerEvent.ORGANISER_WARNING: NoticeMessage,
    ServerEvent.ELIMINATED: NoticeMessage,
    ServerEvent.RE_ADMITTED: NoticeMessage,
    ServerEvent.QUESTION_TIME_EXPIRED: QuestionTimeExpiredMessage,
}


def parse_server_message(event: ServerEvent, payload: Any) -> _ServerMessage:  # noqa: ANN401
    """Validate a raw stream payload for the given event.

    Payload-less events arrive as None; leaderboard pushes may be a bare list.
    """
    if payload is None:
        payload = {}
    if event == ServerEvent.LEADERBOARD_UPDATE and isinstance(payload, list):
        payload = {"entries": payload}
    return _SERVER_MESSAGE_TYPES[event].model_validate(payload)


class _ClientMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class JoinGameRoomMessage(_ClientMessage):
    game_code: str
    participant_id: int | str
    role: str = "participant"


class CheatDetectedMessage(_ClientMessage):
    kind: str
    description: str
    occurred_at: datetime
    cumulative_count: int
    duration_seconds: float | None = None

    @classmethod
    def from_event(cls, event: IntegrityEvent) -> CheatDetectedMessage:
        return cls(
            kind=event.kind.value,
            description=event.description,
            occurred_at=event.occurred_at,
            cumulative_count=event.cumulative_count,
            duration_seconds=event.duration_seconds,
        )
