"""REST request/response bodies for the participant API (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from arena.logic.types import ParticipantRecord, Question


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class JoinRequest(_ApiModel):
    game_code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=50)


class JoinResponse(_ApiModel):
    participant: ParticipantRecord
    session_token: str = Field(min_length=1)
    game_code: str


class RejoinResponse(_ApiModel):
    participant: ParticipantRecord
    current_question: Question | None = None
    game_code: str | None = None


class ErrorBody(_ApiModel):
    """Structured error body: `code` decides the error class, never `error` text."""

    error: str = ""
    code: str | None = None


class AnalyticsParticipant(_ApiModel):
    name: str
    avatar: str | None = None
    final_rank: int | None = None
    total_score: float = 0
    cheat_warnings: int = 0


class AnalyticsStats(_ApiModel):
    total_questions: int = 0
    correct_answers: int = 0
    accuracy: float = 0
    average_time: float = 0
    total_score: float = 0


class AnswerReview(_ApiModel):
    question_text: str = ""
    your_answer: str | None = None
    correct_answer: str | None = None
    is_correct: bool = False
    score_earned: float = 0
    max_score: float = 0
    time_taken: float = 0
    hint_used: bool = False


class ParticipantAnalytics(_ApiModel):
    participant: AnalyticsParticipant
    stats: AnalyticsStats
    answers: list[AnswerReview] = Field(default_factory=list)
