"""
Pydantic models for the participant session domain.

Question payloads are a tagged union keyed by question_type: each variant
carries only the fields its type needs. Wire payloads mix snake_case (raw
question rows) and camelCase (participant summaries), so fields accept both
spellings on input.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, field_validator

from arena.logic.enums import CodeEvaluationMode, IntegrityKind, QuestionType

MS_PER_SECOND = 1000

TRUE_FALSE_OPTIONS = ("true", "false")


def _decode_json_text(value: object) -> object:
    """Decode JSON-encoded strings; pass everything else through."""
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        return json.loads(stripped)
    return value


def _decode_options(value: object) -> object:
    """Accept options as a list, a JSON array string, or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        try:
            decoded = json.loads(stripped)
        except json.JSONDecodeError:
            return [opt.strip() for opt in stripped.split(",") if opt.strip()]
        return decoded if isinstance(decoded, list) else []
    return value


OptionList = Annotated[list[str], BeforeValidator(_decode_options)]
JsonField = Annotated[Any, BeforeValidator(_decode_json_text)]


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ---------------------------------------------------------------------------
# Participant identity
# ---------------------------------------------------------------------------


class ParticipantIdentity(BaseModel):
    """The local participant as last reported by the server."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | str
    display_name: str = Field(validation_alias=_alias("display_name", "name"))
    avatar_glyph: str = Field(default="", validation_alias=_alias("avatar_glyph", "avatar"))
    current_rank: int | None = Field(default=None, validation_alias=_alias("current_rank", "currentRank"))
    total_score: float = Field(default=0, validation_alias=_alias("total_score", "totalScore"))

    @field_validator("avatar_glyph", mode="before")
    @classmethod
    def _none_avatar(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("total_score", mode="before")
    @classmethod
    def _none_score(cls, v: object) -> object:
        return 0 if v is None else v


class ParticipantRecord(ParticipantIdentity):
    """Participant payload returned by join/rejoin, including game status."""

    game_id: int | str | None = Field(default=None, validation_alias=_alias("game_id", "gameId"))
    game_title: str | None = Field(default=None, validation_alias=_alias("game_title", "gameTitle"))
    game_status: str | None = Field(default=None, validation_alias=_alias("game_status", "gameStatus"))

    def identity(self) -> ParticipantIdentity:
        return ParticipantIdentity(
            id=self.id,
            display_name=self.display_name,
            avatar_glyph=self.avatar_glyph,
            current_rank=self.current_rank,
            total_score=self.total_score,
        )


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    participant_id: int | str | None = Field(
        default=None,
        validation_alias=_alias("participant_id", "participantId", "id"),
    )
    name: str
    avatar: str | None = None
    current_rank: int | None = Field(default=None, validation_alias=_alias("current_rank", "currentRank"))
    total_score: float = Field(default=0, validation_alias=_alias("total_score", "totalScore"))


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


class _QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int | str
    question_order: int = Field(default=0, validation_alias=_alias("question_order", "order"))
    question_text: str = Field(default="", validation_alias=_alias("question_text", "text"))
    time_limit: int = Field(gt=0, validation_alias=_alias("time_limit", "timeLimit", "time_limit_seconds"))
    marks: float = 0
    hint: str | None = None
    hint_penalty: float | None = Field(default=None, validation_alias=_alias("hint_penalty", "hintPenalty"))
    question_ends_at: datetime | None = Field(
        default=None,
        validation_alias=_alias("question_ends_at", "questionEndsAt"),
    )
    answers_revealed: bool = Field(default=False, validation_alias=_alias("answers_revealed", "answersRevealed"))

    @field_validator("answers_revealed", mode="before")
    @classmethod
    def _none_revealed(cls, v: object) -> object:
        return False if v is None else v


class MultipleChoiceQuestion(_QuestionBase):
    question_type: Literal[QuestionType.MULTIPLE_CHOICE] = QuestionType.MULTIPLE_CHOICE
    options: OptionList = Field(default_factory=list)


class TrueFalseQuestion(_QuestionBase):
    question_type: Literal[QuestionType.TRUE_FALSE] = QuestionType.TRUE_FALSE

    @property
    def options(self) -> tuple[str, ...]:
        return TRUE_FALSE_OPTIONS


class ShortAnswerQuestion(_QuestionBase):
    question_type: Literal[QuestionType.SHORT_ANSWER] = QuestionType.SHORT_ANSWER


class FillBlankQuestion(_QuestionBase):
    question_type: Literal[QuestionType.FILL_BLANK] = QuestionType.FILL_BLANK


class ImageQuestion(_QuestionBase):
    question_type: Literal[QuestionType.IMAGE] = QuestionType.IMAGE
    image_url: str | None = None


class CodeQuestion(_QuestionBase):
    question_type: Literal[QuestionType.CODE] = QuestionType.CODE
    code_language: str = "javascript"
    evaluation_mode: CodeEvaluationMode = CodeEvaluationMode.MCQ
    code_snippet: str | None = None
    bug_fix_code: str | None = None
    bug_fix_instructions: str | None = None
    ide_template: str | None = None
    options: OptionList = Field(default_factory=list)

    @field_validator("code_language", mode="before")
    @classmethod
    def _default_language(cls, v: object) -> object:
        return "javascript" if not v else v

    @field_validator("evaluation_mode", mode="before")
    @classmethod
    def _default_mode(cls, v: object) -> object:
        return CodeEvaluationMode.MCQ if not v else v

    @property
    def expects_choice(self) -> bool:
        """Code questions in mcq mode are answered by picking one of the options."""
        return self.evaluation_mode == CodeEvaluationMode.MCQ and bool(self.options)


class CrosswordQuestion(_QuestionBase):
    question_type: Literal[QuestionType.CROSSWORD] = QuestionType.CROSSWORD
    crossword_grid: JsonField = None
    crossword_clues: JsonField = None
    crossword_size: JsonField = None


Question = Annotated[
    MultipleChoiceQuestion
    | TrueFalseQuestion
    | ShortAnswerQuestion
    | FillBlankQuestion
    | ImageQuestion
    | CodeQuestion
    | CrosswordQuestion,
    Field(discriminator="question_type"),
]

_question_adapter = TypeAdapter(Question)


def parse_question(data: dict[str, Any]) -> Question:
    """Parse a raw question payload into its typed variant."""
    return _question_adapter.validate_python(data)


def to_epoch_ms(value: datetime) -> float:
    """Convert a datetime to epoch milliseconds, reading naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp() * MS_PER_SECOND


@dataclass(frozen=True)
class ActiveQuestion:
    """The single question currently in play, anchored to an absolute deadline."""

    question: Question
    deadline_ms: float

    @property
    def question_id(self) -> int | str:
        return self.question.id

    @property
    def revealed(self) -> bool:
        return self.question.answers_revealed


def anchor_question(question: Question, received_at_ms: float) -> ActiveQuestion:
    """Pin a question to its absolute deadline.

    The server's question_ends_at wins; pushes that carry only a time limit
    are anchored to the moment they were received.
    """
    if question.question_ends_at is not None:
        deadline_ms = to_epoch_ms(question.question_ends_at)
    else:
        deadline_ms = received_at_ms + question.time_limit * MS_PER_SECOND
    return ActiveQuestion(question=question, deadline_ms=deadline_ms)


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


class AnswerAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: int | str
    raw_answer: str
    language: str | None = None
    hint_used: bool = False
    time_taken_seconds: int = 0
    auto_submitted: bool = False

    def to_request(self) -> dict[str, Any]:
        """Build the submitAnswer request body."""
        body: dict[str, Any] = {
            "questionId": self.question_id,
            "answer": self.raw_answer,
            "hintUsed": self.hint_used,
            "timeTaken": self.time_taken_seconds,
            "autoSubmit": self.auto_submitted,
        }
        if self.language is not None:
            body["language"] = self.language
        return body


class Verdict(BaseModel):
    """Server verdict for a committed answer, or a locally synthesised one."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    is_correct: bool = Field(validation_alias=_alias("is_correct", "isCorrect"))
    score_earned: float = Field(default=0, validation_alias=_alias("score_earned", "scoreEarned"))
    time_bonus: float = Field(default=0, validation_alias=_alias("time_bonus", "timeBonus"))
    partial_score: float = Field(default=0, validation_alias=_alias("partial_score", "partialScore"))
    message: str = ""
    synthetic: bool = False

    @classmethod
    def time_expired(cls) -> Verdict:
        return cls(
            is_correct=False,
            score_earned=0,
            message="Time expired - answer submitted automatically",
            synthetic=True,
        )

    @classmethod
    def already_recorded(cls) -> Verdict:
        return cls(
            is_correct=False,
            score_earned=0,
            message="An answer for this question was already recorded",
            synthetic=True,
        )


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class IntegrityEvent(BaseModel):
    """A single observed integrity signal. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    kind: IntegrityKind
    description: str
    occurred_at: datetime
    cumulative_count: int = Field(ge=1)
    duration_seconds: float | None = None
