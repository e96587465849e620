"""
Idempotent answer submission for the active question.

Each question gets exactly one attempt. The status flips to in_flight before
the first await, so a manual submit and a timer-driven auto-submit landing on
the same tick cannot both reach the network. Responses that arrive after the
question has moved on are dropped.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

import structlog

from arena.logic.enums import SubmissionOutcome, SubmissionStatus
from arena.logic.exceptions import (
    AlreadyAnsweredError,
    AnswerRejectedError,
    ArenaError,
    CredentialRejectedError,
    DeadlinePassedError,
    TransientNetworkError,
)
from arena.logic.types import AnswerAttempt, Verdict
from arena.logic.validation import AnswerValidator, resolve_language

if TYPE_CHECKING:
    from arena.logic.types import ActiveQuestion

logger = structlog.get_logger()

_PENDING = frozenset({SubmissionStatus.IN_FLIGHT, SubmissionStatus.RETRY_PENDING})
_RESOLVED = frozenset({SubmissionStatus.COMMITTED, SubmissionStatus.CLOSED, SubmissionStatus.FAILED})


class AnswerSender(Protocol):
    """Transport for a single answer attempt."""

    async def submit_answer(self, attempt: AnswerAttempt) -> Verdict: ...


class AnswerSubmissionController:
    def __init__(
        self,
        sender: AnswerSender,
        *,
        validator: AnswerValidator | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._sender = sender
        self._validator = validator or AnswerValidator()
        self._timeout_seconds = timeout_seconds
        self._question: ActiveQuestion | None = None
        self._status = SubmissionStatus.IDLE
        self._verdict: Verdict | None = None
        self._pending: AnswerAttempt | None = None
        self._generation = 0
        self._abandoned = False

    @property
    def question(self) -> ActiveQuestion | None:
        return self._question

    @property
    def status(self) -> SubmissionStatus:
        return self._status

    @property
    def verdict(self) -> Verdict | None:
        return self._verdict

    @property
    def is_pending(self) -> bool:
        return self._status in _PENDING

    @property
    def is_resolved(self) -> bool:
        return self._status in _RESOLVED

    def arm(self, question: ActiveQuestion) -> None:
        """Start tracking a new question; anything in flight for the old one goes stale."""
        self._generation += 1
        self._question = question
        self._status = SubmissionStatus.IDLE
        self._verdict = None
        self._pending = None
        self._abandoned = False
        if question.revealed:
            self._status = SubmissionStatus.CLOSED

    def close(self) -> None:
        """Answers were revealed: no further attempt may start for this question."""
        if self._status == SubmissionStatus.IDLE:
            self._status = SubmissionStatus.CLOSED
            logger.debug("submission closed", question_id=self._question_id())

    def abandon(self) -> None:
        """The participant can no longer answer (eliminated or game over).

        An attempt already in flight still resolves against its response, but
        nothing is queued for a retry afterwards.
        """
        self._abandoned = True
        if self._status == SubmissionStatus.IDLE:
            self._status = SubmissionStatus.CLOSED
        elif self._status == SubmissionStatus.RETRY_PENDING:
            self._status = SubmissionStatus.FAILED
            self._pending = None

    async def submit(
        self,
        answer: str,
        *,
        is_auto: bool = False,
        language: str | None = None,
        hint_used: bool = False,
        time_taken: int = 0,
    ) -> SubmissionOutcome:
        """
        Send the one attempt for the active question.

        Manual answers that do not fit the question raise AnswerValidationError
        and leave the status idle. Auto-submits fall back to an empty answer.
        """
        active = self._question
        if active is None or self._status != SubmissionStatus.IDLE:
            logger.debug(
                "submit ignored",
                question_id=self._question_id(),
                status=self._status,
                auto=is_auto,
            )
            return SubmissionOutcome.IGNORED

        question = active.question
        language = resolve_language(question, language)
        if is_auto:
            if self._validator.problems(question, answer, language):
                answer = ""
        else:
            self._validator.check(question, answer, language)

        attempt = AnswerAttempt(
            question_id=question.id,
            raw_answer=answer.strip(),
            language=language,
            hint_used=hint_used,
            time_taken_seconds=max(0, time_taken),
            auto_submitted=is_auto,
        )
        self._status = SubmissionStatus.IN_FLIGHT
        logger.info("submitting answer", question_id=question.id, auto=is_auto)
        return await self._send(attempt, is_retry=False)

    async def retry_pending(self) -> SubmissionOutcome | None:
        """Resend the queued attempt once after connectivity returns."""
        attempt = self._pending
        if self._status != SubmissionStatus.RETRY_PENDING or attempt is None:
            return None
        self._status = SubmissionStatus.IN_FLIGHT
        logger.info("retrying answer", question_id=attempt.question_id)
        return await self._send(attempt, is_retry=True)

    async def _send(self, attempt: AnswerAttempt, *, is_retry: bool) -> SubmissionOutcome:
        generation = self._generation
        try:
            async with asyncio.timeout(self._timeout_seconds):
                verdict = await self._sender.submit_answer(attempt)
        except DeadlinePassedError:
            if self._is_stale(generation, attempt):
                return SubmissionOutcome.STALE
            self._commit(Verdict.time_expired())
            return SubmissionOutcome.EXPIRED
        except AlreadyAnsweredError:
            if self._is_stale(generation, attempt):
                return SubmissionOutcome.STALE
            self._commit(Verdict.already_recorded())
            return SubmissionOutcome.ACCEPTED
        except AnswerRejectedError:
            if self._is_stale(generation, attempt):
                return SubmissionOutcome.STALE
            self._status = SubmissionStatus.FAILED if self._abandoned else SubmissionStatus.IDLE
            self._pending = None
            raise
        except CredentialRejectedError:
            if not self._is_stale(generation, attempt):
                self._status = SubmissionStatus.FAILED
                self._pending = None
            raise
        except (TransientNetworkError, TimeoutError) as e:
            if self._is_stale(generation, attempt):
                return SubmissionOutcome.STALE
            if is_retry or self._abandoned:
                logger.warning("answer not delivered, giving up", question_id=attempt.question_id, error=str(e))
                self._status = SubmissionStatus.FAILED
                self._pending = None
                return SubmissionOutcome.FAILED
            logger.warning("answer send failed, queued for retry", question_id=attempt.question_id, error=str(e))
            self._status = SubmissionStatus.RETRY_PENDING
            self._pending = attempt
            return SubmissionOutcome.RETRY_QUEUED
        except ArenaError as e:
            if not self._is_stale(generation, attempt):
                logger.warning("answer send failed", question_id=attempt.question_id, error=str(e))
                self._status = SubmissionStatus.FAILED
                self._pending = None
            raise

        if self._is_stale(generation, attempt):
            return SubmissionOutcome.STALE
        self._commit(verdict)
        return SubmissionOutcome.ACCEPTED

    def _commit(self, verdict: Verdict) -> None:
        self._status = SubmissionStatus.COMMITTED
        self._verdict = verdict
        self._pending = None
        logger.info(
            "answer committed",
            question_id=self._question_id(),
            correct=verdict.is_correct,
            score=verdict.score_earned,
            synthetic=verdict.synthetic,
        )

    def _is_stale(self, generation: int, attempt: AnswerAttempt) -> bool:
        stale = generation != self._generation
        if stale:
            logger.info("discarding late submission response", question_id=attempt.question_id)
        return stale

    def _question_id(self) -> int | str | None:
        return self._question.question_id if self._question is not None else None
