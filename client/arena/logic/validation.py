"""Local answer shape checks, run before anything is sent to the server."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from arena.logic.enums import CodeEvaluationMode
from arena.logic.exceptions import AnswerValidationError
from arena.logic.types import (
    CodeQuestion,
    CrosswordQuestion,
    FillBlankQuestion,
    ImageQuestion,
    MultipleChoiceQuestion,
    ShortAnswerQuestion,
    TrueFalseQuestion,
)

if TYPE_CHECKING:
    from arena.logic.types import Question

SUPPORTED_LANGUAGES = frozenset({"javascript", "python", "java", "cpp"})

DEFAULT_MAX_CODE_BYTES = 64 * 1024
DEFAULT_MAX_TEXT_LENGTH = 1000

# "1A:WORD" - clue number, direction, entry
_CROSSWORD_ENTRY = re.compile(r"^(\d+[AaDd]):(\S+)$")


class AnswerValidator:
    """Check that an answer fits the shape its question type expects."""

    def __init__(
        self,
        *,
        max_code_bytes: int = DEFAULT_MAX_CODE_BYTES,
        max_text_length: int = DEFAULT_MAX_TEXT_LENGTH,
    ) -> None:
        self._max_code_bytes = max_code_bytes
        self._max_text_length = max_text_length

    def problems(self, question: Question, answer: str, language: str | None = None) -> list[str]:
        """Return every shape problem with the answer; empty when it is valid."""
        text = answer.strip()
        if not text:
            return ["answer must not be empty"]

        if isinstance(question, MultipleChoiceQuestion):
            return self._check_choice(question.options, text)
        if isinstance(question, TrueFalseQuestion):
            if text.lower() not in question.options:
                return ["answer must be 'true' or 'false'"]
            return []
        if isinstance(question, (ShortAnswerQuestion, FillBlankQuestion, ImageQuestion)):
            return self._check_text(text)
        if isinstance(question, CodeQuestion):
            return self._check_code(question, answer, language)
        if isinstance(question, CrosswordQuestion):
            return self._check_crossword(question, text)
        return []

    def check(self, question: Question, answer: str, language: str | None = None) -> None:
        """Raise AnswerValidationError when the answer does not fit the question."""
        found = self.problems(question, answer, language)
        if found:
            raise AnswerValidationError(question.id, found)

    def _check_choice(self, options: list[str], text: str) -> list[str]:
        if options and text not in options:
            return [f"answer must be one of the {len(options)} options"]
        return []

    def _check_text(self, text: str) -> list[str]:
        if len(text) > self._max_text_length:
            return [f"answer exceeds {self._max_text_length} characters"]
        return []

    def _check_code(self, question: CodeQuestion, answer: str, language: str | None) -> list[str]:
        if question.expects_choice:
            return self._check_choice(question.options, answer.strip())

        found: list[str] = []
        if len(answer.encode()) > self._max_code_bytes:
            found.append(f"code exceeds {self._max_code_bytes} bytes")
        if question.evaluation_mode != CodeEvaluationMode.MCQ:
            tag = language or question.code_language
            if tag not in SUPPORTED_LANGUAGES:
                found.append(f"unsupported language {tag!r}")
        return found

    def _check_crossword(self, question: CrosswordQuestion, text: str) -> list[str]:
        found: list[str] = []
        known = set()
        if isinstance(question.crossword_clues, dict):
            known = {str(key).upper() for key in question.crossword_clues}

        for raw_entry in text.split(","):
            entry = raw_entry.strip()
            if not entry:
                continue
            match = _CROSSWORD_ENTRY.match(entry)
            if match is None:
                found.append(f"malformed crossword entry {entry!r}")
                continue
            clue = match.group(1).upper()
            if known and clue not in known:
                found.append(f"unknown clue {clue}")
        return found


def resolve_language(question: Question, language: str | None) -> str | None:
    """Language tag to send with the answer; only code questions carry one."""
    if not isinstance(question, CodeQuestion):
        return None
    return language or question.code_language
