"""Exception hierarchy for the participant client.

Errors fall into distinct classes the caller handles differently:
credential errors purge the session, transient errors are retried or queued,
deadline errors resolve a question, validation errors go back to the
participant.
"""


class ArenaError(Exception):
    """Base exception for all participant client errors."""


# Credential errors


class CredentialRejectedError(ArenaError):
    """The server rejected the session credential (expired or invalid)."""


class NoSessionError(ArenaError):
    """No stored session exists; the participant must join from scratch."""


# Transient errors


class TransientNetworkError(ArenaError):
    """A request failed for a reason that may clear up on retry."""


class ConnectionUnavailableError(TransientNetworkError):
    """The event stream is not connected."""


class ReconnectFailedError(ArenaError):
    """All reconnect attempts were exhausted."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"reconnect failed after {attempts} attempts")


# Protocol-timing errors


class DeadlinePassedError(ArenaError):
    """The server refused a submission because the question deadline passed."""


class AlreadyAnsweredError(ArenaError):
    """The server already holds an answer for this question."""


# Validation errors


class AnswerValidationError(ArenaError):
    """The answer does not fit the question's shape; nothing was sent."""

    def __init__(self, question_id: int, problems: list[str]) -> None:
        self.question_id = question_id
        self.problems = problems
        super().__init__(f"invalid answer for question {question_id}: {'; '.join(problems)}")


class AnswerRejectedError(ArenaError):
    """The server refused the answer as malformed; it may be corrected and resent."""


# Join collaborator errors


class ApiRequestError(ArenaError):
    """The server refused a request for a reason not covered by a narrower class."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"request failed with {status_code}: {message}")


class GameNotFoundError(ArenaError):
    """No game exists for the given code."""


class NameTakenError(ArenaError):
    """Another participant in the game already uses this display name."""


class GameClosedError(ArenaError):
    """The game is full, already started, or finished."""


class InvalidPhaseError(ArenaError):
    """The operation is not valid in the current session phase."""
