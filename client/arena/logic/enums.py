from enum import StrEnum


class SessionPhase(StrEnum):
    """Participant-visible phase of the game."""

    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"
    ELIMINATED = "eliminated"


class SessionEvent(StrEnum):
    """Inputs that can move the state machine between phases."""

    GAME_STARTED = "game_started"
    NEXT_QUESTION = "next_question"
    GAME_PAUSED = "game_paused"
    GAME_RESUMED = "game_resumed"
    GAME_ENDED = "game_ended"
    ELIMINATED = "eliminated"
    RE_ADMITTED = "re_admitted"
    REJOIN_ACTIVE = "rejoin_active"
    REJOIN_COMPLETED = "rejoin_completed"
    REJOIN_WAITING = "rejoin_waiting"


class QuestionType(StrEnum):
    MULTIPLE_CHOICE = "mcq"
    TRUE_FALSE = "truefalse"
    SHORT_ANSWER = "short"
    FILL_BLANK = "fill"
    CODE = "code"
    IMAGE = "image"
    CROSSWORD = "crossword"


class CodeEvaluationMode(StrEnum):
    MCQ = "mcq"
    TEXTAREA = "textarea"
    COMPILER = "compiler"
    IDE = "ide"
    BUGFIX = "bugfix"


class GameStatus(StrEnum):
    """Server-side game status reported by join/rejoin."""

    DRAFT = "draft"
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    RECONNECT_FAILED = "reconnect_failed"


class DisconnectReason(StrEnum):
    CLIENT = "client"
    SERVER = "server"
    TRANSPORT = "transport"


class SubmissionStatus(StrEnum):
    """Lifecycle of the answer for the current question.

    idle: nothing sent. in_flight / retry_pending: pending.
    committed: accepted (real or synthetic verdict). closed: answering ended
    without an attempt. failed: the attempt never reached the server.
    """

    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    RETRY_PENDING = "retry_pending"
    COMMITTED = "committed"
    CLOSED = "closed"
    FAILED = "failed"


class SubmissionOutcome(StrEnum):
    """Result of a single submit() call."""

    ACCEPTED = "accepted"
    EXPIRED = "expired"
    RETRY_QUEUED = "retry_queued"
    FAILED = "failed"
    IGNORED = "ignored"
    STALE = "stale"


class IntegrityKind(StrEnum):
    """Integrity signal classes; values match the server's cheat report types."""

    CONTEXT_MENU = "right_click_attempt"
    SHORTCUT_BLOCKED = "copy_paste_attempt"
    DEVTOOLS_SHORTCUT = "dev_tools_attempt"
    VISIBILITY_LOST = "tab_switch"
    FOCUS_LOST = "window_focus_lost"
    DEVTOOLS_SUSPECTED = "dev_tools_opened"


class NotificationLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
