"""
Participant session engine.

Wires the connection, state machine, timer, submission controller and
integrity monitor together. Inbound events flow one way:

    ConnectionManager -> MessageRouter -> ParticipantSession handlers
        -> GameStateMachine (phase + question)
        -> CountdownTimer (re-anchored on the new deadline)
        -> AnswerSubmissionController (armed for the new question)

The integrity monitor runs while the phase is active, independent of the
rest. Network work triggered by stream events runs in background tasks so
the dispatcher is never blocked behind an HTTP call.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from arena.logic.enums import ConnectionStatus, SessionEvent, SessionPhase, SubmissionOutcome, SubmissionStatus
from arena.logic.exceptions import (
    AnswerRejectedError,
    ArenaError,
    CredentialRejectedError,
    InvalidPhaseError,
    ReconnectFailedError,
    TransientNetworkError,
)
from arena.logic.integrity import IntegrityMonitor
from arena.logic.state_machine import GameStateMachine
from arena.logic.submission import AnswerSubmissionController
from arena.logic.timer import CountdownTimer, wall_clock_ms
from arena.logic.types import ActiveQuestion, anchor_question, to_epoch_ms
from arena.logic.validation import AnswerValidator
from arena.messaging.router import MessageRouter
from arena.messaging.types import CheatDetectedMessage, ClientEvent, JoinGameRoomMessage, ServerEvent
from arena.session.notifications import NotificationService
from arena.session.rejoin import RejoinProtocol
from arena.session.store import SessionCredential

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from arena.api.types import JoinResponse, ParticipantAnalytics, RejoinResponse
    from arena.config.settings import ArenaClientSettings
    from arena.connection.manager import ConnectionManager
    from arena.logic.integrity import SignalSource, WindowMetrics
    from arena.logic.types import (
        AnswerAttempt,
        IntegrityEvent,
        LeaderboardEntry,
        ParticipantIdentity,
        ParticipantRecord,
        Verdict,
    )
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
    )
    from arena.session.rejoin import RejoinResult
    from arena.session.store import SessionStore

logger = structlog.get_logger()


class ParticipantApi(Protocol):
    """REST collaborator used by the session."""

    session_token: str | None

    async def join(self, game_code: str, name: str) -> JoinResponse: ...

    async def rejoin(self, session_token: str) -> RejoinResponse: ...

    async def submit_answer(self, attempt: AnswerAttempt) -> Verdict: ...

    async def fetch_analytics(self) -> ParticipantAnalytics: ...


class ParticipantSession:
    def __init__(
        self,
        *,
        api: ParticipantApi,
        store: SessionStore,
        connection: ConnectionManager,
        settings: ArenaClientSettings,
        notifications: NotificationService | None = None,
        clock: Callable[[], float] = wall_clock_ms,
        signal_source: SignalSource | None = None,
        window_metrics: Callable[[], WindowMetrics | None] | None = None,
        tick_interval: float = 1.0,
    ) -> None:
        self._api = api
        self._store = store
        self._connection = connection
        self._notifications = notifications or NotificationService()
        self._clock = clock

        self._machine = GameStateMachine()
        self._timer = CountdownTimer(
            self._on_timer_expired,
            clock=clock,
            can_expire=self._can_auto_submit,
            tick_interval=tick_interval,
        )
        self._submission = AnswerSubmissionController(
            api,
            validator=AnswerValidator(
                max_code_bytes=settings.max_code_bytes,
                max_text_length=settings.max_text_answer_length,
            ),
            timeout_seconds=settings.submit_timeout_seconds,
        )
        self._integrity = IntegrityMonitor(
            self._report_integrity,
            source=signal_source,
            window_metrics=window_metrics,
            clock=clock,
            visibility_threshold_seconds=settings.visibility_threshold_seconds,
            focus_threshold_seconds=settings.focus_threshold_seconds,
            devtools_poll_interval_seconds=settings.devtools_poll_interval_seconds,
            devtools_size_threshold_px=settings.devtools_size_threshold_px,
        )
        self._rejoin = RejoinProtocol(api, store, timeout_seconds=settings.rejoin_timeout_seconds, clock=clock)
        self._router = MessageRouter(self)

        self._identity: ParticipantIdentity | None = None
        self._game_code: str | None = None
        self._game_title: str | None = None
        self._draft_answer = ""
        self._draft_language: str | None = None
        self._hint_used = False
        self._warning_count = 0
        self._leaderboard: list[LeaderboardEntry] = []
        self._analytics: ParticipantAnalytics | None = None
        self._pending_reports: list[IntegrityEvent] = []
        self._rejoin_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._finished = asyncio.Event()

        for event in self._router.events:
            connection.subscribe(event, self._router.bind(event))
        connection.add_status_listener(self._on_connection_status)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self._machine.phase

    @property
    def question(self) -> ActiveQuestion | None:
        return self._machine.question

    @property
    def remaining_seconds(self) -> int:
        return self._timer.remaining_seconds

    @property
    def submission_status(self) -> SubmissionStatus:
        return self._submission.status

    @property
    def verdict(self) -> Verdict | None:
        return self._submission.verdict

    @property
    def identity(self) -> ParticipantIdentity | None:
        return self._identity

    @property
    def game_code(self) -> str | None:
        return self._game_code

    @property
    def leaderboard(self) -> list[LeaderboardEntry]:
        return list(self._leaderboard)

    @property
    def warning_count(self) -> int:
        return self._warning_count

    @property
    def analytics(self) -> ParticipantAnalytics | None:
        return self._analytics

    @property
    def hint_used(self) -> bool:
        return self._hint_used

    @property
    def integrity(self) -> IntegrityMonitor:
        return self._integrity

    @property
    def timer(self) -> CountdownTimer:
        return self._timer

    @property
    def notifications(self) -> NotificationService:
        return self._notifications

    @property
    def pending_reports(self) -> int:
        return len(self._pending_reports)

    # ------------------------------------------------------------------
    # Participant operations
    # ------------------------------------------------------------------

    async def join(self, game_code: str, name: str) -> ParticipantIdentity:
        """Join a game as a new participant, persist the session and connect."""
        response = await self._api.join(game_code, name)
        credential = SessionCredential(session_token=response.session_token)
        self._adopt(response.participant, response.game_code)
        self._api.session_token = credential.session_token
        self._store.save(credential, response.participant.identity(), response.game_code, self._game_title)
        logger.info("joined game", name=response.participant.display_name)
        await self._connection.connect()
        return response.participant.identity()

    async def resume(self) -> RejoinResult:
        """Resume the stored session (e.g. after a restart) and connect."""
        credential = self._store.require_credential()
        stored = self._store.load_participant()
        if stored is not None:
            self._identity = stored.participant
            self._game_code = stored.game_code
            self._game_title = stored.game_title
        self._api.session_token = credential.session_token
        result = await self._rejoin.rejoin()
        self._apply_rejoin(result)
        await self._connection.connect()
        return result

    def set_draft(self, answer: str, language: str | None = None) -> None:
        """Record the answer being typed; auto-submit sends it when time runs out."""
        self._draft_answer = answer
        if language is not None:
            self._draft_language = language

    def use_hint(self) -> str | None:
        """Reveal the hint for the active question; the attempt is flagged as hinted."""
        active = self._machine.question
        if self.phase != SessionPhase.ACTIVE or active is None or not active.question.hint:
            return None
        if self._submission.status != SubmissionStatus.IDLE:
            return None
        if not self._hint_used:
            self._hint_used = True
            logger.info("hint used", question_id=active.question_id, penalty=active.question.hint_penalty)
        return active.question.hint

    async def submit(self, answer: str | None = None, *, language: str | None = None) -> SubmissionOutcome:
        """Submit the participant's answer for the active question."""
        if self.phase != SessionPhase.ACTIVE:
            raise InvalidPhaseError(f"cannot submit while {self.phase}")
        if answer is not None:
            self.set_draft(answer, language)
        try:
            outcome = await self._submission.submit(
                self._draft_answer,
                language=language or self._draft_language,
                hint_used=self._hint_used,
                time_taken=self._time_taken(),
            )
        except CredentialRejectedError:
            await self._handle_credential_rejected()
            raise
        self._after_submission(outcome)
        return outcome

    async def retry_pending_submission(self) -> SubmissionOutcome | None:
        outcome = await self._submission.retry_pending()
        if outcome is not None:
            self._after_submission(outcome)
        return outcome

    async def fetch_analytics(self) -> ParticipantAnalytics:
        if self.phase != SessionPhase.ENDED:
            raise InvalidPhaseError("analytics are available once the game has ended")
        self._analytics = await self._api.fetch_analytics()
        return self._analytics

    async def wait_until_ended(self) -> None:
        """Block until the game ends or the session can no longer continue."""
        await self._finished.wait()

    async def close(self) -> None:
        """Stop local work and disconnect, keeping the stored session."""
        self._stop_local_work()
        await self._connection.disconnect()
        await self._cancel_tasks()

    async def leave(self) -> None:
        """Explicit exit: disconnect and forget the stored session."""
        await self.close()
        self._store.purge()
        self._api.session_token = None
        structlog.contextvars.unbind_contextvars("game_code", "participant_id")
        logger.info("left game")

    # ------------------------------------------------------------------
    # Connection status
    # ------------------------------------------------------------------

    async def _on_connection_status(self, status: ConnectionStatus) -> None:
        if status == ConnectionStatus.CONNECTED:
            await self._join_room()
            await self._flush_reports()
        elif status == ConnectionStatus.DISCONNECTED:
            self._cancel_rejoin()
        elif status == ConnectionStatus.RECONNECTING:
            self._notifications.warning("Connection lost - reconnecting...")
        elif status == ConnectionStatus.RECONNECTED:
            self._notifications.success("Reconnected")
            await self._join_room()
            self._cancel_rejoin()
            self._rejoin_task = asyncio.create_task(self._resync())
        elif status == ConnectionStatus.RECONNECT_FAILED:
            self._notifications.error("Unable to reconnect to the game")
            self._stop_local_work()
            self._finished.set()

    async def _resync(self) -> None:
        try:
            result = await self._rejoin.rejoin()
        except CredentialRejectedError:
            await self._handle_credential_rejected()
            return
        except ArenaError as e:
            logger.warning("resync after reconnect failed", error=str(e))
            self._notifications.warning("Reconnected, but the game state could not be refreshed")
            await self._flush_reports()
            return
        self._apply_rejoin(result)
        try:
            await self.retry_pending_submission()
        except CredentialRejectedError:
            await self._handle_credential_rejected()
            return
        except ArenaError as e:
            logger.warning("answer retry after reconnect failed", error=str(e))
            self._notifications.error("Answer could not be delivered")
        await self._flush_reports()

    def _cancel_rejoin(self) -> None:
        task = self._rejoin_task
        self._rejoin_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _join_room(self) -> None:
        if self._identity is None or self._game_code is None:
            return
        message = JoinGameRoomMessage(game_code=self._game_code, participant_id=self._identity.id)
        try:
            await self._connection.emit(ClientEvent.JOIN_GAME_ROOM, message.to_payload())
        except (TransientNetworkError, ReconnectFailedError) as e:
            logger.warning("joinGameRoom not sent", error=str(e))

    # ------------------------------------------------------------------
    # Stream handlers (called by MessageRouter)
    # ------------------------------------------------------------------

    async def handle_question_push(self, event: ServerEvent, message: QuestionPushMessage) -> None:
        active = anchor_question(message.question, self._clock())
        session_event = SessionEvent.GAME_STARTED if event == ServerEvent.GAME_STARTED else SessionEvent.NEXT_QUESTION
        transition = self._machine.apply(session_event, active)
        if transition.question_replaced:
            self._enter_question(active)
        self._sync_integrity()

    async def handle_answer_revealed(self, message: AnswerRevealedMessage) -> None:  # noqa: ARG002
        active = self._machine.question
        if active is None or self.phase not in (SessionPhase.ACTIVE, SessionPhase.PAUSED):
            return
        self._submission.close()
        self._timer.disarm()
        revealed = active.question.model_copy(update={"answers_revealed": True})
        self._machine.reveal_current(ActiveQuestion(question=revealed, deadline_ms=active.deadline_ms))
        logger.info("answers revealed", question_id=active.question_id)

    async def handle_leaderboard(self, message: LeaderboardUpdateMessage) -> None:
        self._leaderboard = list(message.entries)
        identity = self._identity
        if identity is None:
            return
        mine = next((e for e in message.entries if e.participant_id is not None and e.participant_id == identity.id), None)
        if mine is None:
            mine = next((e for e in message.entries if e.name == identity.display_name), None)
        if mine is not None:
            self._identity = identity.model_copy(
                update={"current_rank": mine.current_rank, "total_score": mine.total_score},
            )

    async def handle_game_paused(self, message: GamePausedMessage) -> None:  # noqa: ARG002
        transition = self._machine.apply(SessionEvent.GAME_PAUSED)
        if transition.changed:
            self._timer.pause()
            self._notifications.info("Game paused by the organiser")
        self._sync_integrity()

    async def handle_game_resumed(self, message: GameResumedMessage) -> None:
        transition = self._machine.apply(SessionEvent.GAME_RESUMED)
        if transition.changed and transition.current == SessionPhase.ACTIVE:
            deadline = to_epoch_ms(message.question_ends_at) if message.question_ends_at is not None else None
            if self._submission.status == SubmissionStatus.IDLE:
                self._timer.resume(deadline)
            self._notifications.info("Game resumed")
        self._sync_integrity()

    async def handle_game_ended(self, message: GameEndedMessage) -> None:  # noqa: ARG002
        transition = self._machine.apply(SessionEvent.GAME_ENDED)
        if transition.changed:
            self._finish()

    async def handle_cheat_penalty(self, message: CheatPenaltyMessage) -> None:
        self._warning_count = max(self._warning_count, message.warning_count)
        if message.message:
            self._notifications.warning(message.message)

    async def handle_notice(self, event: ServerEvent, message: NoticeMessage) -> None:
        if event == ServerEvent.ORGANISER_WARNING:
            self._notifications.warning(message.message or "You received a warning from the organiser")
        elif event == ServerEvent.ELIMINATED:
            transition = self._machine.apply(SessionEvent.ELIMINATED)
            if transition.changed:
                self._timer.disarm()
                self._submission.abandon()
                self._sync_integrity()
            self._notifications.error(message.message or "You have been eliminated")
        elif event == ServerEvent.RE_ADMITTED:
            transition = self._machine.apply(SessionEvent.RE_ADMITTED)
            if transition.changed:
                self._sync_integrity()
            self._notifications.success(message.message or "You have been re-admitted")

    async def handle_question_time_expired(self, message: QuestionTimeExpiredMessage) -> None:  # noqa: ARG002
        if self._can_auto_submit():
            self._spawn(self._auto_submit())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _adopt(self, participant: ParticipantRecord, game_code: str | None) -> None:
        self._identity = participant.identity()
        if game_code:
            self._game_code = game_code
        if participant.game_title:
            self._game_title = participant.game_title
        structlog.contextvars.bind_contextvars(game_code=self._game_code, participant_id=participant.id)

    def _apply_rejoin(self, result: RejoinResult) -> None:
        self._adopt(result.participant, result.game_code)
        current = self._submission.question
        transition = self._machine.apply(result.event, result.question)

        if result.event == SessionEvent.REJOIN_ACTIVE and result.question is not None:
            same_question = current is not None and current.question_id == result.question.question_id
            if same_question and self._submission.status != SubmissionStatus.IDLE:
                # already answered (or answering) this one; keep its status
                self._timer.disarm()
            elif same_question and not result.question.revealed:
                self._timer.arm(result.question.deadline_ms)
            else:
                self._enter_question(result.question)
        elif transition.current == SessionPhase.ENDED:
            if transition.changed:
                self._finish()
        else:
            self._timer.disarm()
        self._sync_integrity()

    def _enter_question(self, active: ActiveQuestion) -> None:
        self._submission.arm(active)
        self._draft_answer = ""
        self._draft_language = None
        self._hint_used = False
        if active.revealed:
            self._timer.disarm()
        else:
            self._timer.arm(active.deadline_ms)
        logger.info(
            "question in play",
            question_id=active.question_id,
            question_type=active.question.question_type,
            remaining=self._timer.remaining_seconds,
        )

    def _finish(self) -> None:
        self._stop_local_work()
        self._submission.abandon()
        self._finished.set()
        self._notifications.info("Game over")
        self._spawn(self._load_analytics())

    def _stop_local_work(self) -> None:
        self._timer.disarm()
        self._integrity.stop()
        self._cancel_rejoin()

    def _sync_integrity(self) -> None:
        if self.phase == SessionPhase.ACTIVE:
            self._integrity.start()
        else:
            self._integrity.stop()

    def _can_auto_submit(self) -> bool:
        return self.phase == SessionPhase.ACTIVE and self._submission.status == SubmissionStatus.IDLE

    def _time_taken(self) -> int:
        active = self._machine.question
        if active is None:
            return 0
        return max(0, active.question.time_limit - self._timer.remaining_seconds)

    async def _on_timer_expired(self) -> None:
        # runs off the timer task so pause or disarm cannot cancel the request
        self._spawn(self._auto_submit())

    async def _auto_submit(self) -> None:
        if not self._can_auto_submit():
            return
        try:
            outcome = await self._submission.submit(
                self._draft_answer,
                is_auto=True,
                language=self._draft_language,
                hint_used=self._hint_used,
                time_taken=self._time_taken(),
            )
        except CredentialRejectedError:
            await self._handle_credential_rejected()
            return
        except AnswerRejectedError as e:
            logger.warning("auto-submitted answer rejected", error=str(e))
            return
        except ArenaError as e:
            logger.warning("auto-submit failed", error=str(e))
            self._notifications.error("Answer could not be delivered")
            return
        self._after_submission(outcome)

    def _after_submission(self, outcome: SubmissionOutcome) -> None:
        verdict = self._submission.verdict
        if outcome in (SubmissionOutcome.ACCEPTED, SubmissionOutcome.EXPIRED) and verdict is not None:
            if verdict.synthetic:
                self._notifications.warning(verdict.message)
            elif verdict.is_correct:
                self._notifications.success(verdict.message or "Correct answer!")
            else:
                self._notifications.info(verdict.message or "Answer submitted")
        elif outcome == SubmissionOutcome.RETRY_QUEUED:
            self._notifications.warning("Answer not delivered - it will be resent when the connection returns")
        elif outcome == SubmissionOutcome.FAILED:
            self._notifications.error("Answer could not be delivered")

    async def _handle_credential_rejected(self) -> None:
        logger.warning("session credential rejected")
        self._store.purge()
        self._api.session_token = None
        self._stop_local_work()
        self._notifications.error("Your session has expired - please join the game again")
        self._finished.set()
        self._spawn(self._connection.disconnect())

    async def _load_analytics(self) -> None:
        try:
            await self.fetch_analytics()
        except ArenaError as e:
            logger.warning("could not load analytics", error=str(e))

    def _report_integrity(self, event: IntegrityEvent) -> None:
        if self._connection.connected and not self._pending_reports:
            self._spawn(self._send_report(event))
        else:
            self._pending_reports.append(event)

    async def _send_report(self, event: IntegrityEvent) -> bool:
        try:
            await self._connection.emit(ClientEvent.CHEAT_DETECTED, CheatDetectedMessage.from_event(event).to_payload())
        except TransientNetworkError:
            self._pending_reports.append(event)
            return False
        except ReconnectFailedError:
            logger.warning("integrity report dropped; connection is gone", kind=event.kind)
            return False
        return True

    async def _flush_reports(self) -> None:
        pending, self._pending_reports = self._pending_reports, []
        for index, event in enumerate(pending):
            if not await self._send_report(event):
                self._pending_reports.extend(pending[index + 1 :])
                return
        if pending:
            logger.info("flushed buffered integrity reports", count=len(pending))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
