"""
Participant game state machine.

Transitions are driven only by inbound stream events and rejoin results, and
are looked up in an explicit table covering every (phase, event) pair. The
machine also owns the single active question: it is replaced when a question
arrives and cleared when the game ends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from arena.logic.enums import SessionEvent, SessionPhase

if TYPE_CHECKING:
    from arena.logic.types import ActiveQuestion

logger = structlog.get_logger()

_P = SessionPhase
_E = SessionEvent

# Events that carry a new question when they land in the active phase.
QUESTION_EVENTS = frozenset({_E.GAME_STARTED, _E.NEXT_QUESTION, _E.REJOIN_ACTIVE})

_REJOIN_TARGETS: dict[SessionEvent, SessionPhase] = {
    _E.REJOIN_ACTIVE: _P.ACTIVE,
    _E.REJOIN_COMPLETED: _P.ENDED,
    _E.REJOIN_WAITING: _P.WAITING,
}


def _build_table() -> dict[tuple[SessionPhase, SessionEvent], SessionPhase]:
    table: dict[tuple[SessionPhase, SessionEvent], SessionPhase] = {}

    table.update(
        {
            (_P.WAITING, _E.GAME_STARTED): _P.ACTIVE,
            (_P.WAITING, _E.NEXT_QUESTION): _P.ACTIVE,
            (_P.WAITING, _E.GAME_PAUSED): _P.WAITING,
            (_P.WAITING, _E.GAME_RESUMED): _P.WAITING,
            (_P.WAITING, _E.GAME_ENDED): _P.ENDED,
            (_P.WAITING, _E.ELIMINATED): _P.ELIMINATED,
            (_P.WAITING, _E.RE_ADMITTED): _P.WAITING,
        },
    )
    table.update(
        {
            (_P.ACTIVE, _E.GAME_STARTED): _P.ACTIVE,
            (_P.ACTIVE, _E.NEXT_QUESTION): _P.ACTIVE,
            (_P.ACTIVE, _E.GAME_PAUSED): _P.PAUSED,
            (_P.ACTIVE, _E.GAME_RESUMED): _P.ACTIVE,
            (_P.ACTIVE, _E.GAME_ENDED): _P.ENDED,
            (_P.ACTIVE, _E.ELIMINATED): _P.ELIMINATED,
            (_P.ACTIVE, _E.RE_ADMITTED): _P.ACTIVE,
        },
    )
    table.update(
        {
            (_P.PAUSED, _E.GAME_STARTED): _P.ACTIVE,
            (_P.PAUSED, _E.NEXT_QUESTION): _P.ACTIVE,
            (_P.PAUSED, _E.GAME_PAUSED): _P.PAUSED,
            (_P.PAUSED, _E.GAME_RESUMED): _P.ACTIVE,
            (_P.PAUSED, _E.GAME_ENDED): _P.ENDED,
            (_P.PAUSED, _E.ELIMINATED): _P.ELIMINATED,
            (_P.PAUSED, _E.RE_ADMITTED): _P.PAUSED,
        },
    )
    # eliminated: spectating until re-admitted or the game ends
    for event in SessionEvent:
        table[(_P.ELIMINATED, event)] = _P.ELIMINATED
    table[(_P.ELIMINATED, _E.GAME_ENDED)] = _P.ENDED
    table[(_P.ELIMINATED, _E.RE_ADMITTED)] = _P.WAITING

    # rejoin results are authoritative from any non-terminal phase
    for phase in (_P.WAITING, _P.ACTIVE, _P.PAUSED, _P.ELIMINATED):
        for event, target in _REJOIN_TARGETS.items():
            table[(phase, event)] = target

    # ended is terminal
    for event in SessionEvent:
        table[(_P.ENDED, event)] = _P.ENDED

    return table


TRANSITIONS: dict[tuple[SessionPhase, SessionEvent], SessionPhase] = _build_table()


@dataclass(frozen=True)
class Transition:
    """Result of feeding one event into the machine."""

    previous: SessionPhase
    current: SessionPhase
    event: SessionEvent
    question_replaced: bool = False

    @property
    def changed(self) -> bool:
        return self.previous != self.current


class GameStateMachine:
    """Track the participant's phase and the active question."""

    def __init__(self, initial: SessionPhase = SessionPhase.WAITING) -> None:
        self._phase = initial
        self._question: ActiveQuestion | None = None

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def question(self) -> ActiveQuestion | None:
        return self._question

    @property
    def is_terminal(self) -> bool:
        return self._phase == SessionPhase.ENDED

    def apply(self, event: SessionEvent, question: ActiveQuestion | None = None) -> Transition:
        """Apply an event, replacing the active question when it carries one."""
        previous = self._phase
        current = TRANSITIONS[(previous, event)]
        self._phase = current

        replaced = False
        if current == SessionPhase.ENDED:
            self._question = None
        elif current == SessionPhase.ACTIVE and event in QUESTION_EVENTS and question is not None:
            self._question = question
            replaced = True
        elif event in (_E.REJOIN_WAITING, _E.RE_ADMITTED) and current == SessionPhase.WAITING:
            self._question = None

        if previous != current or replaced:
            logger.debug(
                "phase transition",
                trigger=event,
                previous=previous,
                phase=current,
                question_id=self._question.question_id if self._question else None,
            )
        return Transition(previous=previous, current=current, event=event, question_replaced=replaced)

    def reveal_current(self, question: ActiveQuestion) -> None:
        """Mark the active question revealed; answering is closed for it."""
        if self._question is not None and self._question.question_id == question.question_id:
            self._question = question
