from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from arena.logic.exceptions import NoSessionError
from arena.logic.types import ParticipantIdentity

if TYPE_CHECKING:
    from shared.storage import StateStorage

logger = structlog.get_logger()

SESSION_KEY = "hackarena_session"
PARTICIPANT_KEY = "hackarena_participant"


class SessionCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_token: str = Field(min_length=1)


class StoredParticipant(BaseModel):
    """Identity snapshot kept next to the credential so a reload can resume."""

    participant: ParticipantIdentity
    game_code: str
    game_title: str | None = None


class SessionStore:
    """Durable participant session.

    Survives process restarts. Mutated only by join, by a purge after the
    server rejects the credential, and by an explicit exit.
    """

    def __init__(self, storage: StateStorage) -> None:
        self._storage = storage

    def save(
        self,
        credential: SessionCredential,
        participant: ParticipantIdentity,
        game_code: str,
        game_title: str | None = None,
    ) -> None:
        snapshot = StoredParticipant(participant=participant, game_code=game_code, game_title=game_title)
        self._storage.save(SESSION_KEY, credential.model_dump())
        self._storage.save(PARTICIPANT_KEY, snapshot.model_dump(mode="json"))
        logger.info("session stored", game_code=game_code, participant_id=participant.id)

    def load_credential(self) -> SessionCredential | None:
        document = self._storage.load(SESSION_KEY)
        if document is None:
            return None
        try:
            return SessionCredential.model_validate(document)
        except ValidationError:
            logger.warning("stored session credential is invalid; ignoring it")
            return None

    def load_participant(self) -> StoredParticipant | None:
        document = self._storage.load(PARTICIPANT_KEY)
        if document is None:
            return None
        try:
            return StoredParticipant.model_validate(document)
        except ValidationError:
            logger.warning("stored participant snapshot is invalid; ignoring it")
            return None

    def require_credential(self) -> SessionCredential:
        credential = self.load_credential()
        if credential is None:
            raise NoSessionError("no stored session; join a game first")
        return credential

    @property
    def has_session(self) -> bool:
        return self.load_credential() is not None

    def purge(self) -> None:
        """Forget the credential and the identity snapshot."""
        self._storage.delete(SESSION_KEY)
        self._storage.delete(PARTICIPANT_KEY)
        logger.info("session purged")
