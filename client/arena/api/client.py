"""
HTTP client for the participant REST API.

This is the only place that turns HTTP statuses and structured error codes
into exceptions from arena.logic.exceptions.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Self

import httpx
import structlog
from pydantic import ValidationError

from arena.api.types import ErrorBody, JoinRequest, JoinResponse, ParticipantAnalytics, RejoinResponse
from arena.logic.exceptions import (
    AlreadyAnsweredError,
    AnswerRejectedError,
    ApiRequestError,
    ArenaError,
    CredentialRejectedError,
    DeadlinePassedError,
    GameClosedError,
    GameNotFoundError,
    NameTakenError,
    NoSessionError,
    TransientNetworkError,
)
from arena.logic.types import Verdict

if TYPE_CHECKING:
    from types import TracebackType

    from arena.logic.types import AnswerAttempt

logger = structlog.get_logger()

SESSION_TOKEN_HEADER = "x-session-token"

_JOIN_ERRORS: dict[int, type[ArenaError]] = {
    HTTPStatus.NOT_FOUND: GameNotFoundError,
    HTTPStatus.CONFLICT: NameTakenError,
    HTTPStatus.FORBIDDEN: GameClosedError,
}
_REJOIN_ERRORS: dict[int, type[ArenaError]] = {
    HTTPStatus.NOT_FOUND: GameNotFoundError,
}
_ANSWER_ERROR_CODES: dict[str, type[ArenaError]] = {
    "deadline_passed": DeadlinePassedError,
    "already_answered": AlreadyAnsweredError,
    "validation": AnswerRejectedError,
}


class ParticipantApiClient:
    """Async client for /participants endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )
        self._session_token: str | None = None

    @property
    def session_token(self) -> str | None:
        return self._session_token

    @session_token.setter
    def session_token(self, value: str | None) -> None:
        self._session_token = value

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def join(self, game_code: str, name: str) -> JoinResponse:
        body = JoinRequest(game_code=game_code.strip().upper(), name=name.strip())
        data = await self._request(
            "POST",
            "/participants/join",
            json=body.model_dump(by_alias=True),
            status_errors=_JOIN_ERRORS,
        )
        try:
            return JoinResponse.model_validate(data)
        except ValidationError as e:
            raise _malformed(e) from e

    async def rejoin(self, session_token: str) -> RejoinResponse:
        data = await self._request(
            "POST",
            "/participants/rejoin",
            token=session_token,
            status_errors=_REJOIN_ERRORS,
        )
        try:
            return RejoinResponse.model_validate(data)
        except ValidationError as e:
            raise _malformed(e) from e

    async def submit_answer(self, attempt: AnswerAttempt) -> Verdict:
        data = await self._request(
            "POST",
            "/participants/answer",
            json=attempt.to_request(),
            token=self._require_token(),
            error_codes=_ANSWER_ERROR_CODES,
        )
        try:
            return Verdict.model_validate(data)
        except ValidationError as e:
            raise _malformed(e) from e

    async def fetch_analytics(self) -> ParticipantAnalytics:
        data = await self._request("GET", "/participants/analytics", token=self._require_token())
        try:
            return ParticipantAnalytics.model_validate(data)
        except ValidationError as e:
            raise _malformed(e) from e

    def _require_token(self) -> str:
        if not self._session_token:
            raise NoSessionError("no session token; join the game first")
        return self._session_token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        token: str | None = None,
        status_errors: dict[int, type[ArenaError]] | None = None,
        error_codes: dict[str, type[ArenaError]] | None = None,
    ) -> dict[str, Any]:
        headers = {SESSION_TOKEN_HEADER: token} if token else None
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        if response.is_success:
            try:
                payload = response.json()
            except ValueError as e:
                raise TransientNetworkError(f"{method} {path} returned invalid JSON") from e
            if not isinstance(payload, dict):
                raise ApiRequestError(response.status_code, "unexpected response body")
            return payload

        raise self._error_for(response, status_errors or {}, error_codes or {})

    def _error_for(
        self,
        response: httpx.Response,
        status_errors: dict[int, type[ArenaError]],
        error_codes: dict[str, type[ArenaError]],
    ) -> ArenaError:
        body = _read_error_body(response)
        status = response.status_code
        message = body.error or response.reason_phrase
        logger.warning(
            "api request failed",
            path=response.request.url.path,
            status=status,
            code=body.code,
        )

        if status >= HTTPStatus.INTERNAL_SERVER_ERROR:
            return TransientNetworkError(f"server error {status}: {message}")
        if status == HTTPStatus.UNAUTHORIZED:
            return CredentialRejectedError(message)
        if body.code is not None and body.code in error_codes:
            return error_codes[body.code](message)
        if status in status_errors:
            return status_errors[status](message)
        return ApiRequestError(status, message)


def _malformed(error: ValidationError) -> ApiRequestError:
    return ApiRequestError(HTTPStatus.OK, f"malformed {error.title} response: {error.error_count()} errors")


def _read_error_body(response: httpx.Response) -> ErrorBody:
    try:
        return ErrorBody.model_validate(response.json())
    except (ValueError, ValidationError):
        return ErrorBody(error=response.text[:200])
