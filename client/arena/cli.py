"""Command-line entry point: join a game, play the stored session headlessly, or leave."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

import structlog

from arena.api.client import ParticipantApiClient
from arena.config.settings import ArenaClientSettings
from arena.connection.manager import ConnectionManager
from arena.connection.socketio_transport import socketio_transport_factory
from arena.logic.enums import SessionPhase
from arena.logic.exceptions import ArenaError, NoSessionError
from arena.session.engine import ParticipantSession
from arena.session.store import SessionStore
from shared.logging import setup_logging
from shared.storage import LocalStateStorage

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger()


def build_session(settings: ArenaClientSettings, api: ParticipantApiClient) -> ParticipantSession:
    """Wire a session from settings with the Socket.IO transport and on-disk state."""
    connection = ConnectionManager(
        socketio_transport_factory(
            settings.server_url,
            transports=settings.socketio_transports,
            wait_timeout=settings.request_timeout_seconds,
        ),
        base_delay_seconds=settings.reconnect_base_delay_seconds,
        max_delay_seconds=settings.reconnect_max_delay_seconds,
        max_attempts=settings.max_reconnect_attempts,
    )
    return ParticipantSession(
        api=api,
        store=SessionStore(LocalStateStorage(settings.state_dir)),
        connection=connection,
        settings=settings,
    )


async def _join(settings: ArenaClientSettings, game_code: str, name: str) -> int:
    async with ParticipantApiClient(settings.api_base_url, timeout_seconds=settings.request_timeout_seconds) as api:
        session = build_session(settings, api)
        try:
            identity = await session.join(game_code, name)
        finally:
            await session.close()
    print(f"Joined {session.game_code} as {identity.display_name} {identity.avatar_glyph} (id: {identity.id})")
    print("Run `python -m arena play` to take part.")
    return 0


async def _play(settings: ArenaClientSettings) -> int:
    async with ParticipantApiClient(settings.api_base_url, timeout_seconds=settings.request_timeout_seconds) as api:
        session = build_session(settings, api)
        try:
            result = await session.resume()
            logger.info("session resumed", outcome=result.event, phase=session.phase)
            await session.wait_until_ended()
            if session.phase == SessionPhase.ENDED and session.analytics is None:
                await session.fetch_analytics()
        finally:
            await session.close()

    analytics = session.analytics
    if analytics is not None:
        stats = analytics.stats
        print(
            f"Final rank: {analytics.participant.final_rank}  score: {stats.total_score}  "
            f"correct: {stats.correct_answers}/{stats.total_questions} ({stats.accuracy:.0f}%)",
        )
    return 0


def _leave(settings: ArenaClientSettings) -> int:
    SessionStore(LocalStateStorage(settings.state_dir)).purge()
    print("Stored session removed.")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="arena", description="Live quiz participant client")
    sub = parser.add_subparsers(dest="command", required=True)

    join = sub.add_parser("join", help="join a game and store the session")
    join.add_argument("game_code", help="game code shown by the organiser")
    join.add_argument("name", help="display name")

    sub.add_parser("play", help="resume the stored session until the game ends")
    sub.add_parser("leave", help="forget the stored session")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = ArenaClientSettings()
    setup_logging(settings.log_dir, level=settings.log_level, json_output=settings.log_format == "json")

    try:
        if args.command == "join":
            return asyncio.run(_join(settings, args.game_code, args.name))
        if args.command == "play":
            return asyncio.run(_play(settings))
        return _leave(settings)
    except NoSessionError:
        print("No stored session. Run `python -m arena join CODE NAME` first.", file=sys.stderr)
        return 1
    except ArenaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
