"""Join a game and print the participant id and session token.

Usage: python bin/join-game.py <game_code> <name>

Nothing is stored; use `python -m arena join` to keep the session for play.
"""

import asyncio
import sys
from pathlib import Path

# Add client to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "client"))

from arena.api.client import ParticipantApiClient
from arena.config.settings import ArenaClientSettings
from arena.logic.exceptions import ArenaError


async def main() -> None:
    if len(sys.argv) != 3:
        print(f"Usage: {sys.argv[0]} <game_code> <name>")
        sys.exit(1)

    game_code, name = sys.argv[1], sys.argv[2]
    settings = ArenaClientSettings()

    async with ParticipantApiClient(settings.api_base_url, timeout_seconds=settings.request_timeout_seconds) as api:
        try:
            response = await api.join(game_code, name)
        except ArenaError as e:
            print(f"Error: {e}")
            sys.exit(1)

    participant = response.participant
    print(f"Joined {response.game_code}: {participant.display_name} (id: {participant.id})")
    print(f"Session token: {response.session_token}")
    print("Keep this token private - it identifies you in the game.")


if __name__ == "__main__":
    asyncio.run(main())
