"""Player records: lookup by Telegram identity, joining and listing."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from ..exceptions import MustJoinFirst
from ..fields import PLAYERS
from ..models import Player
from ..store import Record, RecordStore
from .identity import TelegramIdentity

logger = logging.getLogger(__name__)


async def find_player_by_telegram(store: RecordStore, telegram_id: int) -> Optional[Player]:
    found = await store.list(PLAYERS, filter={"telegramId": int(telegram_id)}, max_records=1)
    return Player.from_record(found[0]) if found else None


async def require_player(store: RecordStore, identity: TelegramIdentity) -> Player:
    """Return the caller's Player or fail with ``must_join_first``."""

    player = await find_player_by_telegram(store, identity.user_id)
    if player is None:
        raise MustJoinFirst()
    return player


async def join_player(
    store: RecordStore, identity: TelegramIdentity, *, default_rating: int
) -> Tuple[Player, str]:
    """Create the caller's Player, or refresh name/username if it exists.

    Returns the player and ``"created"`` or ``"updated"``. Rating and counters
    of an existing player are never touched here.
    """

    existing = await find_player_by_telegram(store, identity.user_id)
    if existing is not None:
        updated = await store.update(
            PLAYERS,
            [
                Record(
                    id=existing.id,
                    fields={
                        "name": identity.display_name,
                        "telegramUsername": identity.username,
                    },
                )
            ],
        )
        return Player.from_record(updated[0]), "updated"

    created = await store.create(
        PLAYERS,
        [
            {
                "name": identity.display_name,
                "telegramId": identity.user_id,
                "telegramUsername": identity.username,
                "rating": default_rating,
                "gamesPlayed": 0,
                "wins": 0,
                "losses": 0,
            }
        ],
    )
    player = Player.from_record(created[0])
    logger.info("Player %s joined (telegram id %s)", player.id, identity.user_id)
    return player, "created"


async def list_players(store: RecordStore) -> List[Player]:
    """All players, highest rating first."""

    records = await store.list(PLAYERS, sort=[("rating", "desc")])
    return [Player.from_record(r) for r in records]


async def load_players_by_id(store: RecordStore) -> Dict[str, Player]:
    records = await store.list(PLAYERS)
    return {r.id: Player.from_record(r) for r in records}
