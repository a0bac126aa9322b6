from __future__ import annotations

import logging
from typing import Mapping, NamedTuple, Optional

from ..exceptions import PlayerNotFound, ValidationError
from ..fields import PAIRS, PLAYERS
from ..models import Pair, Player
from ..store import RecordStore
from .locks import KeyedLocks
from .rating import average_rating

logger = logging.getLogger(__name__)

_pair_locks = KeyedLocks()


class PairResolution(NamedTuple):
    pair: Pair
    created: bool


async def find_pair(store: RecordStore, player_a: str, player_b: str) -> Optional[Pair]:
    for record in await store.list(PAIRS):
        pair = Pair.from_record(record)
        if pair.has_members(player_a, player_b):
            return pair
    return None


async def _player_rating(
    store: RecordStore,
    player_id: str,
    players_by_id: Optional[Mapping[str, Player]],
    default_rating: int,
) -> int:
    if players_by_id is not None:
        player = players_by_id.get(player_id)
    else:
        record = await store.get(PLAYERS, player_id)
        player = Player.from_record(record) if record else None
    return player.rating_or(default_rating) if player else default_rating


async def resolve_pair(
    store: RecordStore,
    player_a: Optional[str],
    player_b: Optional[str],
    *,
    default_rating: int,
    players_by_id: Optional[Mapping[str, Player]] = None,
) -> PairResolution:
    """Find the pair made of ``player_a`` and ``player_b`` in any order, or create it.

    A new pair starts at the rounded mean of its members' ratings; members
    without a rating count as ``default_rating``.

    Lookups for the same two players are serialized within this process so two
    reports arriving together do not both create the pair. Another process can
    still race this one since the store has no unique constraint.
    """

    if not player_a or not player_b:
        raise ValidationError("missing_player", "Both players are required for a pair")
    if player_a == player_b:
        raise ValidationError(
            "same_player_twice", "Pair cannot have the same player twice"
        )

    async with _pair_locks.hold(frozenset((player_a, player_b))):
        existing = await find_pair(store, player_a, player_b)
        if existing is not None:
            return PairResolution(existing, False)

        rating_a = await _player_rating(store, player_a, players_by_id, default_rating)
        rating_b = await _player_rating(store, player_b, players_by_id, default_rating)
        created = await store.create(
            PAIRS,
            [
                {
                    "player1": [player_a],
                    "player2": [player_b],
                    "rating": average_rating([rating_a, rating_b]),
                    "gamesPlayed": 0,
                    "wins": 0,
                    "losses": 0,
                }
            ],
        )
        pair = Pair.from_record(created[0])
        logger.info("Created pair %s for players %s and %s", pair.id, player_a, player_b)
        return PairResolution(pair, True)


async def resolve_or_create_pair(
    store: RecordStore,
    player1_id: Optional[str],
    player2_id: Optional[str],
    *,
    default_rating: int,
) -> PairResolution:
    """Resolve a pair for two existing players, creating it when needed."""

    if not player1_id or not player2_id:
        raise ValidationError("missing_player", "player1Id and player2Id are required")
    for player_id in (player1_id, player2_id):
        if await store.get(PLAYERS, player_id) is None:
            raise PlayerNotFound(player_id)
    return await resolve_pair(
        store, player1_id, player2_id, default_rating=default_rating
    )
