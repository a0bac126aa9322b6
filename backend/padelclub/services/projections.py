"""Read-side views: pairs and matches with their linked records inlined.

Everything here works on already-loaded records and never writes. Links that
point at missing rows come back as ``None``.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..fields import MATCHES, PAIRS, SET_SCORES
from ..models import Match, Pair, Player, SetScore
from ..store import RecordStore
from .players import load_players_by_id

DEFAULT_MATCH_LIMIT = 200


def serialize(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def expand_pair(
    pair: Optional[Pair], players_by_id: Mapping[str, Player]
) -> Optional[Dict[str, Any]]:
    if pair is None:
        return None
    player1 = players_by_id.get(pair.player1) if pair.player1 else None
    player2 = players_by_id.get(pair.player2) if pair.player2 else None
    return {
        **serialize(pair),
        "player1Obj": serialize(player1) if player1 else None,
        "player2Obj": serialize(player2) if player2 else None,
    }


def opponent_pair_id(match: Match, pairs_by_id: Mapping[str, Pair]) -> Optional[str]:
    """Return the pair that did not report ``match``.

    The reporter's pair is stored as ``pair1``; if the reporter turns out to
    belong to ``pair2`` instead, the roles swap.
    """

    pair2 = pairs_by_id.get(match.pair2) if match.pair2 else None
    if match.initiated_by and pair2 and match.initiated_by in pair2.member_ids:
        return match.pair1
    return match.pair2


def unique(ids: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in ids:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def expand_match(
    match: Match,
    pairs_by_id: Mapping[str, Pair],
    players_by_id: Mapping[str, Player],
    set_scores: Iterable[SetScore],
) -> Dict[str, Any]:
    pair1 = pairs_by_id.get(match.pair1) if match.pair1 else None
    pair2 = pairs_by_id.get(match.pair2) if match.pair2 else None
    opponent = opponent_pair_id(match, pairs_by_id)
    opponent_pair = pairs_by_id.get(opponent) if opponent else None

    own_sets = sorted(
        (s for s in set_scores if s.match == match.id), key=lambda s: s.set_no
    )
    return {
        **serialize(match),
        "confirmedBy": unique(match.confirmed_by),
        "pair1Obj": expand_pair(pair1, players_by_id),
        "pair2Obj": expand_pair(pair2, players_by_id),
        "setScores": [serialize(s) for s in own_sets],
        "opponentPlayerIds": opponent_pair.member_ids if opponent_pair else [],
    }


async def load_pairs_by_id(store: RecordStore) -> Dict[str, Pair]:
    return {r.id: Pair.from_record(r) for r in await store.list(PAIRS)}


async def list_pairs(store: RecordStore) -> List[Dict[str, Any]]:
    """All pairs, highest rating first, with both players inlined."""

    players_by_id = await load_players_by_id(store)
    records = await store.list(PAIRS, sort=[("rating", "desc")])
    return [expand_pair(Pair.from_record(r), players_by_id) for r in records]


async def list_matches(
    store: RecordStore, limit: int = DEFAULT_MATCH_LIMIT
) -> List[Dict[str, Any]]:
    """Most recent matches first, fully expanded."""

    records = await store.list(MATCHES, sort=[("date", "desc")], max_records=limit)
    set_scores = [SetScore.from_record(r) for r in await store.list(SET_SCORES)]
    players_by_id = await load_players_by_id(store)
    pairs_by_id = await load_pairs_by_id(store)
    return [
        expand_match(Match.from_record(r), pairs_by_id, players_by_id, set_scores)
        for r in records
    ]
