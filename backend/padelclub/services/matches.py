"""Match lifecycle: report, confirm, reject, dispute.

A reported match waits in ``PENDING_CONFIRMATION`` until the opponent pair
answers. Confirming is the only path to ``CONFIRMED`` and the only place
ratings change; ``REJECTED`` and ``DISPUTED`` close the match without touching
ratings. None of the closed states can be left again.

The store has no transactions. Each operation is a short sequence of writes
and a failure part-way leaves the earlier writes in place; nothing here rolls
back or retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import Settings
from ..exceptions import (
    ConflictError,
    DataIntegrityError,
    MatchNotFound,
    NotAnOpponent,
    PlayerNotFound,
    ValidationError,
)
from ..fields import MATCHES, PAIRS, PLAYERS, SET_SCORES
from ..models import Match, MatchStatus, Pair, Player, SetScore
from ..scoring import padel
from ..store import Record, RecordStore
from ..time_utils import normalize_match_date, normalize_match_time
from .identity import TelegramIdentity
from .locks import KeyedLocks
from .pairs import resolve_pair
from .players import load_players_by_id, require_player
from .projections import opponent_pair_id, unique
from .rating import RatingOutcome, SideRatings, compute_match_ratings, round_rating
from .validation import validate_match_sets, validate_sides

logger = logging.getLogger(__name__)

# Confirm, reject and dispute for one match run one at a time in this process.
match_locks = KeyedLocks()


@dataclass
class ReportResult:
    match_id: str
    status: MatchStatus
    score: str
    winner: str
    pair1_id: str
    pair2_id: str
    pairs_created: List[str] = field(default_factory=list)


@dataclass
class ConfirmResult:
    status: MatchStatus
    confirmed_by: List[str]
    message: str
    rating_delta_pair: Optional[int] = None
    rating_delta_player: Optional[int] = None


@dataclass
class CloseResult:
    status: MatchStatus
    message: str


# -----------------------------------------------------------------------------
# Report
# -----------------------------------------------------------------------------


async def report_match(
    store: RecordStore,
    identity: TelegramIdentity,
    partner_id: Optional[str],
    opp1_id: Optional[str],
    opp2_id: Optional[str],
    sets: Sequence[Dict[str, Any]],
    *,
    settings: Settings,
    date: Optional[str] = None,
    time: Optional[str] = None,
) -> ReportResult:
    """Record a match reported by the caller and leave it awaiting confirmation.

    The caller and ``partner_id`` form pair 1, the two opponents pair 2. Set
    scores are given from pair 1's point of view. Pairs are created on first
    use. Ratings are not touched until an opponent confirms.
    """

    reporter = await require_player(store, identity)
    validate_sides(reporter.id, partner_id, opp1_id, opp2_id)
    result = validate_match_sets(sets)
    match_date = normalize_match_date(date)
    match_time = normalize_match_time(time)

    players_by_id = await load_players_by_id(store)
    for player_id in (partner_id, opp1_id, opp2_id):
        if player_id not in players_by_id:
            raise PlayerNotFound(player_id)

    mine = await resolve_pair(
        store,
        reporter.id,
        partner_id,
        default_rating=settings.default_rating,
        players_by_id=players_by_id,
    )
    theirs = await resolve_pair(
        store,
        opp1_id,
        opp2_id,
        default_rating=settings.default_rating,
        players_by_id=players_by_id,
    )
    my_pair_id, opp_pair_id = mine.pair.id, theirs.pair.id

    score_text = padel.format_score(result.sets)
    created = await store.create(
        MATCHES,
        [
            {
                "date": match_date,
                "time": match_time,
                "status": MatchStatus.PENDING_CONFIRMATION.value,
                "pair1": [my_pair_id],
                "pair2": [opp_pair_id],
                "initiatedBy": [reporter.id],
                "score": score_text,
            }
        ],
    )
    if not created:
        raise DataIntegrityError("match_not_created", "Failed to create match")
    match_id = created[0].id

    await store.create(
        SET_SCORES,
        [
            {
                "match": [match_id],
                "setNo": set_no,
                "p1": p1,
                "p2": p2,
                "winnerPair": [my_pair_id if p1 > p2 else opp_pair_id],
            }
            for set_no, (p1, p2) in enumerate(result.sets, start=1)
        ],
    )

    logger.info(
        "Match %s reported by %s: %s (pair %s vs %s)",
        match_id,
        reporter.id,
        score_text,
        my_pair_id,
        opp_pair_id,
    )
    return ReportResult(
        match_id=match_id,
        status=MatchStatus.PENDING_CONFIRMATION,
        score=score_text,
        winner="pair1" if result.pair1_won else "pair2",
        pair1_id=my_pair_id,
        pair2_id=opp_pair_id,
        pairs_created=[r.pair.id for r in (mine, theirs) if r.created],
    )


# -----------------------------------------------------------------------------
# Shared lookups
# -----------------------------------------------------------------------------


async def _load_match(store: RecordStore, match_id: Optional[str]) -> Match:
    if not match_id:
        raise ValidationError("missing_match_id", "matchId is required")
    record = await store.get(MATCHES, match_id)
    if record is None:
        raise MatchNotFound(match_id)
    match = Match.from_record(record)
    if match.status is None:
        raise ConflictError(
            "unknown_match_status",
            f"match '{match_id}' has a status this server does not recognise",
        )
    return match


async def _load_pair(store: RecordStore, pair_id: Optional[str]) -> Optional[Pair]:
    if not pair_id:
        return None
    record = await store.get(PAIRS, pair_id)
    return Pair.from_record(record) if record else None


async def _opponent_members(store: RecordStore, match: Match) -> List[str]:
    pair1 = await _load_pair(store, match.pair1)
    pair2 = await _load_pair(store, match.pair2)
    pairs_by_id = {p.id: p for p in (pair1, pair2) if p}
    opponent_id = opponent_pair_id(match, pairs_by_id)
    opponent = pairs_by_id.get(opponent_id) if opponent_id else None
    if opponent is None or len(opponent.member_ids) != 2:
        raise DataIntegrityError(
            "incomplete_match_data",
            f"match '{match.id}' has no resolvable opponent pair",
        )
    return opponent.member_ids


# -----------------------------------------------------------------------------
# Confirm
# -----------------------------------------------------------------------------


async def confirm_match(
    store: RecordStore,
    identity: TelegramIdentity,
    match_id: Optional[str],
    *,
    settings: Settings,
) -> ConfirmResult:
    """Confirm a pending match as a member of the opponent pair.

    With the ``any`` policy the first opponent to confirm closes the match.
    With ``both`` each opponent's confirmation is recorded and the match closes
    once both have confirmed. Confirming an already confirmed match changes
    nothing.
    """

    player = await require_player(store, identity)

    async with match_locks.hold(match_id):
        match = await _load_match(store, match_id)

        if match.status in (MatchStatus.REJECTED, MatchStatus.DISPUTED):
            raise ConflictError(
                "match_already_terminal_opposite_outcome",
                f"Match is already {match.status.value}",
            )
        if match.status is MatchStatus.CONFIRMED:
            return ConfirmResult(
                status=MatchStatus.CONFIRMED,
                confirmed_by=unique(match.confirmed_by),
                message="Match already confirmed",
            )

        opponents = await _opponent_members(store, match)
        if player.id not in opponents:
            logger.warning(
                "Player %s tried to confirm match %s without being an opponent",
                player.id,
                match.id,
            )
            raise NotAnOpponent()

        confirmed_by = unique([*match.confirmed_by, player.id])
        if settings.confirmation_policy == "both" and not set(opponents) <= set(confirmed_by):
            await store.update(
                MATCHES, [Record(id=match.id, fields={"confirmedBy": confirmed_by})]
            )
            logger.info("Match %s confirmed by %s; waiting for partner", match.id, player.id)
            return ConfirmResult(
                status=MatchStatus.PENDING_CONFIRMATION,
                confirmed_by=confirmed_by,
                message="Confirmation saved. Waiting for your partner to confirm.",
            )

        await store.update(
            MATCHES,
            [
                Record(
                    id=match.id,
                    fields={
                        "status": MatchStatus.CONFIRMED.value,
                        "confirmedBy": confirmed_by,
                    },
                )
            ],
        )
        logger.info("Match %s confirmed by %s", match.id, player.id)

        outcome = await apply_match_ratings(store, match, settings=settings)
        return ConfirmResult(
            status=MatchStatus.CONFIRMED,
            confirmed_by=confirmed_by,
            message="Match confirmed. Ratings updated.",
            rating_delta_pair=round_rating(outcome.pair_delta),
            rating_delta_player=round_rating(outcome.player_delta),
        )


def _tally_set_scores(
    set_scores: Sequence[SetScore], pair1: Pair, pair2: Pair
) -> Dict[str, int]:
    """Count set wins for pair 1 ("A") and pair 2 ("B").

    The stored ``winnerPair`` decides a set; games only count when it is blank.
    """

    wins = {"A": 0, "B": 0}
    for s in set_scores:
        if s.winner_pair in (pair1.id, pair2.id):
            wins["A" if s.winner_pair == pair1.id else "B"] += 1
        elif s.p1 != s.p2:
            wins["A" if s.p1 > s.p2 else "B"] += 1
    return wins


async def apply_match_ratings(
    store: RecordStore, match: Match, *, settings: Settings
) -> RatingOutcome:
    """Apply one confirmed match to the pair and player ratings and counters.

    Everything is loaded and checked before the first write, so incomplete
    data leaves every rating as it was.
    """

    set_scores = sorted(
        (
            s
            for s in (SetScore.from_record(r) for r in await store.list(SET_SCORES))
            if s.match == match.id
        ),
        key=lambda s: s.set_no,
    )
    if len(set_scores) < padel.MIN_SETS:
        raise DataIntegrityError(
            "incomplete_match_data",
            f"match '{match.id}' has {len(set_scores)} set score(s); at least 2 are required",
        )

    pair1 = await _load_pair(store, match.pair1)
    pair2 = await _load_pair(store, match.pair2)
    if pair1 is None or pair2 is None:
        raise DataIntegrityError(
            "incomplete_match_data", f"match '{match.id}' references a missing pair"
        )

    winner = padel.winning_side(_tally_set_scores(set_scores, pair1, pair2))
    if winner is None:
        raise DataIntegrityError(
            "incomplete_match_data", f"match '{match.id}' has no set winner"
        )

    players: Dict[str, Player] = {}
    for pair in (pair1, pair2):
        if len(pair.member_ids) != 2:
            raise DataIntegrityError(
                "incomplete_match_data", f"pair '{pair.id}' does not have two players"
            )
        for player_id in pair.member_ids:
            record = await store.get(PLAYERS, player_id)
            if record is None:
                raise DataIntegrityError(
                    "incomplete_match_data",
                    f"pair '{pair.id}' references missing player '{player_id}'",
                )
            players[player_id] = Player.from_record(record)

    default = settings.default_rating
    side_a = _side(pair1, players, default)
    side_b = _side(pair2, players, default)
    a_won = winner == "A"
    outcome = compute_match_ratings(
        side_a,
        side_b,
        a_won,
        k_pair=settings.elo_k_pair,
        k_player=settings.elo_k_player,
    )

    await store.update(
        PAIRS,
        [
            Record(id=pair1.id, fields=pair1.record_result(outcome.side_a.pair, a_won)),
            Record(id=pair2.id, fields=pair2.record_result(outcome.side_b.pair, not a_won)),
        ],
    )
    player_updates = []
    for pair, new_ratings, won in (
        (pair1, outcome.side_a.players, a_won),
        (pair2, outcome.side_b.players, not a_won),
    ):
        for player_id, rating in zip(pair.member_ids, new_ratings):
            player_updates.append(
                Record(id=player_id, fields=players[player_id].record_result(rating, won))
            )
    await store.update(PLAYERS, player_updates)

    logger.info(
        "Ratings applied for match %s: pair delta %.2f, player delta %.2f",
        match.id,
        outcome.pair_delta,
        outcome.player_delta,
    )
    return outcome


def _side(pair: Pair, players: Mapping[str, Player], default: int) -> SideRatings:
    first, second = (players[pid] for pid in pair.member_ids)
    return SideRatings(
        pair=pair.rating_or(default),
        players=(first.rating_or(default), second.rating_or(default)),
    )


# -----------------------------------------------------------------------------
# Reject / dispute
# -----------------------------------------------------------------------------


async def _close_match(
    store: RecordStore,
    identity: TelegramIdentity,
    match_id: Optional[str],
    reason: Optional[str],
    target: MatchStatus,
) -> CloseResult:
    player = await require_player(store, identity)

    async with match_locks.hold(match_id):
        match = await _load_match(store, match_id)

        if player.id not in await _opponent_members(store, match):
            raise NotAnOpponent()

        if match.status is MatchStatus.CONFIRMED:
            raise ConflictError("match_already_confirmed", "Match is already CONFIRMED")
        if match.status is target:
            return CloseResult(status=target, message=f"Match already {target.value}")
        if match.status.is_terminal:
            raise ConflictError(
                "match_already_closed", f"Match is already {match.status.value}"
            )

        await store.update(
            MATCHES,
            [
                Record(
                    id=match.id,
                    fields={"status": target.value, "disputeReason": (reason or "").strip()},
                )
            ],
        )
        logger.info("Match %s marked %s by %s", match.id, target.value, player.id)
        return CloseResult(status=target, message=f"Match {target.value.lower()}")


async def reject_match(
    store: RecordStore,
    identity: TelegramIdentity,
    match_id: Optional[str],
    reason: Optional[str] = None,
) -> CloseResult:
    return await _close_match(store, identity, match_id, reason, MatchStatus.REJECTED)


async def dispute_match(
    store: RecordStore,
    identity: TelegramIdentity,
    match_id: Optional[str],
    reason: Optional[str] = None,
) -> CloseResult:
    return await _close_match(store, identity, match_id, reason, MatchStatus.DISPUTED)
