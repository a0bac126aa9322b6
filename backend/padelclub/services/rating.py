from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

K_FACTOR = 32.0


def round_rating(value: float) -> int:
    """Round halves up (1000.5 -> 1001, -16.5 -> -16)."""

    return math.floor(value + 0.5)


def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that side A beats side B under the logistic Elo curve."""

    return 1 / (1 + 10 ** ((rating_b - rating_a) / 400))


def elo_delta(rating_a: float, rating_b: float, score_a: float, k: float = K_FACTOR) -> float:
    """Return the rating change for side A.

    ``score_a`` is ``1`` for a win and ``0`` for a loss. Side B changes by the
    negated amount.
    """

    return k * (score_a - expected_score(rating_a, rating_b))


def apply_delta(rating_a: float, rating_b: float, delta: float) -> tuple[int, int]:
    """Apply ``+delta`` to A and ``-delta`` to B, rounding each side on its own.

    Independent rounding means the two changes can differ by one point.
    """

    return round_rating(rating_a + delta), round_rating(rating_b - delta)


def average_rating(ratings: Sequence[float]) -> int:
    return round_rating(sum(ratings) / len(ratings))


@dataclass(frozen=True)
class SideRatings:
    pair: int
    players: tuple[int, int]


@dataclass(frozen=True)
class RatingOutcome:
    """New ratings for both sides of a confirmed match."""

    side_a: SideRatings
    side_b: SideRatings
    pair_delta: float
    player_delta: float


def compute_match_ratings(
    side_a: SideRatings,
    side_b: SideRatings,
    a_won: bool,
    *,
    k_pair: float = K_FACTOR,
    k_player: float = K_FACTOR,
) -> RatingOutcome:
    """Rate a doubles match at pair level and at player level.

    The player-level change is computed once from each side's average player
    rating and applied to both teammates alike.
    """

    score_a = 1 if a_won else 0

    pair_delta = elo_delta(side_a.pair, side_b.pair, score_a, k_pair)
    new_pair_a, new_pair_b = apply_delta(side_a.pair, side_b.pair, pair_delta)

    avg_a = average_rating(side_a.players)
    avg_b = average_rating(side_b.players)
    player_delta = elo_delta(avg_a, avg_b, score_a, k_player)

    players_a = tuple(round_rating(r + player_delta) for r in side_a.players)
    players_b = tuple(round_rating(r - player_delta) for r in side_b.players)

    return RatingOutcome(
        side_a=SideRatings(pair=new_pair_a, players=players_a),
        side_b=SideRatings(pair=new_pair_b, players=players_b),
        pair_delta=pair_delta,
        player_delta=player_delta,
    )
