"""Padel set rules.
Checks reported set scores and works out who won the match."""

from typing import Dict, List, NamedTuple, Sequence, Tuple

from ..exceptions import ValidationError

SET_GAMES = 6
TIEBREAK_GAMES = 7
MIN_SETS = 2
MAX_SETS = 3

SetTuple = Tuple[int, int]


class MatchResult(NamedTuple):
    sets: List[SetTuple]
    wins: Dict[str, int]
    winner: str

    @property
    def pair1_won(self) -> bool:
        return self.winner == "A"


def _is_score(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_set(p1: int, p2: int) -> bool:
    """Validate one set and return ``True`` when pair 1 won it.

    A set is won 6-0 through 6-4, or 7-5, or 7-6 after a tiebreak.
    """

    if not _is_score(p1) or not _is_score(p2):
        raise ValidationError(
            "invalid_score", "Set scores must be non-negative integers."
        )
    if p1 == p2:
        raise ValidationError("draw_not_allowed", f"Set {p1}-{p2} cannot be a draw.")

    won, lost = max(p1, p2), min(p1, p2)
    if won == SET_GAMES and lost <= SET_GAMES - 2:
        return p1 > p2
    if won == TIEBREAK_GAMES and lost in (SET_GAMES - 1, SET_GAMES):
        return p1 > p2
    raise ValidationError(
        "invalid_set_score",
        f"{p1}-{p2} is not a valid set score (use 6-0..6-4, 7-5 or 7-6).",
    )


def set_winner(p1: int, p2: int) -> str:
    return "A" if validate_set(p1, p2) else "B"


def tally(sets: Sequence[SetTuple]) -> Dict[str, int]:
    wins = {"A": 0, "B": 0}
    for p1, p2 in sets:
        wins[set_winner(p1, p2)] += 1
    return wins


def requires_third_set(sets: Sequence[SetTuple]) -> bool:
    """Return ``True`` when the first two sets are split 1-1."""

    if len(sets) < MIN_SETS:
        return False
    wins = tally(sets[:MIN_SETS])
    return wins["A"] == 1 and wins["B"] == 1


def validate_sets(sets: Sequence[SetTuple]) -> MatchResult:
    """Validate a best-of-three match given as ``(pair1, pair2)`` game tuples.

    Two sets are enough when one pair took both; a 1-1 split needs a third,
    and a third set after a 2-0 is rejected.
    """

    sets = [tuple(s) for s in sets]
    if not MIN_SETS <= len(sets) <= MAX_SETS:
        raise ValidationError(
            "invalid_set_count", f"Provide {MIN_SETS} or {MAX_SETS} sets (got {len(sets)})."
        )

    for index, (p1, p2) in enumerate(sets, start=1):
        try:
            validate_set(p1, p2)
        except ValidationError as exc:
            raise ValidationError(exc.code, f"Set {index}: {exc.detail}") from None

    split = requires_third_set(sets)
    if split and len(sets) < MAX_SETS:
        raise ValidationError("third_set_required", "Sets are 1-1. Provide 3rd set.")
    if not split and len(sets) == MAX_SETS:
        raise ValidationError(
            "match_already_decided",
            "The match was decided 2-0; a third set is not allowed.",
        )

    wins = tally(sets)
    winner = "A" if wins["A"] > wins["B"] else "B"
    return MatchResult(sets=list(sets), wins=wins, winner=winner)


def format_score(sets: Sequence[SetTuple]) -> str:
    return " ".join(f"{p1}-{p2}" for p1, p2 in sets)


def winning_side(wins: Dict[str, int]) -> str | None:
    if wins["A"] == wins["B"]:
        return None
    return "A" if wins["A"] > wins["B"] else "B"


__all__ = [
    "MatchResult",
    "validate_set",
    "validate_sets",
    "requires_third_set",
    "set_winner",
    "tally",
    "format_score",
    "winning_side",
]
