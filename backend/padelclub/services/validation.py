from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import ValidationError
from ..scoring import padel


def parse_set_scores(
    sets: Sequence[Dict[str, Any]],
    *,
    max_sets: Optional[int] = padel.MAX_SETS,
) -> List[Tuple[int, int]]:
    """Turn raw ``{p1, p2}`` set objects into ``(p1, p2)`` integer tuples.

    Rules:
    - At least one set is required
    - Number of sets must be <= ``max_sets`` (if provided)
    - Each set must be an object ``{p1, p2}``
    - ``p1`` and ``p2`` must be integers >= 0 (booleans and fractions are rejected)

    Padel-specific rules are applied afterwards by :func:`padel.validate_sets`.
    """

    if not isinstance(sets, list) or len(sets) == 0:
        raise ValidationError("invalid_set_count", "At least one set is required.")
    if max_sets is not None and len(sets) > max_sets:
        raise ValidationError(
            "invalid_set_count", f"Too many sets. Max allowed is {max_sets}."
        )

    parsed: List[Tuple[int, int]] = []
    for i, s in enumerate(sets, start=1):
        if not isinstance(s, dict):
            raise ValidationError(
                "invalid_score", f"Set #{i} must be an object with fields p1 and p2."
            )
        if "p1" not in s or "p2" not in s:
            raise ValidationError("invalid_score", f"Set #{i} must include both p1 and p2.")

        v1, v2 = s["p1"], s["p2"]

        # Reject booleans explicitly (bool is a subclass of int in Python)
        if isinstance(v1, bool) or isinstance(v2, bool):
            raise ValidationError(
                "invalid_score", f"Set #{i} scores must be integers (not booleans)."
            )

        try:
            a = _as_int(v1)
            b = _as_int(v2)
        except (TypeError, ValueError):
            raise ValidationError("invalid_score", f"Set #{i} scores must be integers.")

        if a < 0 or b < 0:
            raise ValidationError("invalid_score", f"Set #{i} scores must be >= 0.")
        parsed.append((a, b))

    return parsed


def _as_int(value: Any) -> int:
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("fractional score")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    if isinstance(value, int):
        return value
    raise TypeError("score must be a number")


def validate_match_sets(sets: Sequence[Dict[str, Any]]) -> padel.MatchResult:
    return padel.validate_sets(parse_set_scores(sets))


def validate_sides(
    reporter_id: str,
    partner_id: Optional[str],
    opp1_id: Optional[str],
    opp2_id: Optional[str],
) -> None:
    """Check that the four reported players form two disjoint pairs."""

    if not partner_id or not opp1_id or not opp2_id:
        raise ValidationError(
            "missing_player", "partnerId, opp1Id, opp2Id are required"
        )
    if partner_id == reporter_id:
        raise ValidationError(
            "same_player_as_partner", "You cannot be your own partner."
        )
    if opp1_id == opp2_id:
        raise ValidationError(
            "opponent_pair_same_player_twice",
            "The opponent pair cannot have the same player twice.",
        )
    if {opp1_id, opp2_id} & {reporter_id, partner_id}:
        raise ValidationError(
            "shared_player_across_sides",
            "A player cannot be on both sides of a match.",
        )
