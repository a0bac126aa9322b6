"""Application services: identity, players, pairs, matches and read views."""

from .identity import TelegramIdentity, authenticate
from .matches import confirm_match, dispute_match, reject_match, report_match
from .pairs import resolve_or_create_pair, resolve_pair
from .players import join_player, list_players, require_player
from .projections import list_matches, list_pairs
from .rating import compute_match_ratings, round_rating
from .validation import parse_set_scores, validate_match_sets, validate_sides

__all__ = [
    "TelegramIdentity",
    "authenticate",
    "report_match",
    "confirm_match",
    "reject_match",
    "dispute_match",
    "resolve_pair",
    "resolve_or_create_pair",
    "join_player",
    "list_players",
    "require_player",
    "list_matches",
    "list_pairs",
    "compute_match_ratings",
    "round_rating",
    "parse_set_scores",
    "validate_match_sets",
    "validate_sides",
]
