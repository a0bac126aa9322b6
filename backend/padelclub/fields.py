"""Logical-to-physical field names for the record store.

Services address columns by logical name (``rating``, ``setNo``); the store
translates them to whatever the base actually calls them. Each logical field
lists its known physical spellings in order of preference. When the store can
report a table's real columns, the first spelling that exists wins; otherwise
the first spelling is used as-is.

Extra spellings can be supplied with ``AIRTABLE_FIELD_MAP``, a JSON object
such as ``{"players": {"rating": "Elo"}}``. Overrides are tried before the
built-in names.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .exceptions import ConfigurationError

PLAYERS = "players"
PAIRS = "pairs"
MATCHES = "matches"
SET_SCORES = "set_scores"

TABLES = (PLAYERS, PAIRS, MATCHES, SET_SCORES)

DEFAULT_FIELDS: dict[str, dict[str, tuple[str, ...]]] = {
    PLAYERS: {
        "name": ("Name", "Full Name"),
        "telegramId": ("Telegram ID", "Telegram Id", "TG ID"),
        "telegramUsername": ("Telegram Username", "Username"),
        "rating": ("Individual Rating", "Rating"),
        "gamesPlayed": ("Games Played", "GP"),
        "wins": ("Wins", "W"),
        "losses": ("Losses", "L"),
    },
    PAIRS: {
        "player1": ("Player 1", "Player1"),
        "player2": ("Player 2", "Player2"),
        "rating": ("Pair Rating", "Rating"),
        "gamesPlayed": ("Games Played", "GP"),
        "wins": ("Wins", "W"),
        "losses": ("Losses", "L"),
    },
    MATCHES: {
        "date": ("Date",),
        "time": ("Time",),
        "status": ("Status",),
        "pair1": ("Pair 1", "Pair1"),
        "pair2": ("Pair 2", "Pair2"),
        "initiatedBy": ("Initiated By", "Reported By"),
        "confirmedBy": ("Confirmed By",),
        "score": ("Score",),
        "disputeReason": ("Dispute Reason", "Reason"),
        "setScores": ("SetScores", "Set Scores"),
    },
    SET_SCORES: {
        "match": ("Match",),
        "setNo": ("Set N°", "Set No", "Set Number", "Set #"),
        "p1": ("Pair 1 Score", "P1"),
        "p2": ("Pair 2 Score", "P2"),
        "winnerPair": ("Winner Pair", "Winner"),
    },
}


@dataclass(frozen=True)
class TableFields:
    """Resolved field names for one table."""

    to_physical: Mapping[str, str]

    @property
    def to_logical(self) -> dict[str, str]:
        return {physical: logical for logical, physical in self.to_physical.items()}

    def physical(self, logical: str) -> str:
        try:
            return self.to_physical[logical]
        except KeyError:
            raise ConfigurationError(f"Unknown field {logical!r}") from None

    def encode(self, fields: Mapping[str, object]) -> dict[str, object]:
        return {self.physical(name): value for name, value in fields.items()}

    def decode(self, fields: Mapping[str, object]) -> dict[str, object]:
        logical = self.to_logical
        return {logical[name]: value for name, value in fields.items() if name in logical}


class FieldMap:
    def __init__(self, candidates: Mapping[str, Mapping[str, tuple[str, ...]]]) -> None:
        self._candidates = {table: dict(fields) for table, fields in candidates.items()}

    def candidates(self, table: str) -> dict[str, tuple[str, ...]]:
        try:
            return self._candidates[table]
        except KeyError:
            raise ConfigurationError(f"Unknown table {table!r}") from None

    def resolve(self, table: str, available: Iterable[str] | None = None) -> TableFields:
        """Pick one physical name per logical field of ``table``.

        ``available`` is the set of columns the store reports for the table, or
        ``None`` when that information is not accessible.
        """

        present = set(available) if available is not None else None
        mapping: dict[str, str] = {}
        for logical, spellings in self.candidates(table).items():
            chosen = spellings[0]
            if present:
                chosen = next((name for name in spellings if name in present), chosen)
            mapping[logical] = chosen
        return TableFields(mapping)


def _parse_overrides(raw: str) -> dict[str, dict[str, tuple[str, ...]]]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"AIRTABLE_FIELD_MAP is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("AIRTABLE_FIELD_MAP must be a JSON object")

    overrides: dict[str, dict[str, tuple[str, ...]]] = {}
    for table, fields in data.items():
        if table not in DEFAULT_FIELDS or not isinstance(fields, dict):
            raise ConfigurationError(f"AIRTABLE_FIELD_MAP: unknown table {table!r}")
        for logical, names in fields.items():
            if logical not in DEFAULT_FIELDS[table]:
                raise ConfigurationError(
                    f"AIRTABLE_FIELD_MAP: unknown field {table}.{logical}"
                )
            if isinstance(names, str):
                names = [names]
            overrides.setdefault(table, {})[logical] = tuple(str(n) for n in names)
    return overrides


def load_field_map() -> FieldMap:
    candidates = {table: dict(fields) for table, fields in DEFAULT_FIELDS.items()}
    raw = (os.getenv("AIRTABLE_FIELD_MAP") or "").strip()
    if raw:
        for table, fields in _parse_overrides(raw).items():
            for logical, names in fields.items():
                extra = tuple(n for n in candidates[table][logical] if n not in names)
                candidates[table][logical] = names + extra
    return FieldMap(candidates)
