"""Typed records decoded from the store.

Store rows are loosely typed: numbers may arrive as strings, link fields as
lists of record ids, blanks as missing keys. Every row is decoded here once so
the services can rely on plain ints and ids.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .store import Record


class MatchStatus(str, Enum):
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    DISPUTED = "DISPUTED"

    @property
    def is_terminal(self) -> bool:
        return self is not MatchStatus.PENDING_CONFIRMATION


def coerce_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Return ``value`` as an int, or ``default`` if it is blank or unparsable."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return default
        return int(round(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
        if not math.isfinite(number):
            return default
        return int(round(number))
    return default


def first_link(value: Any) -> Optional[str]:
    """Return the first record id of a link field."""

    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    if isinstance(value, str) and value:
        return value
    return None


def link_ids(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    if isinstance(value, str) and value:
        return [value]
    return []


class _StoreModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str

    @classmethod
    def from_record(cls, record: Record):
        return cls.model_validate({**record.fields, "id": record.id})


class _Standing(_StoreModel):
    rating: Optional[int] = None
    games_played: int = Field(default=0, alias="gamesPlayed")
    wins: int = 0
    losses: int = 0

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, value: Any) -> Optional[int]:
        return coerce_int(value, None)

    @field_validator("games_played", "wins", "losses", mode="before")
    @classmethod
    def _counter(cls, value: Any) -> int:
        return max(coerce_int(value, 0), 0)

    def rating_or(self, default: int) -> int:
        return self.rating if self.rating is not None else default

    def record_result(self, rating: int, won: bool) -> dict[str, int]:
        """Logical store fields after one more game."""

        return {
            "rating": rating,
            "gamesPlayed": self.games_played + 1,
            "wins": self.wins + (1 if won else 0),
            "losses": self.losses + (0 if won else 1),
        }


class Player(_Standing):
    name: str = ""
    telegram_id: Optional[int] = Field(default=None, alias="telegramId")
    telegram_username: str = Field(default="", alias="telegramUsername")

    @field_validator("name", "telegram_username", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("telegram_id", mode="before")
    @classmethod
    def _telegram_id(cls, value: Any) -> Optional[int]:
        return coerce_int(value, None)


class Pair(_Standing):
    player1: Optional[str] = None
    player2: Optional[str] = None

    @field_validator("player1", "player2", mode="before")
    @classmethod
    def _player(cls, value: Any) -> Optional[str]:
        return first_link(value)

    @property
    def member_ids(self) -> List[str]:
        return [pid for pid in (self.player1, self.player2) if pid]

    def has_members(self, a: str, b: str) -> bool:
        if not self.player1 or not self.player2:
            return False
        return {self.player1, self.player2} == {a, b}


class Match(_StoreModel):
    date: Optional[str] = None
    time: str = ""
    status: Optional[MatchStatus] = None
    pair1: Optional[str] = None
    pair2: Optional[str] = None
    initiated_by: Optional[str] = Field(default=None, alias="initiatedBy")
    confirmed_by: List[str] = Field(default_factory=list, alias="confirmedBy")
    score: str = ""
    dispute_reason: str = Field(default="", alias="disputeReason")
    set_scores: List[str] = Field(default_factory=list, alias="setScores")

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("time", "score", "dispute_reason", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Optional[MatchStatus]:
        # Rows reported before statuses were tracked are still awaiting confirmation.
        if value is None or value == "":
            return MatchStatus.PENDING_CONFIRMATION
        if isinstance(value, MatchStatus):
            return value
        text = str(value).strip().upper().replace(" ", "_")
        try:
            return MatchStatus(text)
        except ValueError:
            return None

    @field_validator("pair1", "pair2", "initiated_by", mode="before")
    @classmethod
    def _link(cls, value: Any) -> Optional[str]:
        return first_link(value)

    @field_validator("confirmed_by", "set_scores", mode="before")
    @classmethod
    def _links(cls, value: Any) -> List[str]:
        return link_ids(value)


class SetScore(_StoreModel):
    match: Optional[str] = None
    set_no: int = Field(default=0, alias="setNo")
    p1: int = 0
    p2: int = 0
    winner_pair: Optional[str] = Field(default=None, alias="winnerPair")

    @field_validator("match", "winner_pair", mode="before")
    @classmethod
    def _link(cls, value: Any) -> Optional[str]:
        return first_link(value)

    @field_validator("set_no", "p1", "p2", mode="before")
    @classmethod
    def _number(cls, value: Any) -> int:
        return coerce_int(value, 0)
