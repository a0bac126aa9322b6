from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_REASON_LENGTH = 500


class InitDataRequest(BaseModel):
    """Body shared by every Mini App call.

    ``initData`` may also travel in the ``X-Telegram-Init-Data`` header, in
    which case the body can be empty.
    """

    model_config = ConfigDict(populate_by_name=True)

    init_data: Optional[str] = Field(default=None, alias="initData")


class ListMatchesRequest(InitDataRequest):
    limit: int = Field(default=200, ge=1, le=1000)


class PairCreate(InitDataRequest):
    player1_id: Optional[str] = Field(default=None, alias="player1Id")
    player2_id: Optional[str] = Field(default=None, alias="player2Id")


class MatchReport(InitDataRequest):
    partner_id: Optional[str] = Field(default=None, alias="partnerId")
    opp1_id: Optional[str] = Field(default=None, alias="opp1Id")
    opp2_id: Optional[str] = Field(default=None, alias="opp2Id")
    # Shape and score checks happen in the service so errors carry stable codes.
    sets: Any = Field(default_factory=list)
    date: Optional[str] = None
    time: Optional[str] = None


class MatchAction(InitDataRequest):
    match_id: Optional[str] = Field(default=None, alias="matchId")


class MatchClose(MatchAction):
    reason: Optional[str] = None

    @field_validator("reason", mode="before")
    @classmethod
    def _trim_reason(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("reason must be a string")
        return value.strip()[:MAX_REASON_LENGTH]


class OkResponse(BaseModel):
    ok: bool = True


class MeOut(OkResponse):
    telegram_user: Dict[str, Any] = Field(alias="telegramUser")
    joined: bool
    player: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(populate_by_name=True)


class JoinOut(OkResponse):
    player: Dict[str, Any]
    action: str


class PlayersOut(OkResponse):
    players: List[Dict[str, Any]]


class PairsOut(OkResponse):
    pairs: List[Dict[str, Any]]


class PairOut(OkResponse):
    pair: Dict[str, Any]
    created: bool


class MatchesOut(OkResponse):
    matches: List[Dict[str, Any]]


class MatchReportOut(OkResponse):
    match_id: str = Field(alias="matchId")
    status: str
    score: str
    winner: str
    pair1_id: str = Field(alias="pair1Id")
    pair2_id: str = Field(alias="pair2Id")
    message: str = "Match reported. Waiting for opponent confirmation."

    model_config = ConfigDict(populate_by_name=True)


class MatchConfirmOut(OkResponse):
    status: str
    confirmed_by: List[str] = Field(alias="confirmedBy")
    rating_delta_pair: Optional[int] = Field(default=None, alias="ratingDeltaPair")
    rating_delta_player: Optional[int] = Field(default=None, alias="ratingDeltaPlayer")
    message: str

    model_config = ConfigDict(populate_by_name=True)


class MatchStatusOut(OkResponse):
    status: str
    message: str
