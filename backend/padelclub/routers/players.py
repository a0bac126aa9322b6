from typing import Optional

from fastapi import APIRouter, Depends

from ..config import Settings
from ..exceptions import ProblemDetail
from ..schemas import InitDataRequest, PlayersOut
from ..services.players import list_players
from ..services.projections import serialize
from ..store import RecordStore, get_store
from .auth import get_settings, identify, init_data_header

router = APIRouter(
    prefix="/players",
    tags=["players"],
    responses={401: {"model": ProblemDetail}},
)


@router.post("", response_model=PlayersOut)
async def players_index(
    body: InitDataRequest | None = None,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    """All players, highest rating first."""

    identify(body, header_value, settings)
    players = await list_players(store)
    return PlayersOut(players=[serialize(p) for p in players])
