from typing import Optional

from fastapi import APIRouter, Depends

from ..config import Settings
from ..exceptions import ProblemDetail
from ..schemas import InitDataRequest, PairCreate, PairOut, PairsOut
from ..services.pairs import resolve_or_create_pair
from ..services.players import load_players_by_id, require_player
from ..services.projections import expand_pair, list_pairs
from ..store import RecordStore, get_store
from .auth import get_settings, identify, init_data_header

router = APIRouter(
    prefix="/pairs",
    tags=["pairs"],
    responses={
        400: {"model": ProblemDetail},
        403: {"model": ProblemDetail},
        404: {"model": ProblemDetail},
    },
)


@router.post("", response_model=PairsOut)
async def pairs_index(
    body: InitDataRequest | None = None,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identify(body, header_value, settings)
    return PairsOut(pairs=await list_pairs(store))


@router.post("/create", response_model=PairOut)
async def create_pair(
    body: PairCreate,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    """Return the pair for two players, creating it on first use."""

    identity = identify(body, header_value, settings)
    await require_player(store, identity)
    resolution = await resolve_or_create_pair(
        store,
        body.player1_id,
        body.player2_id,
        default_rating=settings.default_rating,
    )
    players_by_id = await load_players_by_id(store)
    return PairOut(
        pair=expand_pair(resolution.pair, players_by_id),
        created=resolution.created,
    )
