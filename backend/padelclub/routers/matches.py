from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..config import Settings
from ..exceptions import ProblemDetail
from ..schemas import (
    ListMatchesRequest,
    MatchAction,
    MatchClose,
    MatchConfirmOut,
    MatchesOut,
    MatchReport,
    MatchReportOut,
    MatchStatusOut,
)
from ..services.matches import (
    confirm_match,
    dispute_match,
    reject_match,
    report_match,
)
from ..services.projections import list_matches
from ..store import RecordStore, get_store
from .auth import get_settings, identify, init_data_header, limiter, report_rate_limit

router = APIRouter(
    prefix="/matches",
    tags=["matches"],
    responses={
        400: {"model": ProblemDetail},
        403: {"model": ProblemDetail},
        404: {"model": ProblemDetail},
        409: {"model": ProblemDetail},
    },
)


@router.post("", response_model=MatchesOut)
async def matches_index(
    body: ListMatchesRequest | None = None,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identify(body, header_value, settings)
    limit = body.limit if body is not None else ListMatchesRequest().limit
    return MatchesOut(matches=await list_matches(store, limit))


@router.post("/report", response_model=MatchReportOut)
@limiter.limit(report_rate_limit)
async def report(
    request: Request,
    body: MatchReport,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identity = identify(body, header_value, settings)
    result = await report_match(
        store,
        identity,
        body.partner_id,
        body.opp1_id,
        body.opp2_id,
        body.sets,
        settings=settings,
        date=body.date,
        time=body.time,
    )
    return MatchReportOut(
        match_id=result.match_id,
        status=result.status.value,
        score=result.score,
        winner=result.winner,
        pair1_id=result.pair1_id,
        pair2_id=result.pair2_id,
    )


@router.post("/confirm", response_model=MatchConfirmOut)
async def confirm(
    body: MatchAction,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identity = identify(body, header_value, settings)
    result = await confirm_match(store, identity, body.match_id, settings=settings)
    return MatchConfirmOut(
        status=result.status.value,
        confirmed_by=result.confirmed_by,
        rating_delta_pair=result.rating_delta_pair,
        rating_delta_player=result.rating_delta_player,
        message=result.message,
    )


@router.post("/reject", response_model=MatchStatusOut)
async def reject(
    body: MatchClose,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identity = identify(body, header_value, settings)
    result = await reject_match(store, identity, body.match_id, body.reason)
    return MatchStatusOut(status=result.status.value, message=result.message)


@router.post("/dispute", response_model=MatchStatusOut)
async def dispute(
    body: MatchClose,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identity = identify(body, header_value, settings)
    result = await dispute_match(store, identity, body.match_id, body.reason)
    return MatchStatusOut(status=result.status.value, message=result.message)
