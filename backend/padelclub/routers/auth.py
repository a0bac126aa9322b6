import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from ..config import Settings, load_settings, rate_limits_disabled
from ..exceptions import ProblemDetail
from ..schemas import InitDataRequest, JoinOut, MeOut
from ..services.identity import TelegramIdentity, authenticate
from ..services.players import find_player_by_telegram, join_player
from ..services.projections import serialize
from ..store import RecordStore, get_store

logger = logging.getLogger(__name__)


def _get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        parts = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
        if parts:
            return parts[-1]
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


limiter = Limiter(key_func=_get_client_ip)
router = APIRouter(
    tags=["auth"],
    responses={400: {"model": ProblemDetail}, 401: {"model": ProblemDetail}},
)


def join_rate_limit() -> str:
    if rate_limits_disabled():
        return "1000/second"
    return "10/minute"


def report_rate_limit() -> str:
    if rate_limits_disabled():
        return "1000/second"
    return "20/minute"


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    detail = exc.detail if isinstance(exc.detail, str) else ""
    if detail:
        message = f"rate limit exceeded: {detail}"
    else:
        message = "rate limit exceeded: please wait before submitting another request."
    logger.warning("Rate limit hit for %s on %s", _get_client_ip(request), request.url.path)
    problem = ProblemDetail(
        title="Too Many Requests",
        detail=message,
        status=429,
        code="rate_limit_exceeded",
        kind="rate_limit",
        error=message,
    )
    return JSONResponse(
        status_code=429,
        content=problem.model_dump(),
        media_type="application/problem+json",
    )


def get_settings() -> Settings:
    return load_settings()


def init_data_header(
    x_telegram_init_data: Optional[str] = Header(default=None),
) -> Optional[str]:
    return x_telegram_init_data


def identify(
    body: Optional[InitDataRequest],
    header_value: Optional[str],
    settings: Settings,
) -> TelegramIdentity:
    """Authenticate the caller from the header, falling back to the body."""

    init_data = header_value or (body.init_data if body is not None else None)
    return authenticate(
        init_data,
        settings.require_bot_token(),
        max_age_seconds=settings.init_data_max_age,
    )


@router.post("/me", response_model=MeOut)
async def read_me(
    body: InitDataRequest | None = None,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identity = identify(body, header_value, settings)
    player = await find_player_by_telegram(store, identity.user_id)
    return MeOut(
        telegram_user=identity.as_dict(),
        joined=player is not None,
        player=serialize(player) if player else None,
    )


@router.post("/join", response_model=JoinOut)
@limiter.limit(join_rate_limit)
async def join(
    request: Request,
    body: InitDataRequest | None = None,
    header_value: Optional[str] = Depends(init_data_header),
    settings: Settings = Depends(get_settings),
    store: RecordStore = Depends(get_store),
):
    identity = identify(body, header_value, settings)
    player, action = await join_player(
        store, identity, default_rating=settings.default_rating
    )
    return JoinOut(player=serialize(player), action=action)
