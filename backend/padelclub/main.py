from contextlib import asynccontextmanager
from pathlib import Path
import logging
import os
import time

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded

from .routers import auth, matches, pairs, players
from .exceptions import DomainException, ProblemDetail
from .config import API_PREFIX, get_allowed_origins
from .store import close_store
from .utils.sentry import init_sentry

logger = logging.getLogger(__name__)

init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_store()


# -----------------------------------------------------------------------------
# FastAPI app
# -----------------------------------------------------------------------------
app = FastAPI(
    title="Padel Club API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, auth.rate_limit_handler)

# -----------------------------------------------------------------------------
# CORS configuration
# -----------------------------------------------------------------------------
# The Mini App is normally served from STATIC_DIR on the same origin, so CORS
# is only switched on when origins are listed explicitly.
ALLOWED_ORIGINS = get_allowed_origins()
ALLOW_CREDENTIALS = os.getenv("ALLOW_CREDENTIALS", "false").lower() == "true"

if ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %s (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


# -----------------------------------------------------------------------------
# Health checks
# -----------------------------------------------------------------------------
@app.get("/healthz", tags=["health"])  # Unprefixed for reverse proxy / uptime checks
def root_healthz():
    return {"ok": True, "status": "ok"}


# -----------------------------------------------------------------------------
# Error handling
# -----------------------------------------------------------------------------
def _problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(),
        media_type="application/problem+json",
    )


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.code, request.url.path, exc.detail or exc.code)
    return _problem_response(
        ProblemDetail(
            type=exc.type,
            title=exc.title,
            detail=exc.detail,
            status=exc.status_code,
            instance=request.url.path,
            code=exc.code,
            kind=exc.kind,
            error=exc.detail or exc.code,
            details=exc.details,
        )
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{location}: {message}" if location else message
    return _problem_response(
        ProblemDetail(
            title="Invalid request",
            detail=detail,
            status=400,
            instance=request.url.path,
            code="request_validation_error",
            kind="validation",
            error=detail,
            details=[
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in errors
            ],
        )
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    code = getattr(exc, "code", f"http_{exc.status_code}")
    return _problem_response(
        ProblemDetail(
            title=detail,
            detail=detail,
            status=exc.status_code,
            instance=request.url.path,
            code=code,
            kind="http",
            error=detail,
        )
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exc_info=(type(exc), exc, exc.__traceback__))
    return _problem_response(
        ProblemDetail(
            title="Internal Server Error",
            status=500,
            detail=str(exc),
            code="internal_server_error",
            kind="internal",
            error="Internal Server Error",
        )
    )


# -----------------------------------------------------------------------------
# Routers
# -----------------------------------------------------------------------------
api_router = APIRouter(prefix=API_PREFIX, tags=["meta"])


@api_router.get("/health", tags=["health"])
def api_health():
    return {"ok": True, "status": "ok"}


api_router.include_router(auth.router)
api_router.include_router(players.router)
api_router.include_router(pairs.router)
api_router.include_router(matches.router)

app.include_router(api_router)

# -----------------------------------------------------------------------------
# Static files
# -----------------------------------------------------------------------------
# The built Mini App, when present, is served from the root. Mounted last so
# the API routes above take precedence.
STATIC_DIR = os.getenv("STATIC_DIR")

if STATIC_DIR and Path(STATIC_DIR).is_dir():
    logger.info("Mounting static at / -> %s", STATIC_DIR)
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
elif STATIC_DIR:
    logger.warning("STATIC_DIR=%s is not a directory; front-end not served", STATIC_DIR)
