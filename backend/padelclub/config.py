from __future__ import annotations

import os
from dataclasses import dataclass

from .exceptions import ConfigurationError


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

AIRTABLE_API_URL = "https://api.airtable.com/v0"

CONFIRMATION_POLICIES = {"any", "both"}
STORE_BACKENDS = {"airtable", "memory"}


def _env_number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    bot_token: str | None = None
    init_data_max_age: int = 86400

    store_backend: str = "airtable"
    airtable_token: str | None = None
    airtable_base_id: str | None = None
    airtable_api_url: str = AIRTABLE_API_URL
    airtable_timeout: float = 12.0

    players_table: str = "Players"
    pairs_table: str = "Pairs"
    matches_table: str = "Matches"
    set_scores_table: str = "SetScores"

    default_rating: int = 1000
    elo_k_pair: float = 32.0
    elo_k_player: float = 32.0
    confirmation_policy: str = "any"

    def require_bot_token(self) -> str:
        if not self.bot_token:
            raise ConfigurationError("Missing env: BOT_TOKEN")
        return self.bot_token

    def require_airtable(self) -> tuple[str, str]:
        missing = [
            name
            for name, value in (
                ("AIRTABLE_TOKEN", self.airtable_token),
                ("AIRTABLE_BASE_ID", self.airtable_base_id),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing env: {', '.join(missing)}")
        return self.airtable_token, self.airtable_base_id


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment.

    Read on demand rather than at import so tests and scripts can adjust the
    environment before the first request.
    """

    policy = (os.getenv("CONFIRMATION_POLICY") or "any").strip().lower()
    if policy not in CONFIRMATION_POLICIES:
        raise ConfigurationError(
            "CONFIRMATION_POLICY must be one of: " + ", ".join(sorted(CONFIRMATION_POLICIES))
        )

    backend = (os.getenv("STORE_BACKEND") or "airtable").strip().lower()
    if backend not in STORE_BACKENDS:
        raise ConfigurationError(
            "STORE_BACKEND must be one of: " + ", ".join(sorted(STORE_BACKENDS))
        )

    return Settings(
        bot_token=os.getenv("BOT_TOKEN") or None,
        init_data_max_age=_env_number("INIT_DATA_MAX_AGE_SECONDS", 86400, int),
        store_backend=backend,
        airtable_token=os.getenv("AIRTABLE_TOKEN") or None,
        airtable_base_id=os.getenv("AIRTABLE_BASE_ID") or None,
        airtable_api_url=(os.getenv("AIRTABLE_API_URL") or AIRTABLE_API_URL).rstrip("/"),
        airtable_timeout=_env_number("AIRTABLE_TIMEOUT_SECONDS", 12.0),
        players_table=os.getenv("AIRTABLE_PLAYERS_TABLE") or "Players",
        pairs_table=os.getenv("AIRTABLE_PAIRS_TABLE") or "Pairs",
        matches_table=os.getenv("AIRTABLE_MATCHES_TABLE") or "Matches",
        set_scores_table=os.getenv("AIRTABLE_SETSCORES_TABLE") or "SetScores",
        default_rating=_env_number("DEFAULT_RATING", 1000, int),
        elo_k_pair=_env_number("ELO_K_PAIR", 32.0),
        elo_k_player=_env_number("ELO_K_PLAYER", 32.0),
        confirmation_policy=policy,
    )


def get_allowed_origins() -> list[str]:
    """Return the CORS origins configured via ``ALLOWED_ORIGINS``."""

    raw = os.getenv("ALLOWED_ORIGINS", "").strip()
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if "*" in origins:
        raise ConfigurationError(
            "ALLOWED_ORIGINS cannot include '*' (wildcard). Specify explicit, trusted origins."
        )
    return origins


def rate_limits_disabled() -> bool:
    return (os.getenv("DISABLE_RATE_LIMITS") or "").lower() == "true"
