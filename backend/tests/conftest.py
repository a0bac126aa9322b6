import hashlib
import hmac
import json
import os
import sys
import time
from urllib.parse import urlencode

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

TEST_BOT_TOKEN = "123456:TEST-bot-token"

os.environ.setdefault("BOT_TOKEN", TEST_BOT_TOKEN)
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("DISABLE_RATE_LIMITS", "true")

from padelclub import store as store_module  # noqa: E402
from padelclub.cache import table_fields_cache  # noqa: E402
from padelclub.config import Settings  # noqa: E402
from padelclub.fields import PLAYERS  # noqa: E402
from padelclub.models import Player  # noqa: E402
from padelclub.services.identity import TelegramIdentity  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Every test starts from the in-memory backend and no cached metadata."""

    monkeypatch.setenv("BOT_TOKEN", TEST_BOT_TOKEN)
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("DISABLE_RATE_LIMITS", "true")
    monkeypatch.delenv("CONFIRMATION_POLICY", raising=False)
    monkeypatch.delenv("AIRTABLE_FIELD_MAP", raising=False)
    store_module._store = None
    table_fields_cache._store.clear()
    yield
    store_module._store = None


@pytest.fixture
def settings():
    return Settings(bot_token=TEST_BOT_TOKEN, store_backend="memory")


@pytest.fixture
def memory_store():
    return store_module.InMemoryStore()


def sign_init_data(user: dict, *, bot_token: str = TEST_BOT_TOKEN, auth_date=None, **extra) -> str:
    """Build an ``initData`` query string the way the Telegram client does."""

    fields = {
        "auth_date": str(int(time.time()) if auth_date is None else auth_date),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "user": json.dumps(user, separators=(",", ":")),
        **extra,
    }
    check = "\n".join(f"{k}={v}" for k, v in sorted(fields.items()))
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    fields["hash"] = hmac.new(secret, check.encode(), hashlib.sha256).hexdigest()
    return urlencode(fields)


@pytest.fixture
def init_data_for():
    return sign_init_data


async def add_player(
    store,
    name: str,
    telegram_id: int,
    rating=1000,
    **fields,
) -> Player:
    values = {
        "name": name,
        "telegramId": telegram_id,
        "telegramUsername": name.lower(),
        "gamesPlayed": 0,
        "wins": 0,
        "losses": 0,
        **fields,
    }
    if rating is not None:
        values["rating"] = rating
    created = await store.create(PLAYERS, [values])
    return Player.from_record(created[0])


def identity_of(player: Player) -> TelegramIdentity:
    return TelegramIdentity(
        user_id=player.telegram_id,
        first_name=player.name,
        username=player.telegram_username,
    )
