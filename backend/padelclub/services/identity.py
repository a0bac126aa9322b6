"""Telegram Mini App identity.

The Mini App sends its ``initData`` query string with every request. It is
trusted only after its HMAC signature checks out against the bot token:

    secret_key = HMAC_SHA256(key="WebAppData", msg=bot_token)
    hash       = HMAC_SHA256(key=secret_key, msg=data_check_string)

where ``data_check_string`` is every ``key=value`` pair except ``hash``,
sorted by key and joined with newlines.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl

from ..exceptions import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelegramIdentity:
    user_id: int
    first_name: str = ""
    last_name: str = ""
    username: str = ""

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        if name:
            return name
        if self.username:
            return f"@{self.username}"
        return f"User {self.user_id}"

    def as_dict(self) -> dict:
        return {
            "id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
        }


def data_check_string(pairs: dict[str, str]) -> str:
    return "\n".join(f"{k}={v}" for k, v in sorted(pairs.items()) if k != "hash")


def compute_hash(pairs: dict[str, str], bot_token: str) -> str:
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(
        secret_key, data_check_string(pairs).encode(), hashlib.sha256
    ).hexdigest()


def verify_init_data(
    init_data: str,
    bot_token: str,
    *,
    max_age_seconds: int = 86400,
    now: Optional[float] = None,
) -> bool:
    """Return ``True`` when ``init_data`` is signed with ``bot_token`` and fresh.

    ``max_age_seconds`` of ``0`` disables the ``auth_date`` freshness check.
    """

    if not init_data or not bot_token:
        return False
    pairs = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = pairs.get("hash")
    if not received_hash:
        return False
    if not hmac.compare_digest(received_hash, compute_hash(pairs, bot_token)):
        return False

    if max_age_seconds:
        try:
            auth_date = int(pairs.get("auth_date", "0"))
        except ValueError:
            return False
        current = time.time() if now is None else now
        if not auth_date or current - auth_date > max_age_seconds:
            return False
    return True


def parse_init_data(init_data: str) -> TelegramIdentity:
    """Extract the Telegram user from ``init_data``.

    Only call this on a payload that passed :func:`verify_init_data`.
    """

    pairs = dict(parse_qsl(init_data, keep_blank_values=True))
    try:
        user = json.loads(pairs.get("user") or "null")
    except json.JSONDecodeError:
        user = None
    if not isinstance(user, dict) or not user.get("id"):
        raise ValidationError("telegram_user_missing", "Telegram user is missing")
    try:
        user_id = int(user["id"])
    except (TypeError, ValueError):
        raise ValidationError("telegram_user_missing", "Telegram user id is not numeric")
    return TelegramIdentity(
        user_id=user_id,
        first_name=str(user.get("first_name") or ""),
        last_name=str(user.get("last_name") or ""),
        username=str(user.get("username") or ""),
    )


def authenticate(init_data: str | None, bot_token: str, *, max_age_seconds: int = 86400) -> TelegramIdentity:
    """Verify ``init_data`` and return the identity it carries."""

    if not init_data:
        raise ValidationError("init_data_required", "initData is required")
    if not verify_init_data(init_data, bot_token, max_age_seconds=max_age_seconds):
        logger.warning("Rejected initData with an invalid or expired signature")
        raise AuthenticationError("invalid_init_data", "Invalid initData")
    return parse_init_data(init_data)
