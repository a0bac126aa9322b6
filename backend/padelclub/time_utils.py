"""Helpers for match dates and times."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from .exceptions import ValidationError

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def normalize_match_date(value: str | date | None) -> str:
    """Return ``value`` as an ISO ``YYYY-MM-DD`` string, defaulting to today (UTC).

    Raises:
        ValidationError: If ``value`` is not a calendar date.
    """

    if value is None or value == "":
        return utc_today().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()[:10]).isoformat()
    except ValueError:
        raise ValidationError("invalid_date", f"date must be YYYY-MM-DD (got {value!r})")


def normalize_match_time(value: str | None) -> str:
    """Return ``HH:MM`` or an empty string when no time was given."""

    text = (value or "").strip()
    if not text:
        return ""
    if not _TIME_RE.match(text):
        raise ValidationError("invalid_time", f"time must be HH:MM (got {value!r})")
    hours, minutes = text.split(":")
    return f"{int(hours):02d}:{minutes}"
