"""Exchange calendar helpers (Asia/Kolkata)."""

from __future__ import annotations

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")
DISPLAY_FORMAT = "%d-%b-%Y"
ZONE_DATE_FORMAT = "%Y-%m-%d"

_HISTORY_ACTIVE_START = time(8, 0)
_HISTORY_ACTIVE_END = time(17, 30)
HISTORY_ACTIVE_TTL = 600.0
HISTORY_IDLE_TTL = 3600.0


def parse_display_date(raw: str) -> str:
    """Convert an exchange display date (``24-Dec-2025``) into a zone date (``2025-12-24``).

    Raises ``ValueError`` when the token does not match the display layout.
    """

    token = (raw or "").strip()
    return datetime.strptime(token, DISPLAY_FORMAT).strftime(ZONE_DATE_FORMAT)


def format_display_date(epoch_seconds: int | float) -> str:
    stamp = datetime.fromtimestamp(float(epoch_seconds), tz=timezone.utc).astimezone(IST)
    return stamp.strftime(DISPLAY_FORMAT)


def history_cache_ttl(now: datetime | None = None) -> float:
    """Short TTL while the session is live or settling, longer outside it."""

    current = (now or datetime.now(timezone.utc)).astimezone(IST)
    clock = current.time()
    if _HISTORY_ACTIVE_START < clock < _HISTORY_ACTIVE_END:
        return HISTORY_ACTIVE_TTL
    return HISTORY_IDLE_TTL


__all__ = [
    "DISPLAY_FORMAT",
    "HISTORY_ACTIVE_TTL",
    "HISTORY_IDLE_TTL",
    "IST",
    "ZONE_DATE_FORMAT",
    "format_display_date",
    "history_cache_ttl",
    "parse_display_date",
]
