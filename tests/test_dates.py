from __future__ import annotations

from datetime import datetime

import pytest

from pricezones.lib.dates import (
    HISTORY_ACTIVE_TTL,
    HISTORY_IDLE_TTL,
    IST,
    format_display_date,
    history_cache_ttl,
    parse_display_date,
)

from _helpers import EPOCH_24_DEC_2025


def test_parse_display_date():
    assert parse_display_date("24-Dec-2025") == "2025-12-24"
    assert parse_display_date("02-Jan-2006") == "2006-01-02"


@pytest.mark.parametrize("raw", ["2025-12-24", "", "31-Feb-2025"])
def test_parse_display_date_rejects_other_layouts(raw):
    with pytest.raises(ValueError):
        parse_display_date(raw)


def test_format_display_date_uses_exchange_timezone():
    assert format_display_date(EPOCH_24_DEC_2025) == "24-Dec-2025"
    # 20:00 UTC is already the next day in IST
    assert format_display_date(EPOCH_24_DEC_2025 + 16 * 3600 + 15 * 60) == "25-Dec-2025"


def test_history_cache_ttl_tracks_market_hours():
    assert history_cache_ttl(datetime(2025, 12, 24, 10, 0, tzinfo=IST)) == HISTORY_ACTIVE_TTL
    assert history_cache_ttl(datetime(2025, 12, 24, 17, 0, tzinfo=IST)) == HISTORY_ACTIVE_TTL
    assert history_cache_ttl(datetime(2025, 12, 24, 20, 0, tzinfo=IST)) == HISTORY_IDLE_TTL
    assert history_cache_ttl(datetime(2025, 12, 24, 6, 0, tzinfo=IST)) == HISTORY_IDLE_TTL
