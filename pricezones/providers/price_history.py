"""Daily price history used by the mitigation engine and zone automation.

The engine only depends on the ``PriceHistoryProvider`` protocol: given a
symbol, return daily candles ordered most recent first.  ``YahooHistoryProvider``
implements it against the Yahoo chart API with a market-hours aware cache.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Protocol

import httpx
import pandas as pd

from ..cache import TTLCache
from ..config import Settings, get_settings
from ..lib.dates import format_display_date, history_cache_ttl
from ..models import Candle
from ..telemetry import record_provider_latency

logger = logging.getLogger(__name__)

_OHLC = ("open", "high", "low", "close")


class PriceHistoryError(RuntimeError):
    """Raised when price history cannot be retrieved for a symbol."""


class PriceHistoryProvider(Protocol):
    async def fetch_history(self, symbol: str) -> List[Candle]:
        """Return daily candles for ``symbol``, most recent first (empty when no data)."""


def candles_from_chart(symbol: str, payload: Dict[str, Any]) -> List[Candle]:
    """Convert a Yahoo chart payload into most-recent-first candles.

    Rows without volume or with a zero open are dropped (holidays and
    half-formed bars), prices are rounded to two decimals.
    """

    chart = payload.get("chart") or {}
    if chart.get("error"):
        raise PriceHistoryError(f"chart error for {symbol}: {chart['error']}")
    results = chart.get("result") or []
    if not results:
        return []
    result = results[0] or {}
    timestamps = result.get("timestamp") or []
    quotes = ((result.get("indicators") or {}).get("quote") or [{}])[0] or {}
    if not timestamps:
        return []

    frame = pd.DataFrame(
        {
            "timestamp": timestamps,
            "open": quotes.get("open") or [None] * len(timestamps),
            "high": quotes.get("high") or [None] * len(timestamps),
            "low": quotes.get("low") or [None] * len(timestamps),
            "close": quotes.get("close") or [None] * len(timestamps),
            "volume": quotes.get("volume") or [0] * len(timestamps),
        }
    )
    numeric = [*_OHLC, "volume"]
    frame[numeric] = frame[numeric].apply(pd.to_numeric, errors="coerce")
    frame = frame.dropna(subset=list(_OHLC))
    frame = frame.loc[(frame["volume"].fillna(0) > 0) & (frame["open"] != 0)].copy()
    if frame.empty:
        return []
    frame[list(_OHLC)] = frame[list(_OHLC)].round(2)
    frame = frame.iloc[::-1]

    return [
        Candle(
            symbol=symbol,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            timestamp=format_display_date(int(row.timestamp)),
        )
        for row in frame.itertuples(index=False)
    ]


class YahooHistoryProvider:
    """Yahoo chart API client returning exchange-dated daily candles."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache[List[Candle]] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = self._settings.history_base_url.rstrip("/")
        self._range = self._settings.history_range
        self._suffix = self._settings.history_symbol_suffix
        self._timeout = httpx.Timeout(self._settings.history_timeout, connect=4.0)
        self._cache = cache if cache is not None else TTLCache[List[Candle]](ttl_s=600.0)
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            async with self._client_lock:
                if self._client is None or self._client.is_closed:
                    self._client = httpx.AsyncClient(
                        timeout=self._timeout,
                        headers={"Accept": "application/json", "User-Agent": self._settings.scanner_user_agent},
                    )
                    self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    def clear(self, symbol: str) -> None:
        self._cache.delete(self._cache_key(symbol))

    def _cache_key(self, symbol: str) -> str:
        return f"history_{symbol.upper()}_{self._range}"

    async def fetch_history(self, symbol: str) -> List[Candle]:
        cache_key = self._cache_key(symbol)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        client = await self._get_client()
        url = f"{self._base_url}/{symbol.upper()}{self._suffix}"
        started = time.perf_counter()
        try:
            response = await client.get(url, params={"range": self._range, "interval": "1d"})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise PriceHistoryError(f"history request for {symbol} failed: status {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise PriceHistoryError(f"history request for {symbol} failed: {exc}") from exc
        finally:
            record_provider_latency("history", "chart", (time.perf_counter() - started) * 1000.0)

        try:
            candles = candles_from_chart(symbol.upper(), payload)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PriceHistoryError(f"malformed history payload for {symbol}: {exc}") from exc
        if candles:
            self._cache.set(cache_key, candles, ttl_s=history_cache_ttl())
        else:
            logger.info("price history empty", extra={"symbol": symbol.upper()})
        return candles


__all__ = ["PriceHistoryError", "PriceHistoryProvider", "YahooHistoryProvider", "candles_from_chart"]
