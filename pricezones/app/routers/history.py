"""Price-history router: daily candles for one symbol, most recent first."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ...providers.price_history import PriceHistoryError
from ...schemas import ApiResponse
from ..container import Services
from ..deps import get_services

router = APIRouter(prefix="/api/v1", tags=["history"])


@router.get("/history/{symbol}")
async def get_history(symbol: str, services: Services = Depends(get_services)) -> ApiResponse:
    try:
        candles = await services.history.fetch_history(symbol.strip().upper())
    except PriceHistoryError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to get history: {exc}") from exc
    return ApiResponse(success=True, message="Fetch Success", data=[candle.to_dict() for candle in candles])


__all__ = ["router"]
