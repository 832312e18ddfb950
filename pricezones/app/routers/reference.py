"""Reference-data router: margin and strategy snapshots and their wholesale reload."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ...schemas import ApiResponse
from ..container import Services
from ..deps import get_services

router = APIRouter(prefix="/api/v1", tags=["reference"])


@router.get("/margins")
async def list_margins(services: Services = Depends(get_services)) -> ApiResponse:
    return ApiResponse(success=True, message="Success", data=[entry.to_dict() for entry in services.margins.all()])


@router.get("/margins/{symbol}")
async def get_margin(symbol: str, services: Services = Depends(get_services)) -> ApiResponse:
    entry = services.margins.get(symbol.strip().upper())
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Margin not found for symbol: {symbol.upper()}")
    return ApiResponse(success=True, message="Success", data=entry.to_dict())


@router.get("/strategies")
async def list_strategies(services: Services = Depends(get_services)) -> ApiResponse:
    """Active strategies currently held in the strategy cache."""
    data = [strategy.to_dict() for strategy in services.strategies.all()]
    return ApiResponse(success=True, message="Strategies fetched successfully", data=data)


@router.post("/reference/reload")
async def reload_reference(services: Services = Depends(get_services)) -> ApiResponse:
    counts = await services.reload_reference()
    return ApiResponse(success=True, message="Reference data reloaded", data=counts)


__all__ = ["router"]
