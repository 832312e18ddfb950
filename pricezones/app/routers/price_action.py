"""Price-action router: zones per symbol, mitigation checks and automation."""

from __future__ import annotations

from typing import Awaitable, List

from fastapi import APIRouter, Depends, HTTPException

from ...models import MitigationResult, Zone, ZoneKind
from ...providers.scanner_client import ScannerError
from ...schemas import ApiResponse, ZoneRequest
from ...services.strategy_service import StrategyNotFoundError
from ...stores.zones import ZoneNotFoundError
from ..container import Services
from ..deps import get_services

router = APIRouter(prefix="/api/v1/price-action", tags=["price-action"])

_LABELS = {ZoneKind.ORDER_BLOCK: "Order block", ZoneKind.FAIR_VALUE_GAP: "Fvg"}


def _zone(payload: ZoneRequest) -> Zone:
    return Zone(symbol=payload.symbol, date=payload.date, high=payload.high, low=payload.low)


@router.post("/automate")
async def automate_zones(services: Services = Depends(get_services)) -> ApiResponse:
    """Start zone automation for both kinds and return immediately."""
    task = services.engine.schedule_automation()
    return ApiResponse(success=True, message="Zone automation started", data={"task": task.get_name()})


@router.get("/{symbol}")
async def get_by_symbol(symbol: str, services: Services = Depends(get_services)) -> ApiResponse:
    record = await services.zones.get_by_symbol(symbol)
    if record is None:
        raise HTTPException(status_code=404, detail=f"stock {symbol.upper()} not found")
    return ApiResponse(success=True, message="Price action found", data=record.to_dict())


async def _mitigation_response(call: Awaitable[List[MitigationResult]], message: str) -> ApiResponse:
    try:
        results = await call
    except StrategyNotFoundError as exc:
        raise HTTPException(status_code=500, detail=f"{exc.name} error") from exc
    except ScannerError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ApiResponse(success=True, message=message, data=[result.to_dict() for result in results])


@router.post("/{kind}/check")
async def check_mitigation(kind: ZoneKind, services: Services = Depends(get_services)) -> ApiResponse:
    message = f"{services.settings.mitigation_strategy_name} fetch success"
    return await _mitigation_response(services.engine.check(kind), message)


@router.get("/{kind}/mitigation")
async def get_mitigation(kind: ZoneKind, services: Services = Depends(get_services)) -> ApiResponse:
    """Serve the results cache, recomputing on a miss."""
    return await _mitigation_response(services.engine.cached_or_check(kind), "Fetch success")


@router.post("/{kind}")
async def save_zone(kind: ZoneKind, payload: ZoneRequest, services: Services = Depends(get_services)) -> ApiResponse:
    await services.zones.save(kind, _zone(payload))
    return ApiResponse(success=True, message=f"{_LABELS[kind]} created")


@router.patch("/{kind}")
async def update_zone(kind: ZoneKind, payload: ZoneRequest, services: Services = Depends(get_services)) -> ApiResponse:
    try:
        await services.zones.update(kind, _zone(payload))
    except ZoneNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ApiResponse(success=True, message=f"{_LABELS[kind]} updated")


@router.delete("/{kind}")
async def delete_zone(kind: ZoneKind, payload: ZoneRequest, services: Services = Depends(get_services)) -> ApiResponse:
    try:
        await services.zones.delete(kind, payload.symbol, payload.date)
    except ZoneNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ApiResponse(success=True, message=f"{_LABELS[kind]} deleted")


__all__ = ["router"]
