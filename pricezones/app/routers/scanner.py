"""Scanner router: run a named strategy, raw or joined with margins."""

from __future__ import annotations

from typing import Awaitable, Callable, List, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query

from ...models import Strategy
from ...providers.scanner_client import ScannerError
from ...schemas import ApiResponse
from ...services.strategy_service import StrategyNotFoundError
from ..container import Services
from ..deps import get_services

router = APIRouter(prefix="/api/v1", tags=["scanner"])

T = TypeVar("T")


async def _run_strategy(services: Services, name: str, call: Callable[[Strategy], Awaitable[List[T]]]) -> ApiResponse:
    try:
        resolved = services.strategies.require(name)
    except StrategyNotFoundError as exc:
        raise HTTPException(status_code=500, detail=f"{exc.name} error") from exc
    try:
        rows = await call(resolved)
    except ScannerError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ApiResponse(success=True, message=f"{resolved.name} fetch success", data=[row.to_dict() for row in rows])


@router.get("/scanner")
async def fetch_with_margin(
    strategy: str = Query(..., description="Name of the strategy to run"),
    services: Services = Depends(get_services),
) -> ApiResponse:
    """Candidates with a margin entry, highest margin first; served from the scan cache when fresh."""
    return await _run_strategy(services, strategy, services.scans.fetch_with_margin)


@router.get("/scanner/raw")
async def fetch_data(
    strategy: str = Query(..., description="Name of the strategy to run"),
    services: Services = Depends(get_services),
) -> ApiResponse:
    """Force a scanner round-trip; the raw hits also refresh the scan cache."""
    return await _run_strategy(services, strategy, services.scans.fetch_data)


__all__ = ["router"]
