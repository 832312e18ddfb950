"""Service container built once at startup and shared by the routers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List

from ..cache import SnapshotCache, TTLCache
from ..config import Settings, get_settings
from ..models import MarginEntry, MitigationResult, ScanCandidate, Strategy
from ..providers.price_history import PriceHistoryProvider, YahooHistoryProvider
from ..providers.scanner_client import ScannerClient
from ..services.margin_service import MarginService
from ..services.mitigation import MitigationEngine
from ..services.scan_service import ScanService
from ..services.strategy_service import StrategyService
from ..services.zones import ZoneService
from ..stores.reference import (
    InMemoryMarginRepository,
    InMemoryStrategyRepository,
    MarginRepository,
    PostgresMarginRepository,
    PostgresStrategyRepository,
    StrategyRepository,
    margin_from_mapping,
    strategy_from_mapping,
)
from ..stores.zones import InMemoryZoneStore, PostgresZoneStore, ZoneStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    settings: Settings
    scanner: ScannerClient
    history: PriceHistoryProvider
    margins: MarginService
    strategies: StrategyService
    scans: ScanService
    zones: ZoneService
    engine: MitigationEngine

    async def reload_reference(self) -> dict[str, int]:
        return {
            "margins": await self.margins.reload_all(),
            "strategies": await self.strategies.reload_all(),
        }

    async def close(self) -> None:
        await self.engine.shutdown()
        await self.scanner.close()
        close_history = getattr(self.history, "close", None)
        if close_history is not None:
            await close_history()


def build_services(
    *,
    settings: Settings | None = None,
    pool: Any | None = None,
    scanner: ScannerClient | None = None,
    history: PriceHistoryProvider | None = None,
    zone_store: ZoneStore | None = None,
    margin_repo: MarginRepository | None = None,
    strategy_repo: StrategyRepository | None = None,
) -> Services:
    """Wire caches, stores and services; Postgres-backed when ``pool`` is given."""

    settings = settings or get_settings()
    if pool is not None:
        zone_store = zone_store or PostgresZoneStore(pool)
        margin_repo = margin_repo or PostgresMarginRepository(pool)
        strategy_repo = strategy_repo or PostgresStrategyRepository(pool)
    else:
        zone_store = zone_store or InMemoryZoneStore()
        margin_repo = margin_repo or InMemoryMarginRepository(
            margin_from_mapping(item) for item in settings.seed_margins
        )
        strategy_repo = strategy_repo or InMemoryStrategyRepository(
            strategy_from_mapping(item) for item in settings.seed_strategies
        )

    scanner = scanner or ScannerClient(settings=settings)
    history = history or YahooHistoryProvider(settings=settings)
    margins = MarginService(margin_repo, SnapshotCache[MarginEntry]())
    strategies = StrategyService(strategy_repo, SnapshotCache[Strategy]())
    scans = ScanService(scanner, margins, TTLCache[List[ScanCandidate]](ttl_s=settings.scan_cache_ttl))
    engine = MitigationEngine(
        strategies=strategies,
        scans=scans,
        zones=zone_store,
        history=history,
        results_cache=TTLCache[List[MitigationResult]](ttl_s=settings.mitigation_cache_ttl),
        settings=settings,
    )
    return Services(
        settings=settings,
        scanner=scanner,
        history=history,
        margins=margins,
        strategies=strategies,
        scans=scans,
        zones=ZoneService(zone_store),
        engine=engine,
    )


__all__ = ["Services", "build_services"]
