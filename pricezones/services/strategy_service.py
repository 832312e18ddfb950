"""Strategy cache: strategy name -> scanner query definition."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..cache import SnapshotCache
from ..models import Strategy
from ..stores.reference import StrategyRepository

logger = logging.getLogger(__name__)


class StrategyNotFoundError(LookupError):
    """Raised when a named strategy is not present in the strategy cache."""

    def __init__(self, name: str) -> None:
        super().__init__(f"strategy not found: {name}")
        self.name = name


class StrategyService:
    def __init__(self, repo: StrategyRepository, cache: SnapshotCache[Strategy] | None = None) -> None:
        self._repo = repo
        self._cache = cache if cache is not None else SnapshotCache[Strategy]()

    @property
    def cache(self) -> SnapshotCache[Strategy]:
        return self._cache

    async def reload_all(self) -> int:
        """Replace the cache with every active strategy, names upper-cased."""

        strategies = await self._repo.find_all()
        count = self._cache.replace(
            (strategy.name.upper(), Strategy(name=strategy.name.upper(), scan_clause=strategy.scan_clause, active=True))
            for strategy in strategies
            if strategy.active and strategy.name
        )
        logger.info("strategy cache reloaded", extra={"count": count})
        return count

    def resolve(self, name: str) -> Optional[Strategy]:
        return self._cache.get(name.upper())

    def require(self, name: str) -> Strategy:
        strategy = self.resolve(name)
        if strategy is None:
            raise StrategyNotFoundError(name)
        return strategy

    def all(self) -> List[Strategy]:
        return self._cache.values()


__all__ = ["StrategyNotFoundError", "StrategyService"]
