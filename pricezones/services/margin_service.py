"""Margin reference cache: symbol -> margin/leverage multiple."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..cache import SnapshotCache
from ..models import MarginEntry
from ..stores.reference import MarginRepository

logger = logging.getLogger(__name__)


class MarginService:
    """Owns the never-expiring margin snapshot and reloads it wholesale."""

    def __init__(self, repo: MarginRepository, cache: SnapshotCache[MarginEntry] | None = None) -> None:
        self._repo = repo
        self._cache = cache if cache is not None else SnapshotCache[MarginEntry]()

    @property
    def cache(self) -> SnapshotCache[MarginEntry]:
        return self._cache

    async def reload_all(self) -> int:
        entries = await self._repo.find_all()
        count = self._cache.replace((entry.symbol, entry) for entry in entries if entry.symbol)
        logger.info("margin reference reloaded", extra={"count": count})
        return count

    def get(self, symbol: str) -> Optional[MarginEntry]:
        return self._cache.get(symbol)

    def all(self) -> List[MarginEntry]:
        return self._cache.values()


__all__ = ["MarginService"]
