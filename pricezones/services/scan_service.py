"""Scanner results joined with the margin reference.

``fetch_data`` always goes to the scanner and refreshes the scan-result
cache; ``fetch_with_margin`` serves from that cache when it can.  Both paths
leave the cache holding the raw candidates under the strategy name.
"""

from __future__ import annotations

import logging
from typing import List

from ..cache import TTLCache
from ..models import JoinedCandidate, ScanCandidate, Strategy
from ..providers.scanner_client import ScannerClient
from .margin_service import MarginService

logger = logging.getLogger(__name__)


class ScanService:
    def __init__(
        self,
        client: ScannerClient,
        margins: MarginService,
        result_cache: TTLCache[List[ScanCandidate]],
    ) -> None:
        self._client = client
        self._margins = margins
        self._results = result_cache

    async def fetch_data(self, strategy: Strategy) -> List[ScanCandidate]:
        """Force a scanner round-trip and cache the raw result."""

        candidates = await self._client.fetch_candidates(strategy.scan_clause)
        self._results.set(strategy.name, candidates)
        return candidates

    async def fetch_with_margin(self, strategy: Strategy) -> List[JoinedCandidate]:
        """Return candidates that have a margin entry, highest margin first."""

        candidates = self._results.get(strategy.name)
        if candidates is None:
            candidates = await self.fetch_data(strategy)
        else:
            logger.debug("scan result cache hit", extra={"strategy": strategy.name})

        joined: List[JoinedCandidate] = []
        for candidate in candidates:
            margin = self._margins.get(candidate.symbol)
            if margin is None:
                continue
            joined.append(
                JoinedCandidate(
                    symbol=candidate.symbol,
                    name=candidate.display_name,
                    margin_multiple=margin.margin_multiple,
                    last_close=candidate.last_close,
                )
            )

        # list.sort is stable: equal margins keep scanner order
        joined.sort(key=lambda item: item.margin_multiple, reverse=True)
        return joined


__all__ = ["ScanService"]
