"""Zone read/write pass-through used by the HTTP layer."""

from __future__ import annotations

from typing import Optional

from ..models import StockZones, Zone, ZoneKind
from ..stores.zones import ZoneStore


class ZoneService:
    def __init__(self, store: ZoneStore) -> None:
        self._store = store

    async def get_by_symbol(self, symbol: str) -> Optional[StockZones]:
        return await self._store.get(symbol.strip().upper())

    async def save(self, kind: ZoneKind, zone: Zone) -> None:
        await self._store.upsert_zone(kind, zone)

    async def update(self, kind: ZoneKind, zone: Zone) -> None:
        await self._store.update_zone(kind, zone)

    async def delete(self, kind: ZoneKind, symbol: str, date: str) -> None:
        await self._store.delete_zone(kind, symbol, date)


__all__ = ["ZoneService"]
