"""Zone persistence.

Zones live in one record per symbol holding two collections (order blocks and
fair value gaps), each kept newest date first at write time.  Saving a zone
is a single remove-then-insert under a per-symbol lock (in memory) or a row
lock (Postgres), so concurrent automation runs cannot break the ordering.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..models import StockZones, Zone, ZoneKind, merge_zone, remove_zone, replace_zone_levels


ZoneMutation = Callable[[List[Zone]], Tuple[List[Zone], bool]]


class ZoneNotFoundError(LookupError):
    """Raised when an update or delete targets a zone that does not exist."""


class ZoneStore(Protocol):
    async def find_zones_for_symbols(self, symbols: Sequence[str]) -> Dict[str, StockZones]: ...

    async def get(self, symbol: str) -> Optional[StockZones]: ...

    async def upsert_zone(self, kind: ZoneKind, zone: Zone) -> None: ...

    async def update_zone(self, kind: ZoneKind, zone: Zone) -> None: ...

    async def delete_zone(self, kind: ZoneKind, symbol: str, date: str) -> None: ...


def _upsert(zone: Zone) -> ZoneMutation:
    return lambda zones: (merge_zone(zones, zone), True)


def _update(zone: Zone) -> ZoneMutation:
    return lambda zones: replace_zone_levels(zones, zone.date, zone.high, zone.low)


def _delete(date: str) -> ZoneMutation:
    return lambda zones: remove_zone(zones, date)


class InMemoryZoneStore:
    """Process-local zone store used when no database is configured."""

    def __init__(self, records: Iterable[StockZones] = ()) -> None:
        self._records: Dict[str, StockZones] = {record.symbol: record for record in records}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = self._locks.setdefault(symbol, asyncio.Lock())
        return lock

    async def find_zones_for_symbols(self, symbols: Sequence[str]) -> Dict[str, StockZones]:
        return {symbol: self._records[symbol] for symbol in symbols if symbol in self._records}

    async def get(self, symbol: str) -> Optional[StockZones]:
        return self._records.get(symbol)

    async def _mutate(self, kind: ZoneKind, symbol: str, mutation: ZoneMutation, *, create: bool) -> bool:
        async with self._lock_for(symbol):
            record = self._records.get(symbol)
            if record is None:
                if not create:
                    return False
                record = StockZones(symbol=symbol)
            zones, changed = mutation(list(record.zones(kind)))
            if changed:
                self._records[symbol] = record.with_zones(kind, zones)
            return changed

    async def upsert_zone(self, kind: ZoneKind, zone: Zone) -> None:
        await self._mutate(kind, zone.symbol, _upsert(zone), create=True)

    async def update_zone(self, kind: ZoneKind, zone: Zone) -> None:
        if not await self._mutate(kind, zone.symbol, _update(zone), create=False):
            raise ZoneNotFoundError(f"no {kind.field_name} record found for date {zone.date}")

    async def delete_zone(self, kind: ZoneKind, symbol: str, date: str) -> None:
        if not await self._mutate(kind, symbol, _delete(date), create=False):
            raise ZoneNotFoundError(f"no {kind.field_name} record found to delete for date {date}")


def _decode_zones(symbol: str, raw: Any) -> List[Zone]:
    if raw is None:
        return []
    items = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    return [
        Zone(symbol=symbol, date=str(item["date"]), high=float(item["high"]), low=float(item["low"]))
        for item in items or []
    ]


def _encode_zones(zones: Sequence[Zone]) -> str:
    return json.dumps([zone.to_dict() for zone in zones])


def _record_from_row(row: Any) -> StockZones:
    symbol = row["symbol"]
    return StockZones(
        symbol=symbol,
        order_blocks=_decode_zones(symbol, row["order_blocks"]),
        fvg=_decode_zones(symbol, row["fvg"]),
    )


class PostgresZoneStore:
    """asyncpg-backed zone store; one ``price_action`` row per symbol."""

    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def find_zones_for_symbols(self, symbols: Sequence[str]) -> Dict[str, StockZones]:
        if not symbols:
            return {}
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT symbol, order_blocks, fvg FROM price_action WHERE symbol = ANY($1::text[])",
                list(symbols),
            )
        return {row["symbol"]: _record_from_row(row) for row in rows}

    async def get(self, symbol: str) -> Optional[StockZones]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT symbol, order_blocks, fvg FROM price_action WHERE symbol = $1", symbol)
        return _record_from_row(row) if row else None

    async def _mutate(self, kind: ZoneKind, symbol: str, mutation: ZoneMutation, *, create: bool) -> bool:
        column = kind.field_name
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if create:
                    await conn.execute(
                        "INSERT INTO price_action (symbol) VALUES ($1) ON CONFLICT (symbol) DO NOTHING",
                        symbol,
                    )
                row = await conn.fetchrow(f"SELECT {column} FROM price_action WHERE symbol = $1 FOR UPDATE", symbol)
                if row is None:
                    return False
                zones, changed = mutation(_decode_zones(symbol, row[column]))
                if changed:
                    await conn.execute(
                        f"UPDATE price_action SET {column} = $2::jsonb, updated_at = NOW() WHERE symbol = $1",
                        symbol,
                        _encode_zones(zones),
                    )
                return changed

    async def upsert_zone(self, kind: ZoneKind, zone: Zone) -> None:
        await self._mutate(kind, zone.symbol, _upsert(zone), create=True)

    async def update_zone(self, kind: ZoneKind, zone: Zone) -> None:
        if not await self._mutate(kind, zone.symbol, _update(zone), create=False):
            raise ZoneNotFoundError(f"no {kind.field_name} record found for date {zone.date}")

    async def delete_zone(self, kind: ZoneKind, symbol: str, date: str) -> None:
        if not await self._mutate(kind, symbol, _delete(date), create=False):
            raise ZoneNotFoundError(f"no {kind.field_name} record found to delete for date {date}")


__all__ = ["InMemoryZoneStore", "PostgresZoneStore", "ZoneNotFoundError", "ZoneStore"]
