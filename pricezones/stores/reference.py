"""Reference data repositories: margin multiples and scanner strategies."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Protocol

from ..models import MarginEntry, Strategy


class MarginRepository(Protocol):
    async def find_all(self) -> List[MarginEntry]: ...


class StrategyRepository(Protocol):
    async def find_all(self) -> List[Strategy]: ...


def margin_from_mapping(raw: Mapping[str, Any]) -> MarginEntry:
    symbol = str(raw.get("symbol") or "").strip().upper()
    return MarginEntry(
        symbol=symbol,
        name=str(raw.get("name") or symbol),
        margin_multiple=float(raw.get("margin") or 0.0),
    )


def strategy_from_mapping(raw: Mapping[str, Any]) -> Strategy:
    return Strategy(
        name=str(raw.get("name") or "").strip(),
        scan_clause=str(raw.get("scanClause") or raw.get("scan_clause") or ""),
        active=bool(raw.get("active", True)),
    )


class InMemoryMarginRepository:
    def __init__(self, entries: Iterable[MarginEntry] = ()) -> None:
        self._entries = list(entries)

    async def find_all(self) -> List[MarginEntry]:
        return list(self._entries)

    def replace_all(self, entries: Iterable[MarginEntry]) -> None:
        self._entries = list(entries)


class InMemoryStrategyRepository:
    def __init__(self, strategies: Iterable[Strategy] = ()) -> None:
        self._strategies = list(strategies)

    async def find_all(self) -> List[Strategy]:
        return list(self._strategies)

    def replace_all(self, strategies: Iterable[Strategy]) -> None:
        self._strategies = list(strategies)


class PostgresMarginRepository:
    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def find_all(self) -> List[MarginEntry]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch("SELECT symbol, name, margin FROM margin")
        return [
            MarginEntry(symbol=row["symbol"], name=row["name"], margin_multiple=float(row["margin"]))
            for row in rows
        ]


class PostgresStrategyRepository:
    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def find_all(self) -> List[Strategy]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch("SELECT name, scan_clause, active FROM scanner_strategy")
        return [
            Strategy(name=row["name"], scan_clause=row["scan_clause"], active=bool(row["active"]))
            for row in rows
        ]


__all__ = [
    "InMemoryMarginRepository",
    "InMemoryStrategyRepository",
    "MarginRepository",
    "PostgresMarginRepository",
    "PostgresStrategyRepository",
    "StrategyRepository",
    "margin_from_mapping",
    "strategy_from_mapping",
]
