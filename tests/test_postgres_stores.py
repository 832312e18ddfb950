from __future__ import annotations

import json

import pytest

from pricezones.models import Zone, ZoneKind
from pricezones.stores.reference import PostgresMarginRepository, PostgresStrategyRepository
from pricezones.stores.zones import PostgresZoneStore, ZoneNotFoundError


class _FakeAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeTransaction:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        self._conn.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeConn:
    """Records every statement; ``rows`` keyed by symbol back the SELECTs."""

    def __init__(self, rows=None, fetch_rows=None):
        self.rows = rows or {}
        self.fetch_rows = fetch_rows or []
        self.queries: list[tuple[str, tuple]] = []
        self.transactions = 0

    def transaction(self):
        return _FakeTransaction(self)

    async def execute(self, query, *params):
        self.queries.append((" ".join(query.split()), params))
        return "OK"

    async def fetch(self, query, *params):
        self.queries.append((" ".join(query.split()), params))
        return self.fetch_rows

    async def fetchrow(self, query, *params):
        self.queries.append((" ".join(query.split()), params))
        return self.rows.get(params[0])


class _FakePool:
    def __init__(self, conn):
        self._conn = conn

    def acquire(self):
        return _FakeAcquire(self._conn)


def _statement_kinds(conn: _FakeConn) -> list[str]:
    return [query.split(" ", 1)[0] for query, _ in conn.queries]


@pytest.mark.asyncio
async def test_upsert_inserts_row_locks_it_and_writes_dates_descending():
    existing = json.dumps(
        [
            {"date": "2025-12-20", "high": 100.0, "low": 90.0},
            {"date": "2025-12-10", "high": 120.0, "low": 110.0},
        ]
    )
    conn = _FakeConn(rows={"AAA": {"order_blocks": existing}})
    store = PostgresZoneStore(_FakePool(conn))

    await store.upsert_zone(ZoneKind.ORDER_BLOCK, Zone("AAA", "2025-12-15", 105.0, 95.0))

    assert conn.transactions == 1
    assert _statement_kinds(conn) == ["INSERT", "SELECT", "UPDATE"]
    insert, select, update = conn.queries
    assert "ON CONFLICT (symbol) DO NOTHING" in insert[0]
    assert select[0] == "SELECT order_blocks FROM price_action WHERE symbol = $1 FOR UPDATE"
    assert update[0].startswith("UPDATE price_action SET order_blocks = $2::jsonb")
    symbol, encoded = update[1]
    assert symbol == "AAA"
    assert [item["date"] for item in json.loads(encoded)] == ["2025-12-20", "2025-12-15", "2025-12-10"]


@pytest.mark.asyncio
async def test_upsert_replaces_same_date_in_fvg_column():
    conn = _FakeConn(rows={"AAA": {"fvg": [{"date": "2025-12-18", "high": 130.0, "low": 125.0}]}})
    store = PostgresZoneStore(_FakePool(conn))

    await store.upsert_zone(ZoneKind.FAIR_VALUE_GAP, Zone("AAA", "2025-12-18", 131.0, 126.0))

    _, (_, encoded) = conn.queries[-1]
    assert json.loads(encoded) == [{"date": "2025-12-18", "high": 131.0, "low": 126.0}]


@pytest.mark.asyncio
async def test_update_and_delete_raise_when_row_or_date_missing():
    conn = _FakeConn(rows={"AAA": {"order_blocks": json.dumps([{"date": "2025-12-20", "high": 100.0, "low": 90.0}])}})
    store = PostgresZoneStore(_FakePool(conn))

    with pytest.raises(ZoneNotFoundError):
        await store.update_zone(ZoneKind.ORDER_BLOCK, Zone("BBB", "2025-12-20", 1.0, 0.5))
    with pytest.raises(ZoneNotFoundError):
        await store.delete_zone(ZoneKind.ORDER_BLOCK, "AAA", "2025-12-01")

    # neither path creates a row or writes
    assert "INSERT" not in _statement_kinds(conn)
    assert "UPDATE" not in _statement_kinds(conn)


@pytest.mark.asyncio
async def test_update_rewrites_levels_for_matching_date():
    conn = _FakeConn(rows={"AAA": {"order_blocks": json.dumps([{"date": "2025-12-20", "high": 100.0, "low": 90.0}])}})
    store = PostgresZoneStore(_FakePool(conn))

    await store.update_zone(ZoneKind.ORDER_BLOCK, Zone("AAA", "2025-12-20", 101.0, 91.0))

    assert _statement_kinds(conn) == ["SELECT", "UPDATE"]
    _, (_, encoded) = conn.queries[-1]
    assert json.loads(encoded) == [{"date": "2025-12-20", "high": 101.0, "low": 91.0}]


@pytest.mark.asyncio
async def test_find_decodes_jsonb_text_and_skips_empty_lookup():
    conn = _FakeConn(
        fetch_rows=[
            {
                "symbol": "AAA",
                "order_blocks": json.dumps([{"date": "2025-12-20", "high": "100", "low": 90}]),
                "fvg": None,
            }
        ]
    )
    store = PostgresZoneStore(_FakePool(conn))

    assert await store.find_zones_for_symbols([]) == {}
    assert conn.queries == []

    records = await store.find_zones_for_symbols(["AAA", "BBB"])

    assert list(records) == ["AAA"]
    assert records["AAA"].order_blocks == [Zone("AAA", "2025-12-20", 100.0, 90.0)]
    assert records["AAA"].fvg == []
    query, params = conn.queries[0]
    assert "ANY($1::text[])" in query
    assert params == (["AAA", "BBB"],)


@pytest.mark.asyncio
async def test_reference_repositories_map_rows():
    margins = PostgresMarginRepository(
        _FakePool(_FakeConn(fetch_rows=[{"symbol": "AAA", "name": "Alpha", "margin": "2.5"}]))
    )
    strategies = PostgresStrategyRepository(
        _FakePool(_FakeConn(fetch_rows=[{"name": "bullish close 200", "scan_clause": "( {cash} )", "active": 0}]))
    )

    [entry] = await margins.find_all()
    [strategy] = await strategies.find_all()

    assert (entry.symbol, entry.name, entry.margin_multiple) == ("AAA", "Alpha", 2.5)
    assert (strategy.name, strategy.scan_clause, strategy.active) == ("bullish close 200", "( {cash} )", False)
