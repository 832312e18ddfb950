from __future__ import annotations

import pytest

from pricezones.cache import TTLCache
from pricezones.config import Settings
from pricezones.models import Strategy, Zone, ZoneKind
from pricezones.providers.scanner_client import ScannerStatusError
from pricezones.services.mitigation import MitigationEngine, zone_from_history
from pricezones.services.strategy_service import StrategyNotFoundError, StrategyService
from pricezones.stores.reference import InMemoryStrategyRepository
from pricezones.stores.zones import InMemoryZoneStore

from _helpers import FakeHistory, FakeScans, candle, joined

HISTORY = [
    candle("AAA", "24-Dec-2025", high=110.0, low=100.0, close=108.0),
    candle("AAA", "23-Dec-2025", high=108.0, low=98.0, close=104.0),
    candle("AAA", "22-Dec-2025", high=105.0, low=95.0, close=97.0),
]

ALL_STRATEGIES = [
    Strategy(name="Bullish OB 1D", scan_clause="ob-clause"),
    Strategy(name="Fair Value Gap", scan_clause="fvg-clause"),
]


async def _engine(*, history, scans, zones=None, strategies=ALL_STRATEGIES):
    service = StrategyService(InMemoryStrategyRepository(strategies))
    await service.reload_all()
    zones = zones if zones is not None else InMemoryZoneStore()
    engine = MitigationEngine(
        strategies=service,
        scans=scans,
        zones=zones,
        history=history,
        results_cache=TTLCache(ttl_s=3600.0),
        settings=Settings(),
    )
    return engine, zones


def test_order_block_comes_from_the_candle_two_sessions_back():
    zone = zone_from_history(ZoneKind.ORDER_BLOCK, "AAA", HISTORY)
    assert zone == Zone(symbol="AAA", date="2025-12-22", high=105.0, low=95.0)


def test_fair_value_gap_spans_the_three_candle_window():
    zone = zone_from_history(ZoneKind.FAIR_VALUE_GAP, "AAA", HISTORY)
    assert zone == Zone(symbol="AAA", date="2025-12-23", high=105.0, low=100.0)


def test_short_history_is_rejected():
    with pytest.raises(ValueError):
        zone_from_history(ZoneKind.ORDER_BLOCK, "AAA", HISTORY[:2])


@pytest.mark.asyncio
async def test_automate_saves_zone_per_candidate():
    history = FakeHistory({"AAA": HISTORY, "BBB": HISTORY[:2]}, failing=["CCC"])
    engine, zones = await _engine(history=history, scans=FakeScans([joined("AAA"), joined("BBB"), joined("CCC")]))

    report = await engine.automate(ZoneKind.ORDER_BLOCK)

    assert report.strategy == "BULLISH OB 1D"
    assert report.saved == 1
    assert [(o.symbol, o.status) for o in report.outcomes] == [("AAA", "ok"), ("BBB", "skipped"), ("CCC", "failed")]
    record = await zones.get("AAA")
    assert [z.date for z in record.order_blocks] == ["2025-12-22"]
    assert record.fvg == []


@pytest.mark.asyncio
async def test_rerunning_automation_replaces_same_date_zone():
    history = FakeHistory({"AAA": HISTORY})
    engine, zones = await _engine(history=history, scans=FakeScans([joined("AAA")]))

    await engine.automate(ZoneKind.FAIR_VALUE_GAP)
    await engine.automate(ZoneKind.FAIR_VALUE_GAP)

    record = await zones.get("AAA")
    assert len(record.fvg) == 1


@pytest.mark.asyncio
async def test_unparseable_candle_date_is_skipped():
    bad = [candle("AAA", "2025/12/24", high=1.0, low=1.0, close=1.0)] * 3
    engine, zones = await _engine(history=FakeHistory({"AAA": bad}), scans=FakeScans([joined("AAA")]))

    report = await engine.automate(ZoneKind.FAIR_VALUE_GAP)

    assert report.outcomes[0].status == "skipped"
    assert await zones.get("AAA") is None


@pytest.mark.asyncio
async def test_failed_write_does_not_stop_batch():
    class FlakyStore(InMemoryZoneStore):
        async def upsert_zone(self, kind, zone):
            if zone.symbol == "AAA":
                raise RuntimeError("write conflict")
            await super().upsert_zone(kind, zone)

    history = FakeHistory({"AAA": HISTORY, "BBB": HISTORY})
    engine, zones = await _engine(history=history, scans=FakeScans([joined("AAA"), joined("BBB")]), zones=FlakyStore())

    report = await engine.automate(ZoneKind.ORDER_BLOCK)

    assert [(o.symbol, o.status) for o in report.outcomes] == [("AAA", "failed"), ("BBB", "ok")]
    assert await zones.get("BBB") is not None


@pytest.mark.asyncio
async def test_scanner_failure_is_reported_not_raised():
    engine, _ = await _engine(history=FakeHistory(), scans=FakeScans(error=ScannerStatusError(503)))

    report = await engine.automate(ZoneKind.ORDER_BLOCK)

    assert report.error is not None
    assert report.outcomes == []


@pytest.mark.asyncio
async def test_missing_strategy_for_one_kind_does_not_block_the_other():
    history = FakeHistory({"AAA": HISTORY})
    engine, zones = await _engine(
        history=history,
        scans=FakeScans([joined("AAA")]),
        strategies=[Strategy(name="FAIR VALUE GAP", scan_clause="fvg-clause")],
    )

    with pytest.raises(StrategyNotFoundError):
        await engine.automate(ZoneKind.ORDER_BLOCK)

    reports = await engine.automate_all()

    assert list(reports) == [ZoneKind.FAIR_VALUE_GAP]
    record = await zones.get("AAA")
    assert record.order_blocks == []
    assert [z.date for z in record.fvg] == ["2025-12-23"]


@pytest.mark.asyncio
async def test_schedule_automation_runs_in_background():
    history = FakeHistory({"AAA": HISTORY})
    engine, zones = await _engine(history=history, scans=FakeScans([joined("AAA")]))

    task = engine.schedule_automation()
    reports = await task

    assert set(reports) == {ZoneKind.ORDER_BLOCK, ZoneKind.FAIR_VALUE_GAP}
    record = await zones.get("AAA")
    assert record.order_blocks and record.fvg
