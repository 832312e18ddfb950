"""Mitigation engine and zone automation.

The engine is a stateless orchestrator over borrowed caches and stores:

    strategy cache -> scanner (+ margin join) -> zone store -> price history -> rule

``evaluate`` answers "which recorded zones were mitigated by the latest
candle" and writes the answer into the results cache read by the cheap
``cached`` path.  ``automate`` is the background maintenance loop that records
new zones from scanner hits.  Both are best-effort per symbol: a symbol whose
history cannot be fetched is skipped and recorded as an ``ItemOutcome`` rather
than failing the batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Dict, List, Optional, Sequence, Set, TypeVar

from ..cache import TTLCache
from ..config import AUTOMATION_MIN_CANDLES, Settings, get_settings
from ..lib.dates import parse_display_date
from ..logging_setup import RUN_CONTEXT, bind_run, new_run_id
from ..models import (
    AutomationReport,
    Candle,
    ItemOutcome,
    JoinedCandidate,
    MitigationReport,
    MitigationResult,
    Zone,
    ZoneKind,
)
from ..providers.price_history import PriceHistoryError, PriceHistoryProvider
from ..providers.scanner_client import ScannerError
from ..stores.zones import ZoneStore
from ..telemetry import record_automation_outcome, record_mitigations
from .scan_service import ScanService
from .strategy_service import StrategyService

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_mitigated(today: Candle, zone: Zone) -> bool:
    """Price dipped into (or under) the zone intraday yet closed above its top."""

    # both low comparisons are kept: stored zones are not guaranteed to have low <= high
    return (today.low < zone.high or today.low < zone.low) and today.close > zone.high


def zone_from_history(kind: ZoneKind, symbol: str, history: Sequence[Candle]) -> Zone:
    """Derive a new zone from the three most recent candles (index 0 = latest).

    Order blocks take the candle two sessions back.  Fair value gaps span the
    three-candle window: top from two sessions back, bottom from the latest
    candle, dated on the middle candle.

    Raises ``ValueError`` when history is too short or the date does not parse.
    """

    if len(history) < AUTOMATION_MIN_CANDLES:
        raise ValueError(f"need {AUTOMATION_MIN_CANDLES} candles, got {len(history)}")
    if kind is ZoneKind.ORDER_BLOCK:
        source = history[2]
        return Zone(symbol=symbol, date=parse_display_date(source.timestamp), high=source.high, low=source.low)
    return Zone(
        symbol=symbol,
        date=parse_display_date(history[1].timestamp),
        high=history[2].high,
        low=history[0].low,
    )


class MitigationEngine:
    def __init__(
        self,
        *,
        strategies: StrategyService,
        scans: ScanService,
        zones: ZoneStore,
        history: PriceHistoryProvider,
        results_cache: TTLCache[List[MitigationResult]],
        settings: Settings | None = None,
    ) -> None:
        self._strategies = strategies
        self._scans = scans
        self._zones = zones
        self._history = history
        self._results = results_cache
        self._settings = settings or get_settings()
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    async def _bounded(call: Awaitable[T], timeout: float | None) -> T:
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=timeout)

    async def _latest_history(self, symbol: str, timeout: float | None) -> tuple[List[Candle], Optional[str]]:
        try:
            history = await self._bounded(self._history.fetch_history(symbol), timeout)
        except (PriceHistoryError, asyncio.TimeoutError) as exc:
            return [], str(exc) or type(exc).__name__
        except Exception as exc:  # noqa: BLE001 - recorded as a failed outcome
            logger.warning("price history provider raised", extra={"symbol": symbol, "error": repr(exc)})
            return [], f"{type(exc).__name__}: {exc}"
        return list(history or []), None

    def strategy_name_for(self, kind: ZoneKind) -> str:
        if kind is ZoneKind.ORDER_BLOCK:
            return self._settings.ob_strategy_name
        return self._settings.fvg_strategy_name

    # ------------------------------------------------------------------ #
    # Mitigation
    # ------------------------------------------------------------------ #

    async def evaluate(
        self,
        strategy_name: str,
        cache_key: str,
        kind: ZoneKind,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> MitigationReport:
        """Scan ``strategy_name`` candidates for zones mitigated by today's candle.

        At most one result per symbol is reported: the newest zone that
        satisfies the rule.  Results are cached under ``cache_key`` when any
        were found and the run was not cancelled.
        """

        with bind_run(kind=kind.value):
            return await self._evaluate(strategy_name, cache_key, kind, cancel, timeout)

    async def _evaluate(
        self,
        strategy_name: str,
        cache_key: str,
        kind: ZoneKind,
        cancel: asyncio.Event | None,
        timeout: float | None,
    ) -> MitigationReport:
        strategy = self._strategies.require(strategy_name)
        if cancel is not None and cancel.is_set():
            return MitigationReport(kind=kind, cancelled=True)
        joined = await self._bounded(self._scans.fetch_with_margin(strategy), timeout)

        by_symbol: Dict[str, JoinedCandidate] = {}
        ids: List[str] = []
        for candidate in joined:
            if candidate.symbol in by_symbol:
                continue
            by_symbol[candidate.symbol] = candidate
            ids.append(candidate.symbol)

        records = await self._bounded(self._zones.find_zones_for_symbols(ids), timeout)
        report = MitigationReport(kind=kind)

        for symbol in ids:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                logger.info("mitigation scan cancelled", extra={"kind": kind.value, "found": len(report.results)})
                break
            record = records.get(symbol)
            if record is None:
                continue

            history, error = await self._latest_history(symbol, timeout)
            if error is not None:
                report.outcomes.append(ItemOutcome(symbol, "failed", error))
                continue
            if not history:
                report.outcomes.append(ItemOutcome(symbol, "skipped", "no price history"))
                continue

            today = history[0]
            hit = next((zone for zone in record.zones(kind) if is_mitigated(today, zone)), None)
            if hit is None:
                report.outcomes.append(ItemOutcome(symbol, "ok"))
                continue
            report.results.append(MitigationResult.from_candidate(by_symbol[symbol], hit.date))
            report.outcomes.append(ItemOutcome(symbol, "ok", f"mitigated {hit.date}"))

        if report.results and not report.cancelled:
            self._results.set(cache_key, list(report.results), ttl_s=self._settings.mitigation_cache_ttl)
        record_mitigations(kind.value, len(report.results))
        return report

    async def evaluate_mitigation(
        self,
        strategy_name: str,
        cache_key: str,
        is_order_block: bool,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> List[MitigationResult]:
        kind = ZoneKind.ORDER_BLOCK if is_order_block else ZoneKind.FAIR_VALUE_GAP
        report = await self.evaluate(strategy_name, cache_key, kind, cancel=cancel, timeout=timeout)
        return report.results

    async def check(self, kind: ZoneKind, *, cancel: asyncio.Event | None = None) -> List[MitigationResult]:
        return await self.evaluate_mitigation(
            self._settings.mitigation_strategy_name,
            kind.cache_key,
            kind is ZoneKind.ORDER_BLOCK,
            cancel=cancel,
        )

    def cached(self, kind: ZoneKind) -> Optional[List[MitigationResult]]:
        cached = self._results.get(kind.cache_key)
        return list(cached) if cached is not None else None

    async def cached_or_check(self, kind: ZoneKind) -> List[MitigationResult]:
        cached = self.cached(kind)
        if cached is not None:
            return cached
        return await self.check(kind)

    # ------------------------------------------------------------------ #
    # Automation
    # ------------------------------------------------------------------ #

    async def automate(
        self,
        kind: ZoneKind,
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> AutomationReport:
        """Record a new zone for every candidate of the kind's strategy.

        Only a missing strategy raises; scanner and per-symbol failures are
        captured in the returned report.
        """

        with bind_run(kind=kind.value):
            return await self._automate(kind, cancel, timeout)

    async def _automate(self, kind: ZoneKind, cancel: asyncio.Event | None, timeout: float | None) -> AutomationReport:
        strategy = self._strategies.require(self.strategy_name_for(kind))
        report = AutomationReport(kind=kind, strategy=strategy.name)

        try:
            candidates = await self._bounded(self._scans.fetch_with_margin(strategy), timeout)
        except (ScannerError, asyncio.TimeoutError) as exc:
            report.error = str(exc) or type(exc).__name__
            logger.warning("zone automation scan failed", extra={"kind": kind.value, "error": report.error})
            return report

        for candidate in candidates:
            if cancel is not None and cancel.is_set():
                logger.info("zone automation cancelled", extra={"kind": kind.value, "saved": report.saved})
                break
            outcome = await self._automate_symbol(kind, candidate.symbol, timeout)
            report.outcomes.append(outcome)
            record_automation_outcome(kind.value, outcome.status)

        logger.info(
            "zone automation completed",
            extra={"kind": kind.value, "saved": report.saved, "candidates": len(candidates)},
        )
        return report

    async def _automate_symbol(self, kind: ZoneKind, symbol: str, timeout: float | None) -> ItemOutcome:
        history, error = await self._latest_history(symbol, timeout)
        if error is not None:
            return ItemOutcome(symbol, "failed", error)
        if len(history) < AUTOMATION_MIN_CANDLES:
            return ItemOutcome(symbol, "skipped", f"only {len(history)} candle(s)")
        try:
            zone = zone_from_history(kind, symbol, history)
        except ValueError as exc:
            return ItemOutcome(symbol, "skipped", f"unparseable date: {exc}")
        try:
            await self._bounded(self._zones.upsert_zone(kind, zone), timeout)
        except Exception as exc:  # noqa: BLE001 - recorded as a failed outcome
            logger.warning("zone save failed", extra={"symbol": symbol, "kind": kind.value, "error": str(exc)})
            return ItemOutcome(symbol, "failed", str(exc) or type(exc).__name__)
        return ItemOutcome(symbol, "ok", zone.date)

    async def automate_all(self) -> Dict[ZoneKind, AutomationReport]:
        """Run automation for both kinds independently."""

        reports: Dict[ZoneKind, AutomationReport] = {}
        with bind_run(run_id=RUN_CONTEXT.get().get("run_id") or new_run_id()):
            for kind in ZoneKind:
                try:
                    reports[kind] = await self.automate(kind)
                except LookupError as exc:
                    logger.error("zone automation skipped", extra={"kind": kind.value, "error": str(exc)})
        return reports

    def schedule_automation(self) -> asyncio.Task:
        """Start ``automate_all`` detached from the caller.

        The task is named ``zone-automation-<run id>`` and every record it logs
        carries that run id.
        """

        run_id = new_run_id()
        with bind_run(run_id=run_id):
            task = asyncio.create_task(self.automate_all(), name=f"zone-automation-{run_id}")
        logger.info("zone automation scheduled", extra={"run_id": run_id})
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def shutdown(self) -> None:
        for task in list(self._background):
            task.cancel()
        for task in list(self._background):
            try:
                await task
            except asyncio.CancelledError:
                pass


__all__ = ["MitigationEngine", "is_mitigated", "zone_from_history"]
