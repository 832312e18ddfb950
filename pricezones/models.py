"""Domain records shared by the scanner, zone store and mitigation engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Literal, Sequence, Tuple

from .config import FVG_CACHE_KEY, OB_CACHE_KEY


class ZoneKind(str, Enum):
    """The two zone collections recorded per symbol."""

    ORDER_BLOCK = "ob"
    FAIR_VALUE_GAP = "fvg"

    @property
    def field_name(self) -> str:
        return "order_blocks" if self is ZoneKind.ORDER_BLOCK else "fvg"

    @property
    def cache_key(self) -> str:
        return OB_CACHE_KEY if self is ZoneKind.ORDER_BLOCK else FVG_CACHE_KEY


@dataclass(frozen=True, slots=True)
class Zone:
    """A recorded price zone; identity is (symbol, date)."""

    symbol: str
    date: str
    high: float
    low: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "high": self.high, "low": self.low}


@dataclass(slots=True)
class StockZones:
    """All zones recorded for one symbol, each collection newest date first."""

    symbol: str
    order_blocks: List[Zone] = field(default_factory=list)
    fvg: List[Zone] = field(default_factory=list)

    def zones(self, kind: ZoneKind) -> List[Zone]:
        return self.order_blocks if kind is ZoneKind.ORDER_BLOCK else self.fvg

    def with_zones(self, kind: ZoneKind, zones: List[Zone]) -> "StockZones":
        return replace(self, **{kind.field_name: list(zones)})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "orderBlocks": [zone.to_dict() for zone in self.order_blocks],
            "fvg": [zone.to_dict() for zone in self.fvg],
        }


def merge_zone(zones: Sequence[Zone], zone: Zone) -> List[Zone]:
    """Drop any zone sharing ``zone.date`` and insert ``zone`` keeping dates descending."""

    kept = [existing for existing in zones if existing.date != zone.date]
    # ISO dates compare lexically
    index = next((i for i, existing in enumerate(kept) if existing.date < zone.date), len(kept))
    kept.insert(index, zone)
    return kept


def remove_zone(zones: Sequence[Zone], date: str) -> Tuple[List[Zone], bool]:
    kept = [existing for existing in zones if existing.date != date]
    return kept, len(kept) != len(zones)


def replace_zone_levels(zones: Sequence[Zone], date: str, high: float, low: float) -> Tuple[List[Zone], bool]:
    updated: List[Zone] = []
    matched = False
    for existing in zones:
        if existing.date == date:
            existing = replace(existing, high=high, low=low)
            matched = True
        updated.append(existing)
    return updated, matched


@dataclass(frozen=True, slots=True)
class Strategy:
    """A named scanner query definition."""

    name: str
    scan_clause: str
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "scanClause": self.scan_clause, "active": self.active}


@dataclass(frozen=True, slots=True)
class ScanCandidate:
    symbol: str
    display_name: str
    last_close: float

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "name": self.display_name, "close": self.last_close}


@dataclass(frozen=True, slots=True)
class MarginEntry:
    symbol: str
    name: str
    margin_multiple: float

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "name": self.name, "margin": self.margin_multiple}


@dataclass(frozen=True, slots=True)
class JoinedCandidate:
    symbol: str
    name: str
    margin_multiple: float
    last_close: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "margin": self.margin_multiple,
            "close": self.last_close,
        }


@dataclass(frozen=True, slots=True)
class Candle:
    """One trading day; ``timestamp`` is the exchange display date (``DD-Mon-YYYY``)."""

    symbol: str
    open: float
    high: float
    low: float
    close: float
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class MitigationResult:
    symbol: str
    name: str
    margin_multiple: float
    last_close: float
    zone_date: str

    @classmethod
    def from_candidate(cls, candidate: JoinedCandidate, zone_date: str) -> "MitigationResult":
        return cls(
            symbol=candidate.symbol,
            name=candidate.name,
            margin_multiple=candidate.margin_multiple,
            last_close=candidate.last_close,
            zone_date=zone_date,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "margin": self.margin_multiple,
            "close": self.last_close,
            "date": self.zone_date,
        }


OutcomeStatus = Literal["ok", "skipped", "failed"]


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    """What happened to one symbol inside a best-effort batch."""

    symbol: str
    status: OutcomeStatus
    reason: str | None = None


@dataclass(slots=True)
class AutomationReport:
    kind: ZoneKind
    strategy: str
    outcomes: List[ItemOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def saved(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "ok")

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["saved"] = self.saved
        return payload


@dataclass(slots=True)
class MitigationReport:
    kind: ZoneKind
    results: List[MitigationResult] = field(default_factory=list)
    outcomes: List[ItemOutcome] = field(default_factory=list)
    cancelled: bool = False


__all__ = [
    "AutomationReport",
    "Candle",
    "ItemOutcome",
    "JoinedCandidate",
    "MarginEntry",
    "MitigationReport",
    "MitigationResult",
    "ScanCandidate",
    "StockZones",
    "Strategy",
    "Zone",
    "ZoneKind",
    "merge_zone",
    "remove_zone",
    "replace_zone_levels",
]
