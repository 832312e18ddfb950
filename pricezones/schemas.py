"""Wire schemas for the scanner payload and the HTTP API."""

from __future__ import annotations

from datetime import date as _date
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ScanCandidate


class ScannerRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nsecode: str
    name: str = ""
    close: float | None = None


class ScannerPayload(BaseModel):
    """Body returned by the scanner's screening endpoint."""

    model_config = ConfigDict(extra="ignore")

    data: List[ScannerRow] = Field(default_factory=list)

    def candidates(self) -> List[ScanCandidate]:
        return [
            ScanCandidate(symbol=row.nsecode, display_name=row.name, last_close=float(row.close or 0.0))
            for row in self.data
        ]


class ZoneRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str
    date: str
    high: float = 0.0
    low: float = 0.0

    @field_validator("symbol")
    @staticmethod
    def _normalise_symbol(value: str) -> str:
        token = value.strip().upper()
        if not token:
            raise ValueError("symbol cannot be empty")
        return token

    @field_validator("date")
    @staticmethod
    def _ensure_iso_date(value: str) -> str:
        token = value.strip()
        try:
            _date.fromisoformat(token)
        except ValueError as exc:
            raise ValueError("date must be YYYY-MM-DD") from exc
        return token


class ApiResponse(BaseModel):
    success: bool
    message: str | None = None
    data: Any = None
    error: str | None = None


__all__ = ["ApiResponse", "ScannerPayload", "ScannerRow", "ZoneRequest"]
