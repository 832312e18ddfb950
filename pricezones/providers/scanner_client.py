"""Scanner client holding the anti-forgery session used for screening queries.

The scanner rejects posts whose ``X-XSRF-TOKEN`` no longer matches the
session cookie.  The token lifetime is unknown up front, so the client keeps
the last token it saw, uses it until a request fails (transport error, 419,
or any other non-success status), then refreshes it from the homepage cookie
and retries the query exactly once.

The token is guarded by a read/write lock scoped to the client instance:
requests read it under the shared side, refreshes replace it under the
exclusive side.  No lock is held across the screening request itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List
from urllib.parse import unquote

import httpx
from pydantic import ValidationError

from ..config import SCANNER_PROCESS_PATH, Settings, get_settings
from ..lib.locks import ReadWriteLock
from ..models import ScanCandidate
from ..schemas import ScannerPayload
from ..telemetry import record_provider_latency, record_scanner_request, record_token_refresh

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "XSRF-TOKEN"
SESSION_COOKIES = ("ci_session", "laravel_session", TOKEN_COOKIE)
TOKEN_MISMATCH_STATUS = 419


class ScannerError(RuntimeError):
    """Base error for scanner failures surfaced to callers."""


class ScannerRequestError(ScannerError):
    """Raised when the scanner cannot be reached."""


class TokenNotFoundError(ScannerError):
    """Raised when the homepage response carries no anti-forgery cookie."""


class ScannerStatusError(ScannerError):
    """Raised when the scanner answers with a non-success status after the retry."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"scanner error: status {status_code}")
        self.status_code = status_code
        self.body = body


class ScannerDecodeError(ScannerError):
    """Raised when the scanner body is not the expected JSON shape."""


@dataclass(frozen=True, slots=True)
class ScannerSession:
    """Anti-forgery token plus the cookie header it was issued with."""

    token: str
    cookie: str


class ScannerClient:
    """Authenticated, form-encoded client for the external scanner."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = self._settings.scanner_base_url.rstrip("/")
        self._user_agent = self._settings.scanner_user_agent
        self._timeout = httpx.Timeout(timeout or self._settings.scanner_timeout, connect=5.0)
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._session: ScannerSession | None = None
        self._token_lock = ReadWriteLock()

    @property
    def token(self) -> str | None:
        session = self._session
        return session.token if session else None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            async with self._client_lock:
                if self._client is None or self._client.is_closed:
                    self._client = httpx.AsyncClient(timeout=self._timeout)
                    self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def current_session(self) -> ScannerSession | None:
        async with self._token_lock.read():
            return self._session

    # ------------------------------------------------------------------ #
    # Token lifecycle
    # ------------------------------------------------------------------ #

    async def refresh_token(self, stale: ScannerSession | None = None) -> ScannerSession:
        """Fetch a fresh token from the homepage cookie.

        When another caller already replaced ``stale`` while this one waited
        for the exclusive lock, the newer session is reused instead of
        hitting the homepage again.
        """

        async with self._token_lock.write():
            current = self._session
            if current is not None and current is not stale:
                return current

            client = await self._get_client()
            started = time.perf_counter()
            try:
                response = await client.get(
                    f"{self._base_url}/",
                    headers={"User-Agent": self._user_agent, "Accept": "text/html,application/xhtml+xml"},
                )
            except httpx.HTTPError as exc:
                record_token_refresh("request_error")
                raise ScannerRequestError(f"scanner homepage unreachable: {exc}") from exc
            finally:
                record_provider_latency("scanner", "homepage", (time.perf_counter() - started) * 1000.0)

            raw_token = response.cookies.get(TOKEN_COOKIE)
            if not raw_token:
                record_token_refresh("token_not_found")
                raise TokenNotFoundError(f"{TOKEN_COOKIE} cookie not found in scanner homepage response")

            cookie_parts = [
                f"{name}={response.cookies[name]}" for name in SESSION_COOKIES if response.cookies.get(name)
            ]
            session = ScannerSession(token=unquote(raw_token), cookie="; ".join(cookie_parts))
            self._session = session
            record_token_refresh("ok")
            logger.info("scanner token refreshed", extra={"cookies": len(cookie_parts)})
            return session

    # ------------------------------------------------------------------ #
    # Screening
    # ------------------------------------------------------------------ #

    async def _post_scan(self, session: ScannerSession, scan_clause: str) -> httpx.Response:
        client = await self._get_client()
        headers = {
            "X-XSRF-TOKEN": session.token,
            "User-Agent": self._user_agent,
            "Referer": f"{self._base_url}/screener/",
            "Accept": "application/json",
            "X-Requested-With": "XMLHttpRequest",
        }
        if session.cookie:
            headers["Cookie"] = session.cookie
        started = time.perf_counter()
        try:
            return await client.post(
                f"{self._base_url}{SCANNER_PROCESS_PATH}",
                data={"scan_clause": scan_clause},
                headers=headers,
            )
        finally:
            record_provider_latency("scanner", "process", (time.perf_counter() - started) * 1000.0)

    async def fetch_candidates(self, scan_clause: str) -> List[ScanCandidate]:
        """Run ``scan_clause`` and return the matching candidates in scanner order."""

        session = await self.current_session()
        if session is None:
            session = await self.refresh_token()

        response: httpx.Response | None
        try:
            response = await self._post_scan(session, scan_clause)
        except httpx.HTTPError as exc:
            logger.info("scanner request failed; refreshing token", extra={"error": str(exc)})
            response = None

        if response is None or not response.is_success:
            if response is not None:
                logger.info(
                    "scanner rejected request; refreshing token",
                    extra={"status_code": response.status_code, "token_mismatch": response.status_code == TOKEN_MISMATCH_STATUS},
                )
            session = await self.refresh_token(stale=session)
            try:
                response = await self._post_scan(session, scan_clause)
            except httpx.HTTPError as exc:
                record_scanner_request("request_error")
                raise ScannerRequestError(f"failed to fetch data after retry: {exc}") from exc

        if not response.is_success:
            record_scanner_request("status_error")
            raise ScannerStatusError(response.status_code, response.text[:400])

        try:
            payload = ScannerPayload.model_validate_json(response.content)
        except ValidationError as exc:
            record_scanner_request("decode_error")
            raise ScannerDecodeError(f"failed to parse scanner JSON: {exc.error_count()} error(s)") from exc

        record_scanner_request("ok")
        return payload.candidates()


__all__ = [
    "ScannerClient",
    "ScannerDecodeError",
    "ScannerError",
    "ScannerRequestError",
    "ScannerSession",
    "ScannerStatusError",
    "TokenNotFoundError",
]
