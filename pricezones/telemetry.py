"""Prometheus metrics helpers for the price-zone backend."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


SCANNER_REQUESTS = Counter(
    "scanner_requests_total",
    "Scanner screening requests broken out by final outcome.",
    labelnames=("outcome",),
)

SCANNER_TOKEN_REFRESH = Counter(
    "scanner_token_refresh_total",
    "Anti-forgery token refresh attempts against the scanner homepage.",
    labelnames=("result",),
)

PROVIDER_LATENCY_MS = Histogram(
    "provider_latency_ms",
    "Latency of upstream scanner/price-history requests in milliseconds.",
    labelnames=("provider", "operation"),
    buckets=(10, 25, 50, 100, 200, 400, 800, 1600, 3200, 6400),
)

MITIGATIONS_FOUND = Counter(
    "mitigations_found_total",
    "Number of mitigated zones reported by the mitigation engine.",
    labelnames=("kind",),
)

ZONE_AUTOMATION = Counter(
    "zone_automation_total",
    "Per-symbol outcomes of the zone automation loop.",
    labelnames=("kind", "status"),
)


def record_scanner_request(outcome: str) -> None:
    SCANNER_REQUESTS.labels(outcome=outcome or "unknown").inc()


def record_token_refresh(result: str) -> None:
    SCANNER_TOKEN_REFRESH.labels(result=result or "unknown").inc()


def record_provider_latency(provider: str, operation: str, duration_ms: float) -> None:
    """Record latency for upstream provider interactions."""

    PROVIDER_LATENCY_MS.labels(provider or "unknown", operation or "unknown").observe(max(0.0, float(duration_ms)))


def record_mitigations(kind: str, count: int) -> None:
    if count > 0:
        MITIGATIONS_FOUND.labels(kind=kind or "unknown").inc(count)


def record_automation_outcome(kind: str, status: str) -> None:
    ZONE_AUTOMATION.labels(kind=kind or "unknown", status=status or "unknown").inc()


def prometheus_response() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = [
    "MITIGATIONS_FOUND",
    "PROVIDER_LATENCY_MS",
    "SCANNER_REQUESTS",
    "SCANNER_TOKEN_REFRESH",
    "ZONE_AUTOMATION",
    "prometheus_response",
    "record_automation_outcome",
    "record_mitigations",
    "record_provider_latency",
    "record_scanner_request",
    "record_token_refresh",
]
