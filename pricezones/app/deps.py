"""Request dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request

from .container import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialised")
    return services


__all__ = ["get_services"]
