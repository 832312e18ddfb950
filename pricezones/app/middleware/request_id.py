"""Middleware that scopes a request ID to each request's log records."""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ...logging_setup import REQUEST_ID_CONTEXT

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Accept or generate ``X-Request-ID`` and echo it on the response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or uuid.uuid4().hex
        token = REQUEST_ID_CONTEXT.set(request_id)
        try:
            response = await call_next(request)
        finally:
            REQUEST_ID_CONTEXT.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = ["REQUEST_ID_HEADER", "RequestIdMiddleware"]
