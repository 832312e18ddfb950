"""Structured JSON logging with request and run correlation.

Records emitted while serving an HTTP request carry the request id bound by
the request-id middleware.  Background work (zone automation, mitigation
scans) has no request, so it binds a run context instead: a run id plus the
zone kind being processed.  Both are read from ``ContextVar``s, which asyncio
copies into every task, so a run started with ``schedule_automation`` keeps
its context across awaits without threading it through call signatures.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping


_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

REQUEST_ID_CONTEXT: ContextVar[str | None] = ContextVar("request_id", default=None)
RUN_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("run_context", default={})

_CONTEXT_KEYS = {"request_id", "run"}


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def bind_run(**fields: str) -> Iterator[Mapping[str, str]]:
    """Merge ``fields`` into the run context for the enclosed block."""

    merged = {**RUN_CONTEXT.get(), **{key: str(value) for key, value in fields.items() if value is not None}}
    token = RUN_CONTEXT.set(merged)
    try:
        yield merged
    finally:
        RUN_CONTEXT.reset(token)


class ContextFilter(logging.Filter):
    """Copy the request id and run context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = REQUEST_ID_CONTEXT.get()
        record.run = dict(RUN_CONTEXT.get())
        return True


class JsonFormatter(logging.Formatter):
    """Render log records as structured JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        run = getattr(record, "run", None)
        if run:
            payload["run"] = run

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in _CONTEXT_KEYS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str, separators=(",", ":"))


_CONFIGURED = False


def setup_logging(level: int | str = logging.INFO) -> None:
    """Install the JSON handler on the root logger once."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # httpx logs every scanner and history request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.captureWarnings(True)
    _CONFIGURED = True


__all__ = [
    "ContextFilter",
    "JsonFormatter",
    "REQUEST_ID_CONTEXT",
    "RUN_CONTEXT",
    "bind_run",
    "new_run_id",
    "setup_logging",
]
