from __future__ import annotations

import asyncio
import json
import logging

import pytest

from pricezones.logging_setup import REQUEST_ID_CONTEXT, RUN_CONTEXT, ContextFilter, JsonFormatter, bind_run
from pricezones.start_server import _resolve_port


def _render(message: str = "zone automation completed", **extra) -> dict:
    record = logging.makeLogRecord({"name": "pricezones.test", "levelname": "INFO", "msg": message, **extra})
    ContextFilter().filter(record)
    return json.loads(JsonFormatter().format(record))


def test_json_lines_carry_run_context_and_extra_fields():
    with bind_run(run_id="abc123"):
        with bind_run(kind="ob"):
            payload = _render(saved=2)
        outer = _render()

    assert payload["message"] == "zone automation completed"
    assert payload["logger"] == "pricezones.test"
    assert payload["run"] == {"run_id": "abc123", "kind": "ob"}
    assert payload["extra"] == {"saved": 2}
    assert payload["ts"].endswith("Z")
    assert outer["run"] == {"run_id": "abc123"}
    assert RUN_CONTEXT.get() == {}


def test_request_id_is_included_and_empty_context_omitted():
    token = REQUEST_ID_CONTEXT.set("req-1")
    try:
        payload = _render("GET /healthz")
    finally:
        REQUEST_ID_CONTEXT.reset(token)

    assert payload["request_id"] == "req-1"
    assert "run" not in payload
    assert "extra" not in payload


@pytest.mark.asyncio
async def test_run_context_follows_spawned_tasks():
    async def current_run():
        await asyncio.sleep(0)
        return dict(RUN_CONTEXT.get())

    with bind_run(run_id="r1"):
        task = asyncio.create_task(current_run())
    assert await task == {"run_id": "r1"}


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 8080), ("", 8080), ("9000", 9000), ("abc", 8080), ("70000", 8080), ("0", 8080)],
)
def test_resolve_port(monkeypatch, raw, expected):
    if raw is None:
        monkeypatch.delenv("PORT", raising=False)
    else:
        monkeypatch.setenv("PORT", raw)
    assert _resolve_port() == expected
