"""
Entrypoint that boots uvicorn with the application's JSON logging.

Hosting providers often pass ``PORT`` without shell expansion, so the port is
read from the environment directly and validated here.  uvicorn's own log
config is disabled so its access and error records go through the same JSON
handler (and request-id filter) as the application.
"""

from __future__ import annotations

import logging
import os

import uvicorn

from .config import get_settings
from .logging_setup import setup_logging


logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080


def _resolve_port(default: int = DEFAULT_PORT) -> int:
    """Return the port uvicorn should bind to, guarding against bad inputs."""
    raw = os.environ.get("PORT")
    if raw is None or raw.strip() == "":
        return default
    try:
        port = int(raw)
    except ValueError:
        logger.warning("invalid PORT; falling back", extra={"raw": raw, "port": default})
        return default
    if not 0 < port < 65536:
        logger.warning("PORT out of range; falling back", extra={"raw": raw, "port": default})
        return default
    return port


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    port = _resolve_port()
    logger.info(
        "starting price zone backend",
        extra={"host": settings.host, "port": port, "persistent": bool(settings.db_url)},
    )
    uvicorn.run("pricezones.server:app", host=settings.host, port=port, log_config=None)


if __name__ == "__main__":
    main()
