"""API routers."""

from . import history, price_action, reference, scanner

__all__ = ["history", "price_action", "reference", "scanner"]
