"""FastAPI wiring: service container, routers and middleware."""

from .container import Services, build_services

__all__ = ["Services", "build_services"]
