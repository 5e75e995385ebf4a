"""API v1 Route modules."""

from backend.routers.v1 import square

__all__ = ["square"]
