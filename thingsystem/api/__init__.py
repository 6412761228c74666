"""API routes."""

from .things import router as things_router, get_store

__all__ = [
    "things_router",
    "get_store",
]
