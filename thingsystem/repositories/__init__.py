"""Data access repositories."""

from .base import BaseRepository
from .thing_repository import ThingRepository

__all__ = [
    "BaseRepository",
    "ThingRepository",
]
