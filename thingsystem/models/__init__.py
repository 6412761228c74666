"""Database models."""

from .thing import Thing

__all__ = ["Thing"]
