"""Pydantic schemas for request/response validation."""

from .thing import (
    Components,
    ComponentsUpdate,
    HistoryEntry,
    ThingCreate,
    ThingUpdate,
    ChildAttach,
    ThingSummary,
    ThingResponse,
)

__all__ = [
    "Components",
    "ComponentsUpdate",
    "HistoryEntry",
    "ThingCreate",
    "ThingUpdate",
    "ChildAttach",
    "ThingSummary",
    "ThingResponse",
]
