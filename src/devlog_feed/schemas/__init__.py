"""Pydantic schemas for events and the diagnostics API."""

from .events import EngagementEvent, EngagementKind, PostCreated, PostDeleted
from .post import FeedResponse, PostSummary, RawPostInput, ScoreResponse, SpammerCreate

__all__ = [
    "EngagementEvent",
    "EngagementKind",
    "PostCreated",
    "PostDeleted",
    "FeedResponse",
    "PostSummary",
    "RawPostInput",
    "ScoreResponse",
    "SpammerCreate",
]
