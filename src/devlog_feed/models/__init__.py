# src/devlog_feed/models/__init__.py
"""SQLAlchemy models for the Devlog Feed curation engine."""

from .engagement import EngagementCache, Like, Reply, Repost, UserInteraction
from .post import Confidence, Post, PostType
from .spam import Spammer

__all__ = [
    "Confidence", "Post", "PostType",
    "EngagementCache", "Like", "Reply", "Repost", "UserInteraction",
    "Spammer",
]
