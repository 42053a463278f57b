# src/devlog_feed/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .feed import router as feed_router
from .scoring import router as scoring_router
from .spammers import router as spammers_router

__all__ = [
    "feed_router",
    "scoring_router",
    "spammers_router",
]
