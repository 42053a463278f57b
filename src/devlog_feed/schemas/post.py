# src/devlog_feed/schemas/post.py
"""Post-related Pydantic schemas for feed and scoring responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from devlog_feed.models.post import Confidence, PostType


class PostSummary(BaseModel):
    """Feed entry returned to the feed protocol layer."""

    uri: str
    text: str
    timestamp: int
    post_type: PostType
    confidence: Confidence
    priority: float
    author_did: str | None = None

    model_config = ConfigDict(from_attributes=True)


class FeedResponse(BaseModel):
    """One page of the ranked feed."""

    items: list[PostSummary]
    cursor: str | None = Field(None, description="Opaque cursor for the next page.")


class RawPostInput(BaseModel):
    """Single-post input for diagnostic scoring; nothing is persisted."""

    text: str = ""
    timestamp: int | None = Field(None, description="Creation time; defaults to now")
    author_did: str | None = None
    link_count: int = Field(0, ge=0)
    promo_link_count: int = Field(0, ge=0)
    is_first_person: bool = False
    keyword_score: float = 0.0
    hashtag_score: float = 0.0
    semantic_score: float = 0.0
    classification_score: float = 0.0
    velocity_score: float = Field(0.0, ge=0.0)
    author_flagged: bool = False


class ComponentBreakdown(BaseModel):
    """Clamped component signals and intermediate priority factors."""

    keyword_score: float
    hashtag_score: float
    semantic_score: float
    classification_score: float
    recency_decay: float
    velocity_multiplier: float
    promo_penalty_applied: bool
    spam_suppressed: bool


class ScoreResponse(BaseModel):
    """Result of scoring a single post."""

    final_score: float
    priority: float
    confidence: Confidence
    post_type: PostType
    components: ComponentBreakdown


class SpammerCreate(BaseModel):
    """Manual spam flag request."""

    did: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=500)


class SpammerResponse(BaseModel):
    """Spam flag record."""

    did: str
    reason: str
    repost_frequency: float | None
    flagged_at: int
    auto_detected: bool

    model_config = ConfigDict(from_attributes=True)
