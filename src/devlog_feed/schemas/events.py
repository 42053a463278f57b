"""Event payloads delivered by the upstream event source.

Delivery is at-least-once and unordered; every handler must tolerate
duplicates and out-of-order arrival.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from devlog_feed.db.time import to_epoch


class EngagementKind(str, Enum):
    """Kinds of engagement tracked by the velocity cache."""

    LIKE = "like"
    REPOST = "repost"
    REPLY = "reply"
    INTERACTION = "interaction"


class _TimestampedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp", mode="before", check_fields=False)
    @classmethod
    def _normalize_timestamp(cls, value: object) -> object:
        if isinstance(value, str) and not value.lstrip("-").isdigit():
            try:
                return to_epoch(datetime.fromisoformat(value.replace("Z", "+00:00")))
            except ValueError:
                return value
        if isinstance(value, datetime | int | float) and not isinstance(value, bool):
            return to_epoch(value)
        return value


class PostCreated(_TimestampedEvent):
    """A new post with its extracted features and component scores."""

    uri: str = Field(..., min_length=1)
    text: str = ""
    timestamp: int = Field(..., description="Creation time, epoch seconds")
    author_did: str | None = None

    has_media: bool = False
    image_count: int = Field(0, ge=0)
    has_alt_text: bool = False
    link_count: int = Field(0, ge=0)
    promo_link_count: int = Field(0, ge=0)
    is_first_person: bool = False

    # Range is enforced by clamping during scoring, not by validation.
    keyword_score: float = 0.0
    hashtag_score: float = 0.0
    semantic_score: float = 0.0
    classification_score: float = 0.0


class EngagementEvent(_TimestampedEvent):
    """A like, repost, reply or generic interaction on a post.

    ``edge_uri`` is the natural key of like/repost/reply records;
    interactions are keyed by ``(actor_did, post_uri, interaction_type)``.
    """

    kind: EngagementKind
    post_uri: str = Field(..., min_length=1)
    actor_did: str = Field(..., min_length=1)
    timestamp: int
    edge_uri: str | None = None
    interaction_type: str | None = None

    @model_validator(mode="after")
    def _check_natural_key(self) -> "EngagementEvent":
        if self.kind is EngagementKind.INTERACTION:
            if not self.interaction_type:
                raise ValueError("interaction events require interaction_type")
        elif not self.edge_uri:
            raise ValueError(f"{self.kind.value} events require edge_uri")
        return self

    @property
    def natural_key(self) -> tuple[str, ...]:
        """Return the key that identifies a re-delivery of this event."""
        if self.kind is EngagementKind.INTERACTION:
            return (self.kind.value, self.actor_did, self.post_uri, self.interaction_type or "")
        return (self.kind.value, self.post_uri, self.edge_uri or "")


class PostDeleted(BaseModel):
    """Removal of a post; edges and cache rows cascade."""

    model_config = ConfigDict(frozen=True)

    uri: str = Field(..., min_length=1)
