# src/devlog_feed/models/engagement.py
"""Models capturing engagement edges and the per-post engagement cache."""

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from devlog_feed.db.session import Base

INTERACTION_SEEN = "seen"
INTERACTION_REQUEST_LESS = "request_less"
INTERACTION_REQUEST_MORE = "request_more"


class Like(Base):
    """A like on a post; insert-only."""

    __tablename__ = "likes"
    __table_args__ = (Index("idx_likes_post_uri", "post_uri"),)

    post_uri: Mapped[str] = mapped_column(
        Text,
        ForeignKey("posts.uri", ondelete="CASCADE"),
        primary_key=True,
    )
    like_uri: Mapped[str] = mapped_column(Text, primary_key=True)


class Repost(Base):
    """A repost of a post; the reposter feeds spam detection."""

    __tablename__ = "reposts"
    __table_args__ = (
        Index("idx_reposts_reposter_did", "reposter_did", "timestamp"),
    )

    post_uri: Mapped[str] = mapped_column(
        Text,
        ForeignKey("posts.uri", ondelete="CASCADE"),
        primary_key=True,
    )
    repost_uri: Mapped[str] = mapped_column(Text, primary_key=True)
    reposter_did: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Reply(Base):
    """A reply to a post."""

    __tablename__ = "replies"
    __table_args__ = (Index("idx_replies_post_uri", "post_uri"),)

    post_uri: Mapped[str] = mapped_column(
        Text,
        ForeignKey("posts.uri", ondelete="CASCADE"),
        primary_key=True,
    )
    reply_uri: Mapped[str] = mapped_column(Text, primary_key=True)
    author_did: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)


class UserInteraction(Base):
    """Generic engagement record (seen, request_more, request_less, ...)."""

    __tablename__ = "user_interactions"
    __table_args__ = (
        Index("idx_interactions_user_type", "user_did", "interaction_type"),
        Index("idx_interactions_created_at", "created_at"),
    )

    # Composite primary key makes each (user, post, type) triple insert-only.
    user_did: Mapped[str] = mapped_column(Text, primary_key=True)
    post_uri: Mapped[str] = mapped_column(Text, primary_key=True)
    interaction_type: Mapped[str] = mapped_column(Text, primary_key=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class EngagementCache(Base):
    """Materialized engagement counters for a single post.

    A projection of the edge tables, rebuildable at any time; written only by
    the engagement service.
    """

    __tablename__ = "engagement_cache"
    __table_args__ = (Index("idx_engagement_velocity", "velocity_score"),)

    post_uri: Mapped[str] = mapped_column(
        Text,
        ForeignKey("posts.uri", ondelete="CASCADE"),
        primary_key=True,
    )
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repost_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    velocity_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_updated: Mapped[int] = mapped_column(BigInteger, nullable=False)
