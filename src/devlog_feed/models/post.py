# src/devlog_feed/models/post.py
"""SQLAlchemy models for posts and their derived ranking fields."""

from enum import Enum

from sqlalchemy import BigInteger, Boolean, Float, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from devlog_feed.db.session import Base


class PostType(str, Enum):
    """Content category assigned by the classifier."""

    DEVLOG = "Devlog"
    PROMOTIONAL = "Promotional"
    OTHER = "Other"


class Confidence(str, Enum):
    """Agreement level among the four component signals."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Post(Base):
    """One uniquely identified content item.

    Everything except the derived ranking fields is written once at ingestion
    and never changes; ``author_did`` may be filled in later by author
    resolution.
    """

    __tablename__ = "posts"
    __table_args__ = (
        Index("idx_posts_priority", "priority"),
        Index("idx_posts_timestamp", "timestamp"),
        Index("idx_posts_author_did", "author_did"),
    )

    uri: Mapped[str] = mapped_column(Text, primary_key=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    # Creation time, epoch seconds.
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    author_did: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Media/link features derived at ingestion.
    has_media: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    image_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_alt_text: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    link_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    promo_link_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_first_person: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Component signals produced by external extractors, clamped to [0, 1].
    keyword_score: Mapped[float] = mapped_column(Float, nullable=False)
    hashtag_score: Mapped[float] = mapped_column(Float, nullable=False)
    semantic_score: Mapped[float] = mapped_column(Float, nullable=False)
    classification_score: Mapped[float] = mapped_column(Float, nullable=False)

    # Derived fields, owned by the scoring service.
    final_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    priority: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence: Mapped[Confidence] = mapped_column(
        SAEnum(Confidence, native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
        default=Confidence.LOW,
    )
    post_type: Mapped[PostType] = mapped_column(
        SAEnum(PostType, native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
        default=PostType.OTHER,
    )
