"""initial curation schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create posts, engagement edges, the engagement cache and spam flags."""
    op.create_table(
        "posts",
        sa.Column("uri", sa.Text(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("author_did", sa.Text(), nullable=True),
        sa.Column("has_media", sa.Boolean(), nullable=False),
        sa.Column("image_count", sa.Integer(), nullable=False),
        sa.Column("has_alt_text", sa.Boolean(), nullable=False),
        sa.Column("link_count", sa.Integer(), nullable=False),
        sa.Column("promo_link_count", sa.Integer(), nullable=False),
        sa.Column("is_first_person", sa.Boolean(), nullable=False),
        sa.Column("keyword_score", sa.Float(), nullable=False),
        sa.Column("hashtag_score", sa.Float(), nullable=False),
        sa.Column("semantic_score", sa.Float(), nullable=False),
        sa.Column("classification_score", sa.Float(), nullable=False),
        sa.Column("final_score", sa.Float(), nullable=False),
        sa.Column("priority", sa.Float(), nullable=False),
        sa.Column("confidence", sa.String(length=16), nullable=False),
        sa.Column("post_type", sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint("uri"),
    )
    op.create_index("idx_posts_priority", "posts", ["priority"])
    op.create_index("idx_posts_timestamp", "posts", ["timestamp"])
    op.create_index("idx_posts_author_did", "posts", ["author_did"])

    op.create_table(
        "likes",
        sa.Column("post_uri", sa.Text(), nullable=False),
        sa.Column("like_uri", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["post_uri"], ["posts.uri"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("post_uri", "like_uri"),
    )
    op.create_index("idx_likes_post_uri", "likes", ["post_uri"])

    op.create_table(
        "reposts",
        sa.Column("post_uri", sa.Text(), nullable=False),
        sa.Column("repost_uri", sa.Text(), nullable=False),
        sa.Column("reposter_did", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["post_uri"], ["posts.uri"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("post_uri", "repost_uri"),
    )
    op.create_index("idx_reposts_reposter_did", "reposts", ["reposter_did", "timestamp"])

    op.create_table(
        "replies",
        sa.Column("post_uri", sa.Text(), nullable=False),
        sa.Column("reply_uri", sa.Text(), nullable=False),
        sa.Column("author_did", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["post_uri"], ["posts.uri"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("post_uri", "reply_uri"),
    )
    op.create_index("idx_replies_post_uri", "replies", ["post_uri"])

    op.create_table(
        "user_interactions",
        sa.Column("user_did", sa.Text(), nullable=False),
        sa.Column("post_uri", sa.Text(), nullable=False),
        sa.Column("interaction_type", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("user_did", "post_uri", "interaction_type"),
    )
    op.create_index(
        "idx_interactions_user_type", "user_interactions", ["user_did", "interaction_type"]
    )
    op.create_index("idx_interactions_created_at", "user_interactions", ["created_at"])

    op.create_table(
        "engagement_cache",
        sa.Column("post_uri", sa.Text(), nullable=False),
        sa.Column("reply_count", sa.Integer(), nullable=False),
        sa.Column("repost_count", sa.Integer(), nullable=False),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("velocity_score", sa.Float(), nullable=False),
        sa.Column("last_updated", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["post_uri"], ["posts.uri"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("post_uri"),
    )
    op.create_index("idx_engagement_velocity", "engagement_cache", ["velocity_score"])

    op.create_table(
        "spammers",
        sa.Column("did", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("repost_frequency", sa.Float(), nullable=True),
        sa.Column("flagged_at", sa.BigInteger(), nullable=False),
        sa.Column("auto_detected", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("did"),
    )


def downgrade() -> None:
    """Drop the curation schema."""
    op.drop_table("spammers")
    op.drop_index("idx_engagement_velocity", table_name="engagement_cache")
    op.drop_table("engagement_cache")
    op.drop_index("idx_interactions_created_at", table_name="user_interactions")
    op.drop_index("idx_interactions_user_type", table_name="user_interactions")
    op.drop_table("user_interactions")
    op.drop_index("idx_replies_post_uri", table_name="replies")
    op.drop_table("replies")
    op.drop_index("idx_reposts_reposter_did", table_name="reposts")
    op.drop_table("reposts")
    op.drop_index("idx_likes_post_uri", table_name="likes")
    op.drop_table("likes")
    op.drop_index("idx_posts_author_did", table_name="posts")
    op.drop_index("idx_posts_timestamp", table_name="posts")
    op.drop_index("idx_posts_priority", table_name="posts")
    op.drop_table("posts")
