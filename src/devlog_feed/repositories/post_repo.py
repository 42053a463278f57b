"""Data access helpers for working with posts."""
from __future__ import annotations

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from devlog_feed.models import Post

__all__ = ["PostRepository"]


class PostRepository:
    """Thin wrapper around database access for post entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_by_uri(self, uri: str) -> Post | None:
        """Return a post by URI."""
        return self.session.get(Post, uri)

    def delete(self, uri: str) -> bool:
        """Delete a post; edges and cache rows cascade in the database."""
        result = self.session.execute(delete(Post).where(Post.uri == uri))
        return bool(result.rowcount)

    def suppress_author(self, did: str) -> int:
        """Zero the priority of every post written by ``did``."""
        result = self.session.execute(
            update(Post)
            .where(Post.author_did == did)
            .values(priority=0.0)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def page_by_uri(self, after: str | None, limit: int) -> list[Post]:
        """Return up to ``limit`` posts with URIs greater than ``after``."""
        stmt = select(Post).order_by(Post.uri).limit(limit)
        if after is not None:
            stmt = stmt.where(Post.uri > after)
        return list(self.session.execute(stmt).scalars())

    def delete_older_than(self, cutoff: int) -> int:
        """Delete posts created before ``cutoff``."""
        result = self.session.execute(delete(Post).where(Post.timestamp < cutoff))
        return result.rowcount

    def trim_to(self, max_posts: int) -> int:
        """Delete the oldest posts beyond ``max_posts``."""
        count = self.session.execute(select(func.count()).select_from(Post)).scalar_one()
        excess = count - max_posts
        if excess <= 0:
            return 0
        oldest = (
            select(Post.uri)
            .order_by(Post.timestamp.asc(), Post.uri.asc())
            .limit(excess)
        )
        result = self.session.execute(delete(Post).where(Post.uri.in_(oldest)))
        return result.rowcount
