"""Ranked, cursor-paginated feed assembly.

Posts are ordered by ``(priority DESC, timestamp DESC, uri ASC)``, a total
order. The cursor carries the sort key of the last item returned and the
next page selects rows strictly after it. A post whose key is unchanged
between requests is neither skipped nor repeated. A post re-ranked across
the cursor is not: one already returned reappears on a later page if its
priority drops below the cursor, as an engagement event read at a later
``now`` or ``rescore_all`` can do.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
from dataclasses import dataclass

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session

from devlog_feed.core.errors import InvalidCursor
from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.retry import run_with_retry
from devlog_feed.db.time import epoch_now
from devlog_feed.models import Post, UserInteraction
from devlog_feed.models.engagement import INTERACTION_SEEN
from devlog_feed.schemas.post import FeedResponse, PostSummary
from devlog_feed.services.spam import unflagged_author

logger = logging.getLogger(__name__)

# Timestamps are stored in a BIGINT column.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class FeedCursor:
    """Sort key of the last item on a page."""

    priority: float
    timestamp: int
    uri: str

    @classmethod
    def from_post(cls, post: Post) -> "FeedCursor":
        return cls(priority=float(post.priority), timestamp=int(post.timestamp), uri=post.uri)

    def encode(self) -> str:
        payload = json.dumps(
            {"p": self.priority, "t": self.timestamp, "u": self.uri},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "FeedCursor":
        """Parse an opaque cursor token.

        Raises:
            InvalidCursor: The token is not a cursor produced by ``encode``.
        """
        padding = "=" * (-len(token) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(token + padding))
            priority, timestamp, uri = data["p"], data["t"], data["u"]
        except (binascii.Error, ValueError, TypeError, KeyError) as exc:
            raise InvalidCursor(f"Malformed feed cursor: {token!r}") from exc
        if (
            isinstance(priority, bool)
            or not isinstance(priority, int | float)
            or isinstance(timestamp, bool)
            or not isinstance(timestamp, int)
            or not INT64_MIN <= timestamp <= INT64_MAX
            or not isinstance(uri, str)
        ):
            raise InvalidCursor(f"Malformed feed cursor: {token!r}")
        try:
            priority = float(priority)
        except OverflowError as exc:
            raise InvalidCursor(f"Malformed feed cursor: {token!r}") from exc
        if not math.isfinite(priority):
            raise InvalidCursor(f"Malformed feed cursor: {token!r}")
        return cls(priority=priority, timestamp=timestamp, uri=uri)

    def after(self):
        """SQL criterion selecting rows strictly after this key."""
        return or_(
            Post.priority < self.priority,
            and_(Post.priority == self.priority, Post.timestamp < self.timestamp),
            and_(
                Post.priority == self.priority,
                Post.timestamp == self.timestamp,
                Post.uri > self.uri,
            ),
        )


class FeedAssembler:
    """Builds feed pages from the current persisted ranking state."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def clamp_limit(self, limit: int | None) -> int:
        """Bound a requested page size to ``[1, feed_max_limit]``."""
        if limit is None:
            return self.config.feed_default_limit
        return max(1, min(limit, self.config.feed_max_limit))

    def _select_page(
        self,
        db: Session,
        cursor: FeedCursor | None,
        limit: int,
        viewer_did: str | None,
        now: int,
    ) -> list[tuple[PostSummary, FeedCursor]]:
        # Flagged authors are excluded here as well as zeroed in priority.
        stmt = select(Post).where(unflagged_author())
        if self.config.feed_max_age_hours is not None:
            stmt = stmt.where(Post.timestamp >= now - int(self.config.feed_max_age_hours * 3600))
        if viewer_did and self.config.feed_hide_seen:
            stmt = stmt.where(
                ~exists().where(
                    UserInteraction.user_did == viewer_did,
                    UserInteraction.post_uri == Post.uri,
                    UserInteraction.interaction_type == INTERACTION_SEEN,
                )
            )
        if cursor is not None:
            stmt = stmt.where(cursor.after())
        stmt = stmt.order_by(
            Post.priority.desc(),
            Post.timestamp.desc(),
            Post.uri.asc(),
        ).limit(limit + 1)
        return [
            (PostSummary.model_validate(post), FeedCursor.from_post(post))
            for post in db.execute(stmt).scalars()
        ]

    def get_feed(
        self,
        db: Session,
        cursor: str | None = None,
        limit: int | None = None,
        *,
        viewer_did: str | None = None,
        now: int | None = None,
    ) -> FeedResponse:
        """Return one page of the ranked feed.

        Args:
            db: Database session.
            cursor: Opaque cursor from a previous page, or None for the first page.
            limit: Requested page size; clamped to the configured bounds.
            viewer_did: Requesting account, used to hide posts it has seen.
            now: Clock reading for the age cutoff, epoch seconds.

        Returns:
            The page items and the cursor for the next page (None at the end).

        Raises:
            InvalidCursor: The cursor could not be decoded.
            StorageFailure: The query failed.
        """
        decoded = FeedCursor.decode(cursor) if cursor else None
        page_size = self.clamp_limit(limit)
        now = epoch_now() if now is None else now

        rows = run_with_retry(
            db,
            lambda session: self._select_page(session, decoded, page_size, viewer_did, now),
            config=self.config,
        )
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        next_cursor = rows[-1][1].encode() if has_more and rows else None

        logger.debug(
            "Served %d feed item(s) (cursor=%s, more=%s)", len(rows), cursor, has_more
        )
        return FeedResponse(
            items=[summary for summary, _ in rows],
            cursor=next_cursor,
        )
