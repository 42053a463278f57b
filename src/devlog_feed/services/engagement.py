"""Engagement velocity cache maintenance.

Each engagement event is applied in one transaction: the edge insert decides
idempotence, the counter moves with a single ``UPDATE ... SET n = n + 1``
statement, and velocity and priority are recomputed from the row that
statement produced.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from devlog_feed.core.errors import DuplicateEvent, UnknownPostReference
from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.time import epoch_now
from devlog_feed.models import EngagementCache, Like, Reply, Repost, UserInteraction
from devlog_feed.models.engagement import INTERACTION_REQUEST_LESS
from devlog_feed.repositories import PostRepository, insert_ignore
from devlog_feed.schemas.events import EngagementEvent, EngagementKind
from devlog_feed.services.scoring import compute_velocity, post_age_seconds, rescore_post
from devlog_feed.services.spam import SpamDetector

logger = logging.getLogger(__name__)

_COUNTER_COLUMNS: dict[EngagementKind, str] = {
    EngagementKind.LIKE: "like_count",
    EngagementKind.REPOST: "repost_count",
    EngagementKind.REPLY: "reply_count",
}


class EngagementService:
    """Applies engagement events to the per-post engagement cache."""

    def __init__(
        self,
        config: Settings | None = None,
        spam_detector: SpamDetector | None = None,
    ) -> None:
        self.config = config or default_settings
        self.spam_detector = spam_detector or SpamDetector(self.config)

    def ensure_tracked(self, db: Session, post_uri: str, *, now: int | None = None) -> bool:
        """Create the cache row for a post if it does not exist yet.

        Returns:
            True if the row was created by this call.
        """
        return insert_ignore(
            db,
            EngagementCache,
            {
                "post_uri": post_uri,
                "reply_count": 0,
                "repost_count": 0,
                "like_count": 0,
                "velocity_score": 0.0,
                "last_updated": epoch_now() if now is None else now,
            },
        )

    def _insert_edge(self, db: Session, event: EngagementEvent) -> bool:
        if event.kind is EngagementKind.LIKE:
            return insert_ignore(
                db, Like, {"post_uri": event.post_uri, "like_uri": event.edge_uri}
            )
        if event.kind is EngagementKind.REPOST:
            return insert_ignore(
                db,
                Repost,
                {
                    "post_uri": event.post_uri,
                    "repost_uri": event.edge_uri,
                    "reposter_did": event.actor_did,
                    "timestamp": event.timestamp,
                },
            )
        if event.kind is EngagementKind.REPLY:
            return insert_ignore(
                db,
                Reply,
                {
                    "post_uri": event.post_uri,
                    "reply_uri": event.edge_uri,
                    "author_did": event.actor_did,
                    "timestamp": event.timestamp,
                },
            )
        return insert_ignore(
            db,
            UserInteraction,
            {
                "user_did": event.actor_did,
                "post_uri": event.post_uri,
                "interaction_type": event.interaction_type,
                "created_at": event.timestamp,
            },
        )

    def _is_moderator_block(self, event: EngagementEvent) -> bool:
        return (
            event.kind is EngagementKind.INTERACTION
            and event.interaction_type == INTERACTION_REQUEST_LESS
            and event.actor_did in self.config.moderator_dids
        )

    def record(
        self,
        db: Session,
        event: EngagementEvent,
        *,
        now: int | None = None,
    ) -> EngagementCache:
        """Record one engagement event and refresh the post's ranking inputs.

        The caller owns the transaction (see ``run_with_retry``). A
        ``request_less`` interaction from a configured moderator flags the
        post's author.

        Raises:
            UnknownPostReference: The post has not been ingested yet.
            DuplicateEvent: The edge was already recorded; nothing changed.
        """
        now = epoch_now() if now is None else now
        post = PostRepository(db).get_by_uri(event.post_uri)
        if post is None:
            raise UnknownPostReference(event.post_uri)

        if not self._insert_edge(db, event):
            raise DuplicateEvent(f"Duplicate {event.kind.value} event {event.natural_key}")

        self.ensure_tracked(db, event.post_uri, now=now)

        values: dict[str, object] = {"last_updated": now}
        column = _COUNTER_COLUMNS.get(event.kind)
        if column is not None:
            values[column] = getattr(EngagementCache, column) + 1
        db.execute(
            update(EngagementCache)
            .where(EngagementCache.post_uri == event.post_uri)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        cache = db.get(EngagementCache, event.post_uri, populate_existing=True)
        if cache is None:
            raise UnknownPostReference(event.post_uri)
        cache.velocity_score = compute_velocity(
            like_count=cache.like_count,
            repost_count=cache.repost_count,
            reply_count=cache.reply_count,
            age_seconds=post_age_seconds(post.timestamp, now),
            config=self.config,
        )

        if event.kind is EngagementKind.REPOST:
            self.spam_detector.check_reposter(db, event.actor_did, event.timestamp, now=now)
        elif self._is_moderator_block(event) and post.author_did:
            self.spam_detector.flag(
                db, post.author_did, f"blocked by moderator {event.actor_did}", now=now
            )

        rescore_post(db, post, now=now, config=self.config, cache=cache)
        db.flush()
        return cache

    def rebuild(self, db: Session, post_uri: str, *, now: int | None = None) -> EngagementCache:
        """Recount a post's cache row from the edge tables.

        Raises:
            UnknownPostReference: The post does not exist.
        """
        now = epoch_now() if now is None else now
        post = PostRepository(db).get_by_uri(post_uri)
        if post is None:
            raise UnknownPostReference(post_uri)

        def _count(model: type[Like] | type[Repost] | type[Reply]) -> int:
            return db.execute(
                select(func.count()).select_from(model).where(model.post_uri == post_uri)
            ).scalar_one()

        self.ensure_tracked(db, post_uri, now=now)
        cache = db.get(EngagementCache, post_uri, populate_existing=True)
        if cache is None:
            raise UnknownPostReference(post_uri)
        cache.like_count = _count(Like)
        cache.repost_count = _count(Repost)
        cache.reply_count = _count(Reply)
        cache.velocity_score = compute_velocity(
            like_count=cache.like_count,
            repost_count=cache.repost_count,
            reply_count=cache.reply_count,
            age_seconds=post_age_seconds(post.timestamp, now),
            config=self.config,
        )
        cache.last_updated = now
        rescore_post(db, post, now=now, config=self.config, cache=cache)
        db.flush()
        logger.debug("Rebuilt engagement cache for %s", post_uri)
        return cache
