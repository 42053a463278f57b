"""Event ingestion: post creation, engagement and deletion.

Events arrive at-least-once and unordered. Duplicates are dropped by
natural key. Engagement for a post that has not arrived yet is parked for a
bounded window and replayed when the post shows up. Deletions leave a
tombstone for the same window so a late creation does not resurrect the post.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from devlog_feed.core.errors import DuplicateEvent, UnknownPostReference
from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.retry import run_with_retry
from devlog_feed.db.time import epoch_now
from devlog_feed.models import Post
from devlog_feed.repositories import PostRepository, insert_ignore
from devlog_feed.schemas.events import EngagementEvent, PostCreated, PostDeleted
from devlog_feed.services.engagement import EngagementService
from devlog_feed.services.scoring import ComponentSignals, rescore_post, score_post
from devlog_feed.services.spam import is_flagged

logger = logging.getLogger(__name__)

IngestEvent = PostCreated | EngagementEvent | PostDeleted


class EngagementOutcome(str, Enum):
    """What happened to an engagement event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    PENDING = "pending"
    DROPPED = "dropped"


@dataclass
class _ParkedEvent:
    event: EngagementEvent
    received_at: int


class PendingEventBuffer:
    """Bounded, thread-safe holding area for early engagement and deletions."""

    def __init__(self, window_seconds: int, max_size: int) -> None:
        self.window_seconds = window_seconds
        self.max_size = max_size
        self._events: OrderedDict[tuple[str, ...], _ParkedEvent] = OrderedDict()
        self._tombstones: dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def park(self, event: EngagementEvent, now: int) -> None:
        """Hold an event until its post arrives or the window closes."""
        with self._lock:
            key = event.natural_key
            if key in self._events:
                return
            if len(self._events) >= self.max_size:
                _, oldest = self._events.popitem(last=False)
                logger.warning(
                    "Pending buffer full; dropped %s event for %s",
                    oldest.event.kind.value,
                    oldest.event.post_uri,
                )
            self._events[key] = _ParkedEvent(event=event, received_at=now)

    def take(self, post_uri: str) -> list[EngagementEvent]:
        """Remove and return every parked event for ``post_uri``."""
        with self._lock:
            keys = [k for k, parked in self._events.items() if parked.event.post_uri == post_uri]
            return [self._events.pop(k).event for k in keys]

    def tombstone(self, uri: str, now: int) -> None:
        with self._lock:
            self._tombstones[uri] = now

    def is_tombstoned(self, uri: str, now: int) -> bool:
        with self._lock:
            deleted_at = self._tombstones.get(uri)
            return deleted_at is not None and now - deleted_at <= self.window_seconds

    def expire(self, now: int) -> int:
        """Drop parked events and tombstones older than the window.

        Returns:
            Number of engagement events dropped.
        """
        cutoff = now - self.window_seconds
        with self._lock:
            stale = [k for k, parked in self._events.items() if parked.received_at < cutoff]
            for key in stale:
                parked = self._events.pop(key)
                logger.warning(
                    "Dropped %s event for unknown post %s after %ds",
                    parked.event.kind.value,
                    parked.event.post_uri,
                    self.window_seconds,
                )
            for uri in [u for u, ts in self._tombstones.items() if ts < cutoff]:
                del self._tombstones[uri]
        return len(stale)


class IngestService:
    """Applies upstream events to the store, one transaction per event."""

    def __init__(
        self,
        config: Settings | None = None,
        engagement: EngagementService | None = None,
        buffer: PendingEventBuffer | None = None,
    ) -> None:
        self.config = config or default_settings
        self.engagement = engagement or EngagementService(self.config)
        self.buffer = buffer or PendingEventBuffer(
            self.config.pending_event_window_seconds,
            self.config.pending_event_max_size,
        )

    def dispatch(self, db: Session, event: IngestEvent, *, now: int | None = None) -> object:
        """Route an event to its handler."""
        if isinstance(event, PostCreated):
            return self.handle_post_created(db, event, now=now)
        if isinstance(event, EngagementEvent):
            return self.handle_engagement(db, event, now=now)
        if isinstance(event, PostDeleted):
            return self.handle_post_deleted(db, event, now=now)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def _insert_post(self, db: Session, event: PostCreated, now: int) -> bool:
        signals = ComponentSignals(
            keyword=event.keyword_score,
            hashtag=event.hashtag_score,
            semantic=event.semantic_score,
            classification=event.classification_score,
        ).clamped(event.uri)
        breakdown = score_post(
            signals,
            link_count=event.link_count,
            promo_link_count=event.promo_link_count,
            is_first_person=event.is_first_person,
            timestamp=event.timestamp,
            now=now,
            author_flagged=is_flagged(db, event.author_did),
            config=self.config,
        )
        inserted = insert_ignore(
            db,
            Post,
            {
                "uri": event.uri,
                "text": event.text,
                "timestamp": event.timestamp,
                "author_did": event.author_did,
                "has_media": event.has_media or event.image_count > 0,
                "image_count": event.image_count,
                "has_alt_text": event.has_alt_text,
                "link_count": event.link_count,
                "promo_link_count": event.promo_link_count,
                "is_first_person": event.is_first_person,
                "keyword_score": signals.keyword,
                "hashtag_score": signals.hashtag,
                "semantic_score": signals.semantic,
                "classification_score": signals.classification,
                "final_score": breakdown.final_score,
                "priority": breakdown.priority,
                "confidence": breakdown.confidence,
                "post_type": breakdown.post_type,
            },
        )
        if inserted:
            self.engagement.ensure_tracked(db, event.uri, now=now)
        return inserted

    def handle_post_created(
        self,
        db: Session,
        event: PostCreated,
        *,
        now: int | None = None,
    ) -> bool:
        """Score and store a new post, then replay engagement that arrived early.

        Returns:
            True if the post was stored, False for a duplicate or deleted post.
        """
        now = epoch_now() if now is None else now
        if self.buffer.is_tombstoned(event.uri, now):
            logger.debug("Ignoring creation of deleted post %s", event.uri)
            return False

        inserted = run_with_retry(
            db, lambda session: self._insert_post(session, event, now), config=self.config
        )
        if not inserted:
            logger.debug("Duplicate post %s ignored", event.uri)
            return False

        for parked in self.buffer.take(event.uri):
            self.handle_engagement(db, parked, now=now)
        return True

    def handle_engagement(
        self,
        db: Session,
        event: EngagementEvent,
        *,
        now: int | None = None,
    ) -> EngagementOutcome:
        """Record an engagement event.

        Duplicates and unknown posts are contained here and never abort the
        stream; storage failures that outlast the retries propagate.
        """
        now = epoch_now() if now is None else now
        if self.buffer.is_tombstoned(event.post_uri, now):
            return EngagementOutcome.DROPPED
        try:
            run_with_retry(
                db,
                lambda session: self.engagement.record(session, event, now=now),
                config=self.config,
            )
        except DuplicateEvent:
            logger.debug("Duplicate %s event %s ignored", event.kind.value, event.natural_key)
            return EngagementOutcome.DUPLICATE
        except UnknownPostReference:
            self.buffer.park(event, now)
            logger.debug(
                "Parked %s event for unknown post %s", event.kind.value, event.post_uri
            )
            return EngagementOutcome.PENDING
        return EngagementOutcome.APPLIED

    def handle_post_deleted(
        self,
        db: Session,
        event: PostDeleted,
        *,
        now: int | None = None,
    ) -> bool:
        """Delete a post; its edges and cache row cascade.

        Returns:
            True if a stored post was removed.
        """
        now = epoch_now() if now is None else now
        deleted = run_with_retry(
            db, lambda session: PostRepository(session).delete(event.uri), config=self.config
        )
        self.buffer.tombstone(event.uri, now)
        dropped = self.buffer.take(event.uri)
        if dropped:
            logger.debug(
                "Discarded %d parked event(s) for deleted post %s", len(dropped), event.uri
            )
        return deleted

    def assign_author(
        self,
        db: Session,
        uri: str,
        author_did: str,
        *,
        now: int | None = None,
    ) -> bool:
        """Complete author resolution for a post and rescore it.

        A post's author is set once; later assignments are ignored.

        Returns:
            True if the author was recorded.
        """
        now = epoch_now() if now is None else now

        def _assign(session: Session) -> bool:
            post = PostRepository(session).get_by_uri(uri)
            if post is None:
                raise UnknownPostReference(uri)
            if post.author_did is not None:
                return False
            post.author_did = author_did
            rescore_post(session, post, now=now, config=self.config)
            return True

        return run_with_retry(db, _assign, config=self.config)

    def expire_pending(self, now: int | None = None) -> int:
        """Drop parked events whose post never arrived."""
        return self.buffer.expire(epoch_now() if now is None else now)
