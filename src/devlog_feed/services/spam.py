"""Spam detection and the spam-status capability.

``is_flagged`` and ``unflagged_author`` are the only places that decide
whether an author is suppressed; scoring and feed assembly both go through
them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import ColumnElement, exists, or_, select
from sqlalchemy.orm import Session

from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.time import epoch_now
from devlog_feed.models import Post, Repost, Spammer
from devlog_feed.repositories import PostRepository, insert_ignore

logger = logging.getLogger(__name__)


def is_flagged(db: Session, did: str | None) -> bool:
    """Return True if ``did`` is a flagged spammer."""
    if not did:
        return False
    return db.execute(select(Spammer.did).where(Spammer.did == did)).first() is not None


def unflagged_author() -> ColumnElement[bool]:
    """SQL criterion selecting posts whose author is not flagged."""
    return or_(
        Post.author_did.is_(None),
        ~exists().where(Spammer.did == Post.author_did),
    )


def max_window_count(timestamps: Sequence[int], width: int) -> int:
    """Largest number of timestamps inside any window ``(end - width, end]``.

    Windows end at one of the given timestamps; input must be sorted.
    """
    best = 0
    start = 0
    for end, ts in enumerate(timestamps):
        while start < end and timestamps[start] <= ts - width:
            start += 1
        best = max(best, end - start + 1)
    return best


class SpamDetector:
    """Flags accounts whose repost rate exceeds the configured threshold."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    @property
    def window_seconds(self) -> int:
        return self.config.spam_window_seconds

    def frequency_for(self, count: int) -> float:
        """Convert a windowed repost count to reposts per hour."""
        return count / self.config.spam_window_hours

    def _reposter_timestamps(
        self,
        db: Session,
        did: str,
        lower: int | None = None,
        upper: int | None = None,
    ) -> list[int]:
        stmt = select(Repost.timestamp).where(Repost.reposter_did == did)
        if lower is not None:
            stmt = stmt.where(Repost.timestamp > lower)
        if upper is not None:
            stmt = stmt.where(Repost.timestamp < upper)
        return list(db.execute(stmt.order_by(Repost.timestamp)).scalars())

    def check_reposter(
        self,
        db: Session,
        did: str,
        repost_timestamp: int,
        *,
        now: int | None = None,
    ) -> Spammer | None:
        """Evaluate every window containing a newly recorded repost.

        Only windows that include ``repost_timestamp`` can change when that
        repost arrives, and their contents lie strictly within one window
        width either side of it. Evaluating them on each repost yields the
        same flagged set as ``sweep`` whatever the delivery order.

        Returns:
            The new Spammer row, or None if nothing was flagged.
        """
        if is_flagged(db, did):
            return None
        width = self.window_seconds
        timestamps = self._reposter_timestamps(
            db, did, repost_timestamp - width, repost_timestamp + width
        )
        return self._flag_if_over(db, did, timestamps, now)

    def sweep(self, db: Session, *, now: int | None = None) -> list[Spammer]:
        """Evaluate every unflagged reposter over its full repost history."""
        reposters = db.execute(
            select(Repost.reposter_did)
            .where(~exists().where(Spammer.did == Repost.reposter_did))
            .distinct()
            .order_by(Repost.reposter_did)
        ).scalars()
        flagged: list[Spammer] = []
        for did in list(reposters):
            spammer = self._flag_if_over(db, did, self._reposter_timestamps(db, did), now)
            if spammer is not None:
                flagged.append(spammer)
        if flagged:
            logger.info("Spam sweep flagged %d account(s)", len(flagged))
        return flagged

    def _flag_if_over(
        self,
        db: Session,
        did: str,
        timestamps: Sequence[int],
        now: int | None,
    ) -> Spammer | None:
        count = max_window_count(timestamps, self.window_seconds)
        frequency = self.frequency_for(count)
        if frequency <= self.config.spam_repost_threshold:
            return None
        return self.flag(
            db,
            did,
            f"high repost frequency: {frequency:.1f}/hr",
            repost_frequency=frequency,
            auto_detected=True,
            now=now,
        )

    def flag(
        self,
        db: Session,
        did: str,
        reason: str,
        *,
        repost_frequency: float | None = None,
        auto_detected: bool = False,
        now: int | None = None,
    ) -> Spammer | None:
        """Insert a Spammer row and suppress the account's posts.

        An existing flag is left untouched, whatever its reason or rate.

        Returns:
            The new Spammer row, or None if ``did`` was already flagged.
        """
        flagged_at = epoch_now() if now is None else now
        inserted = insert_ignore(
            db,
            Spammer,
            {
                "did": did,
                "reason": reason,
                "repost_frequency": repost_frequency,
                "flagged_at": flagged_at,
                "auto_detected": auto_detected,
            },
        )
        if not inserted:
            return None

        suppressed = PostRepository(db).suppress_author(did)
        logger.info(
            "Flagged %s as spammer (%s, auto=%s); suppressed %d post(s)",
            did,
            reason,
            auto_detected,
            suppressed,
        )
        return db.get(Spammer, did)
