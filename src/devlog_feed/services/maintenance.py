"""Periodic maintenance: rescoring sweep and retention."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.retry import run_with_retry
from devlog_feed.db.time import epoch_now
from devlog_feed.repositories import PostRepository
from devlog_feed.services.scoring import rescore_post

logger = logging.getLogger(__name__)


def rescore_all(
    db: Session,
    *,
    now: int | None = None,
    config: Settings | None = None,
) -> int:
    """Re-derive the ranking fields of every post as of ``now``.

    Stored priorities carry the recency decay of the moment they were
    computed; this sweep brings them back in line with the clock. Running
    it twice with the same ``now`` produces identical rows.

    Returns:
        Number of posts rescored.
    """
    cfg = config or default_settings
    now = epoch_now() if now is None else now
    total = 0
    last_uri: str | None = None

    while True:
        def _rescore_batch(session: Session, after: str | None = last_uri) -> list[str]:
            posts = PostRepository(session).page_by_uri(after, cfg.rescore_batch_size)
            for post in posts:
                rescore_post(session, post, now=now, config=cfg)
            return [post.uri for post in posts]

        uris = run_with_retry(db, _rescore_batch, config=cfg)
        if not uris:
            break
        total += len(uris)
        last_uri = uris[-1]

    logger.info("Rescored %d post(s)", total)
    return total


def prune_posts(
    db: Session,
    *,
    now: int | None = None,
    config: Settings | None = None,
) -> int:
    """Delete posts past the retention window and trim to the storage cap.

    Edges and cache rows cascade with their post.

    Returns:
        Number of posts deleted.
    """
    cfg = config or default_settings
    now = epoch_now() if now is None else now
    cutoff = now - int(cfg.retention_hours * 3600)

    def _prune(session: Session) -> int:
        repo = PostRepository(session)
        return repo.delete_older_than(cutoff) + repo.trim_to(cfg.max_stored_posts)

    deleted = run_with_retry(db, _prune, config=cfg)
    if deleted:
        logger.info("Pruned %d post(s)", deleted)
    return deleted
