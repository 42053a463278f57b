"""Background consumption of the upstream event stream.

The worker pulls events from an async ``EventSource`` and applies each one on
a worker thread with its own database session. Per-event conditions
(duplicates, unknown posts) are absorbed by the ingest service; a storage
failure that survives the retries stops the worker loudly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import Protocol

from sqlalchemy.orm import Session

from devlog_feed.core.errors import StorageFailure
from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.retry import run_with_retry
from devlog_feed.db.session import SessionLocal
from devlog_feed.db.time import epoch_now
from devlog_feed.services.ingest import IngestEvent, IngestService
from devlog_feed.services.maintenance import prune_posts, rescore_all

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    """Upstream stream of post and engagement events."""

    def __aiter__(self) -> AsyncIterator[IngestEvent]: ...


class EventStreamWorker:
    """Applies events from an ``EventSource`` and runs periodic maintenance."""

    def __init__(
        self,
        source: EventSource,
        ingest: IngestService | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Settings | None = None,
    ) -> None:
        self.source = source
        self.config = config or default_settings
        self.ingest = ingest or IngestService(self.config)
        self.session_factory = session_factory
        self.processed = 0
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._last_maintenance = time.monotonic()

    async def start(self) -> None:
        """Start the background consumption loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the loop; an event already handed to a thread still completes."""
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run(self) -> None:
        async for event in self.source:
            if self._stopping.is_set():
                break
            try:
                await asyncio.to_thread(self._apply, event)
            except StorageFailure:
                logger.error("Event processing failed; stopping worker", exc_info=True)
                raise
            self.processed += 1
            if time.monotonic() - self._last_maintenance >= self.config.rescore_interval_seconds:
                await asyncio.to_thread(self.run_maintenance)

    def _apply(self, event: IngestEvent) -> object:
        with self.session_factory() as db:
            return self.ingest.dispatch(db, event)

    def run_maintenance(self, now: int | None = None) -> None:
        """Expire parked events, sweep for spammers, rescore and prune."""
        now = epoch_now() if now is None else now
        self._last_maintenance = time.monotonic()
        dropped = self.ingest.expire_pending(now)
        if dropped:
            logger.warning("Dropped %d engagement event(s) for posts that never arrived", dropped)
        with self.session_factory() as db:
            detector = self.ingest.engagement.spam_detector
            run_with_retry(
                db, lambda session: detector.sweep(session, now=now), config=self.config
            )
            rescore_all(db, now=now, config=self.config)
            prune_posts(db, now=now, config=self.config)
