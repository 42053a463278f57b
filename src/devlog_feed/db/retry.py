"""Transactional retry helper for transient storage failures."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from devlog_feed.core.errors import StorageFailure
from devlog_feed.core.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 2.0


def is_transient(exc: BaseException) -> bool:
    """Return True when a database error is worth retrying."""
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def run_with_retry(
    db: Session,
    work: Callable[[Session], T],
    *,
    config: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``work`` inside a transaction and commit it.

    Transient failures roll the session back and retry with exponential
    backoff. Nothing is committed for a failed attempt, so a counter update
    is either fully applied or not at all.

    Args:
        db: Session the work runs in.
        work: Callable performing the reads and writes of one unit of work.
        config: Settings providing the retry policy.
        sleep: Sleep function, injectable for tests.

    Returns:
        Whatever ``work`` returned on the successful attempt.

    Raises:
        StorageFailure: When retries are exhausted (``retryable=True``) or the
            failure is permanent (``retryable=False``).
    """
    cfg = config or default_settings
    attempts = max(1, cfg.storage_retry_attempts)
    delay = cfg.storage_retry_base_delay_seconds

    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except SQLAlchemyError as exc:
            db.rollback()
            if not is_transient(exc):
                raise StorageFailure(f"Storage operation failed: {exc}", retryable=False) from exc
            if attempt == attempts:
                raise StorageFailure(
                    f"Storage operation failed after {attempts} attempts: {exc}",
                    retryable=True,
                ) from exc
            logger.warning(
                "Transient storage failure (attempt %d/%d): %s", attempt, attempts, exc
            )
            sleep(min(delay, MAX_BACKOFF_SECONDS))
            delay *= 2
        except Exception:
            db.rollback()
            raise

    raise AssertionError("unreachable")  # pragma: no cover
