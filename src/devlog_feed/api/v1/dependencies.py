"""Shared FastAPI dependencies and error translation for v1 endpoints."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from devlog_feed.core.errors import StorageFailure
from devlog_feed.db.session import get_db
from devlog_feed.services.feed import FeedAssembler

SessionDep = Annotated[Session, Depends(get_db)]


def get_feed_assembler() -> FeedAssembler:
    """Return the feed assembler bound to the global settings."""
    return FeedAssembler()


FeedAssemblerDep = Annotated[FeedAssembler, Depends(get_feed_assembler)]


def storage_http_error(exc: StorageFailure) -> HTTPException:
    """Translate a storage failure, telling clients whether to retry."""
    if exc.retryable:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "storage_unavailable", "retryable": True},
            headers={"Retry-After": "1"},
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "storage_failure", "retryable": False},
    )
