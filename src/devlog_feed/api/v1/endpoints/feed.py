# src/devlog_feed/api/v1/endpoints/feed.py
"""Ranked feed endpoint."""

from fastapi import APIRouter, HTTPException, Query, status

from devlog_feed.api.v1.dependencies import FeedAssemblerDep, SessionDep, storage_http_error
from devlog_feed.core.errors import InvalidCursor, StorageFailure
from devlog_feed.core.settings import settings
from devlog_feed.schemas.post import FeedResponse

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get("", response_model=FeedResponse)
def get_feed(
    db: SessionDep,
    assembler: FeedAssemblerDep,
    cursor: str | None = Query(None, description="Cursor returned by the previous page"),
    limit: int = Query(
        settings.feed_default_limit,
        ge=1,
        le=settings.feed_max_limit,
        description="Maximum number of posts to return",
    ),
    viewer_did: str | None = Query(None, description="Requesting account DID"),
) -> FeedResponse:
    """Return one page of the ranked feed.

    Raises:
        HTTPException: 400 for a malformed cursor, 503/500 for storage failures
    """
    try:
        return assembler.get_feed(db, cursor, limit, viewer_did=viewer_did)
    except InvalidCursor as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_cursor", "retryable": False},
        ) from exc
    except StorageFailure as exc:
        raise storage_http_error(exc) from exc
