# src/devlog_feed/api/v1/endpoints/scoring.py
"""Single-post scoring for diagnostics."""

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from devlog_feed.api.v1.dependencies import SessionDep, storage_http_error
from devlog_feed.core.errors import StorageFailure
from devlog_feed.db.retry import is_transient
from devlog_feed.schemas.post import RawPostInput, ScoreResponse
from devlog_feed.services.scoring import score_one
from devlog_feed.services.spam import is_flagged

router = APIRouter(prefix="/score", tags=["scoring"])


@router.post("", response_model=ScoreResponse)
def score_post(raw: RawPostInput, db: SessionDep) -> ScoreResponse:
    """Score a post without storing it.

    When ``author_did`` is given, the author's current spam flag is looked up
    and applied.
    """
    if raw.author_did and not raw.author_flagged:
        try:
            flagged = is_flagged(db, raw.author_did)
        except SQLAlchemyError as exc:
            failure = StorageFailure(str(exc), retryable=is_transient(exc))
            raise storage_http_error(failure) from exc
        if flagged:
            raw = raw.model_copy(update={"author_flagged": True})
    return score_one(raw)
