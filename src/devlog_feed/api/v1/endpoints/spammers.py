# src/devlog_feed/api/v1/endpoints/spammers.py
"""Administrative spam flag endpoints."""

from fastapi import APIRouter, HTTPException, status

from devlog_feed.api.v1.dependencies import SessionDep, storage_http_error
from devlog_feed.core.errors import StorageFailure
from devlog_feed.db.retry import run_with_retry
from devlog_feed.models import Spammer
from devlog_feed.schemas.post import SpammerCreate, SpammerResponse
from devlog_feed.services.spam import SpamDetector

router = APIRouter(prefix="/spammers", tags=["spam"])


@router.get("/{did}", response_model=SpammerResponse)
def get_spammer(did: str, db: SessionDep) -> Spammer:
    """Return the spam flag for an account.

    Raises:
        HTTPException: 404 if the account is not flagged
    """
    spammer = db.get(Spammer, did)
    if spammer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not flagged")
    return spammer


@router.post("", response_model=SpammerResponse, status_code=status.HTTP_201_CREATED)
def flag_spammer(payload: SpammerCreate, db: SessionDep) -> Spammer:
    """Manually flag an account as a spammer.

    Flags are sticky: flagging an already-flagged account returns the
    existing record unchanged.
    """
    detector = SpamDetector()
    try:
        run_with_retry(db, lambda session: detector.flag(session, payload.did, payload.reason))
    except StorageFailure as exc:
        raise storage_http_error(exc) from exc
    spammer = db.get(Spammer, payload.did)
    if spammer is None:  # pragma: no cover - row was just written
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return spammer
