# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from devlog_feed.core.settings import Settings, load_settings
from devlog_feed.db.session import Base, configure_sqlite
from devlog_feed.db.session import get_db as app_get_session
from devlog_feed.main import app as fastapi_app
from devlog_feed.schemas.events import EngagementEvent, EngagementKind, PostCreated
from devlog_feed.services.engagement import EngagementService
from devlog_feed.services.ingest import IngestService
from devlog_feed.services.spam import SpamDetector

TEST_DB_URL = "sqlite://"

# Fixed clock for deterministic scoring, epoch seconds.
NOW = 1_700_000_000

_URI_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(engine: Engine, session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Ensure each test sees a clean database; services commit their work.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with defaults and fast retries."""
    return load_settings(storage_retry_base_delay_seconds=0.0)


@pytest.fixture()
def spam_detector(test_settings: Settings) -> SpamDetector:
    return SpamDetector(test_settings)


@pytest.fixture()
def engagement(test_settings: Settings, spam_detector: SpamDetector) -> EngagementService:
    return EngagementService(test_settings, spam_detector)


@pytest.fixture()
def ingest(test_settings: Settings, engagement: EngagementService) -> IngestService:
    return IngestService(test_settings, engagement)


@pytest.fixture()
def make_post() -> Callable[..., PostCreated]:
    """Build a PostCreated event with sensible devlog defaults."""

    def _make(**overrides: Any) -> PostCreated:
        payload: dict[str, Any] = {
            "uri": f"at://did:plc:author/app.bsky.feed.post/{next(_URI_COUNTER)}",
            "text": "Added wall-jumping to my platformer today",
            "timestamp": NOW - 3600,
            "author_did": "did:plc:author",
            "is_first_person": True,
            "keyword_score": 0.9,
            "hashtag_score": 0.8,
            "semantic_score": 0.85,
            "classification_score": 0.9,
        }
        payload.update(overrides)
        return PostCreated(**payload)

    return _make


@pytest.fixture()
def make_engagement() -> Callable[..., EngagementEvent]:
    """Build an engagement event; ``edge_uri`` defaults to a fresh URI."""

    def _make(kind: EngagementKind, post_uri: str, **overrides: Any) -> EngagementEvent:
        payload: dict[str, Any] = {
            "kind": kind,
            "post_uri": post_uri,
            "actor_did": "did:plc:fan",
            "timestamp": NOW - 60,
        }
        if kind is EngagementKind.INTERACTION:
            payload["interaction_type"] = "seen"
        else:
            payload["edge_uri"] = f"at://did:plc:fan/{kind.value}/{next(_URI_COUNTER)}"
        payload.update(overrides)
        return EngagementEvent(**payload)

    return _make


@pytest.fixture()
def ingest_post(
    db_session: Session,
    ingest: IngestService,
    make_post: Callable[..., PostCreated],
) -> Callable[..., PostCreated]:
    """Ingest a post at the fixed clock and return its creation event."""

    def _ingest(**overrides: Any) -> PostCreated:
        event = make_post(**overrides)
        assert ingest.handle_post_created(db_session, event, now=NOW)
        return event

    return _ingest
