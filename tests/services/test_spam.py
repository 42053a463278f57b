import pytest
from sqlalchemy import select

from devlog_feed.core.settings import load_settings
from devlog_feed.models import Post, Repost, Spammer
from devlog_feed.repositories import insert_ignore
from devlog_feed.schemas.events import EngagementKind
from devlog_feed.services.engagement import EngagementService
from devlog_feed.services.feed import FeedAssembler
from devlog_feed.services.ingest import IngestService
from devlog_feed.services.spam import is_flagged, max_window_count

NOW = 1_700_000_000
SPAMMER = "did:plc:spammer"


@pytest.fixture()
def target(ingest_post):
    return ingest_post(author_did="did:plc:victim")


def _repost(ingest, db_session, make_engagement, post_uri, did, timestamp):
    event = make_engagement(
        EngagementKind.REPOST, post_uri, actor_did=did, timestamp=timestamp
    )
    return ingest.handle_engagement(db_session, event, now=NOW)


def _snapshot(db_session, did):
    db_session.expire_all()
    row = db_session.get(Spammer, did)
    assert row is not None
    return (row.reason, row.repost_frequency, row.flagged_at, row.auto_detected)


def test_max_window_count_uses_half_open_windows() -> None:
    assert max_window_count([], 3600) == 0
    assert max_window_count([0, 10, 20], 3600) == 3
    assert max_window_count([0, 3600], 3600) == 1
    assert max_window_count([0, 3599, 7000, 7100], 3600) == 2


def test_max_window_count_with_zero_width_counts_single_reposts() -> None:
    assert max_window_count([5, 5, 9], 0) == 1


def test_burst_of_reposts_flags_account_once(
    db_session, ingest, make_engagement, target
) -> None:
    start = NOW - 3000
    for i in range(20):
        _repost(ingest, db_session, make_engagement, target.uri, SPAMMER, start + i * 60)

    assert is_flagged(db_session, SPAMMER)
    before = _snapshot(db_session, SPAMMER)
    assert before[3] is True
    assert before[1] > 10.0
    assert before[0].startswith("high repost frequency")

    _repost(ingest, db_session, make_engagement, target.uri, SPAMMER, start + 20 * 60)

    assert _snapshot(db_session, SPAMMER) == before


def test_rate_at_threshold_is_not_flagged(
    db_session, ingest, make_engagement, target
) -> None:
    for i in range(10):
        _repost(ingest, db_session, make_engagement, target.uri, SPAMMER, NOW - 3000 + i * 60)

    assert not is_flagged(db_session, SPAMMER)


def test_flagging_suppresses_existing_posts(
    db_session, ingest, ingest_post, make_engagement, target
) -> None:
    own = ingest_post(author_did=SPAMMER)
    assert db_session.get(Post, own.uri).priority > 0

    for i in range(11):
        _repost(ingest, db_session, make_engagement, target.uri, SPAMMER, NOW - 600 + i)

    db_session.expire_all()
    assert db_session.get(Post, own.uri).priority == 0.0
    assert db_session.get(Post, target.uri).priority > 0


def test_manual_flag_is_sticky(db_session, spam_detector, ingest_post) -> None:
    own = ingest_post(author_did=SPAMMER)

    spammer = spam_detector.flag(db_session, SPAMMER, "operator report", now=NOW)
    db_session.commit()

    assert spammer is not None
    assert spammer.repost_frequency is None
    assert spammer.auto_detected is False
    assert db_session.get(Post, own.uri).priority == 0.0

    assert spam_detector.flag(db_session, SPAMMER, "second report", now=NOW + 10) is None
    db_session.commit()
    assert _snapshot(db_session, SPAMMER) == ("operator report", None, NOW, False)


def test_post_from_flagged_author_is_ingested_with_zero_priority(
    db_session, spam_detector, ingest_post
) -> None:
    spam_detector.flag(db_session, SPAMMER, "operator report", now=NOW)
    db_session.commit()

    post = ingest_post(author_did=SPAMMER)

    assert db_session.get(Post, post.uri).priority == 0.0


# Repost histories (offsets in seconds) and whether each should be flagged.
PATTERNS = {
    "burst": ([i * 120 for i in range(11)], True),
    "spread": ([i * 1000 for i in range(11)], False),
    "boundary": ([0] + [3600 - (10 - i) for i in range(1, 11)], False),
    "late_burst": ([i * 4000 for i in range(5)] + [20000 + i * 10 for i in range(11)], True),
}


def test_incremental_detection_matches_sweep_in_any_order(
    db_session, ingest, spam_detector, make_engagement, target
) -> None:
    base = NOW - 30000
    for name, (offsets, _) in PATTERNS.items():
        # Deliver newest-first to the incremental path.
        for offset in sorted(offsets, reverse=True):
            did = f"did:plc:inc-{name}"
            _repost(ingest, db_session, make_engagement, target.uri, did, base + offset)
        # Write the same history straight to storage for the sweep.
        for index, offset in enumerate(offsets):
            insert_ignore(
                db_session,
                Repost,
                {
                    "post_uri": target.uri,
                    "repost_uri": f"at://did:plc:sweep-{name}/repost/{index}",
                    "reposter_did": f"did:plc:sweep-{name}",
                    "timestamp": base + offset,
                },
            )
    db_session.commit()

    spam_detector.sweep(db_session, now=NOW)
    db_session.commit()

    flagged = set(db_session.execute(select(Spammer.did)).scalars())
    for name, (_, expected) in PATTERNS.items():
        assert (f"did:plc:inc-{name}" in flagged) is expected, name
        assert (f"did:plc:sweep-{name}" in flagged) is expected, name


def test_sweep_leaves_existing_flags_untouched(db_session, spam_detector, target) -> None:
    spam_detector.flag(db_session, SPAMMER, "operator report", now=NOW - 100)
    db_session.commit()
    for i in range(15):
        insert_ignore(
            db_session,
            Repost,
            {
                "post_uri": target.uri,
                "repost_uri": f"at://{SPAMMER}/repost/{i}",
                "reposter_did": SPAMMER,
                "timestamp": NOW - 100 + i,
            },
        )
    db_session.commit()

    assert spam_detector.sweep(db_session, now=NOW) == []
    assert _snapshot(db_session, SPAMMER) == ("operator report", None, NOW - 100, False)


MODERATOR = "did:plc:moderator"


@pytest.fixture()
def moderated_ingest() -> IngestService:
    config = load_settings(moderator_dids=[MODERATOR], storage_retry_base_delay_seconds=0.0)
    return IngestService(config, EngagementService(config))


def _request_less(moderated_ingest, db_session, make_engagement, post_uri, actor_did):
    event = make_engagement(
        EngagementKind.INTERACTION,
        post_uri,
        actor_did=actor_did,
        interaction_type="request_less",
    )
    return moderated_ingest.handle_engagement(db_session, event, now=NOW)


def test_moderator_request_less_blocks_author(
    db_session, moderated_ingest, make_post, make_engagement
) -> None:
    posts = [make_post(author_did=SPAMMER), make_post(author_did=SPAMMER)]
    for post in posts:
        assert moderated_ingest.handle_post_created(db_session, post, now=NOW)

    _request_less(moderated_ingest, db_session, make_engagement, posts[0].uri, MODERATOR)

    assert _snapshot(db_session, SPAMMER) == (
        f"blocked by moderator {MODERATOR}",
        None,
        NOW,
        False,
    )
    assert all(db_session.get(Post, post.uri).priority == 0.0 for post in posts)

    later = make_post(author_did=SPAMMER)
    assert moderated_ingest.handle_post_created(db_session, later, now=NOW)
    assert db_session.get(Post, later.uri).priority == 0.0
    assert FeedAssembler(moderated_ingest.config).get_feed(db_session, now=NOW).items == []


def test_request_less_from_regular_user_does_not_block(
    db_session, moderated_ingest, make_post, make_engagement
) -> None:
    post = make_post(author_did=SPAMMER)
    assert moderated_ingest.handle_post_created(db_session, post, now=NOW)

    _request_less(moderated_ingest, db_session, make_engagement, post.uri, "did:plc:fan")

    assert not is_flagged(db_session, SPAMMER)
    assert db_session.get(Post, post.uri).priority > 0
