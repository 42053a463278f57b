import base64

import pytest

from devlog_feed.core.errors import InvalidCursor
from devlog_feed.core.settings import load_settings
from devlog_feed.schemas.events import EngagementKind
from devlog_feed.services.feed import FeedAssembler, FeedCursor

NOW = 1_700_000_000


@pytest.fixture()
def assembler(test_settings) -> FeedAssembler:
    return FeedAssembler(test_settings)


def _sort_key(item):
    return (-item.priority, -item.timestamp, item.uri)


def _drain(db_session, assembler, limit, between_pages=None):
    items, cursor, pages = [], None, 0
    while True:
        page = assembler.get_feed(db_session, cursor, limit, now=NOW)
        items.extend(page.items)
        pages += 1
        if between_pages is not None:
            between_pages(pages)
        if page.cursor is None:
            return items
        cursor = page.cursor


def test_feed_is_ordered_by_composite_key(db_session, assembler, ingest_post) -> None:
    for i in range(6):
        ingest_post(timestamp=NOW - (i % 3) * 600, keyword_score=0.5 + i * 0.05)
    # Equal priority and timestamp: broken by uri.
    ingest_post(timestamp=NOW - 7200)
    ingest_post(timestamp=NOW - 7200)

    page = assembler.get_feed(db_session, None, 50, now=NOW)

    assert len(page.items) == 8
    assert page.items == sorted(page.items, key=_sort_key)
    assert page.cursor is None


def test_pagination_returns_every_post_once(db_session, assembler, ingest_post) -> None:
    expected = {ingest_post(timestamp=NOW - i * 60).uri for i in range(23)}

    items = _drain(db_session, assembler, limit=5)

    assert [item.uri for item in items] == [
        item.uri for item in sorted(items, key=_sort_key)
    ]
    assert len(items) == len({item.uri for item in items}) == 23
    assert {item.uri for item in items} == expected


def test_pagination_is_stable_while_posts_arrive(db_session, assembler, ingest_post) -> None:
    original = {ingest_post(timestamp=NOW - 600 - i * 60).uri for i in range(20)}

    def _ingest_more(page_number: int) -> None:
        if page_number <= 2:
            # Some new posts outrank everything already paged, some land later.
            ingest_post(timestamp=NOW, keyword_score=1.0, hashtag_score=1.0)
            ingest_post(timestamp=NOW - 86_400)

    items = _drain(db_session, assembler, limit=6, between_pages=_ingest_more)
    uris = [item.uri for item in items]

    assert len(uris) == len(set(uris))
    assert original <= set(uris)


def test_flagged_authors_are_excluded(
    db_session, assembler, ingest_post, spam_detector
) -> None:
    kept = ingest_post(author_did="did:plc:honest")
    hidden = ingest_post(author_did="did:plc:spammer", keyword_score=1.0)
    spam_detector.flag(db_session, "did:plc:spammer", "operator report", now=NOW)
    db_session.commit()

    uris = [item.uri for item in assembler.get_feed(db_session, now=NOW).items]

    assert kept.uri in uris
    assert hidden.uri not in uris


def test_promotional_post_ranks_below_equivalent_devlog(
    db_session, assembler, ingest_post
) -> None:
    devlog = ingest_post(link_count=4, promo_link_count=0)
    promo = ingest_post(link_count=4, promo_link_count=3)

    items = {item.uri: item for item in assembler.get_feed(db_session, now=NOW).items}

    assert items[promo.uri].post_type.value == "Promotional"
    assert items[promo.uri].priority == pytest.approx(items[devlog.uri].priority * 0.5)


def test_engagement_lifts_post_in_feed(
    db_session, assembler, ingest, ingest_post, make_engagement
) -> None:
    quiet = ingest_post(timestamp=NOW - 600)
    busy = ingest_post(timestamp=NOW - 600)
    for _ in range(3):
        ingest.handle_engagement(
            db_session, make_engagement(EngagementKind.REPLY, busy.uri), now=NOW
        )

    uris = [item.uri for item in assembler.get_feed(db_session, now=NOW).items]

    assert uris.index(busy.uri) < uris.index(quiet.uri)


def test_seen_posts_are_hidden_for_viewer(
    db_session, assembler, ingest, ingest_post, make_engagement
) -> None:
    seen = ingest_post()
    unseen = ingest_post()
    ingest.handle_engagement(
        db_session,
        make_engagement(EngagementKind.INTERACTION, seen.uri, actor_did="did:plc:viewer"),
        now=NOW,
    )

    for_viewer = assembler.get_feed(db_session, viewer_did="did:plc:viewer", now=NOW)
    anonymous = assembler.get_feed(db_session, now=NOW)

    assert [item.uri for item in for_viewer.items] == [unseen.uri]
    assert {item.uri for item in anonymous.items} == {seen.uri, unseen.uri}


def test_max_age_cutoff(db_session, ingest_post) -> None:
    assembler = FeedAssembler(load_settings(feed_max_age_hours=2.0))
    fresh = ingest_post(timestamp=NOW - 3600)
    ingest_post(timestamp=NOW - 5 * 3600)

    page = assembler.get_feed(db_session, now=NOW)

    assert [item.uri for item in page.items] == [fresh.uri]


@pytest.mark.parametrize(("requested", "expected"), [(None, 30), (0, 1), (-5, 1), (500, 100)])
def test_limit_is_clamped(assembler, requested, expected) -> None:
    assert assembler.clamp_limit(requested) == expected


@pytest.mark.parametrize(
    "token",
    [
        "not a cursor!",
        base64.urlsafe_b64encode(b"[1, 2, 3]").decode(),
        base64.urlsafe_b64encode(b'{"p": 1.0, "t": "yesterday", "u": "x"}').decode(),
        base64.urlsafe_b64encode(b'{"p": 1.0, "t": 5}').decode(),
        base64.urlsafe_b64encode(b'{"p": 0.5, "t": 1000000000000000000000000, "u": "x"}').decode(),
        base64.urlsafe_b64encode(b'{"p": 0.5, "t": -9223372036854775809, "u": "x"}').decode(),
        base64.urlsafe_b64encode(b'{"p": Infinity, "t": 5, "u": "x"}').decode(),
        base64.urlsafe_b64encode(b'{"p": NaN, "t": 5, "u": "x"}').decode(),
        base64.urlsafe_b64encode(b'{"p": 1' + b"0" * 400 + b', "t": 5, "u": "x"}').decode(),
        base64.urlsafe_b64encode(b'{"p": true, "t": 5, "u": "x"}').decode(),
    ],
)
def test_malformed_cursor_is_rejected(db_session, assembler, token) -> None:
    with pytest.raises(InvalidCursor):
        assembler.get_feed(db_session, token, 10, now=NOW)


def test_cursor_round_trip() -> None:
    cursor = FeedCursor(priority=0.42, timestamp=NOW, uri="at://did:plc:a/post/1")

    assert FeedCursor.decode(cursor.encode()) == cursor
