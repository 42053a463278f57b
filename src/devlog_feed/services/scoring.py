"""Signal aggregation, classification and priority calculation.

Everything in this module except ``rescore_post`` is a pure function of its
arguments, so derived fields can be recomputed byte-for-byte from stored
state and a clock reading.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass

from sqlalchemy.orm import Session

from devlog_feed.core.errors import InvalidSignalRange
from devlog_feed.core.settings import Settings, settings as default_settings
from devlog_feed.db.time import epoch_now
from devlog_feed.models import Confidence, EngagementCache, Post, PostType
from devlog_feed.schemas.post import ComponentBreakdown, RawPostInput, ScoreResponse
from devlog_feed.services.spam import is_flagged

SECONDS_PER_HOUR = 3600.0


@dataclass(frozen=True)
class ComponentSignals:
    """The four externally produced component scores of a post."""

    keyword: float
    hashtag: float
    semantic: float
    classification: float

    @classmethod
    def from_post(cls, post: Post | RawPostInput) -> "ComponentSignals":
        return cls(
            keyword=post.keyword_score,
            hashtag=post.hashtag_score,
            semantic=post.semantic_score,
            classification=post.classification_score,
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.keyword, self.hashtag, self.semantic, self.classification)

    def clamped(self, source: str | None = None) -> "ComponentSignals":
        """Return a copy with every score clamped into ``[0, 1]``."""
        return ComponentSignals(
            keyword=clamp_unit(self.keyword, "keyword_score", source),
            hashtag=clamp_unit(self.hashtag, "hashtag_score", source),
            semantic=clamp_unit(self.semantic, "semantic_score", source),
            classification=clamp_unit(self.classification, "classification_score", source),
        )


@dataclass(frozen=True)
class ScoreBreakdown:
    """Derived fields of a post along with the factors that produced them."""

    signals: ComponentSignals
    final_score: float
    priority: float
    confidence: Confidence
    post_type: PostType
    recency_decay: float
    velocity_multiplier: float
    promo_penalty_applied: bool
    spam_suppressed: bool


def clamp_unit(value: float, name: str = "score", source: str | None = None) -> float:
    """Clamp a component score into ``[0, 1]``.

    Out-of-range input is clamped rather than rejected and reported as an
    ``InvalidSignalRange`` warning; NaN is treated as 0.
    """
    if math.isnan(value):
        clamped = 0.0
    else:
        clamped = min(1.0, max(0.0, value))
    if clamped != value:
        suffix = f" for {source}" if source else ""
        warnings.warn(
            f"Clamped out-of-range {name} {value!r} to {clamped:.3f}{suffix}",
            InvalidSignalRange,
            stacklevel=2,
        )
    return clamped


def aggregate_signals(
    signals: ComponentSignals,
    weights: tuple[float, float, float, float] | None = None,
) -> float:
    """Combine the clamped component scores into ``final_score``."""
    w = weights or default_settings.signal_weights
    return sum(wi * si for wi, si in zip(w, signals.clamped().as_tuple(), strict=True))


def classify_post_type(
    *,
    link_count: int,
    promo_link_count: int,
    is_first_person: bool,
    keyword_score: float,
    devlog_threshold: float,
) -> PostType:
    """Return the post type; rules are evaluated in order, first match wins."""
    if promo_link_count > 0 and promo_link_count * 2 >= link_count:
        return PostType.PROMOTIONAL
    if is_first_person and keyword_score > devlog_threshold:
        return PostType.DEVLOG
    return PostType.OTHER


def classify_confidence(
    signals: ComponentSignals,
    *,
    high_agreement_spread: float,
    low_agreement_spread: float,
) -> Confidence:
    """Return confidence from the spread between the strongest and weakest signal."""
    values = signals.as_tuple()
    spread = max(values) - min(values)
    if spread < high_agreement_spread:
        return Confidence.HIGH
    if spread > low_agreement_spread:
        return Confidence.LOW
    return Confidence.MEDIUM


def post_age_seconds(timestamp: int, now: int) -> float:
    """Age of a post; clock skew never produces a negative age."""
    return float(max(0, now - timestamp))


def recency_decay(age_seconds: float, half_life_hours: float) -> float:
    """``exp(-age / half_life)`` with age clamped to be non-negative."""
    age_hours = max(0.0, age_seconds) / SECONDS_PER_HOUR
    return math.exp(-age_hours / half_life_hours)


def velocity_multiplier(velocity: float, v_max: float, boost_factor: float) -> float:
    """``1 + clamp(v, 0, v_max) * boost_factor``."""
    return 1.0 + min(max(velocity, 0.0), v_max) * boost_factor


def compute_velocity(
    *,
    like_count: int,
    repost_count: int,
    reply_count: int,
    age_seconds: float,
    config: Settings | None = None,
) -> float:
    """Weighted engagement per hour since posting.

    The age is floored at ``velocity_min_age_hours`` so very new posts do not
    divide by (almost) zero.
    """
    cfg = config or default_settings
    weighted = (
        like_count * cfg.engagement_like_weight
        + repost_count * cfg.engagement_repost_weight
        + reply_count * cfg.engagement_reply_weight
    )
    age_hours = max(age_seconds / SECONDS_PER_HOUR, cfg.velocity_min_age_hours)
    return weighted / age_hours


def calculate_priority(
    final_score: float,
    *,
    post_type: PostType,
    age_seconds: float,
    velocity_score: float,
    author_flagged: bool,
    config: Settings | None = None,
) -> tuple[float, float, float]:
    """Return ``(priority, recency_decay, velocity_multiplier)``.

    Flagged authors always get 0; promotional posts are penalized after the
    decay and velocity factors.
    """
    cfg = config or default_settings
    decay = recency_decay(age_seconds, cfg.recency_half_life_hours)
    multiplier = velocity_multiplier(velocity_score, cfg.velocity_max, cfg.velocity_boost_factor)
    if author_flagged:
        return 0.0, decay, multiplier
    priority = final_score * decay * multiplier
    if post_type is PostType.PROMOTIONAL:
        priority *= cfg.promo_penalty
    return priority, decay, multiplier


def score_post(
    signals: ComponentSignals,
    *,
    link_count: int,
    promo_link_count: int,
    is_first_person: bool,
    timestamp: int,
    now: int,
    velocity_score: float = 0.0,
    author_flagged: bool = False,
    config: Settings | None = None,
    source: str | None = None,
) -> ScoreBreakdown:
    """Compute every derived field of a post.

    Args:
        signals: Raw component scores; clamped here.
        link_count: Number of links in the post.
        promo_link_count: Number of links pointing at promotional domains.
        is_first_person: Whether the text is written in the first person.
        timestamp: Post creation time, epoch seconds.
        now: Clock reading used for recency decay, epoch seconds.
        velocity_score: Current engagement velocity.
        author_flagged: Whether the author is a flagged spammer.
        config: Settings providing weights and thresholds.
        source: Identifier used in clamp warnings (usually the post URI).
    """
    cfg = config or default_settings
    clamped = signals.clamped(source)

    final_score = aggregate_signals(clamped, cfg.signal_weights)
    post_type = classify_post_type(
        link_count=link_count,
        promo_link_count=promo_link_count,
        is_first_person=is_first_person,
        keyword_score=clamped.keyword,
        devlog_threshold=cfg.devlog_keyword_threshold,
    )
    confidence = classify_confidence(
        clamped,
        high_agreement_spread=cfg.confidence_high_agreement_spread,
        low_agreement_spread=cfg.confidence_low_agreement_spread,
    )

    priority, decay, multiplier = calculate_priority(
        final_score,
        post_type=post_type,
        age_seconds=post_age_seconds(timestamp, now),
        velocity_score=velocity_score,
        author_flagged=author_flagged,
        config=cfg,
    )

    return ScoreBreakdown(
        signals=clamped,
        final_score=final_score,
        priority=priority,
        confidence=confidence,
        post_type=post_type,
        recency_decay=decay,
        velocity_multiplier=multiplier,
        promo_penalty_applied=post_type is PostType.PROMOTIONAL,
        spam_suppressed=author_flagged,
    )


def score_one(
    raw: RawPostInput,
    *,
    now: int | None = None,
    config: Settings | None = None,
) -> ScoreResponse:
    """Score a single post for inspection without touching persisted state."""
    now = epoch_now() if now is None else now
    breakdown = score_post(
        ComponentSignals.from_post(raw),
        link_count=raw.link_count,
        promo_link_count=raw.promo_link_count,
        is_first_person=raw.is_first_person,
        timestamp=now if raw.timestamp is None else raw.timestamp,
        now=now,
        velocity_score=raw.velocity_score,
        author_flagged=raw.author_flagged,
        config=config,
    )
    return ScoreResponse(
        final_score=breakdown.final_score,
        priority=breakdown.priority,
        confidence=breakdown.confidence,
        post_type=breakdown.post_type,
        components=ComponentBreakdown(
            keyword_score=breakdown.signals.keyword,
            hashtag_score=breakdown.signals.hashtag,
            semantic_score=breakdown.signals.semantic,
            classification_score=breakdown.signals.classification,
            recency_decay=breakdown.recency_decay,
            velocity_multiplier=breakdown.velocity_multiplier,
            promo_penalty_applied=breakdown.promo_penalty_applied,
            spam_suppressed=breakdown.spam_suppressed,
        ),
    )


def apply_breakdown(post: Post, breakdown: ScoreBreakdown) -> None:
    """Copy derived fields onto a post row."""
    post.final_score = breakdown.final_score
    post.priority = breakdown.priority
    post.confidence = breakdown.confidence
    post.post_type = breakdown.post_type


def rescore_post(
    db: Session,
    post: Post,
    *,
    now: int,
    config: Settings | None = None,
    cache: EngagementCache | None = None,
) -> ScoreBreakdown:
    """Recompute and store the derived fields of ``post`` from current state.

    Reads the engagement counters and the author's spam flag; the caller
    owns the transaction.
    """
    cfg = config or default_settings
    if cache is None:
        cache = db.get(EngagementCache, post.uri)

    velocity = 0.0
    if cache is not None:
        velocity = compute_velocity(
            like_count=cache.like_count,
            repost_count=cache.repost_count,
            reply_count=cache.reply_count,
            age_seconds=post_age_seconds(post.timestamp, now),
            config=cfg,
        )

    breakdown = score_post(
        ComponentSignals.from_post(post),
        link_count=post.link_count,
        promo_link_count=post.promo_link_count,
        is_first_person=post.is_first_person,
        timestamp=post.timestamp,
        now=now,
        velocity_score=velocity,
        author_flagged=is_flagged(db, post.author_did),
        config=cfg,
        source=post.uri,
    )
    apply_breakdown(post, breakdown)
    return breakdown
