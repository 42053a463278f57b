"""Application settings and configuration.

This module defines all configuration options for the Devlog Feed curation
engine. Settings are loaded from environment variables (or an ``.env`` file)
with defaults matching the documented ranking policy. Invalid configuration
is fatal: ``load_settings`` raises ``ConfigurationError`` and the module-level
``settings`` instance is built at import time so a bad deployment fails on
startup instead of ranking with degraded weights.
"""

from __future__ import annotations

import math

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from devlog_feed.core.errors import ConfigurationError

WEIGHT_SUM_TOLERANCE = 1e-6


class Settings(BaseSettings):
    """Curation engine settings loaded from environment variables."""

    # Application metadata
    app_name: str = Field(default="Devlog Feed", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./devlog_feed.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    sqlite_busy_timeout_ms: int = Field(default=2000, alias="SQLITE_BUSY_TIMEOUT_MS")

    # Storage retry policy for transient failures
    storage_retry_attempts: int = Field(default=3, alias="STORAGE_RETRY_ATTEMPTS")
    storage_retry_base_delay_seconds: float = Field(
        default=0.05,
        alias="STORAGE_RETRY_BASE_DELAY_SECONDS",
    )

    # Signal aggregation weights (keyword, hashtag, semantic, classification)
    weight_keyword: float = Field(default=0.25, alias="WEIGHT_KEYWORD")
    weight_hashtag: float = Field(default=0.25, alias="WEIGHT_HASHTAG")
    weight_semantic: float = Field(default=0.25, alias="WEIGHT_SEMANTIC")
    weight_classification: float = Field(default=0.25, alias="WEIGHT_CLASSIFICATION")

    # Classification thresholds
    devlog_keyword_threshold: float = Field(default=0.5, alias="DEVLOG_KEYWORD_THRESHOLD")
    confidence_high_agreement_spread: float = Field(
        default=0.15,
        alias="CONFIDENCE_HIGH_AGREEMENT_SPREAD",
    )
    confidence_low_agreement_spread: float = Field(
        default=0.40,
        alias="CONFIDENCE_LOW_AGREEMENT_SPREAD",
    )

    # Priority calculation
    recency_half_life_hours: float = Field(default=24.0, alias="RECENCY_HALF_LIFE_HOURS")
    velocity_max: float = Field(default=5.0, alias="VELOCITY_MAX")
    velocity_boost_factor: float = Field(default=0.1, alias="VELOCITY_BOOST_FACTOR")
    promo_penalty: float = Field(default=0.5, alias="PROMO_PENALTY")

    # Engagement velocity weights
    engagement_like_weight: float = Field(default=1.0, alias="ENGAGEMENT_LIKE_WEIGHT")
    engagement_repost_weight: float = Field(default=2.0, alias="ENGAGEMENT_REPOST_WEIGHT")
    engagement_reply_weight: float = Field(default=3.0, alias="ENGAGEMENT_REPLY_WEIGHT")
    velocity_min_age_hours: float = Field(default=0.1, alias="VELOCITY_MIN_AGE_HOURS")

    # Spam detection
    spam_repost_threshold: float = Field(default=10.0, alias="SPAM_REPOST_THRESHOLD")
    spam_window_hours: float = Field(default=1.0, alias="SPAM_WINDOW_HOURS")
    moderator_dids: list[str] = Field(default_factory=list, alias="MODERATOR_DIDS")

    # Feed assembly
    feed_default_limit: int = Field(default=30, alias="FEED_DEFAULT_LIMIT")
    feed_max_limit: int = Field(default=100, alias="FEED_MAX_LIMIT")
    feed_max_age_hours: float | None = Field(default=None, alias="FEED_MAX_AGE_HOURS")
    feed_hide_seen: bool = Field(default=True, alias="FEED_HIDE_SEEN")

    # Ingestion
    pending_event_window_seconds: int = Field(
        default=300,
        alias="PENDING_EVENT_WINDOW_SECONDS",
    )
    pending_event_max_size: int = Field(default=10_000, alias="PENDING_EVENT_MAX_SIZE")

    # Maintenance
    retention_hours: float = Field(default=96.0, alias="RETENTION_HOURS")
    max_stored_posts: int = Field(default=50_000, alias="MAX_STORED_POSTS")
    rescore_interval_seconds: float = Field(default=600.0, alias="RESCORE_INTERVAL_SECONDS")
    rescore_batch_size: int = Field(default=500, alias="RESCORE_BATCH_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_policy(self) -> "Settings":
        weights = self.signal_weights
        if any(w < 0 or not math.isfinite(w) for w in weights):
            raise ValueError("signal weights must be finite and non-negative")
        if abs(sum(weights) - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"signal weights must sum to 1.0, got {sum(weights):.6f}")
        if self.confidence_high_agreement_spread > self.confidence_low_agreement_spread:
            raise ValueError(
                "CONFIDENCE_HIGH_AGREEMENT_SPREAD must not exceed CONFIDENCE_LOW_AGREEMENT_SPREAD"
            )
        if self.recency_half_life_hours <= 0:
            raise ValueError("RECENCY_HALF_LIFE_HOURS must be positive")
        if self.velocity_max < 0 or self.velocity_boost_factor < 0:
            raise ValueError("velocity bounds must be non-negative")
        if not 0 < self.promo_penalty < 1:
            raise ValueError("PROMO_PENALTY must lie strictly between 0 and 1")
        if self.velocity_min_age_hours <= 0:
            raise ValueError("VELOCITY_MIN_AGE_HOURS must be positive")
        if self.spam_window_hours <= 0 or self.spam_repost_threshold <= 0:
            raise ValueError("spam window and threshold must be positive")
        if self.spam_window_seconds < 1:
            raise ValueError("SPAM_WINDOW_HOURS must span at least one second")
        if not 1 <= self.feed_default_limit <= self.feed_max_limit:
            raise ValueError("FEED_DEFAULT_LIMIT must lie within [1, FEED_MAX_LIMIT]")
        if self.storage_retry_attempts < 1:
            raise ValueError("STORAGE_RETRY_ATTEMPTS must be at least 1")
        return self

    @property
    def signal_weights(self) -> tuple[float, float, float, float]:
        """Return aggregation weights in component order."""
        return (
            self.weight_keyword,
            self.weight_hashtag,
            self.weight_semantic,
            self.weight_classification,
        )

    @property
    def spam_window_seconds(self) -> int:
        """Return the spam detection window width in whole seconds."""
        return int(self.spam_window_hours * 3600)

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


def load_settings(**overrides: object) -> Settings:
    """Build a validated ``Settings`` instance.

    Args:
        **overrides: Field values taking precedence over the environment.

    Raises:
        ConfigurationError: If any weight or threshold is missing or invalid.
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


settings = load_settings()
