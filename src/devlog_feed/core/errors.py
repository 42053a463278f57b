"""Error types raised by the curation engine."""

from __future__ import annotations


class FeedCuratorError(RuntimeError):
    """Base exception for all curation engine failures."""


class DuplicateEvent(FeedCuratorError):
    """An event whose natural key is already recorded.

    Raised internally to short-circuit processing; callers treat it as a
    successful no-op and never surface it.
    """


class UnknownPostReference(FeedCuratorError):
    """An engagement event references a post that has not been ingested yet."""

    def __init__(self, post_uri: str) -> None:
        super().__init__(f"Unknown post reference: {post_uri}")
        self.post_uri = post_uri


class InvalidSignalRange(UserWarning):
    """A component score fell outside ``[0, 1]`` and was clamped."""


class StorageFailure(FeedCuratorError):
    """Transaction or I/O failure in the backing store.

    Attributes:
        retryable: True when the failure was transient (lock contention,
            dropped connection) and the caller may try again later.
    """

    def __init__(self, message: str, *, retryable: bool) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigurationError(FeedCuratorError):
    """Missing or invalid weight/threshold configuration."""


class InvalidCursor(FeedCuratorError):
    """A pagination cursor could not be decoded."""
