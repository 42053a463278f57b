# src/devlog_feed/models/spam.py
"""Model for accounts flagged as spammers."""

from sqlalchemy import BigInteger, Boolean, Float, Text
from sqlalchemy.orm import Mapped, mapped_column

from devlog_feed.db.session import Base


class Spammer(Base):
    """Sticky spam flag for an account.

    Rows are only ever inserted; clearing a flag is an administrative action
    outside the curation engine.
    """

    __tablename__ = "spammers"

    did: Mapped[str] = mapped_column(Text, primary_key=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL when flagged manually without a computed rate.
    repost_frequency: Mapped[float | None] = mapped_column(Float, nullable=True)
    flagged_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    auto_detected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
