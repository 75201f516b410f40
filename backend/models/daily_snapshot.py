"""DailySnapshot model - account-level metrics per UTC calendar day."""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class DailySnapshot(Base):
    """Point-in-time capture of an Instagram account's metrics.

    One row per (account, snapshot_date). Re-running the sync on the same day
    overwrites the row. This table is the time series all growth analytics are
    computed from.
    """

    __tablename__ = "daily_snapshots"
    __table_args__ = (
        UniqueConstraint("account_id", "snapshot_date", name="uix_daily_snapshots_account_date"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    account_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("instagram_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Profile counters
    followers_count: Mapped[int] = mapped_column(Integer, default=0)
    following_count: Mapped[int] = mapped_column(Integer, default=0)
    media_count: Mapped[int] = mapped_column(Integer, default=0)

    # Aggregates over the recent media fetched that day
    total_likes: Mapped[int] = mapped_column(Integer, default=0)
    total_comments: Mapped[int] = mapped_column(Integer, default=0)
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)
    avg_likes_per_post: Mapped[float] = mapped_column(Float, default=0.0)
    avg_comments_per_post: Mapped[float] = mapped_column(Float, default=0.0)
    posts_published_count: Mapped[int] = mapped_column(Integer, default=0)

    # Opaque audit payload, never parsed after the initial field extraction
    raw_profile_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<DailySnapshot {self.snapshot_date}: {self.followers_count} followers>"
