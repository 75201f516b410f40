"""PostSnapshot model - a post's engagement as observed on a given day.

A post shows up in many daily snapshots while its likes and comments
accumulate.
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PostSnapshot(Base):
    """Instagram media metrics per (account, post, snapshot_date)."""

    __tablename__ = "post_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "instagram_post_id", "snapshot_date",
            name="uix_post_snapshots_account_post_date",
        ),
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
    instagram_post_id: Mapped[str] = mapped_column(String(255), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Post metadata
    post_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # IMAGE, VIDEO, CAROUSEL_ALBUM
    caption: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    permalink: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    media_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Engagement metrics
    likes_count: Mapped[int] = mapped_column(Integer, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, default=0)
    reach: Mapped[int] = mapped_column(Integer, default=0)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    saves_count: Mapped[int] = mapped_column(Integer, default=0)

    # Opaque audit payloads
    raw_post_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    raw_insights_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

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
        return f"<PostSnapshot {self.instagram_post_id}@{self.snapshot_date}: {self.likes_count} likes>"
