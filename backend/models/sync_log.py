"""Sync run audit log."""

import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class SyncStatus(str, enum.Enum):
    """Sync run status."""
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncLog(Base):
    """One row per snapshot run per account.

    Append-only. Used for monitoring and stale-account detection, never as an
    analytics input.
    """

    __tablename__ = "sync_logs"

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
    sync_type: Mapped[str] = mapped_column(String(20), default="full", nullable=False)
    status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, values_callable=lambda enum: [e.value for e in enum]),
        default=SyncStatus.STARTED,
        nullable=False
    )
    records_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Error tracking
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncLog {self.id[:8]} ({self.status.value})>"
