"""Connected Instagram accounts and their OAuth credentials."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from services.dates import as_utc


class InstagramAccount(Base):
    """Instagram identity connected by a user.

    One row per (user, instagram_id). Accounts are deactivated, never deleted,
    when their credential can't be refreshed; reconnecting reactivates the row.
    """

    __tablename__ = "instagram_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "instagram_id", name="uix_instagram_accounts_user_instagram"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # External account identifiers
    instagram_id: Mapped[str] = mapped_column(String(255), nullable=False)
    instagram_handle: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[str | None] = mapped_column(String(20), nullable=True)  # personal, business, creator

    # OAuth tokens
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Sync state
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def is_expired(self) -> bool:
        """Check if the access token is expired."""
        if not self.token_expires_at:
            return False
        return datetime.now(timezone.utc) >= as_utc(self.token_expires_at)

    def __repr__(self) -> str:
        return f"<InstagramAccount @{self.instagram_handle} active={self.is_active}>"
