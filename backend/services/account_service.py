"""Instagram account lifecycle: connect, reconnect, disconnect and lookups."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import dialect_insert
from models.instagram_account import InstagramAccount
from services.dates import utc_now
from services.errors import StoreError
from services.instagram_service import InstagramProfile

logger = logging.getLogger(__name__)
settings = get_settings()


async def save_instagram_account(
    db: AsyncSession,
    user_id: str,
    profile: InstagramProfile,
    access_token: str,
    refresh_token: Optional[str] = None,
) -> InstagramAccount:
    """Create or reactivate the (user, instagram_id) account with fresh tokens."""
    now = utc_now()
    values = {
        "user_id": user_id,
        "instagram_id": profile.id,
        "instagram_handle": profile.username,
        "account_type": (profile.account_type or "personal").lower(),
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_expires_at": now + timedelta(days=settings.token_lifetime_days),
        "is_active": True,
        "updated_at": now,
    }
    stmt = dialect_insert(db, InstagramAccount).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "instagram_id"],
        set_={k: stmt.excluded[k] for k in values if k not in ("user_id", "instagram_id")},
    )
    try:
        await db.execute(stmt)
        await db.commit()
        result = await db.execute(
            select(InstagramAccount)
            .where(
                InstagramAccount.user_id == user_id,
                InstagramAccount.instagram_id == profile.id,
            )
            .execution_options(populate_existing=True)
        )
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreError(f"Failed to save Instagram account: {e}") from e

    account = result.scalar_one()
    logger.info(f"Instagram account @{account.instagram_handle} connected for user {user_id}")
    return account


async def get_active_accounts_for_sync(
    db: AsyncSession, user_id: Optional[str] = None
) -> list[InstagramAccount]:
    """All active accounts, optionally limited to one user."""
    query = select(InstagramAccount).where(InstagramAccount.is_active.is_(True))
    if user_id is not None:
        query = query.where(InstagramAccount.user_id == user_id)
    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to get active accounts: {e}") from e
    accounts = list(result.scalars())
    logger.info(f"Found {len(accounts)} active accounts for sync")
    return accounts


async def get_user_instagram_account(
    db: AsyncSession, user_id: str
) -> Optional[InstagramAccount]:
    """The user's primary account: active first, then most recently updated."""
    try:
        result = await db.execute(
            select(InstagramAccount)
            .where(InstagramAccount.user_id == user_id)
            .order_by(InstagramAccount.is_active.desc(), InstagramAccount.updated_at.desc())
            .limit(1)
        )
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to get Instagram account: {e}") from e
    return result.scalar_one_or_none()


async def disconnect_account(db: AsyncSession, account: InstagramAccount) -> InstagramAccount:
    """Deactivate an account. History stays; reconnecting reactivates it."""
    account.is_active = False
    account.updated_at = utc_now()
    await db.commit()
    logger.info(f"Instagram account @{account.instagram_handle} disconnected")
    return account
