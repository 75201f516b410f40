"""Access token refresh for connected Instagram accounts.

Policy: refresh anything expiring within the window; if a refresh fails the
account is deactivated instead of retried, so one dead credential can't make
every following batch fail noisily. The user reconnects to reactivate it.
"""

import logging
from datetime import timedelta
from typing import Optional

import httpx
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from models.instagram_account import InstagramAccount
from services.dates import utc_now
from services.errors import RefreshError, StoreError

logger = logging.getLogger(__name__)
settings = get_settings()


class TokenRefresh(BaseModel):
    access_token: str
    expires_in: int


class TokenRefreshSummary(BaseModel):
    """Outcome of one scan over expiring credentials."""
    checked: int = 0
    refreshed: int = 0
    deactivated: int = 0
    skipped: int = 0
    errors: list[str] = []


async def refresh_access_token(
    refresh_token: str, client: Optional[httpx.AsyncClient] = None
) -> TokenRefresh:
    """Exchange a refresh token for a new access token.

    Raises RefreshError on transport failures, non-2xx responses or a body
    without an access token.
    """
    url = f"{settings.instagram_graph_base}/refresh_access_token"
    form = {"grant_type": "refresh_token", "refresh_token": refresh_token}

    try:
        if client is not None:
            response = await client.post(url, data=form)
        else:
            async with httpx.AsyncClient(timeout=settings.instagram_api_timeout) as own_client:
                response = await own_client.post(url, data=form)
    except httpx.HTTPError as e:
        raise RefreshError(f"Token refresh request failed: {e}") from e

    if not response.is_success:
        raise RefreshError(
            f"Token refresh failed: {response.status_code}",
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError as e:
        raise RefreshError("Token refresh returned invalid JSON", response.status_code) from e

    if not data.get("access_token"):
        raise RefreshError("No access token in refresh response", response.status_code)

    return TokenRefresh(
        access_token=data["access_token"],
        expires_in=int(data.get("expires_in") or 0),
    )


async def update_account_token(
    db: AsyncSession, account_id: str, access_token: str, expires_in: int
) -> None:
    """Persist a refreshed credential and its new expiry."""
    expires_at = utc_now() + timedelta(seconds=expires_in)
    await db.execute(
        update(InstagramAccount)
        .where(InstagramAccount.id == account_id)
        .values(
            access_token=access_token,
            token_expires_at=expires_at,
            updated_at=utc_now(),
        )
    )
    await db.commit()


async def deactivate_account(db: AsyncSession, account_id: str) -> None:
    await db.execute(
        update(InstagramAccount)
        .where(InstagramAccount.id == account_id)
        .values(is_active=False, updated_at=utc_now())
    )
    await db.commit()


async def get_accounts_needing_refresh(
    db: AsyncSession, window_hours: int
) -> list[InstagramAccount]:
    """Active accounts whose token expires within ``window_hours``."""
    threshold = utc_now() + timedelta(hours=window_hours)
    try:
        result = await db.execute(
            select(InstagramAccount).where(
                InstagramAccount.is_active.is_(True),
                InstagramAccount.token_expires_at.is_not(None),
                InstagramAccount.token_expires_at < threshold,
            )
        )
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to load accounts for token refresh: {e}") from e
    return list(result.scalars())


async def refresh_expiring_tokens(
    db: AsyncSession,
    window_hours: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenRefreshSummary:
    """Refresh every credential about to lapse; deactivate the ones that fail.

    A store error on one account is rolled back and reported in ``errors``;
    the scan moves on to the next account.
    """
    window = window_hours if window_hours is not None else settings.token_refresh_window_hours
    accounts = await get_accounts_needing_refresh(db, window)
    summary = TokenRefreshSummary(checked=len(accounts))
    logger.info(f"Found {len(accounts)} accounts needing token refresh")

    # Rollbacks expire loaded instances, so read what the loop needs up front.
    pending = [(a.id, a.instagram_handle, a.refresh_token) for a in accounts]
    for account_id, handle, refresh_token in pending:
        if not refresh_token:
            logger.warning(f"No refresh token available for @{handle}, skipping")
            summary.skipped += 1
            continue

        try:
            token = await refresh_access_token(refresh_token, client=client)
        except RefreshError as e:
            logger.error(f"Failed to refresh token for @{handle}, deactivating: {e}")
            try:
                await deactivate_account(db, account_id)
            except SQLAlchemyError as store_error:
                await db.rollback()
                logger.error(f"Failed to deactivate @{handle}: {store_error}")
                summary.errors.append(f"{handle}: {store_error}")
                continue
            summary.deactivated += 1
            summary.errors.append(f"{handle}: {e}")
            continue

        try:
            await update_account_token(db, account_id, token.access_token, token.expires_in)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to store refreshed token for @{handle}: {e}")
            summary.errors.append(f"{handle}: {e}")
            continue
        summary.refreshed += 1
        logger.info(f"Token refreshed for @{handle}")

    return summary
