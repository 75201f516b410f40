"""Snapshot writer - captures one account's metrics for today.

Fetches the profile and recent media, derives aggregate engagement metrics and
upserts one DailySnapshot per (account, day) plus one PostSnapshot per
(account, post, day). Re-running for the same account on the same day
overwrites the rows, so a manual "sync now" racing the cron run is harmless.

Every run is bracketed by a SyncLog row (started -> completed | failed).
"""

import logging
from datetime import date
from typing import Optional

import httpx
from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import dialect_insert
from models.daily_snapshot import DailySnapshot
from models.instagram_account import InstagramAccount
from models.post_snapshot import PostSnapshot
from models.sync_log import SyncLog, SyncStatus
from services.dates import utc_now, utc_today
from services.errors import AccountNotSyncableError, ApiError, StoreError
from services.instagram_service import (
    InstagramMedia,
    InstagramProfile,
    MediaInsights,
    fetch_media_insights,
    fetch_profile,
    fetch_recent_media,
)

logger = logging.getLogger(__name__)
settings = get_settings()


class EngagementMetrics(BaseModel):
    total_likes: int = 0
    total_comments: int = 0
    avg_likes: float = 0.0
    avg_comments: float = 0.0
    engagement_rate: float = 0.0


class SnapshotResult(BaseModel):
    """What one successful run wrote."""
    account_id: str
    snapshot_date: date
    posts_processed: int
    followers: int
    following: int
    posts: int
    engagement_rate: float


def compute_engagement_metrics(
    media: list[InstagramMedia], followers_count: int
) -> EngagementMetrics:
    """Aggregate likes/comments over ``media``.

    engagement_rate = (likes + comments) / (posts * followers) * 100, rounded to
    two decimals; 0 when there are no posts or no followers.
    """
    if not media:
        return EngagementMetrics()

    total_likes = sum(m.like_count or 0 for m in media)
    total_comments = sum(m.comments_count or 0 for m in media)
    post_count = len(media)

    engagement_rate = 0.0
    if followers_count > 0:
        engagement_rate = (total_likes + total_comments) / (post_count * followers_count) * 100

    return EngagementMetrics(
        total_likes=total_likes,
        total_comments=total_comments,
        avg_likes=total_likes / post_count,
        avg_comments=total_comments / post_count,
        engagement_rate=round(engagement_rate, 2),
    )


def count_posts_published_on(media: list[InstagramMedia], day: date) -> int:
    """Number of posts whose UTC publish date is ``day``."""
    return sum(
        1 for m in media
        if m.published_at is not None and m.published_at.date() == day
    )


async def _upsert_daily_snapshot(
    db: AsyncSession,
    account_id: str,
    snapshot_date: date,
    profile: InstagramProfile,
    metrics: EngagementMetrics,
    posts_published_today: int,
) -> None:
    """Insert or replace the (account, date) snapshot row."""
    values = {
        "account_id": account_id,
        "snapshot_date": snapshot_date,
        "followers_count": profile.followers_count,
        "following_count": profile.follows_count,
        "media_count": profile.media_count,
        "total_likes": metrics.total_likes,
        "total_comments": metrics.total_comments,
        "engagement_rate": metrics.engagement_rate,
        "avg_likes_per_post": metrics.avg_likes,
        "avg_comments_per_post": metrics.avg_comments,
        "posts_published_count": posts_published_today,
        "raw_profile_data": profile.raw,
        "updated_at": utc_now(),
    }
    stmt = dialect_insert(db, DailySnapshot).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["account_id", "snapshot_date"],
        set_={
            k: stmt.excluded[k] for k in values
            if k not in ("account_id", "snapshot_date")
        },
    )
    await db.execute(stmt)


async def _upsert_post_snapshot(
    db: AsyncSession,
    account_id: str,
    snapshot_date: date,
    post: InstagramMedia,
    insights: MediaInsights,
) -> None:
    """Insert or replace the (account, post, date) snapshot row."""
    values = {
        "account_id": account_id,
        "instagram_post_id": post.id,
        "snapshot_date": snapshot_date,
        "post_type": post.media_type,
        "caption": post.caption,
        "permalink": post.permalink,
        "media_url": post.media_url,
        "thumbnail_url": post.thumbnail_url,
        "published_at": post.published_at,
        "likes_count": post.like_count or 0,
        "comments_count": post.comments_count or 0,
        "reach": insights.reach or 0,
        "impressions": insights.impressions or 0,
        "saves_count": insights.saves or 0,
        "raw_post_data": post.raw,
        "raw_insights_data": insights.model_dump(exclude_none=True),
        "updated_at": utc_now(),
    }
    stmt = dialect_insert(db, PostSnapshot).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["account_id", "instagram_post_id", "snapshot_date"],
        set_={
            k: stmt.excluded[k] for k in values
            if k not in ("account_id", "instagram_post_id", "snapshot_date")
        },
    )
    await db.execute(stmt)


async def _fetch_insights_best_effort(
    post_id: str, access_token: str, client: Optional[httpx.AsyncClient]
) -> MediaInsights:
    """Insights are a bonus: personal accounts and older media don't have them."""
    try:
        return await fetch_media_insights(post_id, access_token, client=client)
    except ApiError as e:
        logger.warning(f"Could not fetch insights for post {post_id}: {e}")
        return MediaInsights()


async def _finish_sync_log(
    db: AsyncSession,
    log_id: str,
    status: SyncStatus,
    records_processed: int = 0,
    error_message: Optional[str] = None,
) -> None:
    await db.execute(
        update(SyncLog)
        .where(SyncLog.id == log_id)
        .values(
            status=status,
            completed_at=utc_now(),
            records_processed=records_processed,
            error_message=error_message,
        )
    )
    await db.commit()


async def create_daily_snapshot(
    db: AsyncSession,
    account: InstagramAccount,
    client: Optional[httpx.AsyncClient] = None,
) -> SnapshotResult:
    """Snapshot ``account`` for today's UTC date.

    Profile/media fetch failures and store failures abort the run: nothing is
    written for the day, the SyncLog is marked failed and the error re-raised.
    Per-post insight failures are logged and ignored.
    """
    if not account.is_active or not account.access_token:
        raise AccountNotSyncableError(
            f"Instagram account @{account.instagram_handle} is not active or has no access token"
        )
    if account.is_expired():
        raise AccountNotSyncableError(
            f"Access token for @{account.instagram_handle} has expired; reconnect the account"
        )

    account_id = account.id
    handle = account.instagram_handle
    access_token = account.access_token

    logger.info(f"Creating daily snapshot for @{handle} ({account_id})")

    sync_log = SyncLog(
        account_id=account_id,
        sync_type="full",
        status=SyncStatus.STARTED,
        started_at=utc_now(),
    )
    try:
        db.add(sync_log)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreError(f"Failed to record sync start: {e}") from e
    log_id = sync_log.id

    try:
        profile = await fetch_profile(access_token, client=client)
        media = await fetch_recent_media(
            access_token, limit=settings.instagram_media_limit, client=client
        )

        metrics = compute_engagement_metrics(media, profile.followers_count)
        snapshot_date = utc_today()
        posts_today = count_posts_published_on(media, snapshot_date)

        try:
            await _upsert_daily_snapshot(
                db, account_id, snapshot_date, profile, metrics, posts_today
            )

            for post in media:
                insights = await _fetch_insights_best_effort(post.id, access_token, client)
                await _upsert_post_snapshot(db, account_id, snapshot_date, post, insights)

            await db.execute(
                update(InstagramAccount)
                .where(InstagramAccount.id == account_id)
                .values(last_sync_at=utc_now())
            )
            await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write snapshot for @{handle}: {e}") from e

    except Exception as e:
        logger.error(f"Daily snapshot failed for @{handle}: {e}")
        await db.rollback()
        await _finish_sync_log(db, log_id, SyncStatus.FAILED, error_message=str(e))
        raise

    await _finish_sync_log(db, log_id, SyncStatus.COMPLETED, records_processed=len(media) + 1)

    logger.info(
        f"Daily snapshot completed for @{handle}: {profile.followers_count} followers, "
        f"{len(media)} posts, {metrics.engagement_rate}% engagement"
    )
    return SnapshotResult(
        account_id=account_id,
        snapshot_date=snapshot_date,
        posts_processed=len(media),
        followers=profile.followers_count,
        following=profile.follows_count,
        posts=profile.media_count,
        engagement_rate=metrics.engagement_rate,
    )
