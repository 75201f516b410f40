"""Historical query service - read-only analytics over the snapshot tables.

Everything is scoped by owning user: the user's primary Instagram account
(active first, then most recently updated) is resolved once per service
instance and every query filters on it.
"""

import logging
import math
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Select, and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.daily_snapshot import DailySnapshot
from models.instagram_account import InstagramAccount
from models.post_snapshot import PostSnapshot
from models.sync_log import SyncLog, SyncStatus
from services.account_service import get_user_instagram_account
from services.dates import days_ago, utc_today
from services.errors import StoreError

logger = logging.getLogger(__name__)

Period = Literal["daily", "weekly", "monthly", "annual"]

PERIOD_DAYS: dict[str, int] = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "annual": 365,
}

POST_TYPES = ("IMAGE", "VIDEO", "CAROUSEL_ALBUM")


def percent_change(current: float, previous: float) -> float:
    """((current - previous) / previous) * 100, or 0 when previous is 0."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


# ============== Result Models ==============

class DailySnapshotView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    snapshot_date: date
    followers_count: int
    following_count: int
    media_count: int
    total_likes: int
    total_comments: int
    engagement_rate: float
    avg_likes_per_post: float
    avg_comments_per_post: float
    posts_published_count: int


class PostSnapshotView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instagram_post_id: str
    snapshot_date: date
    post_type: Optional[str] = None
    caption: Optional[str] = None
    permalink: Optional[str] = None
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    published_at: Optional[datetime] = None
    likes_count: int = 0
    comments_count: int = 0
    reach: int = 0
    impressions: int = 0
    saves_count: int = 0


class GrowthAnalytics(BaseModel):
    """Change between the current snapshot and one ``period`` back."""
    period: Period
    followers_growth: int
    followers_growth_rate: float
    posts_growth: int
    posts_growth_rate: float
    engagement_growth: float
    engagement_growth_rate: float
    period_start_date: date
    period_end_date: date


class GrowthAnalyticsSet(BaseModel):
    daily: Optional[GrowthAnalytics] = None
    weekly: Optional[GrowthAnalytics] = None
    monthly: Optional[GrowthAnalytics] = None
    annual: Optional[GrowthAnalytics] = None
    is_real_data: bool = False
    data_points: int = 0


class GrowthChartPoint(BaseModel):
    date: date
    followers: int
    growth: int
    posts: int


class EngagementTrendPoint(BaseModel):
    date: date
    engagement_rate: float
    avg_likes: float
    avg_comments: float
    followers_count: int
    posts_count: int


class EngagementRateTrendPoint(BaseModel):
    date: date
    engagement_rate: float
    rate_change: float
    followers_count: int
    posts_count: int


class ProfileSummary(BaseModel):
    followers_count: int
    following_count: int
    media_count: int
    last_updated: date


class MetricsSummary(BaseModel):
    engagement_rate: float
    avg_likes_per_post: float
    avg_comments_per_post: float
    total_likes: int
    total_comments: int


class DataQuality(BaseModel):
    has_historical_data: bool
    data_points: int
    is_real_data: bool


class AccountSummary(BaseModel):
    profile: ProfileSummary
    metrics: MetricsSummary
    growth: GrowthAnalyticsSet
    top_posts: list[PostSnapshotView]
    trends: list[EngagementTrendPoint]
    data_quality: DataQuality


class ContentTypePerformance(BaseModel):
    type: str
    count: int
    avg_likes: int
    avg_comments: int
    total_engagement: int
    best_post: PostSnapshotView


class DailyPostCount(BaseModel):
    date: date
    posts_published: int


class PostingFrequency(BaseModel):
    total_posts: int
    avg_posts_per_day: float
    most_active_day: DailyPostCount
    posting_consistency: int


class SyncLogView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sync_type: str
    status: SyncStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None


class AccountStats(BaseModel):
    instagram_handle: str
    instagram_id: str
    account_type: Optional[str]
    last_sync_at: Optional[datetime]
    is_active: bool
    total_snapshots: int
    latest_snapshot: Optional[DailySnapshotView]
    oldest_snapshot: Optional[DailySnapshotView]
    total_posts_tracked: int
    unique_posts: int
    total_syncs: int
    latest_sync: Optional[SyncLogView]
    sync_success_rate: float


# ============== Service ==============

class HistoricalDataService:
    """Answers history questions for one request. Never writes."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._accounts: dict[str, Optional[InstagramAccount]] = {}

    async def _account(self, user_id: str) -> Optional[InstagramAccount]:
        if user_id not in self._accounts:
            self._accounts[user_id] = await get_user_instagram_account(self.db, user_id)
        return self._accounts[user_id]

    async def _scalars(self, query, what: str) -> list:
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get {what}: {e}") from e
        return list(result.scalars())

    async def get_historical_snapshots(self, user_id: str, days: int = 30) -> list[DailySnapshot]:
        """Snapshots from the last ``days`` calendar days, newest first."""
        account = await self._account(user_id)
        if account is None:
            return []
        query = (
            select(DailySnapshot)
            .where(
                DailySnapshot.account_id == account.id,
                DailySnapshot.snapshot_date >= days_ago(days),
            )
            .order_by(DailySnapshot.snapshot_date.desc())
        )
        return await self._scalars(query, "historical snapshots")

    async def get_latest_snapshot(self, user_id: str) -> Optional[DailySnapshot]:
        account = await self._account(user_id)
        if account is None:
            return None
        rows = await self._scalars(
            select(DailySnapshot)
            .where(DailySnapshot.account_id == account.id)
            .order_by(DailySnapshot.snapshot_date.desc())
            .limit(1),
            "latest snapshot",
        )
        return rows[0] if rows else None

    @staticmethod
    def find_snapshot_on_or_before(
        snapshots: list[DailySnapshot], target: date
    ) -> Optional[DailySnapshot]:
        """Most recent snapshot dated on or before ``target``.

        ``snapshots`` must be newest-first; a snapshot after ``target`` is never
        chosen, even if it is closer.
        """
        for snapshot in snapshots:
            if snapshot.snapshot_date <= target:
                return snapshot
        return None

    @staticmethod
    def _growth_between(
        period: Period, current: DailySnapshot, previous: DailySnapshot
    ) -> GrowthAnalytics:
        return GrowthAnalytics(
            period=period,
            followers_growth=current.followers_count - previous.followers_count,
            followers_growth_rate=percent_change(current.followers_count, previous.followers_count),
            posts_growth=current.media_count - previous.media_count,
            posts_growth_rate=percent_change(current.media_count, previous.media_count),
            engagement_growth=current.engagement_rate - previous.engagement_rate,
            engagement_growth_rate=percent_change(current.engagement_rate, previous.engagement_rate),
            period_start_date=previous.snapshot_date,
            period_end_date=current.snapshot_date,
        )

    async def get_growth_analytics(self, user_id: str) -> GrowthAnalyticsSet:
        """Daily/weekly/monthly/annual change relative to the latest snapshot.

        Periods with no qualifying comparator are None. ``is_real_data`` only
        requires two snapshots, not that every period resolves.
        """
        snapshots = await self.get_historical_snapshots(user_id, PERIOD_DAYS["annual"])

        if len(snapshots) < 2:
            return GrowthAnalyticsSet(is_real_data=False, data_points=len(snapshots))

        current, history = snapshots[0], snapshots[1:]
        today = utc_today()
        growth = GrowthAnalyticsSet(is_real_data=True, data_points=len(snapshots))

        for period, period_days in PERIOD_DAYS.items():
            previous = self.find_snapshot_on_or_before(history, days_ago(period_days, today))
            if previous is not None:
                setattr(growth, period, self._growth_between(period, current, previous))

        return growth

    async def get_post_history(self, user_id: str, days: int = 30) -> list[PostSnapshot]:
        """Post snapshots from the last ``days`` days, most recently published first."""
        account = await self._account(user_id)
        if account is None:
            return []
        query = (
            select(PostSnapshot)
            .where(
                PostSnapshot.account_id == account.id,
                PostSnapshot.snapshot_date >= days_ago(days),
            )
            .order_by(PostSnapshot.published_at.desc())
        )
        return await self._scalars(query, "post history")

    @staticmethod
    def _latest_post_snapshots(account_id: str, since: Optional[date] = None) -> Select:
        """Query for the most recent observation of each post."""
        latest = select(
            PostSnapshot.instagram_post_id,
            func.max(PostSnapshot.snapshot_date).label("snapshot_date"),
        ).where(PostSnapshot.account_id == account_id)
        if since is not None:
            latest = latest.where(PostSnapshot.snapshot_date >= since)
        latest = latest.group_by(PostSnapshot.instagram_post_id).subquery()

        return (
            select(PostSnapshot)
            .join(
                latest,
                and_(
                    PostSnapshot.instagram_post_id == latest.c.instagram_post_id,
                    PostSnapshot.snapshot_date == latest.c.snapshot_date,
                ),
            )
            .where(PostSnapshot.account_id == account_id)
        )

    async def count_tracked_posts(self, user_id: str, snapshot_date: date) -> int:
        """Posts observed by the sync run that wrote ``snapshot_date``."""
        account = await self._account(user_id)
        if account is None:
            return 0
        try:
            result = await self.db.execute(
                select(func.count(PostSnapshot.id)).where(
                    PostSnapshot.account_id == account.id,
                    PostSnapshot.snapshot_date == snapshot_date,
                )
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count tracked posts: {e}") from e
        return result.scalar_one()

    async def get_top_performing_posts(self, user_id: str, limit: int = 10) -> list[PostSnapshot]:
        """Posts by likes, descending, using each post's latest observation."""
        account = await self._account(user_id)
        if account is None:
            return []
        query = self._latest_post_snapshots(account.id).order_by(PostSnapshot.likes_count.desc()).limit(limit)
        return await self._scalars(query, "top performing posts")

    async def get_engagement_trends(self, user_id: str, days: int = 30) -> list[EngagementTrendPoint]:
        """Engagement per day, oldest first."""
        snapshots = await self.get_historical_snapshots(user_id, days)
        return [
            EngagementTrendPoint(
                date=s.snapshot_date,
                engagement_rate=s.engagement_rate,
                avg_likes=s.avg_likes_per_post,
                avg_comments=s.avg_comments_per_post,
                followers_count=s.followers_count,
                posts_count=s.media_count,
            )
            for s in reversed(snapshots)
        ]

    async def get_engagement_rate_trends(
        self, user_id: str, days: int = 30
    ) -> list[EngagementRateTrendPoint]:
        """Engagement rate per day with the change since the previous snapshot."""
        snapshots = list(reversed(await self.get_historical_snapshots(user_id, days)))
        return [
            EngagementRateTrendPoint(
                date=s.snapshot_date,
                engagement_rate=s.engagement_rate,
                rate_change=s.engagement_rate - snapshots[i - 1].engagement_rate if i > 0 else 0.0,
                followers_count=s.followers_count,
                posts_count=s.media_count,
            )
            for i, s in enumerate(snapshots)
        ]

    async def get_follower_growth_chart(self, user_id: str, days: int = 30) -> list[GrowthChartPoint]:
        """Followers per day, oldest first, with the delta from the previous snapshot."""
        snapshots = list(reversed(await self.get_historical_snapshots(user_id, days)))
        return [
            GrowthChartPoint(
                date=s.snapshot_date,
                followers=s.followers_count,
                growth=s.followers_count - snapshots[i - 1].followers_count if i > 0 else 0,
                posts=s.media_count,
            )
            for i, s in enumerate(snapshots)
        ]

    async def has_historical_data(self, user_id: str) -> bool:
        """At least two snapshots in the trailing week."""
        snapshots = await self.get_historical_snapshots(user_id, 7)
        return len(snapshots) >= 2

    async def get_account_summary(self, user_id: str) -> Optional[AccountSummary]:
        """Latest snapshot + growth + top 5 posts + 7-day trend, or None without snapshots."""
        latest = await self.get_latest_snapshot(user_id)
        if latest is None:
            return None

        growth = await self.get_growth_analytics(user_id)
        top_posts = await self.get_top_performing_posts(user_id, 5)
        trends = await self.get_engagement_trends(user_id, 7)

        return AccountSummary(
            profile=ProfileSummary(
                followers_count=latest.followers_count,
                following_count=latest.following_count,
                media_count=latest.media_count,
                last_updated=latest.snapshot_date,
            ),
            metrics=MetricsSummary(
                engagement_rate=latest.engagement_rate,
                avg_likes_per_post=latest.avg_likes_per_post,
                avg_comments_per_post=latest.avg_comments_per_post,
                total_likes=latest.total_likes,
                total_comments=latest.total_comments,
            ),
            growth=growth,
            top_posts=[PostSnapshotView.model_validate(p) for p in top_posts],
            trends=trends,
            data_quality=DataQuality(
                has_historical_data=await self.has_historical_data(user_id),
                data_points=growth.data_points,
                is_real_data=growth.is_real_data,
            ),
        )

    async def get_content_performance_analysis(
        self, user_id: str, days: int = 30
    ) -> Optional[list[ContentTypePerformance]]:
        """Average engagement per media type over recently observed posts."""
        account = await self._account(user_id)
        if account is None:
            return None
        posts = await self._scalars(
            self._latest_post_snapshots(account.id, since=days_ago(days)),
            "content performance",
        )
        if not posts:
            return None

        analysis = []
        for post_type in POST_TYPES:
            typed = [p for p in posts if p.post_type == post_type]
            if not typed:
                continue
            avg_likes = sum(p.likes_count for p in typed) / len(typed)
            avg_comments = sum(p.comments_count for p in typed) / len(typed)
            best = max(typed, key=lambda p: p.likes_count + p.comments_count)
            analysis.append(ContentTypePerformance(
                type=post_type,
                count=len(typed),
                avg_likes=round(avg_likes),
                avg_comments=round(avg_comments),
                total_engagement=round(avg_likes + avg_comments),
                best_post=PostSnapshotView.model_validate(best),
            ))
        return analysis

    @staticmethod
    def posting_consistency(daily_counts: list[int]) -> int:
        """0-100, where 100 means the same number of posts every day."""
        if not daily_counts:
            return 0
        avg = sum(daily_counts) / len(daily_counts)
        variance = sum((c - avg) ** 2 for c in daily_counts) / len(daily_counts)
        return round(max(0.0, 100 - math.sqrt(variance) * 20))

    async def get_posting_frequency_analysis(
        self, user_id: str, days: int = 30
    ) -> Optional[PostingFrequency]:
        snapshots = await self.get_historical_snapshots(user_id, days)
        if len(snapshots) < 2:
            return None

        daily = [
            DailyPostCount(date=s.snapshot_date, posts_published=s.posts_published_count)
            for s in snapshots
        ]
        total_posts = sum(d.posts_published for d in daily)
        return PostingFrequency(
            total_posts=total_posts,
            avg_posts_per_day=round(total_posts / days, 2),
            most_active_day=max(daily, key=lambda d: d.posts_published),
            posting_consistency=self.posting_consistency([d.posts_published for d in daily]),
        )

    async def get_sync_history(self, user_id: str, limit: int = 10) -> list[SyncLog]:
        account = await self._account(user_id)
        if account is None:
            return []
        query = (
            select(SyncLog)
            .where(SyncLog.account_id == account.id)
            .order_by(SyncLog.started_at.desc())
            .limit(limit)
        )
        return await self._scalars(query, "sync history")

    async def get_latest_sync_info(self, user_id: str) -> Optional[SyncLog]:
        history = await self.get_sync_history(user_id, 1)
        return history[0] if history else None

    async def get_account_stats(self, user_id: str) -> Optional[AccountStats]:
        """Monitoring view of one user's account: snapshots, tracked posts, syncs."""
        account = await self._account(user_id)
        if account is None:
            return None

        snapshots = await self.get_historical_snapshots(user_id, 30)
        posts = await self.get_post_history(user_id, 30)
        sync_logs = await self.get_sync_history(user_id, 5)

        completed = sum(1 for log in sync_logs if log.status == SyncStatus.COMPLETED)
        return AccountStats(
            instagram_handle=account.instagram_handle,
            instagram_id=account.instagram_id,
            account_type=account.account_type,
            last_sync_at=account.last_sync_at,
            is_active=account.is_active,
            total_snapshots=len(snapshots),
            latest_snapshot=DailySnapshotView.model_validate(snapshots[0]) if snapshots else None,
            oldest_snapshot=DailySnapshotView.model_validate(snapshots[-1]) if snapshots else None,
            total_posts_tracked=len(posts),
            unique_posts=len({p.instagram_post_id for p in posts}),
            total_syncs=len(sync_logs),
            latest_sync=SyncLogView.model_validate(sync_logs[0]) if sync_logs else None,
            sync_success_rate=completed / len(sync_logs) * 100 if sync_logs else 0.0,
        )
