"""Growth analytics engine.

Turns snapshot history into growth rates, velocity and short-term follower
predictions. With fewer than two snapshots there is no real history, so the
engine falls back to a size/activity-based estimate and says so via
``is_real_data=False``. Estimates are never presented as measured data.
"""

import logging
from datetime import date, timedelta
from typing import Literal, Optional

from pydantic import BaseModel

from services.dates import utc_today
from services.errors import StoreError
from services.historical_data import (
    ContentTypePerformance,
    GrowthAnalyticsSet,
    HistoricalDataService,
)

logger = logging.getLogger(__name__)

Timeframe = Literal["weekly", "monthly", "annual"]
VelocityTrend = Literal["accelerating", "decelerating", "stable", "insufficient_data"]

# (follower threshold, weekly growth %) - first bucket the account exceeds wins
WEEKLY_RATE_BUCKETS = [
    (100_000, 0.5),
    (50_000, 1.0),
    (10_000, 2.0),
    (5_000, 3.0),
    (1_000, 5.0),
]
SMALL_ACCOUNT_WEEKLY_RATE = 8.0

TIMEFRAME_WEEKS = {"weekly": 1, "monthly": 4, "annual": 52}

VELOCITY_WINDOW = 7
PREDICTION_LOOKBACK_DAYS = 60


# ============== Schemas ==============

class ReportData(BaseModel):
    """Current-state inputs for an estimate when there is no history yet."""
    followers_count: int = 0
    post_count: int = 0
    avg_likes: float = 0.0


class PeriodValues(BaseModel):
    weekly: float = 0.0
    monthly: float = 0.0
    annual: float = 0.0


class PostCounts(BaseModel):
    weekly: int = 0
    monthly: int = 0
    annual: int = 0


class FollowerCounts(BaseModel):
    current: int = 0
    week_ago: int = 0
    month_ago: int = 0
    year_ago: int = 0


class EngagementTrends(BaseModel):
    current: float = 0.0
    week_ago: float = 0.0
    month_ago: float = 0.0
    improvement: float = 0.0


class GrowthAnalysisResult(BaseModel):
    growth_rates: PeriodValues
    post_counts: PostCounts
    follower_counts: FollowerCounts
    engagement_trends: EngagementTrends
    is_real_data: bool
    data_points: int
    last_updated: date


class GrowthVelocity(BaseModel):
    velocity: float
    trend: VelocityTrend


class GrowthPrediction(BaseModel):
    date: date
    predicted_followers: int
    confidence: float


class GrowthInsights(BaseModel):
    growth: GrowthAnalysisResult
    velocity: GrowthVelocity
    predictions: Optional[list[GrowthPrediction]] = None
    content: Optional[list[ContentTypePerformance]] = None
    insights: list[str] = []


# ============== Pure helpers ==============

def estimate_growth_rate(followers: int, posts: int, timeframe: Timeframe) -> float:
    """Assumed follower growth % for an account of this size and activity.

    Base weekly rate decreases with follower count, scaled by posting activity
    (posts / 20, clamped to [0.5, 1.5]) and extrapolated linearly to the
    requested timeframe.
    """
    weekly = SMALL_ACCOUNT_WEEKLY_RATE
    for threshold, rate in WEEKLY_RATE_BUCKETS:
        if followers > threshold:
            weekly = rate
            break

    multiplier = min(1.5, max(0.5, posts / 20))
    return weekly * multiplier * TIMEFRAME_WEEKS[timeframe]


def generate_estimated_growth(report_data: ReportData, today: Optional[date] = None) -> GrowthAnalysisResult:
    """Heuristic growth picture from current state alone. Always non-real."""
    followers = report_data.followers_count
    posts = report_data.post_count
    engagement = report_data.avg_likes

    rates = PeriodValues(
        weekly=estimate_growth_rate(followers, posts, "weekly"),
        monthly=estimate_growth_rate(followers, posts, "monthly"),
        annual=estimate_growth_rate(followers, posts, "annual"),
    )

    def followers_before(rate: float) -> int:
        return max(0, followers - int(followers * rate / 100))

    return GrowthAnalysisResult(
        growth_rates=rates,
        post_counts=PostCounts(weekly=max(0, posts // 4), monthly=posts, annual=posts * 12),
        follower_counts=FollowerCounts(
            current=followers,
            week_ago=followers_before(rates.weekly),
            month_ago=followers_before(rates.monthly),
            year_ago=followers_before(rates.annual),
        ),
        engagement_trends=EngagementTrends(
            current=engagement,
            week_ago=max(0.0, engagement * 0.95),
            month_ago=max(0.0, engagement * 0.9),
            improvement=5.0,
        ),
        is_real_data=False,
        data_points=1,
        last_updated=today or utc_today(),
    )


def default_growth_analysis(today: Optional[date] = None) -> GrowthAnalysisResult:
    """Fixed fallback when there is neither history nor current data."""
    return GrowthAnalysisResult(
        growth_rates=PeriodValues(weekly=1.2, monthly=5.0, annual=60.0),
        post_counts=PostCounts(),
        follower_counts=FollowerCounts(),
        engagement_trends=EngagementTrends(),
        is_real_data=False,
        data_points=0,
        last_updated=today or utc_today(),
    )


def real_growth_analysis(
    growth: GrowthAnalyticsSet,
    followers_count: int,
    engagement_rate: float,
    last_updated: date,
) -> GrowthAnalysisResult:
    """Map measured period growth into the analysis shape. Missing periods read as 0."""
    weekly, monthly, annual = growth.weekly, growth.monthly, growth.annual
    return GrowthAnalysisResult(
        growth_rates=PeriodValues(
            weekly=weekly.followers_growth_rate if weekly else 0.0,
            monthly=monthly.followers_growth_rate if monthly else 0.0,
            annual=annual.followers_growth_rate if annual else 0.0,
        ),
        post_counts=PostCounts(
            weekly=weekly.posts_growth if weekly else 0,
            monthly=monthly.posts_growth if monthly else 0,
            annual=annual.posts_growth if annual else 0,
        ),
        follower_counts=FollowerCounts(
            current=followers_count,
            week_ago=followers_count - (weekly.followers_growth if weekly else 0),
            month_ago=followers_count - (monthly.followers_growth if monthly else 0),
            year_ago=followers_count - (annual.followers_growth if annual else 0),
        ),
        engagement_trends=EngagementTrends(
            current=engagement_rate,
            week_ago=engagement_rate - (weekly.engagement_growth if weekly else 0.0),
            month_ago=engagement_rate - (monthly.engagement_growth if monthly else 0.0),
            improvement=monthly.engagement_growth_rate if monthly else 0.0,
        ),
        is_real_data=True,
        data_points=growth.data_points,
        last_updated=last_updated,
    )


def average_daily_delta(followers: list[int]) -> float:
    """Mean day-over-day change across a window of follower counts."""
    if len(followers) < 2:
        return 0.0
    return (followers[-1] - followers[0]) / (len(followers) - 1)


def generate_growth_insights(
    growth: GrowthAnalysisResult,
    velocity: GrowthVelocity,
    content: Optional[list[ContentTypePerformance]],
) -> list[str]:
    insights = []

    if growth.is_real_data:
        weekly = growth.growth_rates.weekly
        if weekly > 2:
            insights.append("Excellent weekly growth rate. You're growing faster than most accounts your size.")
        elif weekly > 1:
            insights.append("Solid weekly growth. Consider posting more consistently to accelerate.")
        elif weekly > 0:
            insights.append("Steady growth pattern. Focus on engagement quality to boost growth rate.")
        else:
            insights.append("Growth has stalled. Time to refresh your content strategy.")

    if velocity.trend == "accelerating":
        insights.append("Your growth is accelerating. Whatever you're doing is working.")
    elif velocity.trend == "decelerating":
        insights.append("Growth is slowing down. Consider analyzing your top-performing content.")

    if content:
        best = max(content, key=lambda c: c.total_engagement)
        insights.append(f"{best.type} posts perform best for you. Consider creating more of these.")

    if growth.engagement_trends.improvement > 0:
        insights.append("Your engagement rate is improving. Your audience is becoming more active.")

    return insights


# ============== Service ==============

class GrowthCalculationService:
    """Composes HistoricalDataService output into growth views."""

    def __init__(self, history: HistoricalDataService):
        self.history = history

    async def _report_data_from_latest(self, user_id: str) -> Optional[ReportData]:
        latest = await self.history.get_latest_snapshot(user_id)
        if latest is None:
            return None
        return ReportData(
            followers_count=latest.followers_count,
            post_count=await self.history.count_tracked_posts(user_id, latest.snapshot_date),
            avg_likes=latest.avg_likes_per_post,
        )

    async def get_comprehensive_growth_analysis(
        self, user_id: str, report_data: Optional[ReportData] = None
    ) -> GrowthAnalysisResult:
        """Real growth when history allows, else an estimate, else the default.

        Without explicit ``report_data`` the estimate is driven by the latest
        snapshot, so a freshly connected account still gets a tagged estimate.
        """
        try:
            growth = await self.history.get_growth_analytics(user_id)
            summary = await self.history.get_account_summary(user_id)

            if growth.is_real_data and summary is not None:
                logger.info(f"Using real historical data for growth analysis of user {user_id}")
                return real_growth_analysis(
                    growth,
                    followers_count=summary.profile.followers_count,
                    engagement_rate=summary.metrics.engagement_rate,
                    last_updated=summary.profile.last_updated,
                )

            if report_data is None:
                report_data = await self._report_data_from_latest(user_id)
        except StoreError as e:
            logger.error(f"Growth analysis failed for user {user_id}: {e}")
            return default_growth_analysis()

        if report_data is not None:
            logger.info(f"No historical data for user {user_id}, using estimates")
            return generate_estimated_growth(report_data)

        return default_growth_analysis()

    async def get_growth_velocity(self, user_id: str) -> GrowthVelocity:
        """Recent 7-day average follower delta minus the prior 7-day average."""
        trends = await self.history.get_engagement_trends(user_id, 14)

        if len(trends) < VELOCITY_WINDOW * 2:
            return GrowthVelocity(velocity=0.0, trend="insufficient_data")

        followers = [t.followers_count for t in trends[-VELOCITY_WINDOW * 2:]]
        prior = average_daily_delta(followers[:VELOCITY_WINDOW])
        recent = average_daily_delta(followers[VELOCITY_WINDOW:])

        velocity = recent - prior
        if velocity > 0:
            trend = "accelerating"
        elif velocity < 0:
            trend = "decelerating"
        else:
            trend = "stable"
        return GrowthVelocity(velocity=velocity, trend=trend)

    async def get_growth_predictions(
        self, user_id: str, days: int = 30
    ) -> Optional[list[GrowthPrediction]]:
        """Linear follower projection from the last week's average daily growth.

        None with fewer than 7 chart points. Confidence decays linearly from 1.0
        to 0.5 at the end of the horizon.
        """
        chart = await self.history.get_follower_growth_chart(user_id, PREDICTION_LOOKBACK_DAYS)
        if len(chart) < 7:
            return None

        avg_daily_growth = sum(point.growth for point in chart[-7:]) / 7
        last_followers = chart[-1].followers
        today = utc_today()

        return [
            GrowthPrediction(
                date=today + timedelta(days=i),
                predicted_followers=max(0, round(last_followers + avg_daily_growth * i)),
                confidence=1 - (i / days) * 0.5,
            )
            for i in range(1, days + 1)
        ]

    async def get_growth_insights(self, user_id: str) -> GrowthInsights:
        growth = await self.get_comprehensive_growth_analysis(user_id)
        velocity = await self.get_growth_velocity(user_id)
        predictions = await self.get_growth_predictions(user_id, 30)
        content = await self.history.get_content_performance_analysis(user_id)

        return GrowthInsights(
            growth=growth,
            velocity=velocity,
            predictions=predictions,
            content=content,
            insights=generate_growth_insights(growth, velocity, content),
        )
