"""Analytics router - read API over the snapshot history for the dashboard.

Every endpoint answers for the caller's own primary Instagram account. Nothing
here writes; snapshots only come from the sync pipeline.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import get_current_active_user
from models.user import User
from services.growth_analytics import (
    GrowthAnalysisResult,
    GrowthCalculationService,
    GrowthInsights,
    GrowthPrediction,
    GrowthVelocity,
)
from services.historical_data import (
    AccountStats,
    AccountSummary,
    ContentTypePerformance,
    DailySnapshotView,
    EngagementRateTrendPoint,
    EngagementTrendPoint,
    GrowthAnalyticsSet,
    GrowthChartPoint,
    HistoricalDataService,
    PostingFrequency,
    PostSnapshotView,
    SyncLogView,
)

router = APIRouter(prefix="/analytics", tags=["analytics"])

Days = Annotated[int, Query(ge=1, le=365)]


def get_history(db: Annotated[AsyncSession, Depends(get_db)]) -> HistoricalDataService:
    return HistoricalDataService(db)


def get_growth_service(
    history: Annotated[HistoricalDataService, Depends(get_history)],
) -> GrowthCalculationService:
    return GrowthCalculationService(history)


CurrentUser = Annotated[User, Depends(get_current_active_user)]
History = Annotated[HistoricalDataService, Depends(get_history)]
Growth = Annotated[GrowthCalculationService, Depends(get_growth_service)]


# ============== Snapshot history ==============

@router.get("/snapshots", response_model=list[DailySnapshotView])
async def get_snapshots(current_user: CurrentUser, history: History, days: Days = 30):
    """Daily snapshots, newest first."""
    return await history.get_historical_snapshots(current_user.id, days)


@router.get("/summary", response_model=AccountSummary)
async def get_account_summary(current_user: CurrentUser, history: History):
    summary = await history.get_account_summary(current_user.id)
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No snapshots yet for this account",
        )
    return summary


@router.get("/growth", response_model=GrowthAnalyticsSet)
async def get_growth(current_user: CurrentUser, history: History):
    """Daily/weekly/monthly/annual growth from real snapshots only."""
    return await history.get_growth_analytics(current_user.id)


@router.get("/growth/chart", response_model=list[GrowthChartPoint])
async def get_growth_chart(current_user: CurrentUser, history: History, days: Days = 30):
    return await history.get_follower_growth_chart(current_user.id, days)


@router.get("/engagement/trends", response_model=list[EngagementTrendPoint])
async def get_engagement_trends(current_user: CurrentUser, history: History, days: Days = 30):
    return await history.get_engagement_trends(current_user.id, days)


@router.get("/engagement/rate-trends", response_model=list[EngagementRateTrendPoint])
async def get_engagement_rate_trends(current_user: CurrentUser, history: History, days: Days = 30):
    return await history.get_engagement_rate_trends(current_user.id, days)


@router.get("/posts/top", response_model=list[PostSnapshotView])
async def get_top_posts(
    current_user: CurrentUser,
    history: History,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    return await history.get_top_performing_posts(current_user.id, limit)


@router.get("/posts/history", response_model=list[PostSnapshotView])
async def get_post_history(current_user: CurrentUser, history: History, days: Days = 30):
    return await history.get_post_history(current_user.id, days)


@router.get("/content-performance", response_model=Optional[list[ContentTypePerformance]])
async def get_content_performance(current_user: CurrentUser, history: History, days: Days = 30):
    return await history.get_content_performance_analysis(current_user.id, days)


@router.get("/posting-frequency", response_model=Optional[PostingFrequency])
async def get_posting_frequency(current_user: CurrentUser, history: History, days: Days = 30):
    return await history.get_posting_frequency_analysis(current_user.id, days)


@router.get("/history-status")
async def get_history_status(current_user: CurrentUser, history: History):
    """Whether the dashboard can show measured growth yet."""
    return {"has_historical_data": await history.has_historical_data(current_user.id)}


# ============== Sync monitoring ==============

@router.get("/sync-history", response_model=list[SyncLogView])
async def get_sync_history(
    current_user: CurrentUser,
    history: History,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    return await history.get_sync_history(current_user.id, limit)


@router.get("/sync-latest", response_model=Optional[SyncLogView])
async def get_latest_sync(current_user: CurrentUser, history: History):
    return await history.get_latest_sync_info(current_user.id)


@router.get("/account-stats", response_model=AccountStats)
async def get_account_stats(current_user: CurrentUser, history: History):
    stats = await history.get_account_stats(current_user.id)
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No Instagram account connected",
        )
    return stats


# ============== Growth engine ==============

@router.get("/growth/comprehensive", response_model=GrowthAnalysisResult)
async def get_comprehensive_growth(current_user: CurrentUser, growth: Growth):
    """Measured growth when there is history, otherwise a tagged estimate."""
    return await growth.get_comprehensive_growth_analysis(current_user.id)


@router.get("/growth/velocity", response_model=GrowthVelocity)
async def get_growth_velocity(current_user: CurrentUser, growth: Growth):
    return await growth.get_growth_velocity(current_user.id)


@router.get("/growth/predictions", response_model=Optional[list[GrowthPrediction]])
async def get_growth_predictions(
    current_user: CurrentUser,
    growth: Growth,
    days: Annotated[int, Query(ge=1, le=90)] = 30,
):
    return await growth.get_growth_predictions(current_user.id, days)


@router.get("/insights", response_model=GrowthInsights)
async def get_growth_insights(current_user: CurrentUser, growth: Growth):
    return await growth.get_growth_insights(current_user.id)
