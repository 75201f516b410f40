"""Sync router - cron and manual triggers for the Instagram snapshot pipeline.

Cron endpoints authenticate with ``Authorization: Bearer <CRON_SECRET_KEY>``;
the manual "sync now" endpoint uses the caller's own JWT and is rate limited.
Batch endpoints return 200 with per-account results even when some accounts
fail; only an unexpected error in the orchestrator itself becomes a 500.
"""

import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import get_settings
from middleware.auth import get_current_active_user, verify_cron_secret
from middleware.rate_limit import limiter
from models.user import User
from services.data_scheduler import (
    AccountSyncStatus,
    DataScheduler,
    StaleSyncResults,
    SyncResults,
    SyncStatistics,
)
from services.token_refresher import TokenRefreshSummary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])
settings = get_settings()


def get_data_scheduler() -> DataScheduler:
    """Fresh orchestrator per request."""
    return DataScheduler()


# Response schemas
class SyncRunResponse(BaseModel):
    success: bool = True
    message: str
    results: SyncResults
    token_refresh: Optional[TokenRefreshSummary] = None
    token_refresh_error: Optional[str] = None


class StaleSyncResponse(BaseModel):
    success: bool = True
    message: str
    results: StaleSyncResults


class TokenRefreshResponse(BaseModel):
    success: bool = True
    message: str
    results: TokenRefreshSummary


class SyncStatusResponse(BaseModel):
    success: bool = True
    accounts: int
    last_sync: Optional[datetime]
    status: list[AccountSyncStatus]


class SyncStatisticsResponse(BaseModel):
    success: bool = True
    days: int
    statistics: SyncStatistics


def _failure(error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": error, "message": str(exc) or type(exc).__name__},
    )


@router.post(
    "/daily",
    response_model=SyncRunResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def run_daily_sync(
    scheduler: Annotated[DataScheduler, Depends(get_data_scheduler)],
):
    """Snapshot every active account, then refresh expiring tokens."""
    logger.info("Daily sync triggered via API")
    try:
        results = await scheduler.run_daily_collection()
    except Exception as e:
        logger.exception(f"Daily sync failed: {e}")
        return _failure("Daily sync failed", e)

    # The snapshots are already written; a refresh failure only gets reported.
    response = SyncRunResponse(message="Daily sync completed", results=results)
    try:
        response.token_refresh = await scheduler.check_and_refresh_tokens()
    except Exception as e:
        logger.exception(f"Token refresh after daily sync failed: {e}")
        response.token_refresh_error = str(e) or type(e).__name__
    return response


@router.get(
    "/daily",
    response_model=SyncStatusResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def get_daily_sync_status(
    scheduler: Annotated[DataScheduler, Depends(get_data_scheduler)],
):
    """Per-account sync status for monitoring."""
    try:
        status = await scheduler.get_sync_status()
    except Exception as e:
        logger.exception(f"Failed to get sync status: {e}")
        return _failure("Failed to get sync status", e)

    return SyncStatusResponse(
        accounts=len(status),
        last_sync=status[0].last_sync_at if status else None,
        status=status,
    )


@router.post(
    "/token-refresh",
    response_model=TokenRefreshResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def run_token_refresh(
    scheduler: Annotated[DataScheduler, Depends(get_data_scheduler)],
):
    logger.info("Token refresh check triggered via API")
    try:
        summary = await scheduler.check_and_refresh_tokens()
    except Exception as e:
        logger.exception(f"Token refresh failed: {e}")
        return _failure("Token refresh failed", e)

    return TokenRefreshResponse(message="Token refresh check completed", results=summary)


@router.post(
    "/stale",
    response_model=StaleSyncResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def run_stale_sync(
    scheduler: Annotated[DataScheduler, Depends(get_data_scheduler)],
    hours: Annotated[int, Query(ge=1, le=24 * 30)] = settings.stale_hours_threshold,
):
    """Sync accounts not synced within ``hours``."""
    try:
        results = await scheduler.force_sync_stale_accounts(hours)
    except Exception as e:
        logger.exception(f"Stale account sync failed: {e}")
        return _failure("Stale account sync failed", e)

    return StaleSyncResponse(message="Stale account sync completed", results=results)


@router.get(
    "/statistics",
    response_model=SyncStatisticsResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def get_sync_statistics(
    scheduler: Annotated[DataScheduler, Depends(get_data_scheduler)],
    days: Annotated[int, Query(ge=1, le=365)] = 7,
):
    try:
        statistics = await scheduler.get_sync_statistics(days)
    except Exception as e:
        logger.exception(f"Failed to get sync statistics: {e}")
        return _failure("Failed to get sync statistics", e)

    return SyncStatisticsResponse(days=days, statistics=statistics)


@router.post("/user", response_model=SyncRunResponse)
@limiter.limit(settings.user_sync_rate_limit)
async def run_user_sync(
    request: Request,
    current_user: Annotated[User, Depends(get_current_active_user)],
    scheduler: Annotated[DataScheduler, Depends(get_data_scheduler)],
):
    """Manual "sync now" for the caller's own accounts."""
    logger.info(f"Manual sync triggered for user: {current_user.id}")
    try:
        results = await scheduler.run_user_data_collection(current_user.id)
    except Exception as e:
        logger.exception(f"User sync failed: {e}")
        return _failure("User sync failed", e)

    return SyncRunResponse(message="User sync completed", results=results)
