"""Sync orchestrator - runs the snapshot writer over many accounts.

Accounts are processed strictly one after another, spaced by an IntervalGate,
each in its own session. A failing account is counted and logged and the loop
moves on: one bad credential never aborts the batch.

DataScheduler holds no state between runs (everything lives in the database),
so build one per invocation.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import get_settings
from database import async_session
from models.daily_snapshot import DailySnapshot
from models.instagram_account import InstagramAccount
from models.post_snapshot import PostSnapshot
from models.sync_log import SyncLog, SyncStatus
from services.account_service import get_active_accounts_for_sync
from services.dates import days_ago, utc_now
from services.errors import StoreError
from services.rate_limiter import IntervalGate
from services.snapshot_writer import SnapshotResult, create_daily_snapshot
from services.token_refresher import TokenRefreshSummary, refresh_expiring_tokens

logger = logging.getLogger(__name__)
settings = get_settings()

SnapshotFn = Callable[[AsyncSession, InstagramAccount, Optional[httpx.AsyncClient]], Awaitable[SnapshotResult]]


class SyncResults(BaseModel):
    successful: int = 0
    failed: int = 0
    errors: list[str] = []


class StaleSyncResults(SyncResults):
    processed: int = 0


class LatestSyncLog(BaseModel):
    status: SyncStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None


class AccountSyncStatus(BaseModel):
    id: str
    instagram_handle: str
    is_active: bool
    last_sync_at: Optional[datetime] = None
    latest_sync: Optional[LatestSyncLog] = None


class SyncStatistics(BaseModel):
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    avg_records_processed: float = 0.0
    success_rate: float = 0.0


class DataScheduler:
    """Batch entry points for the daily pipeline."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        client: Optional[httpx.AsyncClient] = None,
        account_gate: Optional[IntervalGate] = None,
        stale_gate: Optional[IntervalGate] = None,
        snapshot_fn: SnapshotFn = create_daily_snapshot,
    ):
        self.session_factory = session_factory
        self.client = client
        self.account_gate = account_gate or IntervalGate(settings.sync_account_delay_seconds)
        self.stale_gate = stale_gate or IntervalGate(settings.stale_sync_delay_seconds)
        self.snapshot_fn = snapshot_fn

    async def _snapshot_accounts(
        self, accounts: list[InstagramAccount], gate: IntervalGate, results: SyncResults
    ) -> SyncResults:
        """Run the writer for each account in order, isolating failures."""
        for account in accounts:
            account_id = account.id
            handle = account.instagram_handle
            await gate.wait()
            try:
                logger.info(f"Processing account: @{handle} ({account_id})")
                async with self.session_factory() as db:
                    fresh = await db.get(InstagramAccount, account_id)
                    if fresh is None:
                        raise StoreError(f"Instagram account {account_id} not found")
                    await self.snapshot_fn(db, fresh, self.client)
                results.successful += 1
                logger.info(f"Successfully processed @{handle}")
            except Exception as e:
                logger.error(f"Failed to process account @{handle}: {e}")
                results.failed += 1
                results.errors.append(f"{handle}: {str(e) or type(e).__name__}")
        return results

    async def run_daily_collection(self) -> SyncResults:
        """Snapshot every active account."""
        logger.info("Starting daily data collection...")
        async with self.session_factory() as db:
            accounts = await get_active_accounts_for_sync(db)

        results = await self._snapshot_accounts(accounts, self.account_gate, SyncResults())
        logger.info(
            f"Daily collection completed. Success: {results.successful}, "
            f"Failed: {results.failed}"
        )
        return results

    async def run_user_data_collection(self, user_id: str) -> SyncResults:
        """Snapshot one user's active accounts (manual "sync now")."""
        logger.info(f"Running data collection for user: {user_id}")
        async with self.session_factory() as db:
            accounts = await get_active_accounts_for_sync(db, user_id=user_id)

        if not accounts:
            logger.info(f"No active Instagram accounts found for user {user_id}")
            return SyncResults()

        return await self._snapshot_accounts(accounts, self.account_gate, SyncResults())

    async def check_and_refresh_tokens(self) -> TokenRefreshSummary:
        """Refresh credentials expiring within the configured window."""
        logger.info("Checking for tokens that need refresh...")
        async with self.session_factory() as db:
            return await refresh_expiring_tokens(
                db, settings.token_refresh_window_hours, client=self.client
            )

    async def get_stale_accounts(self, hours_threshold: int = 25) -> list[InstagramAccount]:
        """Active accounts never synced or not synced within ``hours_threshold``."""
        threshold = utc_now() - timedelta(hours=hours_threshold)
        async with self.session_factory() as db:
            try:
                result = await db.execute(
                    select(InstagramAccount).where(
                        InstagramAccount.is_active.is_(True),
                        or_(
                            InstagramAccount.last_sync_at.is_(None),
                            InstagramAccount.last_sync_at < threshold,
                        ),
                    )
                )
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to get stale accounts: {e}") from e
            return list(result.scalars())

    async def force_sync_stale_accounts(self, hours_threshold: int = 25) -> StaleSyncResults:
        """Catch up on accounts that missed their daily run."""
        logger.info("Checking for stale accounts...")
        stale_accounts = await self.get_stale_accounts(hours_threshold)

        if not stale_accounts:
            logger.info("No stale accounts found")
            return StaleSyncResults()

        logger.info(f"Found {len(stale_accounts)} stale accounts")
        results = StaleSyncResults(processed=len(stale_accounts))
        await self._snapshot_accounts(stale_accounts, self.stale_gate, results)
        logger.info(
            f"Stale account sync completed. Success: {results.successful}, "
            f"Failed: {results.failed}"
        )
        return results

    async def get_sync_status(self) -> list[AccountSyncStatus]:
        """Per-account last sync time and most recent SyncLog."""
        latest = (
            select(SyncLog.account_id, func.max(SyncLog.started_at).label("started_at"))
            .group_by(SyncLog.account_id)
            .subquery()
        )
        async with self.session_factory() as db:
            try:
                accounts_result = await db.execute(
                    select(InstagramAccount).order_by(
                        InstagramAccount.last_sync_at.desc().nulls_last()
                    )
                )
                logs_result = await db.execute(
                    select(SyncLog).join(
                        latest,
                        and_(
                            SyncLog.account_id == latest.c.account_id,
                            SyncLog.started_at == latest.c.started_at,
                        ),
                    )
                )
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to get sync status: {e}") from e

            latest_by_account = {log.account_id: log for log in logs_result.scalars()}
            status = []
            for account in accounts_result.scalars():
                log = latest_by_account.get(account.id)
                status.append(AccountSyncStatus(
                    id=account.id,
                    instagram_handle=account.instagram_handle,
                    is_active=account.is_active,
                    last_sync_at=account.last_sync_at,
                    latest_sync=LatestSyncLog(
                        status=log.status,
                        started_at=log.started_at,
                        completed_at=log.completed_at,
                        records_processed=log.records_processed,
                        error_message=log.error_message,
                    ) if log else None,
                ))
            return status

    async def get_sync_statistics(self, days: int = 7) -> SyncStatistics:
        """Success rate and throughput over the trailing ``days``."""
        since = utc_now() - timedelta(days=days)
        async with self.session_factory() as db:
            try:
                result = await db.execute(select(SyncLog).where(SyncLog.started_at >= since))
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to get sync statistics: {e}") from e
            logs = list(result.scalars())

        completed = [log for log in logs if log.status == SyncStatus.COMPLETED]
        stats = SyncStatistics(
            total_syncs=len(logs),
            successful_syncs=len(completed),
            failed_syncs=sum(1 for log in logs if log.status == SyncStatus.FAILED),
        )
        if stats.total_syncs > 0:
            stats.success_rate = stats.successful_syncs / stats.total_syncs * 100
        if completed:
            stats.avg_records_processed = (
                sum(log.records_processed or 0 for log in completed) / len(completed)
            )
        return stats

    async def cleanup_old_sync_logs(self, retention_days: Optional[int] = None) -> int:
        """Delete SyncLog rows older than the retention window."""
        days = retention_days if retention_days is not None else settings.sync_log_retention_days
        cutoff = utc_now() - timedelta(days=days)
        async with self.session_factory() as db:
            result = await db.execute(delete(SyncLog).where(SyncLog.started_at < cutoff))
            await db.commit()
        logger.info(f"Cleaned up {result.rowcount} sync logs older than {days} days")
        return result.rowcount

    async def prune_old_snapshots(self, retention_days: Optional[int] = None) -> int:
        """Retention job for daily and post snapshots. 0 days keeps everything."""
        days = retention_days if retention_days is not None else settings.snapshot_retention_days
        if days <= 0:
            return 0
        cutoff = days_ago(days)
        async with self.session_factory() as db:
            daily = await db.execute(delete(DailySnapshot).where(DailySnapshot.snapshot_date < cutoff))
            posts = await db.execute(delete(PostSnapshot).where(PostSnapshot.snapshot_date < cutoff))
            await db.commit()
        removed = daily.rowcount + posts.rowcount
        logger.info(f"Pruned {removed} snapshots older than {cutoff}")
        return removed
