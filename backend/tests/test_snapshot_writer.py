from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import media_item
from models import DailySnapshot, InstagramAccount, PostSnapshot, SyncLog, SyncStatus
from services.dates import utc_today
from services.errors import AccountNotSyncableError, ApiError, StoreError
from services.historical_data import HistoricalDataService
from services.growth_analytics import GrowthCalculationService
from services.instagram_service import InstagramMedia
from services.snapshot_writer import (
    compute_engagement_metrics,
    count_posts_published_on,
    create_daily_snapshot,
)


def test_engagement_rate_formula():
    media = [
        InstagramMedia(id="a", like_count=10, comments_count=2),
        InstagramMedia(id="b", like_count=20, comments_count=3),
    ]

    metrics = compute_engagement_metrics(media, followers_count=1000)

    assert metrics.engagement_rate == pytest.approx(1.75)
    assert metrics.total_likes == 30
    assert metrics.total_comments == 5
    assert metrics.avg_likes == 15
    assert metrics.avg_comments == 2.5


def test_engagement_rate_is_zero_without_posts_or_followers():
    assert compute_engagement_metrics([], 1000).engagement_rate == 0
    media = [InstagramMedia(id="a", like_count=10, comments_count=2)]
    assert compute_engagement_metrics(media, 0).engagement_rate == 0


def test_posts_published_today_uses_utc_date():
    day = datetime(2024, 5, 1, tzinfo=timezone.utc).date()
    media = [
        InstagramMedia(id="a", timestamp="2024-05-01T00:30:00+0000"),
        InstagramMedia(id="b", timestamp="2024-05-01T23:59:00+0000"),
        InstagramMedia(id="c", timestamp="2024-04-30T23:59:00+0000"),
        InstagramMedia(id="d"),
    ]
    assert count_posts_published_on(media, day) == 2


async def count(db, model):
    return await db.scalar(select(func.count()).select_from(model))


async def test_first_snapshot_creates_one_row_and_is_not_real_data(
    db, graph_api, graph_client, make_user, make_account
):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    graph_api.add_account("tok", "alice", followers=1000, posts=[
        media_item("m1", likes=10, comments=2),
        media_item("m2", likes=20, comments=3),
    ])

    result = await create_daily_snapshot(db, account, client=graph_client)

    assert result.snapshot_date == utc_today()
    assert result.posts_processed == 2
    assert result.engagement_rate == pytest.approx(1.75)
    assert await count(db, DailySnapshot) == 1
    assert await count(db, PostSnapshot) == 2

    history = HistoricalDataService(db)
    assert await history.has_historical_data(user.id) is False
    analysis = await GrowthCalculationService(history).get_comprehensive_growth_analysis(user.id)
    assert analysis.is_real_data is False
    assert analysis.follower_counts.current == 1000


async def test_rerun_on_same_day_replaces_rows(db, graph_api, graph_client, make_user, make_account):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    graph_api.add_account("tok", "alice", followers=1000, posts=[media_item("m1", likes=10)])

    await create_daily_snapshot(db, account, client=graph_client)
    graph_api.add_account("tok", "alice", followers=1010, posts=[media_item("m1", likes=15)])
    await create_daily_snapshot(db, account, client=graph_client)

    assert await count(db, DailySnapshot) == 1
    assert await count(db, PostSnapshot) == 1
    snapshot = await db.scalar(select(DailySnapshot).execution_options(populate_existing=True))
    assert snapshot.followers_count == 1010
    post = await db.scalar(select(PostSnapshot).execution_options(populate_existing=True))
    assert post.likes_count == 15


async def test_successful_run_logs_completion_and_updates_last_sync(
    db, graph_api, graph_client, make_user, make_account
):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    graph_api.add_account("tok", "alice", posts=[media_item("m1"), media_item("m2")])

    await create_daily_snapshot(db, account, client=graph_client)

    log = await db.scalar(select(SyncLog).execution_options(populate_existing=True))
    assert log.status == SyncStatus.COMPLETED
    assert log.records_processed == 3
    assert log.completed_at is not None
    refreshed = await db.scalar(
        select(InstagramAccount).execution_options(populate_existing=True)
    )
    assert refreshed.last_sync_at is not None


async def test_insight_failures_do_not_abort_the_run(
    db, graph_api, graph_client, make_user, make_account
):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    graph_api.add_account("tok", "alice", posts=[media_item("m1"), media_item("m2")])
    graph_api.insights["m1"] = {"reach": 300, "impressions": 450, "saved": 4}

    await create_daily_snapshot(db, account, client=graph_client)

    posts = {
        p.instagram_post_id: p
        for p in (await db.scalars(select(PostSnapshot))).all()
    }
    assert posts["m1"].reach == 300
    assert posts["m1"].saves_count == 4
    assert posts["m2"].reach == 0


async def test_profile_failure_writes_nothing_and_logs_failure(
    db, graph_api, graph_client, make_user, make_account
):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    graph_api.add_account("tok", "alice")
    graph_api.broken_tokens.add("tok")

    with pytest.raises(ApiError):
        await create_daily_snapshot(db, account, client=graph_client)

    assert await count(db, DailySnapshot) == 0
    log = await db.scalar(select(SyncLog).execution_options(populate_existing=True))
    assert log.status == SyncStatus.FAILED
    assert "400" in log.error_message


async def test_inactive_account_is_rejected(db, graph_client, make_user, make_account):
    user = await make_user()
    account = await make_account(user, "alice", is_active=False)

    with pytest.raises(AccountNotSyncableError):
        await create_daily_snapshot(db, account, client=graph_client)

    assert await count(db, SyncLog) == 0


async def test_malformed_insights_do_not_abort_the_run(
    db, graph_api, graph_client, make_user, make_account
):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    graph_api.add_account("tok", "alice", posts=[media_item("m1"), media_item("m2")])
    graph_api.insights["m1"] = {"reach": "n/a"}
    graph_api.insights["m2"] = {"reach": 80}

    result = await create_daily_snapshot(db, account, client=graph_client)

    assert result.posts_processed == 2
    assert await count(db, DailySnapshot) == 1
    posts = {
        p.instagram_post_id: p
        for p in (await db.scalars(select(PostSnapshot))).all()
    }
    assert posts["m1"].reach == 0
    assert posts["m2"].reach == 80


async def test_store_failure_rolls_back_and_logs_failure(
    db, graph_api, graph_client, make_user, make_account, monkeypatch
):
    user = await make_user()
    account = await make_account(user, "alice", access_token="tok")
    account_id = account.id
    graph_api.add_account("tok", "alice", posts=[media_item("m1"), media_item("m2")])

    async def failing_upsert(*args, **kwargs):
        raise OperationalError("INSERT INTO post_snapshots", {}, Exception("disk I/O error"))

    monkeypatch.setattr("services.snapshot_writer._upsert_post_snapshot", failing_upsert)

    with pytest.raises(StoreError, match="Failed to write snapshot for @alice"):
        await create_daily_snapshot(db, account, client=graph_client)

    assert await count(db, DailySnapshot) == 0
    assert await count(db, PostSnapshot) == 0
    log = await db.scalar(select(SyncLog).execution_options(populate_existing=True))
    assert log.status == SyncStatus.FAILED
    assert "disk I/O error" in log.error_message
    stored = await db.scalar(
        select(InstagramAccount)
        .where(InstagramAccount.id == account_id)
        .execution_options(populate_existing=True)
    )
    assert stored.last_sync_at is None


async def test_expired_token_is_rejected(db, graph_client, make_user, make_account):
    user = await make_user()
    account = await make_account(
        user, "alice", token_expires_at=datetime.now(timezone.utc) - timedelta(hours=1)
    )

    with pytest.raises(AccountNotSyncableError, match="expired"):
        await create_daily_snapshot(db, account, client=graph_client)

    assert await count(db, SyncLog) == 0
