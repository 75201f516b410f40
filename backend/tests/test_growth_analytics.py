from datetime import date, timedelta

import pytest

from services.dates import utc_today
from services.growth_analytics import (
    GrowthCalculationService,
    ReportData,
    default_growth_analysis,
    estimate_growth_rate,
    generate_estimated_growth,
)
from services.historical_data import HistoricalDataService


def day(offset):
    return utc_today() - timedelta(days=offset)


@pytest.fixture
async def account(make_user, make_account):
    user = await make_user()
    return await make_account(user, "alice")


@pytest.fixture
def growth(db):
    return GrowthCalculationService(HistoricalDataService(db))


@pytest.mark.parametrize("followers,expected", [
    (200_000, 0.5),
    (60_000, 1.0),
    (20_000, 2.0),
    (8_000, 3.0),
    (2_000, 5.0),
    (500, 8.0),
])
def test_weekly_rate_table(followers, expected):
    # 20 posts => multiplier 1.0
    assert estimate_growth_rate(followers, 20, "weekly") == pytest.approx(expected)


def test_rate_decreases_with_account_size():
    sizes = [0, 1_001, 5_001, 10_001, 50_001, 100_001]
    rates = [estimate_growth_rate(f, 20, "weekly") for f in sizes]
    assert rates == sorted(rates, reverse=True)


def test_posting_multiplier_is_clamped():
    assert estimate_growth_rate(2_000, 0, "weekly") == pytest.approx(2.5)
    assert estimate_growth_rate(2_000, 100, "weekly") == pytest.approx(7.5)


def test_timeframes_scale_linearly():
    weekly = estimate_growth_rate(20_000, 20, "weekly")
    assert estimate_growth_rate(20_000, 20, "monthly") == pytest.approx(weekly * 4)
    assert estimate_growth_rate(20_000, 20, "annual") == pytest.approx(weekly * 52)


def test_estimate_is_tagged_and_deterministic():
    report = ReportData(followers_count=10_000, post_count=20, avg_likes=100.0)
    today = date(2024, 6, 1)

    first = generate_estimated_growth(report, today)
    second = generate_estimated_growth(report, today)

    assert first == second
    assert first.is_real_data is False
    assert first.growth_rates.weekly == pytest.approx(3.0)
    assert first.follower_counts.week_ago == 9_700
    assert first.post_counts.weekly == 5
    assert first.post_counts.annual == 240
    assert first.engagement_trends.week_ago == pytest.approx(95.0)
    assert first.engagement_trends.improvement == 5.0


def test_default_analysis():
    result = default_growth_analysis()
    assert result.is_real_data is False
    assert result.data_points == 0
    assert (result.growth_rates.weekly, result.growth_rates.monthly, result.growth_rates.annual) == (1.2, 5.0, 60.0)


async def test_comprehensive_analysis_uses_real_data(growth, account, add_snapshot):
    await add_snapshot(account, day(7), followers=1000, engagement_rate=2.0)
    await add_snapshot(account, day(0), followers=1050, engagement_rate=2.5)

    result = await growth.get_comprehensive_growth_analysis(account.user_id)

    assert result.is_real_data is True
    assert result.growth_rates.weekly == pytest.approx(5.0)
    assert result.follower_counts.current == 1050
    assert result.follower_counts.week_ago == 1000
    assert result.engagement_trends.week_ago == pytest.approx(2.0)
    assert result.data_points == 2
    assert result.last_updated == day(0)


async def test_comprehensive_analysis_estimates_without_history(growth, make_user):
    user = await make_user("fresh@example.com")

    estimated = await growth.get_comprehensive_growth_analysis(
        user.id, ReportData(followers_count=500, post_count=20)
    )
    default = await growth.get_comprehensive_growth_analysis(user.id)

    assert estimated.is_real_data is False
    assert estimated.growth_rates.weekly == pytest.approx(8.0)
    assert default.is_real_data is False
    assert default.growth_rates.weekly == 1.2


async def test_velocity_needs_two_weeks(growth, account, add_snapshot):
    for offset in range(10):
        await add_snapshot(account, day(offset))

    velocity = await growth.get_growth_velocity(account.user_id)

    assert velocity.trend == "insufficient_data"
    assert velocity.velocity == 0


async def test_velocity_detects_acceleration(growth, account, add_snapshot):
    # prior week +1/day, recent week +5/day
    followers = 1000
    for offset in range(13, -1, -1):
        await add_snapshot(account, day(offset), followers=followers)
        followers += 1 if offset > 7 else 5

    velocity = await growth.get_growth_velocity(account.user_id)

    assert velocity.trend == "accelerating"
    assert velocity.velocity > 0


async def test_velocity_flat_growth_is_stable(growth, account, add_snapshot):
    for offset in range(14):
        await add_snapshot(account, day(offset), followers=1000)

    velocity = await growth.get_growth_velocity(account.user_id)

    assert velocity.trend == "stable"


async def test_predictions_extrapolate_last_week(growth, account, add_snapshot):
    for i, offset in enumerate(range(7, -1, -1)):
        await add_snapshot(account, day(offset), followers=1000 + 10 * i)

    predictions = await growth.get_growth_predictions(account.user_id, days=10)

    assert len(predictions) == 10
    assert predictions[0].date == utc_today() + timedelta(days=1)
    assert predictions[0].predicted_followers == 1080
    assert predictions[-1].predicted_followers == 1170
    assert predictions[0].confidence == pytest.approx(0.95)
    assert predictions[-1].confidence == pytest.approx(0.5)


async def test_predictions_need_a_week_of_points(growth, account, add_snapshot):
    for offset in range(3):
        await add_snapshot(account, day(offset))

    assert await growth.get_growth_predictions(account.user_id) is None


async def test_insights_bundle(growth, account, add_snapshot, add_post_snapshot):
    await add_snapshot(account, day(7), followers=1000, engagement_rate=2.0)
    await add_snapshot(account, day(0), followers=1050, engagement_rate=2.5)
    await add_post_snapshot(account, "v1", day(0), likes=50, post_type="VIDEO")

    insights = await growth.get_growth_insights(account.user_id)

    assert insights.growth.is_real_data is True
    assert insights.velocity.trend == "insufficient_data"
    assert insights.predictions is None
    assert any("Excellent weekly growth" in text for text in insights.insights)
    assert any(text.startswith("VIDEO posts perform best") for text in insights.insights)
