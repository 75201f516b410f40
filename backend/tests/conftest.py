"""Shared fixtures: in-memory SQLite store, fake Graph API and row factories."""

import os

# Settings are cached at import time, so the environment goes first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET_KEY", "test-cron-secret")
os.environ.setdefault("SYNC_ACCOUNT_DELAY_SECONDS", "0")
os.environ.setdefault("STALE_SYNC_DELAY_SECONDS", "0")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import date, datetime, timedelta, timezone
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import get_settings
from database import Base
from models import DailySnapshot, InstagramAccount, PostSnapshot, User
from services.rate_limiter import IntervalGate

GRAPH_PREFIX = httpx.URL(get_settings().instagram_graph_base).path


class FakeGraphApi:
    """Instagram Graph API stand-in for httpx.MockTransport.

    Accounts are keyed by access token. Tokens in ``broken_tokens`` get a 400
    on every call; media ids missing from ``insights`` get a 400 on /insights.
    """

    def __init__(self):
        self.profiles: dict[str, dict] = {}
        self.media: dict[str, list[dict]] = {}
        self.insights: dict[str, dict] = {}
        self.broken_tokens: set[str] = set()
        self.refreshable: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def add_account(self, token, username, followers=1000, follows=100, media_count=10, posts=None):
        self.profiles[token] = {
            "id": f"ig-{username}",
            "username": username,
            "account_type": "BUSINESS",
            "media_count": media_count,
            "followers_count": followers,
            "follows_count": follows,
        }
        self.media[token] = posts or []

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"{GRAPH_PREFIX}{path}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(GRAPH_PREFIX)

        if request.method == "POST" and path == "/refresh_access_token":
            form = dict(parse_qsl(request.content.decode()))
            grant = self.refreshable.get(form.get("refresh_token", ""))
            if grant is None:
                return httpx.Response(400, json={"error": {"message": "Invalid refresh token"}})
            return httpx.Response(200, json=grant)

        token = request.url.params.get("access_token")
        if token in self.broken_tokens or token not in self.profiles:
            return httpx.Response(
                400, json={"error": {"message": "Invalid OAuth access token", "code": 190}}
            )

        if path == "/me":
            return httpx.Response(200, json=self.profiles[token])
        if path == "/me/media":
            return httpx.Response(200, json={"data": self.media[token]})
        if path.endswith("/insights"):
            media_id = path.split("/")[1]
            if media_id not in self.insights:
                return httpx.Response(400, json={"error": {"message": "Unsupported request"}})
            return httpx.Response(200, json={
                "data": [
                    {"name": name, "values": [{"value": value}]}
                    for name, value in self.insights[media_id].items()
                ]
            })
        return httpx.Response(404, json={"error": {"message": "Unknown path"}})


def media_item(media_id, likes=0, comments=0, media_type="IMAGE", published=None):
    published = published or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    return {
        "id": media_id,
        "media_type": media_type,
        "media_url": f"https://cdn.example.com/{media_id}.jpg",
        "permalink": f"https://instagram.com/p/{media_id}",
        "caption": f"post {media_id}",
        "timestamp": published.strftime("%Y-%m-%dT%H:%M:%S+0000"),
        "like_count": likes,
        "comments_count": comments,
    }


@pytest.fixture
def graph_api():
    return FakeGraphApi()


@pytest_asyncio.fixture
async def graph_client(graph_api):
    async with httpx.AsyncClient(transport=httpx.MockTransport(graph_api.handler)) as client:
        yield client


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def no_wait_gate():
    return IntervalGate(0)


@pytest.fixture
def make_user(db):
    async def _make_user(email="creator@example.com", is_active=True) -> User:
        user = User(email=email, name=email.split("@")[0], is_active=is_active)
        db.add(user)
        await db.commit()
        return user
    return _make_user


@pytest.fixture
def make_account(db):
    async def _make_account(
        user: User,
        handle: str,
        access_token: str | None = None,
        refresh_token: str | None = None,
        token_expires_at: datetime | None = None,
        last_sync_at: datetime | None = None,
        is_active: bool = True,
    ) -> InstagramAccount:
        account = InstagramAccount(
            user_id=user.id,
            instagram_id=f"ig-{handle}",
            instagram_handle=handle,
            account_type="business",
            access_token=access_token or f"token-{handle}",
            refresh_token=refresh_token,
            token_expires_at=token_expires_at or datetime.now(timezone.utc) + timedelta(days=30),
            last_sync_at=last_sync_at,
            is_active=is_active,
        )
        db.add(account)
        await db.commit()
        return account
    return _make_account


@pytest.fixture
def add_snapshot(db):
    async def _add_snapshot(
        account: InstagramAccount,
        snapshot_date: date,
        followers: int = 1000,
        media_count: int = 10,
        engagement_rate: float = 2.0,
        posts_published: int = 0,
        avg_likes: float = 20.0,
    ) -> DailySnapshot:
        snapshot = DailySnapshot(
            account_id=account.id,
            snapshot_date=snapshot_date,
            followers_count=followers,
            following_count=100,
            media_count=media_count,
            total_likes=int(avg_likes * 5),
            total_comments=10,
            engagement_rate=engagement_rate,
            avg_likes_per_post=avg_likes,
            avg_comments_per_post=2.0,
            posts_published_count=posts_published,
            raw_profile_data={},
        )
        db.add(snapshot)
        await db.commit()
        return snapshot
    return _add_snapshot


@pytest.fixture
def add_post_snapshot(db):
    async def _add_post_snapshot(
        account: InstagramAccount,
        post_id: str,
        snapshot_date: date,
        likes: int = 0,
        comments: int = 0,
        post_type: str = "IMAGE",
    ) -> PostSnapshot:
        post = PostSnapshot(
            account_id=account.id,
            instagram_post_id=post_id,
            snapshot_date=snapshot_date,
            post_type=post_type,
            likes_count=likes,
            comments_count=comments,
            published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        db.add(post)
        await db.commit()
        return post
    return _add_post_snapshot


@pytest_asyncio.fixture
async def api(session_factory, graph_client, no_wait_gate):
    """HTTP client for the app wired to the test store and fake Graph API."""
    from database import get_db
    from main import app
    from middleware.rate_limit import limiter
    from routers.instagram import get_graph_client
    from routers.sync import get_data_scheduler
    from services.data_scheduler import DataScheduler

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_graph_client] = lambda: graph_client
    app.dependency_overrides[get_data_scheduler] = lambda: DataScheduler(
        session_factory=session_factory,
        client=graph_client,
        account_gate=no_wait_gate,
        stale_gate=no_wait_gate,
    )
    limiter.reset()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


CRON_HEADERS = bearer(os.environ["CRON_SECRET_KEY"])
