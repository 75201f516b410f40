"""Instagram Graph API service.

Fetches profile fields, recent media and per-media insights for a connected
account using its own access token. Nothing here retries: callers decide how
a failure is handled (the snapshot writer aborts on profile/media failures and
shrugs off insight failures).
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from config import get_settings
from services.dates import parse_iso_datetime
from services.errors import ApiError

logger = logging.getLogger(__name__)
settings = get_settings()

PROFILE_FIELDS = "id,username,account_type,media_count,followers_count,follows_count"
MEDIA_FIELDS = (
    "id,media_type,media_url,permalink,caption,timestamp,"
    "like_count,comments_count,thumbnail_url"
)
INSIGHT_METRICS = "reach,impressions,saved"


class InstagramProfile(BaseModel):
    """Profile fields consumed by the snapshot writer."""
    id: str
    username: str
    account_type: Optional[str] = None
    media_count: int = 0
    followers_count: int = 0
    follows_count: int = 0
    raw: dict = Field(default_factory=dict, exclude=True)


class InstagramMedia(BaseModel):
    """A single post as returned by /me/media."""
    id: str
    media_type: Optional[str] = None  # IMAGE, VIDEO, CAROUSEL_ALBUM
    media_url: Optional[str] = None
    permalink: Optional[str] = None
    caption: Optional[str] = None
    timestamp: Optional[str] = None
    like_count: Optional[int] = None
    comments_count: Optional[int] = None
    thumbnail_url: Optional[str] = None
    raw: dict = Field(default_factory=dict, exclude=True)

    @property
    def published_at(self) -> Optional[datetime]:
        return parse_iso_datetime(self.timestamp)


class MediaInsights(BaseModel):
    """Business/creator-only insight metrics. Every field is optional."""
    reach: Optional[int] = None
    impressions: Optional[int] = None
    saves: Optional[int] = None


@asynccontextmanager
async def _graph_client(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client when given, otherwise a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.instagram_api_timeout) as own_client:
        yield own_client


async def _get_json(
    client: Optional[httpx.AsyncClient], path: str, params: dict, what: str
) -> dict:
    """GET a Graph API path, translating every failure into ApiError."""
    url = f"{settings.instagram_graph_base}{path}"
    async with _graph_client(client) as http:
        try:
            response = await http.get(url, params=params)
        except httpx.TimeoutException as e:
            raise ApiError(f"Instagram API timeout fetching {what}") from e
        except httpx.HTTPError as e:
            raise ApiError(f"Instagram API request failed fetching {what}: {e}") from e

    if not response.is_success:
        logger.warning(
            f"Instagram API error fetching {what}: "
            f"{response.status_code} - {response.text}"
        )
        raise ApiError(
            f"Instagram API error: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        return response.json()
    except ValueError as e:
        raise ApiError(
            f"Instagram API returned invalid JSON for {what}",
            status_code=response.status_code,
            body=response.text,
        ) from e


async def fetch_profile(
    access_token: str, client: Optional[httpx.AsyncClient] = None
) -> InstagramProfile:
    """Fetch the profile of the account that owns ``access_token``.

    Raises ApiError on any non-2xx response or transport failure.
    """
    data = await _get_json(
        client,
        "/me",
        {"fields": PROFILE_FIELDS, "access_token": access_token},
        "profile",
    )
    profile = InstagramProfile(
        id=str(data.get("id", "")),
        username=data.get("username", ""),
        account_type=data.get("account_type"),
        media_count=data.get("media_count") or 0,
        followers_count=data.get("followers_count") or 0,
        follows_count=data.get("follows_count") or 0,
        raw=data,
    )
    logger.info(
        f"Instagram profile fetched for @{profile.username}: "
        f"{profile.followers_count} followers, {profile.media_count} media"
    )
    return profile


async def fetch_recent_media(
    access_token: str, limit: int = 25, client: Optional[httpx.AsyncClient] = None
) -> list[InstagramMedia]:
    """Fetch the most recent media (first page only, up to ``limit``)."""
    data = await _get_json(
        client,
        "/me/media",
        {"fields": MEDIA_FIELDS, "limit": limit, "access_token": access_token},
        "media",
    )
    media_list = [
        InstagramMedia(
            id=str(item.get("id")),
            media_type=item.get("media_type"),
            media_url=item.get("media_url"),
            permalink=item.get("permalink"),
            caption=item.get("caption"),
            timestamp=item.get("timestamp"),
            like_count=item.get("like_count"),
            comments_count=item.get("comments_count"),
            thumbnail_url=item.get("thumbnail_url"),
            raw=item,
        )
        for item in data.get("data", [])
        if item.get("id")
    ]
    logger.info(f"Fetched {len(media_list)} Instagram media")
    return media_list


async def fetch_media_insights(
    media_id: str, access_token: str, client: Optional[httpx.AsyncClient] = None
) -> MediaInsights:
    """Fetch reach/impressions/saves for one media item.

    Raises ApiError like the other fetches, including for a 2xx body that
    doesn't have the expected shape; the snapshot writer treats it as
    non-fatal.
    """
    what = f"insights for media {media_id}"
    data = await _get_json(
        client,
        f"/{media_id}/insights",
        {"metric": INSIGHT_METRICS, "access_token": access_token},
        what,
    )
    if not isinstance(data, dict) or not isinstance(data.get("data", []), list):
        raise ApiError(f"Instagram API returned malformed {what}", body=str(data))

    insights: dict = {}
    for metric in data.get("data", []):
        if not isinstance(metric, dict):
            continue
        name = metric.get("name", "")
        values = metric.get("values")
        first = values[0] if isinstance(values, list) and values else {}
        value = first.get("value", 0) if isinstance(first, dict) else 0
        if name == "reach":
            insights["reach"] = value or 0
        elif name == "impressions":
            insights["impressions"] = value or 0
        elif name in ("saved", "saves"):
            insights["saves"] = value or 0

    try:
        return MediaInsights(**insights)
    except ValidationError as e:
        raise ApiError(f"Instagram API returned malformed {what}: {e}", body=str(data)) from e
