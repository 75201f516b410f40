"""Routers package."""

from .analytics import router as analytics_router
from .instagram import router as instagram_router
from .sync import router as sync_router

__all__ = [
    "analytics_router",
    "instagram_router",
    "sync_router",
]
