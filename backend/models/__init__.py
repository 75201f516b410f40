"""Database models."""

from database import Base

# Core models
from models.user import User
from models.instagram_account import InstagramAccount

# Time series
from models.daily_snapshot import DailySnapshot
from models.post_snapshot import PostSnapshot

# Audit
from models.sync_log import SyncLog, SyncStatus

__all__ = [
    # Base
    "Base",
    # Core
    "User",
    "InstagramAccount",
    # Time series
    "DailySnapshot",
    "PostSnapshot",
    # Audit
    "SyncLog",
    "SyncStatus",
]
