"""Instagram account router - connect, inspect and disconnect the user's account.

The OAuth code exchange happens in the external web app; this router receives
the resulting long-lived token, verifies it against the Graph API and stores
the account. Disconnecting only deactivates: snapshot history is kept and a
later reconnect of the same Instagram account resumes it.
"""

import logging
from datetime import datetime
from typing import Annotated, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import get_current_active_user
from models.user import User
from services.account_service import (
    disconnect_account,
    get_user_instagram_account,
    save_instagram_account,
)
from services.errors import ApiError
from services.instagram_service import fetch_profile

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/instagram", tags=["instagram"])


def get_graph_client() -> Optional[httpx.AsyncClient]:
    """Graph API client override hook; None means a short-lived client per call."""
    return None


# Request/response schemas
class ConnectRequest(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None


class InstagramAccountResponse(BaseModel):
    """Stored account without credentials."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    instagram_id: str
    instagram_handle: str
    account_type: Optional[str]
    is_active: bool
    token_expires_at: Optional[datetime]
    last_sync_at: Optional[datetime]
    created_at: datetime


class AccountConnectionResponse(BaseModel):
    connected: bool
    account: Optional[InstagramAccountResponse] = None


@router.post("/connect", response_model=InstagramAccountResponse, status_code=status.HTTP_201_CREATED)
async def connect_instagram_account(
    data: ConnectRequest,
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    graph_client: Annotated[Optional[httpx.AsyncClient], Depends(get_graph_client)],
):
    """Store (or reactivate) the account the token belongs to."""
    try:
        profile = await fetch_profile(data.access_token, client=graph_client)
    except ApiError as e:
        logger.warning(f"Instagram token rejected for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not verify Instagram access token: {e}",
        )

    return await save_instagram_account(
        db,
        current_user.id,
        profile,
        access_token=data.access_token,
        refresh_token=data.refresh_token,
    )


@router.get("/account", response_model=AccountConnectionResponse)
async def get_instagram_account(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    account = await get_user_instagram_account(db, current_user.id)
    if account is None:
        return AccountConnectionResponse(connected=False)
    return AccountConnectionResponse(
        connected=account.is_active,
        account=InstagramAccountResponse.model_validate(account),
    )


@router.delete("/account", response_model=InstagramAccountResponse)
async def disconnect_instagram_account(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    account = await get_user_instagram_account(db, current_user.id)
    if account is None or not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No connected Instagram account",
        )
    return await disconnect_account(db, account)
