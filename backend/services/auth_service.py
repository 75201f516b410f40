"""Authentication service - JWT encoding and decoding.

User sign-in lives in the external auth system; this service only trusts the
HS256 access tokens it issues (``sub`` = user id).
"""

from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from config import get_settings
from services.dates import utc_now

settings = get_settings()


class TokenData(BaseModel):
    """Data extracted from JWT token."""
    user_id: str
    email: Optional[str] = None
    token_type: Optional[str] = None  # "access" or "refresh"


class AuthService:
    """JWT helpers shared by the auth middleware and scripts."""

    @staticmethod
    def create_access_token(
        user_id: str, email: Optional[str] = None, expires_minutes: int = 60
    ) -> str:
        """Issue an access token for ``user_id`` (used by scripts and local dev)."""
        payload = {
            "sub": user_id,
            "type": "access",
            "exp": utc_now() + timedelta(minutes=expires_minutes),
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate a JWT token. None when invalid or expired."""
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm],
            )
        except JWTError:
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None

        return TokenData(
            user_id=user_id,
            email=payload.get("email"),
            token_type=payload.get("type"),
        )

    @staticmethod
    def verify_access_token(token: str) -> Optional[TokenData]:
        """Verify an access token; refresh tokens are rejected."""
        token_data = AuthService.decode_token(token)
        if token_data is None:
            return None
        if token_data.token_type not in ("access", None):
            return None
        return token_data
