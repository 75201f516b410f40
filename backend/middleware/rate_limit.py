"""Rate limiting middleware using SlowAPI."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# Create limiter instance using client IP as key
limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Sync-style error body so dashboard clients handle 429 like other failures."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "message": f"Sync rate limit exceeded ({exc.detail}). Please try again later.",
        },
    )
