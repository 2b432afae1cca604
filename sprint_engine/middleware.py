"""API authentication, caller identity and rate limiting for the HTTP layer."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import APIKeyHeader, APIKeyQuery
from slowapi import Limiter
from slowapi.util import get_remote_address

from sprint_engine.config import settings

# ── Rate Limiter ──

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit],
    enabled=settings.rate_limit_enabled,
)


# ── API Key Authentication ──

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
api_key_query = APIKeyQuery(name="api_key", auto_error=False)


async def verify_api_key(
    header_key: str | None = Depends(api_key_header),
    query_key: str | None = Depends(api_key_query),
) -> None:
    """Verify the API key from header or query parameter.

    With no keys configured the gate is open, except in production where
    that is a server misconfiguration.
    """
    configured_keys = settings.configured_api_keys
    if not configured_keys:
        if settings.environment != "production":
            return
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API authentication not configured on server",
        )

    api_key = header_key or query_key
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Provide via X-API-Key header or api_key query parameter.",
        )

    if api_key not in configured_keys:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )


# ── Caller Identity ──


async def current_user_id(x_user_id: str = Header(default="", alias="X-User-Id")) -> str:
    """Identity of the caller, set by the upstream authentication layer."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return user_id
