"""FastAPI dependencies: API key authentication, throttling, pagination."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Query, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import AuthenticationError, ForbiddenError
from app.services.auth import authenticate_api_key
from app.services.rate_limit_service import check_api_rate_limit

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The verified caller: which provider, through which key."""
    provider_id: UUID
    api_key_id: UUID


async def get_current_provider(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the bearer API key to its provider and count the request
    against the key's rate limit.

    Raises 401 for a missing/unknown key, 403 for a disabled key or account,
    429 when throttled.
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError(
            "Missing API key. Send 'Authorization: Bearer <api key>'.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    found = await authenticate_api_key(db, credentials.credentials)
    if not found:
        raise AuthenticationError("Invalid API key", headers={"WWW-Authenticate": "Bearer"})

    api_key, provider = found
    if not api_key.is_active or not provider.is_active:
        raise ForbiddenError("API key or account is disabled")

    principal = Principal(provider_id=provider.id, api_key_id=api_key.id)

    if settings.RATE_LIMIT_ENABLED:
        status = await check_api_rate_limit(db, api_key, request.method, request.url.path)
        request.state.rate_limit_headers = status.headers()

    return principal


@dataclass(frozen=True)
class PageParams:
    page: int
    page_size: int


def get_page_params(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=settings.MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, page_size=page_size or settings.DEFAULT_PAGE_SIZE)
