"""API key authentication.

Keys look like ``rk_live_<random>``. Only the SHA-256 hex digest is stored,
together with a short prefix for display.
"""

import hashlib
import hmac
import logging
import secrets
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.provider import ApiKey, Provider

logger = logging.getLogger(__name__)

KEY_PREFIX = "rk_live_"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return KEY_PREFIX + secrets.token_urlsafe(32)


async def create_api_key(
    db: AsyncSession, provider_id: UUID, name: Optional[str] = None, raw_key: Optional[str] = None
) -> tuple[ApiKey, str]:
    """Store a new key for ``provider_id``. Returns the row and the raw key,
    which is not recoverable afterwards."""
    raw_key = raw_key or generate_api_key()
    api_key = ApiKey(
        provider_id=provider_id,
        name=name,
        key_prefix=raw_key[:12],
        key_hash=hash_api_key(raw_key),
        is_active=True,
    )
    db.add(api_key)
    await db.flush()
    return api_key, raw_key


async def authenticate_api_key(
    db: AsyncSession, raw_key: str
) -> Optional[tuple[ApiKey, Provider]]:
    """Resolve a raw bearer key to its (ApiKey, Provider), or None."""
    if not raw_key:
        return None
    digest = hash_api_key(raw_key)
    result = await db.execute(
        select(ApiKey, Provider)
        .join(Provider, Provider.id == ApiKey.provider_id)
        .where(ApiKey.key_hash == digest)
    )
    row = result.first()
    if not row:
        return None
    api_key, provider = row
    # Lookup is by digest; compare again in constant time
    if not hmac.compare_digest(api_key.key_hash, digest):
        return None
    return api_key, provider

