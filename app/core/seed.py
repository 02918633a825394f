"""Seed a development provider and API key on app startup."""

import logging
from sqlalchemy import select
from app.core.config import settings
from app.core.database import async_session
from app.models.provider import ApiKey, Provider
from app.services.auth import create_api_key, hash_api_key

logger = logging.getLogger(__name__)


async def seed_dev_provider():
    """Create a provider owning SEED_API_KEY if it doesn't exist.

    Does nothing unless SEED_API_KEY is set, and never in production.
    """
    if not settings.SEED_API_KEY or settings.APP_ENV == "production":
        return

    async with async_session() as db:
        try:
            existing = await db.execute(
                select(ApiKey).where(ApiKey.key_hash == hash_api_key(settings.SEED_API_KEY))
            )
            if existing.scalar_one_or_none():
                logger.info("Dev API key already seeded")
                return

            provider = Provider(name=settings.SEED_PROVIDER_NAME, is_active=True)
            db.add(provider)
            await db.flush()
            api_key, _ = await create_api_key(
                db, provider.id, name="dev seed", raw_key=settings.SEED_API_KEY
            )
            await db.commit()

            logger.info("Dev provider seeded: provider=%s key=%s...", provider.id, api_key.key_prefix)

        except Exception as e:
            logger.error(f"Failed to seed dev provider: {e}")
            await db.rollback()
