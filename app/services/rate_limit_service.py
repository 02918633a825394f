"""Per-API-key request throttling.

Fixed one-minute windows counted in api_usage_logs. The edge deployment runs
its own token bucket in front of the API; this check keeps a single key from
monopolizing the booking core when that layer is absent.
"""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Optional

from sqlalchemy import select, func, and_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import utcnow
from app.core.errors import RateLimitError
from app.models.api_usage_log import APIUsageLog
from app.models.provider import ApiKey

logger = logging.getLogger(__name__)

WINDOW = timedelta(minutes=1)


@dataclass
class RateLimitStatus:
    limit: int
    remaining: int
    reset_epoch_s: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(self.remaining, 0)),
            "X-RateLimit-Reset": str(self.reset_epoch_s),
        }


async def check_api_rate_limit(
    db: AsyncSession, api_key: ApiKey, method: str, endpoint: str
) -> RateLimitStatus:
    """Count this request against the key's current window.

    Raises RateLimitError (429, Retry-After) once the window is used up.
    """
    limit = settings.RATE_LIMIT_PER_MINUTE
    now = utcnow()
    window_start = now.replace(second=0, microsecond=0)
    window_end = window_start + WINDOW
    reset_epoch_s = int(window_end.replace(tzinfo=timezone.utc).timestamp())

    used = (
        await db.execute(
            select(func.count(APIUsageLog.id)).where(
                and_(
                    APIUsageLog.api_key_id == api_key.id,
                    APIUsageLog.created_at >= window_start,
                )
            )
        )
    ).scalar() or 0

    if used >= limit:
        retry_after = max(1, math.ceil((window_end - now).total_seconds()))
        status = RateLimitStatus(limit=limit, remaining=0, reset_epoch_s=reset_epoch_s)
        logger.warning(
            "Rate limit exceeded for api key %s: %d/%d requests this minute",
            api_key.key_prefix, used, limit,
        )
        raise RateLimitError(
            "Rate limit exceeded. Retry after the current window resets.",
            headers={**status.headers(), "Retry-After": str(retry_after)},
        )

    db.add(APIUsageLog(
        api_key_id=api_key.id,
        provider_id=api_key.provider_id,
        method=method,
        endpoint=endpoint,
        created_at=now,
    ))
    api_key.last_used_at = now
    await db.commit()

    return RateLimitStatus(limit=limit, remaining=limit - used - 1, reset_epoch_s=reset_epoch_s)


async def prune_usage_logs(db: AsyncSession, retention: Optional[timedelta] = None) -> int:
    """Delete usage rows older than the retention period.

    Never prunes inside the current window, so rate limiting is unaffected.
    """
    if retention is None:
        retention = timedelta(days=settings.USAGE_LOG_RETENTION_DAYS)
    cutoff = utcnow() - max(retention, WINDOW)
    result = await db.execute(delete(APIUsageLog).where(APIUsageLog.created_at < cutoff))
    await db.commit()
    logger.info("Pruned %d api usage rows older than %s", result.rowcount, cutoff.isoformat())
    return result.rowcount
