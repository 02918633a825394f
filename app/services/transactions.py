"""Bounded retry of a unit of work on lock timeouts and write conflicts.

Business errors are never retried. Each attempt starts from a rolled-back
session, so an operation must reload whatever it needs from the database
instead of reusing objects from a previous attempt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (OperationalError, IntegrityError, StaleDataError)


async def run_with_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    description: str,
) -> T:
    max_attempts = max(1, settings.ADMISSION_MAX_ATTEMPTS)
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except RETRYABLE_ERRORS as e:
            await db.rollback()
            if attempt == max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s", description, attempt, e.__class__.__name__
                )
                raise InternalError(f"{description} could not be completed, please retry") from e
            delay = settings.ADMISSION_RETRY_BASE_DELAY * (2 ** (attempt - 1))
            logger.warning(
                "%s conflicted (attempt %d/%d, %s); retrying in %.2fs",
                description, attempt, max_attempts, e.__class__.__name__, delay,
            )
            await asyncio.sleep(delay)
        except Exception:
            await db.rollback()
            raise
    raise InternalError(f"{description} could not be completed")
