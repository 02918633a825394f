"""Delete old api_usage_logs rows.

Usage:
    python -m app.scripts.prune_usage_logs
    python -m app.scripts.prune_usage_logs --days=7

Defaults to USAGE_LOG_RETENTION_DAYS. Meant to run from cron.
"""

import argparse
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from app.core.config import settings
from app.core.database import async_session
from app.services.rate_limit_service import prune_usage_logs


async def prune(days: Optional[int]) -> int:
    retention = timedelta(days=days) if days is not None else None
    async with async_session() as db:
        removed = await prune_usage_logs(db, retention)
    print(f"Removed {removed} usage log row(s).")
    return removed


def main():
    parser = argparse.ArgumentParser(description="Prune old API usage logs")
    parser.add_argument("--days", type=int, default=None, help="Keep this many days of history")

    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(prune(args.days))


if __name__ == "__main__":
    main()
