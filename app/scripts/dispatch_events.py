"""Deliver pending booking events to the configured webhook.

Usage:
    python -m app.scripts.dispatch_events --once
    python -m app.scripts.dispatch_events --interval=5 --webhook-url=https://hooks.example.com/bookings

Without --once the dispatcher polls forever.
"""

import argparse
import asyncio
import logging
import sys

from app.core.config import settings
from app.core.database import async_session
from app.services.outbox import process_outbox, webhook_deliverer

logger = logging.getLogger(__name__)


async def dispatch(webhook_url: str, interval: float, once: bool, batch_size: int) -> None:
    deliver = webhook_deliverer(webhook_url)
    while True:
        async with async_session() as db:
            stats = await process_outbox(db, deliver, limit=batch_size)
        if once:
            print(f"Processed {stats['processed']} event(s): {stats['delivered']} delivered, {stats['failed']} failed")
            return
        if stats["processed"] < batch_size:
            await asyncio.sleep(interval)


def main():
    parser = argparse.ArgumentParser(description="Dispatch booking events from the outbox")
    parser.add_argument("--webhook-url", default=settings.EVENTS_WEBHOOK_URL, help="Receiver URL (defaults to EVENTS_WEBHOOK_URL)")
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between polls when idle")
    parser.add_argument("--batch-size", type=int, default=50)
    parser.add_argument("--once", action="store_true", help="Process one batch and exit")

    args = parser.parse_args()

    if not args.webhook_url:
        print("Error: set EVENTS_WEBHOOK_URL or pass --webhook-url.", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(level=settings.LOG_LEVEL)
    try:
        asyncio.run(dispatch(args.webhook_url, args.interval, args.once, args.batch_size))
    except KeyboardInterrupt:
        logger.info("Dispatcher stopped")


if __name__ == "__main__":
    main()
