"""Recompute occurrence capacity counters from the bookings table.

Usage:
    python -m app.scripts.reconcile_capacity --service-id=<uuid>
    python -m app.scripts.reconcile_capacity --all

Counters are corrected in place; every correction is printed and logged.
"""

import argparse
import asyncio
import logging
import sys
import uuid

from sqlalchemy import select

from app.core.config import settings
from app.core.database import async_session
from app.models.service import Service
from app.services.capacity_ledger import reconcile_service


async def reconcile(service_ids: list[uuid.UUID]) -> int:
    total = 0
    async with async_session() as db:
        if not service_ids:
            result = await db.execute(select(Service.id).order_by(Service.created_at))
            service_ids = list(result.scalars().all())

        for service_id in service_ids:
            corrections = await reconcile_service(db, service_id)
            for fix in corrections:
                print(
                    f"{service_id} slot={fix['time_slot_id']} date={fix['date']}: "
                    f"{fix['previous']} -> {fix['actual']}"
                )
            total += len(corrections)

    print(f"Reconciled {len(service_ids)} service(s), {total} counter(s) corrected.")
    return total


def main():
    parser = argparse.ArgumentParser(description="Rebuild capacity counters from bookings")
    parser.add_argument("--service-id", type=uuid.UUID, action="append", default=[], help="Service to reconcile (repeatable)")
    parser.add_argument("--all", action="store_true", help="Reconcile every service")

    args = parser.parse_args()

    if not args.service_id and not args.all:
        print("Error: pass --service-id or --all.", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(reconcile([] if args.all else args.service_id))


if __name__ == "__main__":
    main()
