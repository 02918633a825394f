"""Booking admission pipeline.

The single entry point for creating bookings:

  1. parse the date strictly
  2. resolve the time slot (belongs to the service, scheduled on that weekday)
  3. resolve or create the customer
  4. lock the occurrence, run the duplicate guard, reserve a seat
  5. insert the booking as pending
  6. stage a booking.created event

Steps 2-6 run in one transaction: a failure anywhere rolls back the seat, the
customer and the event together. Lock timeouts and write conflicts are
retried a bounded number of times (see transactions.run_with_retry).
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking import Booking, BookingStatus
from app.models.customer import Customer
from app.schemas.customer import CustomerIn
from app.services import capacity_ledger, catalog, customers, duplicate_guard, outbox
from app.services.clock import parse_date
from app.services.transactions import run_with_retry

logger = logging.getLogger(__name__)


async def create_booking(
    db: AsyncSession,
    provider_id: UUID,
    service_id: UUID,
    time_slot_id: UUID,
    date_string: str,
    customer_info: Optional[CustomerIn] = None,
    message: Optional[str] = None,
) -> tuple[Booking, Optional[Customer]]:
    occurrence_date = parse_date(date_string)

    async def admit() -> tuple[Booking, Optional[Customer]]:
        service = await catalog.get_service(db, provider_id, service_id)
        slot = await catalog.resolve_occurrence_slot(db, service, time_slot_id, occurrence_date)
        customer = await customers.upsert_customer(db, service.id, customer_info)
        customer_id = customer.id if customer else None

        await capacity_ledger.lock_occurrence(db, slot.id, occurrence_date)
        await duplicate_guard.check_duplicate(db, customer_id, slot.id, occurrence_date)
        reservation = await capacity_ledger.reserve_seat(
            db, slot.id, occurrence_date, slot.max_bookings
        )

        booking = Booking(
            service_id=service.id,
            time_slot_id=slot.id,
            customer_id=customer_id,
            occurrence_date=occurrence_date,
            status=BookingStatus.PENDING,
            message=message,
        )
        db.add(booking)
        await db.flush()
        outbox.record_event(db, outbox.BOOKING_CREATED, booking)
        await db.commit()

        logger.info(
            "Booking admitted: id=%s service=%s time_slot=%s date=%s seats=%d/%d",
            booking.id, service.id, slot.id, occurrence_date,
            reservation.booked_count, reservation.max_bookings,
        )
        return booking, customer

    return await run_with_retry(db, admit, "Booking admission")
