"""Duplicate guard: one live booking per (customer, occurrence).

Must run after ``capacity_ledger.lock_occurrence`` for the same occurrence so
the check and the following insert are serialized with concurrent admissions.
The partial unique index ``uq_bookings_live_customer_occurrence`` backs it up
at the storage level.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateBookingError
from app.models.booking import Booking, BookingStatus


async def find_live_booking(
    db: AsyncSession,
    customer_id: UUID,
    time_slot_id: UUID,
    occurrence_date: date,
    exclude_booking_id: Optional[UUID] = None,
) -> Optional[Booking]:
    query = select(Booking).where(
        Booking.customer_id == customer_id,
        Booking.time_slot_id == time_slot_id,
        Booking.occurrence_date == occurrence_date,
        Booking.status != BookingStatus.CANCELLED,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def check_duplicate(
    db: AsyncSession,
    customer_id: Optional[UUID],
    time_slot_id: UUID,
    occurrence_date: date,
    exclude_booking_id: Optional[UUID] = None,
) -> None:
    """Raise DuplicateBookingError if the customer already holds a live
    booking for this occurrence. Cancelled bookings never block."""
    if customer_id is None:
        return
    existing = await find_live_booking(
        db, customer_id, time_slot_id, occurrence_date, exclude_booking_id
    )
    if existing is not None:
        raise DuplicateBookingError(
            "Customer already has a booking for this time slot on "
            f"{occurrence_date.isoformat()}",
            details={"booking_id": str(existing.id)},
        )
