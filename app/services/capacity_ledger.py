"""Capacity ledger: seats taken per occurrence (time_slot_id, date).

One ``occurrence_capacity`` row per occurrence is the serialization point for
admission. ``lock_occurrence`` takes the row lock, and every check that must be
linearized for that occurrence (duplicate guard, seat reservation) runs after
it inside the same transaction. Different occurrences lock different rows and
never wait on each other.

Counters are derived data: ``rebuild_occurrence`` / ``reconcile_service``
recompute them from the bookings table.
"""

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.errors import CapacityExceededError
from app.models.booking import Booking, BookingStatus
from app.models.occurrence_capacity import OccurrenceCapacity
from app.models.time_slot import TimeSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatReservation:
    """Proof that one seat was taken inside the current transaction."""
    time_slot_id: UUID
    occurrence_date: date
    booked_count: int
    max_bookings: int


def _occurrence(time_slot_id: UUID, occurrence_date: date):
    return and_(
        OccurrenceCapacity.time_slot_id == time_slot_id,
        OccurrenceCapacity.occurrence_date == occurrence_date,
    )


async def ensure_occurrence(db: AsyncSession, time_slot_id: UUID, occurrence_date: date) -> None:
    """Create the ledger row for an occurrence if it does not exist yet."""
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        stmt = (
            insert(OccurrenceCapacity)
            .values(time_slot_id=time_slot_id, occurrence_date=occurrence_date, booked_count=0)
            .on_conflict_do_nothing(index_elements=["time_slot_id", "occurrence_date"])
        )
        await db.execute(stmt)
        return

    exists = await db.execute(
        select(OccurrenceCapacity.id).where(_occurrence(time_slot_id, occurrence_date))
    )
    if exists.scalar_one_or_none() is not None:
        return
    try:
        async with db.begin_nested():
            db.add(OccurrenceCapacity(
                time_slot_id=time_slot_id, occurrence_date=occurrence_date, booked_count=0,
            ))
    except IntegrityError:
        # Created by a concurrent transaction in the meantime
        pass


async def lock_occurrence(db: AsyncSession, time_slot_id: UUID, occurrence_date: date) -> int:
    """Lock the occurrence's ledger row for the rest of the transaction and
    return its current booked_count."""
    await ensure_occurrence(db, time_slot_id, occurrence_date)
    result = await db.execute(
        select(OccurrenceCapacity.booked_count)
        .where(_occurrence(time_slot_id, occurrence_date))
        .with_for_update()
    )
    return result.scalar_one()


async def get_booked_count(db: AsyncSession, time_slot_id: UUID, occurrence_date: date) -> int:
    result = await db.execute(
        select(OccurrenceCapacity.booked_count).where(_occurrence(time_slot_id, occurrence_date))
    )
    return result.scalar_one_or_none() or 0


async def reserve_seat(
    db: AsyncSession, time_slot_id: UUID, occurrence_date: date, max_bookings: int
) -> SeatReservation:
    """Take one seat if booked_count < max_bookings, atomically.

    Raises CapacityExceededError (time_slot_full) otherwise. Nothing is
    committed here; the caller's transaction owns the reservation.
    """
    await ensure_occurrence(db, time_slot_id, occurrence_date)
    result = await db.execute(
        update(OccurrenceCapacity)
        .where(
            _occurrence(time_slot_id, occurrence_date),
            OccurrenceCapacity.booked_count < max_bookings,
        )
        .values(
            booked_count=OccurrenceCapacity.booked_count + 1,
            version=OccurrenceCapacity.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CapacityExceededError(
            f"Time slot {time_slot_id} is full on {occurrence_date.isoformat()}"
        )
    booked = await get_booked_count(db, time_slot_id, occurrence_date)
    return SeatReservation(time_slot_id, occurrence_date, booked, max_bookings)


async def release_seat(db: AsyncSession, time_slot_id: UUID, occurrence_date: date) -> bool:
    """Give one seat back. The counter never goes below zero; releasing an
    empty occurrence is logged as an anomaly and returns False."""
    result = await db.execute(
        update(OccurrenceCapacity)
        .where(
            _occurrence(time_slot_id, occurrence_date),
            OccurrenceCapacity.booked_count > 0,
        )
        .values(
            booked_count=OccurrenceCapacity.booked_count - 1,
            version=OccurrenceCapacity.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Capacity release on empty occurrence ignored: time_slot=%s date=%s",
            time_slot_id, occurrence_date,
        )
        return False
    return True


async def _live_booking_count(db: AsyncSession, time_slot_id: UUID, occurrence_date: date) -> int:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.time_slot_id == time_slot_id,
            Booking.occurrence_date == occurrence_date,
            Booking.status != BookingStatus.CANCELLED,
        )
    )
    return result.scalar_one()


async def rebuild_occurrence(
    db: AsyncSession, time_slot_id: UUID, occurrence_date: date
) -> tuple[int, int]:
    """Reset one counter to the number of live bookings.

    Returns (previous, actual). Runs in the caller's transaction.
    """
    previous = await lock_occurrence(db, time_slot_id, occurrence_date)
    actual = await _live_booking_count(db, time_slot_id, occurrence_date)
    if previous != actual:
        await db.execute(
            update(OccurrenceCapacity)
            .where(_occurrence(time_slot_id, occurrence_date))
            .values(
                booked_count=actual,
                version=OccurrenceCapacity.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        logger.warning(
            "Capacity counter corrected: time_slot=%s date=%s %d -> %d",
            time_slot_id, occurrence_date, previous, actual,
        )
    return previous, actual


async def reconcile_service(db: AsyncSession, service_id: UUID) -> list[dict]:
    """Rebuild every counter of a service's occurrences and commit.

    Covers occurrences that have a ledger row, live bookings, or both.
    Returns the corrections that were applied.
    """
    slot_ids = select(TimeSlot.id).where(TimeSlot.service_id == service_id)

    ledger_rows = await db.execute(
        select(OccurrenceCapacity.time_slot_id, OccurrenceCapacity.occurrence_date)
        .where(OccurrenceCapacity.time_slot_id.in_(slot_ids))
    )
    booking_rows = await db.execute(
        select(Booking.time_slot_id, Booking.occurrence_date)
        .where(
            Booking.service_id == service_id,
            or_(Booking.status == BookingStatus.PENDING, Booking.status == BookingStatus.CONFIRMED),
        )
        .distinct()
    )
    occurrences = sorted(
        {(row[0], row[1]) for row in ledger_rows.all()}
        | {(row[0], row[1]) for row in booking_rows.all()},
        key=lambda item: (str(item[0]), item[1]),
    )

    corrections = []
    for time_slot_id, occurrence_date in occurrences:
        previous, actual = await rebuild_occurrence(db, time_slot_id, occurrence_date)
        if previous != actual:
            corrections.append({
                "time_slot_id": str(time_slot_id),
                "date": occurrence_date.isoformat(),
                "previous": previous,
                "actual": actual,
            })
    await db.commit()

    logger.info(
        "Capacity reconciled: service=%s occurrences=%d corrected=%d",
        service_id, len(occurrences), len(corrections),
    )
    return corrections
