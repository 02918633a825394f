"""Booking reads, updates and deletes.

Every write locks the booking's occurrence first, then reloads the booking so
the state machine sees the latest committed status.
"""

import logging
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from app.models.booking import Booking, BookingStatus
from app.models.customer import Customer
from app.models.service import Service
from app.models.time_slot import TimeSlot
from app.schemas.booking import BookingOut, BookingUpdate
from app.schemas.customer import CustomerIn, CustomerOut
from app.services import booking_state, capacity_ledger, catalog, customers, duplicate_guard, outbox
from app.services.clock import occurrence_window, parse_date
from app.services.transactions import run_with_retry

logger = logging.getLogger(__name__)


async def get_booking(
    db: AsyncSession, provider_id: UUID, booking_id: UUID, refresh: bool = False
) -> Booking:
    query = (
        select(Booking)
        .join(Service, Service.id == Booking.service_id)
        .where(Booking.id == booking_id, Service.provider_id == provider_id)
    )
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError(f"Booking not found: {booking_id}", code="booking_not_found")
    return booking


async def list_bookings(
    db: AsyncSession,
    service_id: UUID,
    page: int,
    page_size: int,
    status: Optional[BookingStatus] = None,
    occurrence_date: Optional[date] = None,
) -> tuple[Sequence[Booking], int]:
    conditions = [Booking.service_id == service_id]
    if status is not None:
        conditions.append(Booking.status == status)
    if occurrence_date is not None:
        conditions.append(Booking.occurrence_date == occurrence_date)

    total = (await db.execute(select(func.count(Booking.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Booking)
        .where(*conditions)
        .order_by(Booking.occurrence_date, Booking.created_at, Booking.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return result.scalars().all(), total


async def booking_views(db: AsyncSession, bookings: Sequence[Booking]) -> list[BookingOut]:
    """Render bookings with their occurrence window and customer, loading
    the related rows in bulk."""
    if not bookings:
        return []
    slot_ids = {b.time_slot_id for b in bookings}
    service_ids = {b.service_id for b in bookings}
    customer_ids = {b.customer_id for b in bookings if b.customer_id}

    slots = {
        s.id: s for s in (await db.execute(select(TimeSlot).where(TimeSlot.id.in_(slot_ids)))).scalars()
    }
    services = {
        s.id: s for s in (await db.execute(select(Service).where(Service.id.in_(service_ids)))).scalars()
    }
    people = {}
    if customer_ids:
        people = {
            c.id: c
            for c in (await db.execute(select(Customer).where(Customer.id.in_(customer_ids)))).scalars()
        }

    views = []
    for booking in bookings:
        slot = slots.get(booking.time_slot_id)
        service = services.get(booking.service_id)
        starts_at = ends_at = None
        if slot and service:
            starts_at, ends_at = occurrence_window(
                booking.occurrence_date, slot.start_time, slot.end_time, service.timezone
            )
        customer = people.get(booking.customer_id)
        views.append(BookingOut(
            id=booking.id,
            service_id=booking.service_id,
            time_slot_id=booking.time_slot_id,
            customer_id=booking.customer_id,
            date=booking.occurrence_date,
            status=booking.status,
            cancel_reason=booking.cancel_reason,
            message=booking.message,
            starts_at=starts_at,
            ends_at=ends_at,
            customer=CustomerOut.model_validate(customer) if customer else None,
            version=booking.version,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        ))
    return views


def _occurrence_key(item: tuple[UUID, date]) -> tuple[str, date]:
    return str(item[0]), item[1]


async def update_booking(
    db: AsyncSession, provider_id: UUID, booking_id: UUID, changes: BookingUpdate
) -> Booking:
    """Apply a PATCH: status change, reschedule (date / time_slot_id),
    message or cancel_reason edits. All-or-nothing."""
    fields = changes.model_fields_set
    new_date = parse_date(changes.date) if changes.date is not None else None
    if changes.status == BookingStatus.CANCELLED and (new_date or changes.time_slot_id):
        raise ValidationError(
            "A booking cannot be cancelled and rescheduled in the same request",
            code="invalid_request",
        )

    async def apply() -> Booking:
        booking = await get_booking(db, provider_id, booking_id)
        service = await catalog.get_service(db, provider_id, booking.service_id)

        source = (booking.time_slot_id, booking.occurrence_date)
        target = (changes.time_slot_id or booking.time_slot_id, new_date or booking.occurrence_date)
        moving = target != source

        target_slot = None
        if moving:
            target_slot = await catalog.resolve_occurrence_slot(db, service, target[0], target[1])

        for time_slot_id, occurrence_date in sorted({source, target}, key=_occurrence_key):
            await capacity_ledger.lock_occurrence(db, time_slot_id, occurrence_date)
        booking = await get_booking(db, provider_id, booking_id, refresh=True)

        if changes.version is not None and changes.version != booking.version:
            raise VersionConflictError(
                f"Booking {booking.id} is at version {booking.version}, not {changes.version}"
            )
        # The locks cover the occurrence read before locking; a concurrent
        # reschedule may have moved the booking off it meanwhile.
        if (booking.time_slot_id, booking.occurrence_date) != source:
            raise VersionConflictError(f"Booking {booking.id} was rescheduled concurrently")

        changed = False
        if moving:
            if not booking.is_live:
                raise InvalidStatusTransitionError("A cancelled booking cannot be rescheduled")
            await duplicate_guard.check_duplicate(
                db, booking.customer_id, target_slot.id, target[1], exclude_booking_id=booking.id
            )
            await capacity_ledger.reserve_seat(db, target_slot.id, target[1], target_slot.max_bookings)
            await capacity_ledger.release_seat(db, booking.time_slot_id, booking.occurrence_date)
            booking.time_slot_id = target_slot.id
            booking.occurrence_date = target[1]
            changed = True

        if "message" in fields and changes.message != booking.message:
            booking.message = changes.message
            changed = True

        status_event = None
        if changes.status is not None:
            status_event = await booking_state.apply_status(
                db, booking, changes.status, changes.cancel_reason
            )
        elif "cancel_reason" in fields:
            if booking.status != BookingStatus.CANCELLED:
                raise ValidationError(
                    "cancel_reason can only be set together with status=cancelled",
                    code="invalid_request",
                )
            if not (changes.cancel_reason and changes.cancel_reason.strip()):
                raise ValidationError("cancel_reason must not be empty", code="missing_required_field")
            booking.cancel_reason = changes.cancel_reason.strip()
            changed = True

        if changed:
            outbox.record_event(
                db,
                outbox.BOOKING_UPDATED,
                booking,
                extra={"previous": {"time_slot_id": str(source[0]), "date": source[1].isoformat()}}
                if moving else None,
            )
        if changed or status_event:
            await db.flush()
            await db.commit()
            logger.info("Booking updated: id=%s moved=%s status_event=%s", booking.id, moving, status_event)
        else:
            await db.rollback()
            booking = await get_booking(db, provider_id, booking_id)
        return booking

    return await run_with_retry(db, apply, "Booking update")


async def delete_booking(db: AsyncSession, provider_id: UUID, booking_id: UUID) -> None:
    async def apply() -> None:
        booking = await get_booking(db, provider_id, booking_id)
        await capacity_ledger.lock_occurrence(db, booking.time_slot_id, booking.occurrence_date)
        booking = await get_booking(db, provider_id, booking_id, refresh=True)
        await booking_state.remove(db, booking)
        await db.commit()

    await run_with_retry(db, apply, "Booking delete")


async def get_booking_customer(db: AsyncSession, provider_id: UUID, booking_id: UUID) -> Customer:
    booking = await get_booking(db, provider_id, booking_id)
    if booking.customer_id is None:
        raise NotFoundError(f"Booking {booking_id} has no customer", code="customer_not_found")
    return await customers.get_customer(db, booking.customer_id)


async def update_booking_customer(
    db: AsyncSession, provider_id: UUID, booking_id: UUID, info: CustomerIn, fields: set[str]
) -> Customer:
    """Edit the booking's customer, or attach one to an anonymous booking.

    The customer record is shared by all bookings of that person for the
    service, so edits are visible on every one of them.
    """
    booking = await get_booking(db, provider_id, booking_id)
    if booking.customer_id is not None:
        customer = await customers.get_customer(db, booking.customer_id)
        return await customers.update_customer(db, customer, info, fields)

    if info.is_empty():
        raise ValidationError(
            "At least one of name, email or phone is required",
            code="missing_required_field",
        )

    async def attach() -> Customer:
        booking = await get_booking(db, provider_id, booking_id)
        await capacity_ledger.lock_occurrence(db, booking.time_slot_id, booking.occurrence_date)
        booking = await get_booking(db, provider_id, booking_id, refresh=True)
        customer = await customers.upsert_customer(db, booking.service_id, info)
        if booking.is_live:
            await duplicate_guard.check_duplicate(
                db, customer.id, booking.time_slot_id, booking.occurrence_date,
                exclude_booking_id=booking.id,
            )
        booking.customer_id = customer.id
        outbox.record_event(db, outbox.BOOKING_UPDATED, booking)
        await db.flush()
        await db.commit()
        logger.info("Customer %s attached to booking %s", customer.id, booking.id)
        return customer

    return await run_with_retry(db, attach, "Booking customer attach")
