"""Service and TimeSlot catalog.

Authoritative store for services and their weekly time slots. All lookups are
scoped to the calling provider; a resource owned by someone else is reported
exactly like a missing one.
"""

import logging
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import NotFoundError, ValidationError, VersionConflictError
from app.models.booking import Booking, BookingStatus
from app.models.customer import Customer
from app.models.occurrence_capacity import OccurrenceCapacity
from app.models.service import Service
from app.models.time_slot import TimeSlot
from app.schemas.time_slot import TimeSlotIn
from app.services import outbox
from app.services.clock import get_zone, weekday_of

logger = logging.getLogger(__name__)


# ============================================================================
# SERVICES
# ============================================================================

async def get_service(db: AsyncSession, provider_id: UUID, service_id: UUID) -> Service:
    result = await db.execute(
        select(Service).where(Service.id == service_id, Service.provider_id == provider_id)
    )
    service = result.scalar_one_or_none()
    if not service:
        raise NotFoundError(f"Service not found: {service_id}", code="service_not_found")
    return service


async def list_services(
    db: AsyncSession, provider_id: UUID, page: int, page_size: int
) -> tuple[Sequence[Service], int]:
    total = (
        await db.execute(select(func.count(Service.id)).where(Service.provider_id == provider_id))
    ).scalar_one()
    result = await db.execute(
        select(Service)
        .where(Service.provider_id == provider_id)
        .order_by(Service.created_at, Service.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return result.scalars().all(), total


def _validate_service_fields(name: Optional[str], timezone: Optional[str]) -> None:
    if name is not None and not name.strip():
        raise ValidationError("Service name must not be empty", code="missing_required_field")
    if timezone is not None:
        get_zone(timezone)


async def create_service(
    db: AsyncSession,
    provider_id: UUID,
    name: str,
    description: Optional[str],
    timezone: str,
    initial_time_slots: Sequence[TimeSlotIn] = (),
) -> tuple[Service, list[TimeSlot]]:
    """Create a service together with its initial time slots, all or nothing."""
    if name is None:
        raise ValidationError("Service name is required", code="missing_required_field")
    _validate_service_fields(name, timezone)
    _check_slot_batch(initial_time_slots, allow_ids=False)

    service = Service(
        provider_id=provider_id,
        name=name.strip(),
        description=description,
        timezone=timezone,
    )
    db.add(service)
    await db.flush()

    slots = [
        TimeSlot(
            service_id=service.id,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            max_bookings=slot.max_bookings,
        )
        for slot in initial_time_slots
    ]
    db.add_all(slots)
    await db.commit()

    logger.info(
        "Service created: id=%s provider=%s timezone=%s slots=%d",
        service.id, provider_id, timezone, len(slots),
    )
    return service, slots


async def update_service(
    db: AsyncSession,
    service: Service,
    updates: dict,
    expected_version: Optional[int] = None,
) -> Service:
    if expected_version is not None and expected_version != service.version:
        raise VersionConflictError(
            f"Service {service.id} is at version {service.version}, not {expected_version}"
        )
    _validate_service_fields(updates.get("name"), updates.get("timezone"))
    if "name" in updates and updates["name"] is None:
        raise ValidationError("Service name must not be empty", code="missing_required_field")
    if "timezone" in updates and updates["timezone"] is None:
        raise ValidationError("timezone must not be null", code="missing_required_field")

    for field, value in updates.items():
        if field == "name":
            value = value.strip()
        setattr(service, field, value)

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise VersionConflictError(f"Service {service.id} was modified concurrently")
    await db.refresh(service)
    return service


async def delete_service(db: AsyncSession, service: Service) -> None:
    """Delete a service and everything it owns in one transaction."""
    service_id = service.id
    slot_ids = select(TimeSlot.id).where(TimeSlot.service_id == service_id)

    removed = await _announce_removed_bookings(db, Booking.service_id == service_id, "service_deleted")
    await db.execute(delete(Booking).where(Booking.service_id == service_id))
    await db.execute(
        delete(OccurrenceCapacity).where(OccurrenceCapacity.time_slot_id.in_(slot_ids))
    )
    await db.execute(delete(Customer).where(Customer.service_id == service_id))
    await db.execute(delete(TimeSlot).where(TimeSlot.service_id == service_id))
    await db.execute(delete(Service).where(Service.id == service_id))
    await db.commit()

    logger.info(
        "Service deleted with its time slots and bookings: id=%s live_bookings=%d", service_id, removed
    )


# ============================================================================
# TIME SLOTS
# ============================================================================

async def get_time_slot(db: AsyncSession, provider_id: UUID, time_slot_id: UUID) -> TimeSlot:
    result = await db.execute(
        select(TimeSlot)
        .join(Service, Service.id == TimeSlot.service_id)
        .where(TimeSlot.id == time_slot_id, Service.provider_id == provider_id)
    )
    slot = result.scalar_one_or_none()
    if not slot:
        raise NotFoundError(f"Time slot not found: {time_slot_id}", code="time_slot_not_found")
    return slot


async def list_time_slots(
    db: AsyncSession,
    service_id: UUID,
    page: int = 1,
    page_size: int = 20,
    no_pagination: bool = False,
) -> tuple[Sequence[TimeSlot], int]:
    total = (
        await db.execute(select(func.count(TimeSlot.id)).where(TimeSlot.service_id == service_id))
    ).scalar_one()
    query = (
        select(TimeSlot)
        .where(TimeSlot.service_id == service_id)
        .order_by(TimeSlot.day_of_week, TimeSlot.start_time, TimeSlot.id)
    )
    if not no_pagination:
        query = query.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)
    return result.scalars().all(), total


async def get_time_slots_for_occurrence_lookup(
    db: AsyncSession, service: Service, occurrence_date: date
) -> Sequence[TimeSlot]:
    """Time slots of ``service`` active on the weekday of ``occurrence_date``
    (weekday resolved in the service's timezone)."""
    day = weekday_of(occurrence_date, service.timezone)
    result = await db.execute(
        select(TimeSlot)
        .where(TimeSlot.service_id == service.id, TimeSlot.day_of_week == day)
        .order_by(TimeSlot.start_time)
    )
    return result.scalars().all()


async def resolve_occurrence_slot(
    db: AsyncSession, service: Service, time_slot_id: UUID, occurrence_date: date
) -> TimeSlot:
    """The TimeSlot a (time_slot_id, date) pair refers to.

    Fails with time_slot_not_found when the slot is not the service's or is
    not scheduled on that date's weekday.
    """
    for slot in await get_time_slots_for_occurrence_lookup(db, service, occurrence_date):
        if slot.id == time_slot_id:
            return slot
    raise NotFoundError(
        f"Time slot {time_slot_id} is not available on {occurrence_date.isoformat()}",
        code="time_slot_not_found",
    )


def _slot_errors(slot: TimeSlotIn) -> list[str]:
    errors = []
    if slot.start_time >= slot.end_time:
        errors.append("start_time must be before end_time")
    if slot.max_bookings < 1:
        errors.append("max_bookings must be at least 1")
    return errors


def _check_slot_batch(slots: Sequence[TimeSlotIn], allow_ids: bool = True) -> None:
    """Validate every slot up front; report all failing slots at once."""
    failures = []
    seen_ids = set()
    for index, slot in enumerate(slots):
        errors = _slot_errors(slot)
        if slot.id is not None:
            if not allow_ids:
                errors.append("id is not allowed when creating a service")
            elif slot.id in seen_ids:
                errors.append("id appears more than once in the batch")
            seen_ids.add(slot.id)
        if errors:
            failures.append({
                "index": index,
                "id": str(slot.id) if slot.id else None,
                "errors": errors,
            })
    if failures:
        raise ValidationError(
            f"{len(failures)} time slot(s) failed validation; nothing was saved",
            code="invalid_field_format",
            details=failures,
        )


async def batch_upsert_time_slots(
    db: AsyncSession, service: Service, slots: Sequence[TimeSlotIn]
) -> list[TimeSlot]:
    """Insert slots without an id, update slots with one. The batch is
    applied entirely or not at all."""
    _check_slot_batch(slots)

    wanted_ids = [slot.id for slot in slots if slot.id is not None]
    existing: dict[UUID, TimeSlot] = {}
    if wanted_ids:
        result = await db.execute(
            select(TimeSlot).where(TimeSlot.id.in_(wanted_ids), TimeSlot.service_id == service.id)
        )
        existing = {row.id: row for row in result.scalars().all()}

    missing = [str(slot_id) for slot_id in wanted_ids if slot_id not in existing]
    if missing:
        raise NotFoundError(
            "Time slot(s) not found for this service; nothing was saved",
            code="time_slot_not_found",
            details={"ids": missing},
        )

    conflicts = [
        {"id": str(slot.id), "expected": slot.version, "current": existing[slot.id].version}
        for slot in slots
        if slot.id is not None and slot.version is not None
        and slot.version != existing[slot.id].version
    ]
    if conflicts:
        raise VersionConflictError(
            "Time slot(s) were modified since they were read; nothing was saved",
            details=conflicts,
        )

    applied: list[TimeSlot] = []
    for slot in slots:
        if slot.id is not None:
            row = existing[slot.id]
            row.day_of_week = slot.day_of_week
            row.start_time = slot.start_time
            row.end_time = slot.end_time
            row.max_bookings = slot.max_bookings
        else:
            row = TimeSlot(
                service_id=service.id,
                day_of_week=slot.day_of_week,
                start_time=slot.start_time,
                end_time=slot.end_time,
                max_bookings=slot.max_bookings,
            )
            db.add(row)
        applied.append(row)

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise VersionConflictError("Time slots were modified concurrently; nothing was saved")

    logger.info(
        "Time slots upserted: service=%s updated=%d inserted=%d",
        service.id, len(wanted_ids), len(applied) - len(wanted_ids),
    )
    return applied


async def _announce_removed_bookings(db: AsyncSession, condition, reason: str) -> int:
    """Stage a booking.deleted event for every live booking about to be
    removed by a bulk delete."""
    result = await db.execute(
        select(Booking).where(condition, Booking.status != BookingStatus.CANCELLED)
    )
    removed = result.scalars().all()
    for booking in removed:
        outbox.record_event(
            db, outbox.BOOKING_DELETED, booking,
            extra={"previous_status": booking.status.value, "reason": reason},
        )
    return len(removed)


async def _delete_slots(db: AsyncSession, slot_ids) -> None:
    await _announce_removed_bookings(db, Booking.time_slot_id.in_(slot_ids), "time_slot_deleted")
    await db.execute(delete(Booking).where(Booking.time_slot_id.in_(slot_ids)))
    await db.execute(
        delete(OccurrenceCapacity).where(OccurrenceCapacity.time_slot_id.in_(slot_ids))
    )
    await db.execute(delete(TimeSlot).where(TimeSlot.id.in_(slot_ids)))


async def delete_time_slot(db: AsyncSession, slot: TimeSlot) -> None:
    slot_id = slot.id
    await _delete_slots(db, [slot_id])
    await db.commit()
    logger.info("Time slot deleted: id=%s service=%s", slot_id, slot.service_id)


async def delete_time_slots_by_day_of_week(
    db: AsyncSession, service: Service, day_of_week: int
) -> int:
    """Delete every slot of the service on ``day_of_week``. Zero matches is
    not an error."""
    if not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 and 6", code="invalid_field_format")
    result = await db.execute(
        select(TimeSlot.id).where(
            TimeSlot.service_id == service.id, TimeSlot.day_of_week == day_of_week
        )
    )
    slot_ids = list(result.scalars().all())
    if slot_ids:
        await _delete_slots(db, slot_ids)
    await db.commit()
    logger.info(
        "Time slots deleted by weekday: service=%s day_of_week=%d count=%d",
        service.id, day_of_week, len(slot_ids),
    )
    return len(slot_ids)
