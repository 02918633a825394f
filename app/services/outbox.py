"""Booking event outbox.

Lifecycle changes write a BookingEvent in the same transaction as the booking
row, so an event exists if and only if the change committed. A dispatcher
drains the table and hands each event to a delivery callable (webhooks live
outside this service), retrying with exponential backoff.
"""

import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import utcnow
from app.models.booking import Booking
from app.models.booking_event import BookingEvent

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_UPDATED = "booking.updated"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_DELETED = "booking.deleted"

Deliver = Callable[[str, dict[str, Any]], Awaitable[None]]


def booking_payload(booking: Booking) -> dict[str, Any]:
    return {
        "id": str(booking.id),
        "service_id": str(booking.service_id),
        "time_slot_id": str(booking.time_slot_id),
        "customer_id": str(booking.customer_id) if booking.customer_id else None,
        "date": booking.occurrence_date.isoformat(),
        "status": booking.status.value if booking.status else None,
        "cancel_reason": booking.cancel_reason,
        "message": booking.message,
    }


def record_event(
    db: AsyncSession,
    event_type: str,
    booking: Booking,
    extra: Optional[dict[str, Any]] = None,
) -> BookingEvent:
    """Stage an event in the current transaction. Does not flush or commit."""
    payload = {"event": event_type, "booking": booking_payload(booking)}
    if extra:
        payload.update(extra)
    event = BookingEvent(
        event_type=event_type,
        service_id=booking.service_id,
        booking_id=booking.id,
        payload=payload,
        attempts=0,
        status="pending",
    )
    db.add(event)
    return event


def _retry_delay(attempts: int) -> timedelta:
    delays = settings.OUTBOX_RETRY_DELAYS or [60]
    return timedelta(seconds=delays[min(attempts - 1, len(delays) - 1)])


async def get_ready_events(db: AsyncSession, limit: int = 50) -> list[BookingEvent]:
    """Events due for a delivery attempt, oldest first.

    pending events are always due; retrying events wait out their backoff.
    """
    now = utcnow()
    result = await db.execute(
        select(BookingEvent)
        .where(
            and_(
                BookingEvent.status.in_(["pending", "retrying"]),
                BookingEvent.attempts < settings.OUTBOX_MAX_ATTEMPTS,
            )
        )
        .order_by(BookingEvent.created_at)
        .limit(limit)
    )
    ready = []
    for event in result.scalars().all():
        if event.attempts == 0 or now >= event.updated_at + _retry_delay(event.attempts):
            ready.append(event)
    return ready


async def mark_delivered(db: AsyncSession, event_id: UUID) -> None:
    result = await db.execute(select(BookingEvent).where(BookingEvent.id == event_id))
    event = result.scalar_one_or_none()
    if event:
        event.status = "delivered"
        event.attempts += 1
        event.last_error = None
        event.updated_at = utcnow()
        await db.commit()


async def mark_failed(db: AsyncSession, event_id: UUID, error: str) -> None:
    """Count a failed attempt; give up after OUTBOX_MAX_ATTEMPTS."""
    result = await db.execute(select(BookingEvent).where(BookingEvent.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        return

    event.attempts += 1
    event.last_error = error
    event.updated_at = utcnow()
    if event.attempts >= settings.OUTBOX_MAX_ATTEMPTS:
        event.status = "failed"
        logger.error(
            "Event delivery exhausted: id=%s type=%s error=%s",
            event_id, event.event_type, error[:100],
        )
    else:
        event.status = "retrying"
        logger.warning(
            "Event delivery failed (attempt %d/%d): id=%s error=%s",
            event.attempts, settings.OUTBOX_MAX_ATTEMPTS, event_id, error[:100],
        )
    await db.commit()


async def process_outbox(db: AsyncSession, deliver: Deliver, limit: int = 50) -> dict[str, int]:
    """Deliver one batch of ready events.

    ``deliver(event_type, payload)`` returns on success and raises on failure.
    """
    events = await get_ready_events(db, limit=limit)

    delivered = 0
    failed = 0
    for event in events:
        try:
            await deliver(event.event_type, event.payload)
        except Exception as e:
            await mark_failed(db, event.id, str(e))
            failed += 1
        else:
            await mark_delivered(db, event.id)
            delivered += 1

    if events:
        logger.info(
            "Outbox batch complete: %d delivered, %d failed, %d total",
            delivered, failed, len(events),
        )
    return {"processed": len(events), "delivered": delivered, "failed": failed}


def webhook_deliverer(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Deliver:
    """Deliver events by POSTing their payload as JSON to ``url``.

    Any non-2xx response counts as a failed attempt.
    """
    async def deliver(event_type: str, payload: dict[str, Any]) -> None:
        async with httpx.AsyncClient(transport=transport, timeout=settings.EVENTS_WEBHOOK_TIMEOUT) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"X-ReserveKit-Event": event_type},
            )
            response.raise_for_status()

    return deliver
