"""Booking status state machine.

    pending  -> confirmed | cancelled
    confirmed -> cancelled
    cancelled -> (terminal)

Cancelling gives the seat back to the capacity ledger. Confirming does not
touch capacity; the seat was taken at admission. Callers must hold the
occurrence lock (capacity_ledger.lock_occurrence) and commit.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.errors import InvalidStatusTransitionError, ValidationError
from app.models.booking import Booking, BookingStatus
from app.services import capacity_ledger, outbox

logger = logging.getLogger(__name__)

TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
}


def check_transition(
    current: BookingStatus, target: BookingStatus, cancel_reason: Optional[str] = None
) -> bool:
    """Validate a status change. Returns False for a no-op (same status)."""
    if current == BookingStatus.CANCELLED:
        raise InvalidStatusTransitionError(
            f"Booking is cancelled; cannot change status to {target.value}"
        )
    if target == current:
        return False
    if target not in TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            f"Cannot change booking status from {current.value} to {target.value}"
        )
    if target == BookingStatus.CANCELLED and not (cancel_reason and cancel_reason.strip()):
        raise ValidationError(
            "cancel_reason is required when cancelling a booking",
            code="missing_required_field",
        )
    return True


async def apply_status(
    db: AsyncSession,
    booking: Booking,
    target: BookingStatus,
    cancel_reason: Optional[str] = None,
) -> Optional[str]:
    """Move ``booking`` to ``target`` and stage the matching event.

    Returns the event type emitted, or None for a no-op.
    """
    current = booking.status
    if not check_transition(current, target, cancel_reason):
        return None

    now = utcnow()
    if target == BookingStatus.CANCELLED:
        await capacity_ledger.release_seat(db, booking.time_slot_id, booking.occurrence_date)
        booking.status = BookingStatus.CANCELLED
        booking.cancel_reason = cancel_reason.strip()
        booking.cancelled_at = now
        event_type = outbox.BOOKING_CANCELLED
    else:
        booking.status = BookingStatus.CONFIRMED
        booking.confirmed_at = now
        event_type = outbox.BOOKING_CONFIRMED

    outbox.record_event(db, event_type, booking, extra={"previous_status": current.value})
    logger.info(
        "Booking %s status %s -> %s", booking.id, current.value, target.value
    )
    return event_type


async def remove(db: AsyncSession, booking: Booking) -> None:
    """Hard-delete a booking from any status. A live booking still holds a
    seat, so it is released first; a cancelled one already gave it back."""
    previous = booking.status
    if booking.is_live:
        await capacity_ledger.release_seat(db, booking.time_slot_id, booking.occurrence_date)
    outbox.record_event(db, outbox.BOOKING_DELETED, booking, extra={"previous_status": previous.value})
    await db.delete(booking)
    logger.info("Booking %s deleted (was %s)", booking.id, previous.value)
